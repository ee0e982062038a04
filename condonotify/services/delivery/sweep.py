from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import time
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from condonotify.core.config import get_settings
from condonotify.core.errors import DeliveryStoreUnavailableError
from condonotify.domain.state import DeliverySnapshot, StatusTransition, snapshot_from_row
from condonotify.persistence.db import SessionLocal
from condonotify.persistence.repos.deliveries import apply_status_correction, select_reconciliation_candidates
from condonotify.services.audit import record_event
from condonotify.services.delivery.health import provider_blocks_sweep
from condonotify.services.delivery.normalizer import detect_anomalies, normalize
from condonotify.services.telemetry import increment_counter, record_sweep


logger = logging.getLogger(__name__)

RECONCILED_EVENT_TYPE = "delivery.status.reconciled"
SWEEP_ACTOR_ID = "delivery_reconciler"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SweepReport:
    status: str = "ok"
    checked: int = 0
    corrected: int = 0
    updates: list[StatusTransition] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    conflicts: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.status in {"ok", "skipped_provider_unreachable"}

    def as_dict(self) -> dict[str, Any]:
        # ``synced`` keeps the response shape existing dashboards already read.
        return {
            "status": self.status,
            "success": self.success,
            "checked": self.checked,
            "corrected": self.corrected,
            "synced": self.corrected,
            "updates": [dict(update) for update in self.updates],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "conflicts": self.conflicts,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass(frozen=True)
class _Candidate:
    record_id: str
    tenant_id: str
    snapshot: DeliverySnapshot


async def _load_candidates(
    session_factory: async_sessionmaker[AsyncSession], *, batch_limit: int
) -> list[_Candidate]:
    # Detach candidates from the read session so each correction runs in its own transaction.
    try:
        async with session_factory() as session:
            rows = await select_reconciliation_candidates(session, limit=batch_limit)
            return [
                _Candidate(record_id=row.id, tenant_id=row.tenant_id, snapshot=snapshot_from_row(row))
                for row in rows
            ]
    except SQLAlchemyError as exc:
        raise DeliveryStoreUnavailableError("delivery record store unavailable") from exc


async def _reconcile_candidate(
    session_factory: async_sessionmaker[AsyncSession],
    candidate: _Candidate,
    report: SweepReport,
    *,
    request_id: str | None,
) -> None:
    result = normalize(candidate.snapshot)
    if not result.needs_update:
        return
    previous_status = candidate.snapshot.raw_status
    new_status = str(result.corrections.get("raw_status", result.canonical.value))
    async with session_factory() as session:
        try:
            affected = await apply_status_correction(
                session,
                record_id=candidate.record_id,
                expected_raw_status=previous_status,
                corrections=result.corrections,
            )
            if affected == 0:
                # A webhook moved the record after selection; the next pass re-evaluates it.
                await session.rollback()
                report.conflicts += 1
                increment_counter("delivery_reconcile_conflicts_total")
                logger.info(
                    "delivery_reconcile_conflict record_id=%s expected_status=%s",
                    candidate.record_id,
                    previous_status,
                )
                return
            await record_event(
                session,
                tenant_id=candidate.tenant_id,
                actor_type="system",
                actor_id=SWEEP_ACTOR_ID,
                actor_role="system",
                event_type=RECONCILED_EVENT_TYPE,
                outcome="success",
                resource_type="delivery_record",
                resource_id=candidate.record_id,
                request_id=request_id,
                metadata={
                    "record_id": candidate.record_id,
                    "previous_status": previous_status,
                    "new_status": new_status,
                    "corrections": result.corrections,
                },
            )
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            report.errors.append(f"{candidate.record_id}: {exc.__class__.__name__}: {exc}")
            increment_counter("delivery_reconcile_errors_total")
            logger.error("delivery_reconcile_record_failed record_id=%s", candidate.record_id, exc_info=exc)
            return

    report.corrected += 1
    report.updates.append(
        StatusTransition(record_id=candidate.record_id, previous_status=previous_status, new_status=new_status)
    )
    increment_counter("delivery_reconcile_corrected_total")
    logger.info(
        "delivery_status_reconciled record_id=%s tenant_id=%s from=%s to=%s",
        candidate.record_id,
        candidate.tenant_id,
        previous_status,
        new_status,
    )


async def run_reconciliation_sweep(
    *,
    batch_limit: int | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    check_provider: bool | None = None,
    request_id: str | None = None,
) -> SweepReport:
    """Run one bounded reconciliation pass and report what changed.

    Candidates are records whose stored status may lag their timestamps. Each
    correction is committed on its own together with its audit event, so a
    failure on one record, or cancellation of the pass, never undoes work
    already committed for others.

    Raises ``DeliveryStoreUnavailableError`` when the candidate batch cannot be read.
    """
    settings = get_settings()
    limit = max(1, int(batch_limit if batch_limit is not None else settings.reconcile_batch_limit))
    factory = session_factory or SessionLocal
    gate_enabled = settings.reconcile_skip_when_provider_down if check_provider is None else check_provider
    report = SweepReport(started_at=_utc_now())
    started = time.monotonic()

    if gate_enabled:
        blocking = await provider_blocks_sweep()
        if blocking is not None:
            report.status = "skipped_provider_unreachable"
            report.warnings.append(f"provider {blocking.provider_label} unreachable: {blocking.detail}")
            report.finished_at = _utc_now()
            increment_counter("delivery_reconcile_skipped_total")
            logger.warning(
                "delivery_reconcile_skipped provider=%s checked_at=%s",
                blocking.provider_label,
                blocking.checked_at.isoformat(),
            )
            return report

    candidates = await _load_candidates(factory, batch_limit=limit)
    for candidate in candidates:
        report.checked += 1
        for anomaly in detect_anomalies(candidate.snapshot):
            report.warnings.append(f"{candidate.record_id}: {anomaly}")
            logger.warning("delivery_record_anomaly record_id=%s anomaly=%s", candidate.record_id, anomaly)
        await _reconcile_candidate(factory, candidate, report, request_id=request_id)

    report.finished_at = _utc_now()
    increment_counter("delivery_reconcile_checked_total", report.checked)
    record_sweep(
        duration_ms=(time.monotonic() - started) * 1000.0,
        checked=report.checked,
        corrected=report.corrected,
        errors=len(report.errors),
    )
    logger.info(
        "delivery_reconcile_completed checked=%s corrected=%s conflicts=%s errors=%s",
        report.checked,
        report.corrected,
        report.conflicts,
        len(report.errors),
    )
    return report
