from __future__ import annotations

import asyncio
import logging
from typing import Any

from condonotify.core.config import get_settings
from condonotify.core.errors import DeliveryStoreUnavailableError
from condonotify.services.delivery.health import ConnectionProber, run_provider_probe
from condonotify.services.delivery.sweep import run_reconciliation_sweep


logger = logging.getLogger(__name__)


async def run_reconciliation_cycle(*, batch_limit: int | None = None) -> dict[str, Any]:
    # One bounded pass under the external timeout; committed corrections survive cancellation.
    settings = get_settings()
    timeout_s = max(1, int(settings.reconcile_timeout_s))
    try:
        report = await asyncio.wait_for(run_reconciliation_sweep(batch_limit=batch_limit), timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.warning("delivery_reconcile_timed_out timeout_s=%s", timeout_s)
        return {"status": "timed_out", "checked": 0, "corrected": 0, "synced": 0}
    except DeliveryStoreUnavailableError as exc:
        logger.error("delivery_reconcile_store_unavailable", exc_info=exc)
        return {"status": "store_unavailable", "checked": 0, "corrected": 0, "synced": 0}
    return report.as_dict()


async def run_provider_probe_cycle(prober: ConnectionProber | None = None) -> dict[str, Any]:
    result = await run_provider_probe(prober)
    return result.as_dict()


async def run_reconciliation_loop() -> None:
    # Run sweeps on a fixed cadence and keep going after failures.
    interval = max(5, int(get_settings().reconcile_interval_s))
    while True:
        try:
            await run_reconciliation_cycle()
        except Exception:  # noqa: BLE001 - keep loop alive while surfacing errors in logs.
            logger.exception("delivery reconciliation cycle failed")
        await asyncio.sleep(interval)


async def run_provider_probe_loop(prober: ConnectionProber | None = None) -> None:
    interval = max(5, int(get_settings().provider_probe_interval_s))
    while True:
        try:
            await run_provider_probe_cycle(prober)
        except Exception:  # noqa: BLE001 - keep loop alive while surfacing errors in logs.
            logger.exception("provider probe cycle failed")
        await asyncio.sleep(interval)
