"""Messaging provider reachability probe.

The prober runs on its own cadence and publishes its last result; the
reconciliation sweep only reads that result and never probes inline.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import json
import logging
from typing import Any, Protocol

import httpx
from redis.exceptions import RedisError

from condonotify.core.config import get_settings
from condonotify.core.errors import ProviderConfigError
from condonotify.services.resilience import RetryPolicy, get_resilience_redis, provider_probe_retry_policy, retry_async
from condonotify.services.telemetry import increment_counter


logger = logging.getLogger(__name__)

PROBE_RESULT_KEY = "condonotify:provider:last_probe"

_local_last_result: "ProbeResult | None" = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProbeResult:
    reachable: bool
    provider_label: str
    checked_at: datetime
    # False when credentials are missing; such results never gate a sweep.
    configured: bool = True
    detail: str | None = None
    status_code: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "reachable": self.reachable,
            "provider_label": self.provider_label,
            "checked_at": self.checked_at.isoformat(),
            "configured": self.configured,
            "detail": self.detail,
            "status_code": self.status_code,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ProbeResult":
        return cls(
            reachable=bool(payload["reachable"]),
            provider_label=str(payload["provider_label"]),
            checked_at=datetime.fromisoformat(str(payload["checked_at"])),
            configured=bool(payload.get("configured", True)),
            detail=payload.get("detail"),
            status_code=payload.get("status_code"),
        )


class ConnectionProber(Protocol):
    async def probe(self) -> ProbeResult: ...


class MetaWhatsAppProber:
    """Check that the WhatsApp Cloud API answers for the configured phone number id."""

    def __init__(
        self,
        *,
        base_url: str,
        phone_number_id: str | None,
        access_token: str | None,
        provider_label: str,
        policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url.startswith(("https://", "http://")):
            raise ProviderConfigError(f"provider base url must be http(s): {base_url!r}")
        self._base_url = base_url.rstrip("/")
        self._phone_number_id = phone_number_id
        self._access_token = access_token
        self._provider_label = provider_label
        self._policy = policy or provider_probe_retry_policy()
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._phone_number_id and self._access_token)

    async def _fetch_phone_number(self) -> httpx.Response:
        timeout_s = max(0.2, self._policy.timeout_ms / 1000.0)
        async with httpx.AsyncClient(timeout=timeout_s, transport=self._transport) as client:
            response = await client.get(
                f"{self._base_url}/{self._phone_number_id}",
                headers={"Authorization": f"Bearer {self._access_token}"},
            )
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    async def probe(self) -> ProbeResult:
        if not self.configured:
            return ProbeResult(
                reachable=False,
                provider_label=self._provider_label,
                checked_at=_utc_now(),
                configured=False,
                detail="not_configured",
            )
        try:
            response = await retry_async(self._fetch_phone_number, policy=self._policy)
        except Exception as exc:  # noqa: BLE001 - any failure means the provider is unreachable for this probe.
            status_code = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            return ProbeResult(
                reachable=False,
                provider_label=self._provider_label,
                checked_at=_utc_now(),
                detail=str(exc) or type(exc).__name__,
                status_code=status_code,
            )
        if response.status_code >= 400:
            return ProbeResult(
                reachable=False,
                provider_label=self._provider_label,
                checked_at=_utc_now(),
                detail=_provider_error_message(response),
                status_code=response.status_code,
            )
        return ProbeResult(
            reachable=True,
            provider_label=self._provider_label,
            checked_at=_utc_now(),
            status_code=response.status_code,
        )


def _provider_error_message(response: httpx.Response) -> str:
    # Graph API errors carry {"error": {"message", "code"}}; fall back to the HTTP status.
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        code = error.get("code")
        return f"{error['message']} (code={code})" if code is not None else str(error["message"])
    return f"HTTP {response.status_code}"


def build_default_prober() -> MetaWhatsAppProber:
    settings = get_settings()
    return MetaWhatsAppProber(
        base_url=settings.meta_graph_base_url,
        phone_number_id=settings.meta_whatsapp_phone_id,
        access_token=settings.meta_whatsapp_access_token,
        provider_label=settings.provider_label,
    )


async def publish_probe_result(result: ProbeResult) -> None:
    # Keep an in-process copy so a single-process deployment works without Redis.
    global _local_last_result
    _local_last_result = result
    redis = await get_resilience_redis()
    if redis is None:
        return
    stale_after = max(1, int(get_settings().provider_probe_stale_after_s))
    try:
        await redis.set(PROBE_RESULT_KEY, json.dumps(result.as_dict()), ex=stale_after)
    except (RedisError, OSError) as exc:
        logger.warning("provider_probe_publish_failed provider=%s", result.provider_label, exc_info=exc)


def _is_fresh(result: ProbeResult, *, now: datetime) -> bool:
    stale_after = max(1, int(get_settings().provider_probe_stale_after_s))
    return (now - result.checked_at).total_seconds() <= stale_after


async def get_last_probe_result(*, now: datetime | None = None) -> ProbeResult | None:
    # Prefer the shared Redis copy; fall back to this process's last result.
    now = now or _utc_now()
    result: ProbeResult | None = None
    redis = await get_resilience_redis()
    if redis is not None:
        try:
            raw = await redis.get(PROBE_RESULT_KEY)
        except (RedisError, OSError) as exc:
            logger.warning("provider_probe_read_failed", exc_info=exc)
            raw = None
        if raw:
            decoded = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else str(raw)
            try:
                result = ProbeResult.from_dict(json.loads(decoded))
            except (ValueError, KeyError, TypeError):
                logger.warning("provider_probe_result_unreadable")
                result = None
    if result is None:
        result = _local_last_result
    if result is None or not _is_fresh(result, now=now):
        return None
    return result


def reset_local_probe_result() -> None:
    global _local_last_result
    _local_last_result = None


async def run_provider_probe(prober: ConnectionProber | None = None) -> ProbeResult:
    prober = prober or build_default_prober()
    result = await prober.probe()
    if result.reachable:
        increment_counter("provider_probe_reachable_total")
        logger.info("provider_probe_ok provider=%s status_code=%s", result.provider_label, result.status_code)
    else:
        increment_counter("provider_probe_unreachable_total")
        logger.warning(
            "provider_probe_unreachable provider=%s configured=%s detail=%s",
            result.provider_label,
            result.configured,
            result.detail,
        )
    await publish_probe_result(result)
    return result


async def provider_blocks_sweep() -> ProbeResult | None:
    # Return the blocking result when a fresh, configured probe says the provider is down.
    result = await get_last_probe_result()
    if result is None or not result.configured or result.reachable:
        return None
    return result
