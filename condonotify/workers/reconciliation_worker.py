from __future__ import annotations

import asyncio
import logging
from typing import Any

from arq.connections import RedisSettings

from condonotify.core.config import get_settings
from condonotify.services.delivery.worker import run_provider_probe_loop, run_reconciliation_cycle, run_reconciliation_loop

logger = logging.getLogger(__name__)


async def reconcile_delivery_statuses(ctx, batch_limit: int | None = None) -> dict[str, Any]:
    # Run one on-demand pass submitted through the queue.
    result = await run_reconciliation_cycle(batch_limit=batch_limit)
    logger.info(
        "delivery_reconcile_job_finished job_id=%s status=%s synced=%s",
        ctx.get("job_id"),
        result.get("status"),
        result.get("synced"),
    )
    return result


async def _startup(ctx) -> None:
    # Start recurring sweep and probe loops with the worker so reconciliation runs without API traffic.
    ctx["reconcile_task"] = asyncio.create_task(run_reconciliation_loop())
    ctx["probe_task"] = asyncio.create_task(run_provider_probe_loop())


async def _shutdown(ctx) -> None:
    for key in ("reconcile_task", "probe_task"):
        task = ctx.get(key)
        if task:
            task.cancel()


class WorkerSettings:
    # Keep worker settings as class attributes for ARQ CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.reconcile_queue_name
    # A pass is safe to repeat but is never retried within one invocation.
    max_tries = 1
    job_timeout = max(1, int(settings.reconcile_timeout_s)) + 30
    functions = [reconcile_delivery_statuses]
    on_startup = _startup
    on_shutdown = _shutdown
