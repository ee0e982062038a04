from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from condonotify.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from condonotify.apps.api.response import SuccessEnvelope, success_response
from condonotify.persistence.db import pool_stats
from condonotify.services.telemetry import get_counters, sweep_summary

router = APIRouter(tags=["health"], responses=DEFAULT_ERROR_RESPONSES)


class HealthResponse(BaseModel):
    status: str


class ReconcileStatsResponse(BaseModel):
    counters: dict[str, int]
    last_hour: dict[str, float | int | None]
    db_pool: dict[str, int | None]


@router.get("/health", response_model=SuccessEnvelope[HealthResponse])
async def health(request: Request) -> dict:
    payload = HealthResponse(status="ok")
    return success_response(request=request, data=payload.model_dump())


@router.get("/health/reconciliation", response_model=SuccessEnvelope[ReconcileStatsResponse])
async def reconciliation_stats(request: Request) -> dict:
    # Surface sweep throughput so operators notice a growing correction backlog.
    payload = ReconcileStatsResponse(
        counters=get_counters(),
        last_hour=sweep_summary(3600),
        db_pool=pool_stats(),
    )
    return success_response(request=request, data=payload.model_dump())
