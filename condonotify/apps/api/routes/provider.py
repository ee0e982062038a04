from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from condonotify.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from condonotify.apps.api.response import SuccessEnvelope, success_response
from condonotify.services.delivery.health import get_last_probe_result, run_provider_probe

router = APIRouter(prefix="/provider", tags=["provider"], responses=DEFAULT_ERROR_RESPONSES)


class ProbeResultResponse(BaseModel):
    reachable: bool
    provider_label: str
    checked_at: str
    configured: bool
    detail: str | None
    status_code: int | None


class ProviderHealthResponse(BaseModel):
    # None when no fresh probe result has been published.
    last_probe: ProbeResultResponse | None


@router.get("/health", response_model=SuccessEnvelope[ProviderHealthResponse])
async def provider_health(request: Request) -> dict:
    result = await get_last_probe_result()
    payload = ProviderHealthResponse(
        last_probe=ProbeResultResponse(**result.as_dict()) if result is not None else None
    )
    return success_response(request=request, data=payload.model_dump())


@router.post("/probe", response_model=SuccessEnvelope[ProbeResultResponse])
async def probe_provider(request: Request) -> dict:
    # Operator-triggered probe; publishes the result like the background loop does.
    result = await run_provider_probe()
    return success_response(request=request, data=ProbeResultResponse(**result.as_dict()).model_dump())
