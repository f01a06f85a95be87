"""Usage counters and provider configuration endpoints."""

from __future__ import annotations

from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from meterai.context import AppContext
from meterai.core.config import ProviderKind
from meterai.providers.base import ApiKeyCheck, CostUsageResult, OAuthUsageResult
from meterai.quota.models import AppSettings, ProviderConfig, UsageState

from .deps import get_context

router = APIRouter(prefix="/api")

Context = Annotated[AppContext, Depends(get_context)]


class RecordUsageRequest(BaseModel):
    count: int = Field(default=1, ge=0)
    provider_id: str | None = None


class ResetUsageRequest(BaseModel):
    provider_id: str | None = None


class ConfigureProviderRequest(BaseModel):
    limit: int = Field(gt=0)
    alert_thresholds: List[int]
    reset_interval_hours: int = Field(gt=0)
    enabled: bool = True
    api_key: str | None = None


class SwitchProviderRequest(BaseModel):
    provider_id: str


class ApiKeyRequest(BaseModel):
    api_key: str = Field(min_length=1)


@router.get("/usage")
def get_usage(context: Context, provider_id: str | None = None) -> UsageState:
    return context.guard.get_usage(provider_id)


@router.post("/usage/record")
def record_usage(body: RecordUsageRequest, context: Context) -> UsageState:
    return context.guard.record_usage(body.count, body.provider_id)


@router.post("/usage/reset")
def reset_usage(body: ResetUsageRequest, context: Context) -> UsageState:
    return context.guard.manual_reset(body.provider_id)


@router.get("/settings")
def get_settings(context: Context) -> AppSettings:
    return context.guard.get_settings()


@router.get("/providers")
def list_providers(context: Context) -> dict:
    providers = context.guard.list_providers()
    return {
        "active_provider_id": context.guard.active_provider_id,
        "providers": [provider.model_dump(mode="json") for provider in providers],
    }


@router.put("/providers/{provider_id}")
def configure_provider(
    provider_id: str, body: ConfigureProviderRequest, context: Context
) -> ProviderConfig:
    return context.guard.configure(
        provider_id,
        limit=body.limit,
        alert_thresholds=body.alert_thresholds,
        reset_interval_hours=body.reset_interval_hours,
        enabled=body.enabled,
        api_key=body.api_key,
    )


@router.post("/providers/active")
def switch_provider(body: SwitchProviderRequest, context: Context) -> UsageState:
    return context.guard.switch_active(body.provider_id)


@router.put("/providers/{provider_id}/api-key")
async def save_api_key(provider_id: str, body: ApiKeyRequest, context: Context) -> ApiKeyCheck:
    check = await context.save_api_key(provider_id, body.api_key)
    if not check.success:
        raise HTTPException(status_code=400, detail=check.error or "Invalid API key")
    return check


@router.delete("/providers/{provider_id}/api-key")
def remove_api_key(provider_id: str, context: Context) -> dict:
    context.guard.remove_api_key(provider_id)
    return {"status": "ok"}


@router.get("/providers/{provider_id}/remote-usage", response_model=None)
async def remote_usage(provider_id: str, context: Context) -> OAuthUsageResult | CostUsageResult:
    config = context.guard.get_provider(provider_id)
    if config.provider_kind is ProviderKind.ANTHROPIC:
        return await context.fetch_oauth_usage()
    if config.provider_kind is ProviderKind.OPENAI:
        return await context.fetch_cost_usage(provider_id)
    raise HTTPException(status_code=400, detail="Provider has no remote usage endpoint")
