"""Remote usage client interfaces and result models."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from meterai.core.exceptions import RemoteApiError

from .utils import describe_http_error, extract_error_body

logger = logging.getLogger("meterai.providers")


class OAuthUsageResult(BaseModel):
    success: bool
    error: str | None = None
    five_hour_percent: float | None = None
    five_hour_reset: str | None = None
    seven_day_percent: float | None = None
    seven_day_reset: str | None = None
    subscription_type: str | None = None


class ApiKeyCheck(BaseModel):
    success: bool
    error: str | None = None


class DailyCost(BaseModel):
    date: str
    cost_usd: float


class CostUsageResult(BaseModel):
    success: bool
    error: str | None = None
    usage_usd: float | None = None
    limit_usd: float | None = None
    percent: float | None = None
    is_pay_as_you_go: bool = False
    daily_usage: list[DailyCost] = Field(default_factory=list)


class UsageClient:
    """Base class for clients calling a provider's usage endpoints."""

    provider_id: str

    def __init__(self, base_url: str, timeout: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def _get_json(
        self,
        path: str,
        token: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """GET ``path`` and return the decoded object; failures raise :class:`RemoteApiError`."""
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url, headers=self._headers(token), params=params)
        except httpx.RequestError as exc:
            logger.warning(
                "Usage endpoint unreachable",
                extra={"event": "remote_network_error", "provider_id": self.provider_id, "path": path},
            )
            raise RemoteApiError("Network error contacting provider") from exc

        if response.is_error:
            message = describe_http_error(response.status_code, extract_error_body(response))
            logger.warning(
                "Usage endpoint returned an error",
                extra={
                    "event": "remote_http_error",
                    "provider_id": self.provider_id,
                    "path": path,
                    "status_code": response.status_code,
                },
            )
            raise RemoteApiError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise RemoteApiError("Provider returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise RemoteApiError("Unexpected response format")
        return data


__all__ = [
    "ApiKeyCheck",
    "CostUsageResult",
    "DailyCost",
    "OAuthUsageResult",
    "UsageClient",
]
