"""Anthropic OAuth usage-window client."""

from __future__ import annotations

from typing import Any

from meterai.core.exceptions import RemoteApiError

from .base import OAuthUsageResult, UsageClient

DEFAULT_BASE_URL = "https://api.anthropic.com"
USAGE_PATH = "/api/oauth/usage"
OAUTH_BETA = "oauth-2025-04-20"
USER_AGENT = "meterai/0.1"


def _window(payload: dict[str, Any], key: str) -> tuple[float | None, str | None]:
    window = payload.get(key)
    if not isinstance(window, dict):
        return None, None
    utilization = window.get("utilization")
    percent = None
    if isinstance(utilization, (int, float)) and not isinstance(utilization, bool):
        percent = max(0.0, min(100.0, float(utilization)))
    resets_at = window.get("resets_at")
    return percent, resets_at if isinstance(resets_at, str) else None


class AnthropicUsageClient(UsageClient):
    provider_id = "claude-pro-max"

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 30.0) -> None:
        super().__init__(base_url, timeout)

    def _headers(self, token: str) -> dict[str, str]:
        headers = super()._headers(token)
        headers["anthropic-beta"] = OAUTH_BETA
        headers["User-Agent"] = USER_AGENT
        return headers

    async def fetch_usage(
        self, token: str, subscription_type: str | None = None
    ) -> OAuthUsageResult:
        """Return the five-hour and seven-day utilisation windows for ``token``."""
        try:
            payload = await self._get_json(USAGE_PATH, token)
        except RemoteApiError as exc:
            return OAuthUsageResult(success=False, error=exc.message, subscription_type=subscription_type)

        five_hour_percent, five_hour_reset = _window(payload, "five_hour")
        seven_day_percent, seven_day_reset = _window(payload, "seven_day")
        return OAuthUsageResult(
            success=True,
            five_hour_percent=five_hour_percent,
            five_hour_reset=five_hour_reset,
            seven_day_percent=seven_day_percent,
            seven_day_reset=seven_day_reset,
            subscription_type=subscription_type,
        )
