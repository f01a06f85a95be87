"""OpenAI API key validation and cost-based usage client."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from meterai.core.exceptions import RemoteApiError

from .base import ApiKeyCheck, CostUsageResult, DailyCost, UsageClient

logger = logging.getLogger("meterai.providers.openai")

DEFAULT_BASE_URL = "https://api.openai.com"
MODELS_PATH = "/v1/models"
SUBSCRIPTION_PATH = "/v1/dashboard/billing/subscription"
USAGE_PATH = "/v1/dashboard/billing/usage"


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _daily_costs(payload: dict[str, Any]) -> list[DailyCost]:
    days: list[DailyCost] = []
    for item in payload.get("daily_costs") or []:
        if not isinstance(item, dict):
            continue
        timestamp = _as_float(item.get("timestamp"))
        if timestamp is None:
            continue
        cents = sum(
            _as_float(line.get("cost")) or 0.0
            for line in item.get("line_items") or []
            if isinstance(line, dict)
        )
        day = datetime.fromtimestamp(timestamp, tz=timezone.utc).date().isoformat()
        days.append(DailyCost(date=day, cost_usd=round(cents / 100, 4)))
    return days


class OpenAIUsageClient(UsageClient):
    provider_id = "openai-api"

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 30.0) -> None:
        super().__init__(base_url, timeout)

    async def validate_api_key(self, api_key: str) -> ApiKeyCheck:
        try:
            await self._get_json(MODELS_PATH, api_key)
        except RemoteApiError as exc:
            if exc.status_code == 401:
                return ApiKeyCheck(success=False, error="Invalid API key")
            return ApiKeyCheck(success=False, error=exc.message)
        return ApiKeyCheck(success=True)

    async def _hard_limit(self, api_key: str) -> float | None:
        try:
            payload = await self._get_json(SUBSCRIPTION_PATH, api_key)
        except RemoteApiError:
            logger.info("Subscription endpoint unavailable", extra={"event": "openai_subscription_unavailable"})
            return None
        limit = _as_float(payload.get("hard_limit_usd")) or _as_float(payload.get("system_hard_limit_usd"))
        return limit or None

    async def fetch_usage(
        self,
        api_key: str,
        limit_usd: float | None = None,
        today: date | None = None,
    ) -> CostUsageResult:
        """Return month-to-date spend against the account (or configured) dollar limit.

        A missing subscription limit falls back to ``limit_usd``; with neither
        the account is reported as pay-as-you-go. A failed usage fetch is a
        failure result rather than zero spend.
        """
        today = today or datetime.now(timezone.utc).date()
        params = {
            "start_date": today.replace(day=1).isoformat(),
            "end_date": (today + timedelta(days=1)).isoformat(),
        }

        hard_limit = await self._hard_limit(api_key)
        limit = hard_limit or (limit_usd if limit_usd and limit_usd > 0 else None)

        try:
            payload = await self._get_json(USAGE_PATH, api_key, params=params)
        except RemoteApiError as exc:
            return CostUsageResult(
                success=False,
                error=exc.message,
                limit_usd=limit,
                is_pay_as_you_go=limit is None,
            )

        usage_usd = round((_as_float(payload.get("total_usage")) or 0.0) / 100, 4)
        percent = min(100.0, usage_usd / limit * 100) if limit else None
        return CostUsageResult(
            success=True,
            usage_usd=usage_usd,
            limit_usd=limit,
            percent=percent,
            is_pay_as_you_go=limit is None,
            daily_usage=_daily_costs(payload),
        )
