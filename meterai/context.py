"""Explicitly owned collaborators of a running tracker instance."""

from __future__ import annotations

import logging
import pathlib
from dataclasses import dataclass

from meterai.core.clock import Clock, system_clock
from meterai.core.config import AppConfig, ProviderKind, default_data_dir, load_config
from meterai.credentials.drift import DriftDetector
from meterai.credentials.resolver import CredentialResolver
from meterai.credentials.vault import TokenVault
from meterai.events import EventBus
from meterai.notifications import DesktopNotifier, Notifier
from meterai.providers.anthropic import AnthropicUsageClient
from meterai.providers.base import ApiKeyCheck, CostUsageResult, OAuthUsageResult
from meterai.providers.openai import OpenAIUsageClient
from meterai.state import StateGuard
from meterai.storage.secrets import SecretStore, SqlSecretStore

logger = logging.getLogger("meterai.context")

STATE_FILE = "state.json"
TOKEN_META_FILE = "token_meta.json"
TOKEN_HISTORY_FILE = "token_history.json"
SECRETS_FILE = "secrets.db"


@dataclass
class AppContext:
    config: AppConfig
    data_dir: pathlib.Path
    secrets: SecretStore
    events: EventBus
    notifier: Notifier
    guard: StateGuard
    resolver: CredentialResolver
    vault: TokenVault
    drift: DriftDetector
    anthropic: AnthropicUsageClient
    openai: OpenAIUsageClient

    # -- remote usage: network calls run outside the guard ------------------------

    def oauth_token(self) -> tuple[str, str | None] | None:
        """Return the token to query usage with (vault copy first) and the plan type."""
        with self.guard.lock:
            entry = self.vault.load()
            resolved = self.resolver.resolve(self.guard.custom_credentials_path())
        subscription_type = resolved.subscription_type if resolved else None
        if entry is not None and entry.has_token:
            return entry.token, subscription_type
        if resolved is not None:
            return resolved.token, subscription_type
        return None

    async def fetch_oauth_usage(self) -> OAuthUsageResult:
        found = self.oauth_token()
        if found is None:
            return OAuthUsageResult(success=False, error="No OAuth credentials found")
        token, subscription_type = found
        return await self.anthropic.fetch_usage(token, subscription_type)

    async def fetch_cost_usage(self, provider_id: str) -> CostUsageResult:
        config = self.guard.get_provider(provider_id)
        api_key = self.guard.get_api_key(provider_id)
        if not api_key:
            return CostUsageResult(success=False, error="No API key configured")
        return await self.openai.fetch_usage(api_key, limit_usd=float(config.limit))

    async def save_api_key(self, provider_id: str, api_key: str) -> ApiKeyCheck:
        """Validate ``api_key`` against the provider when possible, then store it."""
        config = self.guard.get_provider(provider_id)
        if config.provider_kind is ProviderKind.OPENAI:
            check = await self.openai.validate_api_key(api_key)
            if not check.success:
                logger.warning(
                    "API key rejected",
                    extra={"event": "api_key_invalid", "provider_id": provider_id},
                )
                return check
        self.guard.set_api_key(provider_id, api_key)
        return ApiKeyCheck(success=True)


def build_context(
    data_dir: pathlib.Path | None = None,
    config: AppConfig | None = None,
    *,
    secrets: SecretStore | None = None,
    notifier: Notifier | None = None,
    resolver: CredentialResolver | None = None,
    clock: Clock = system_clock,
) -> AppContext:
    data_dir = data_dir or default_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    config = config or load_config()
    secrets = secrets or SqlSecretStore(data_dir / SECRETS_FILE)
    events = EventBus()
    notifier = notifier or DesktopNotifier()
    resolver = resolver or CredentialResolver()

    guard = StateGuard(data_dir / STATE_FILE, secrets, config, notifier, events, clock)
    vault = TokenVault(secrets, data_dir / TOKEN_META_FILE, clock)
    drift = DriftDetector(
        resolver,
        vault,
        data_dir / TOKEN_HISTORY_FILE,
        custom_path=guard.custom_credentials_path,
        lock=guard.lock,
        clock=clock,
    )
    return AppContext(
        config=config,
        data_dir=data_dir,
        secrets=secrets,
        events=events,
        notifier=notifier,
        guard=guard,
        resolver=resolver,
        vault=vault,
        drift=drift,
        anthropic=AnthropicUsageClient(timeout=config.http_timeout_seconds),
        openai=OpenAIUsageClient(timeout=config.http_timeout_seconds),
    )


__all__ = ["AppContext", "build_context"]
