from __future__ import annotations

from http import HTTPStatus

import pytest

from meterai.core.config import AppConfig, ProviderDefaults, ProviderKind
from meterai.core.exceptions import SecretStoreError
from meterai.events import EventBus
from meterai.notifications import Notifier
from meterai.state import StateGuard
from meterai.storage.secrets import SecretStore, SqlSecretStore

START_TIME = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send(self, title: str, body: str) -> bool:
        self.sent.append((title, body))
        return True


class FailingSecretStore(SecretStore):
    """Secret store whose writes always fail; reads and deletes delegate."""

    def __init__(self, inner: SecretStore, fail_keys: set[str] | None = None) -> None:
        self._inner = inner
        self._fail_keys = fail_keys

    def set_secret(self, key: str, value: str) -> None:
        if self._fail_keys is None or key in self._fail_keys:
            raise SecretStoreError(key)
        self._inner.set_secret(key, value)

    def get_secret(self, key: str) -> str | None:
        return self._inner.get_secret(key)

    def delete_secret(self, key: str) -> bool:
        return self._inner.delete_secret(key)


def make_config() -> AppConfig:
    return AppConfig(
        providers=[
            ProviderDefaults(
                id="claude",
                kind=ProviderKind.ANTHROPIC,
                name="Claude",
                limit=100,
                alert_thresholds=[70, 90, 100],
                reset_interval_hours=4,
            ),
            ProviderDefaults(
                id="openai",
                kind=ProviderKind.OPENAI,
                name="OpenAI",
                limit=50,
                alert_thresholds=[80],
                reset_interval_hours=24,
            ),
        ],
        active_provider="claude",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def secret_store():
    store = SqlSecretStore(None)
    yield store
    store.dispose()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def make_guard(tmp_path, secret_store, notifier, event_bus, clock):
    def factory(secrets: SecretStore | None = None, config: AppConfig | None = None) -> StateGuard:
        return StateGuard(
            tmp_path / "state.json",
            secrets or secret_store,
            config or make_config(),
            notifier,
            event_bus,
            clock,
        )

    return factory


class FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self._text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload

    @property
    def is_error(self) -> bool:
        return self.status_code >= HTTPStatus.BAD_REQUEST

    @property
    def text(self) -> str:
        return self._text or ""


def stub_async_client(responses: dict, recorder: list):
    """Build an ``httpx.AsyncClient`` stand-in answering GETs by URL path suffix."""

    class _DummyAsyncClient:
        def __init__(self, *args, **kwargs) -> None:
            self.timeout = kwargs.get("timeout")

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def get(self, url, headers=None, params=None):
            recorder.append({"url": url, "headers": headers, "params": params})
            for suffix, response in responses.items():
                if url.endswith(suffix):
                    if isinstance(response, Exception):
                        raise response
                    return response
            return FakeResponse(HTTPStatus.NOT_FOUND, {"error": {"message": "not found"}})

    return _DummyAsyncClient
