from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from powerwatch.config.settings import get_settings
from powerwatch.domain.endpoint import MonitoredEndpoint
from powerwatch.domain.enums import ProbeResult
from powerwatch.domain.protocols.endpoint_store import EndpointStoreError
from powerwatch.domain.protocols.notifier import Notifier
from powerwatch.domain.protocols.probe import ReachabilityProbe
from powerwatch.domain.results import DispatchResult
from powerwatch.infra.endpoint_store_memory import InMemoryEndpointStateStore

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Relógio controlado pelo teste (datetime UTC)."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def at(self, seconds: float) -> datetime:
        """Posiciona o relógio em T0 + seconds."""
        self.now = T0 + timedelta(seconds=seconds)
        return self.now


class MonotonicClock:
    """Relógio monotônico fake (float) para os guardas."""

    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> float:
        self.value += seconds
        return self.value


class FakeProbe(ReachabilityProbe):
    def __init__(self, result: ProbeResult = ProbeResult.UP) -> None:
        self.result = result
        self.error: Exception | None = None
        self.calls: list[str] = []

    async def probe(self, address: str) -> ProbeResult:
        self.calls.append(address)
        if self.error is not None:
            raise self.error
        return self.result


class FakeNotifier(Notifier):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_with: str | None = None

    async def send(self, user_id: str, message: str) -> DispatchResult:
        if self.fail_with is not None:
            return DispatchResult.failed(self.fail_with)
        self.sent.append((user_id, message))
        return DispatchResult.delivered(message_id=str(len(self.sent)))


class FlakyStore(InMemoryEndpointStateStore):
    """Store em memória que falha nos saves enquanto `failing=True`."""

    def __init__(self) -> None:
        super().__init__()
        self.failing = False
        self.save_calls = 0

    async def save_endpoint_state(self, user_id: str, entry: MonitoredEndpoint) -> None:
        self.save_calls += 1
        if self.failing:
            raise EndpointStoreError("store indisponível")
        await super().save_endpoint_state(user_id, entry)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mono_clock() -> MonotonicClock:
    return MonotonicClock()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore()
