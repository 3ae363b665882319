from __future__ import annotations

import pytest

from chatrelay import config
from chatrelay.identity import IdentityCounter
from chatrelay.router import Router


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def router(clock: FakeClock) -> Router:
    return Router(counter=IdentityCounter(), clock=clock)


@pytest.fixture(autouse=True)
def _quiet_traffic_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "DEBUG", False)
