"""Shared pytest fixtures for dicelang tests."""

from __future__ import annotations

from collections.abc import Callable

import pytest


class ScriptedRandom:
    """Random source that makes dice show a fixed sequence of faces."""

    def __init__(self, values: list[float]) -> None:
        self.values = list(values)
        self.calls = 0

    def __call__(self) -> float:
        if self.calls >= len(self.values):
            raise AssertionError(f"Random source exhausted after {self.calls} draws")
        value = self.values[self.calls]
        self.calls += 1
        return value


class FakeClock:
    """Seconds clock that only moves when told to, or by ``tick`` per call."""

    def __init__(self, tick: float = 0.0) -> None:
        self.now = 0.0
        self.tick = tick

    def __call__(self) -> float:
        current = self.now
        self.now += self.tick
        return current

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


@pytest.fixture
def faces() -> Callable[..., ScriptedRandom]:
    """Build a random source that rolls the given faces on dice with ``sides`` faces.

    Face ``v`` is produced by the draw ``(v - 0.5) / sides``.
    """

    def make(*values: int, sides: int = 6) -> ScriptedRandom:
        return ScriptedRandom([(v - 0.5) / sides for v in values])

    return make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
