"""Pytest fixtures for trialverdict tests."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator

import pytest

from trialverdict.core.ledger import Ledger, create_test_connection


class FakeClock:
    """Deterministic clock: time moves only through ``sleep`` or ``advance``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedExecutor:
    """Executor replaying a fixed sequence of outcomes and counting calls."""

    def __init__(self, outcomes: Iterable[object]) -> None:
        self._outcomes: Iterator[object] = iter(outcomes)
        self.calls: list[int] = []

    def __call__(self, index: int) -> object:
        self.calls.append(index)
        outcome = next(self._outcomes)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def fake_clock() -> FakeClock:
    """A clock that never moves on its own."""
    return FakeClock()


@pytest.fixture
def scripted() -> Callable[[Iterable[object]], ScriptedExecutor]:
    """Factory for executors replaying a script of bools, outcomes or exceptions."""
    return ScriptedExecutor


@pytest.fixture
def ledger() -> Ledger:
    """An empty in-memory ledger."""
    return Ledger(create_test_connection("duckdb"), "test")
