"""Shared test fixtures."""

from __future__ import annotations

import os
import shlex
import sys

import pytest

_PYTHON = shlex.quote(sys.executable)


class FakeClock:
    """Manually advanced wall clock whose ``sleep`` moves time forward."""

    def __init__(self, now: float) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Drop AGENT_LOOP_* overrides leaking in from the developer shell."""
    for name in list(os.environ):
        if name.startswith("AGENT_LOOP_"):
            monkeypatch.delenv(name)


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock(now=3_600 * 480_000 + 120)


@pytest.fixture()
def echo_command() -> str:
    """Research command that prints the rendered prompt and exits 0."""
    return f"{_PYTHON} -c 'import sys; print(sys.argv[1])' {{prompt}}"


@pytest.fixture()
def sleepy_command() -> str:
    """Research command that outlives any test unless terminated."""
    return f"{_PYTHON} -c 'import time; time.sleep(30)' {{prompt}}"


@pytest.fixture()
def failing_command() -> str:
    return f"{_PYTHON} -c 'import sys; sys.exit(3)' {{prompt}}"
