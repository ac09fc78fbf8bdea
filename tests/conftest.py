"""Pytest configuration for costguard tests.

Provides a controllable monotonic clock so expiry and window tests never
sleep. Async tests must not combine ``clock`` with ``asyncio.sleep``: the event
loop reads the same clock.
"""

from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest

# Ensure repository root is on sys.path for direct package imports.
sys.path.append(str(Path(__file__).resolve().parents[1]))


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(time, "monotonic", fake)
    return fake
