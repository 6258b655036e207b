"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the TESTING environment variable so no .env file is loaded and
pins the limiter settings the tests rely on.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("LIMITER_STREAM_POLL_INTERVAL_SECONDS", "0.005")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest  # noqa: E402

from admission.core.cancellation import CancellationSignal  # noqa: E402


class FakeClock:
    """Deterministic monotonic clock used to test refill and deadline logic."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def signal() -> CancellationSignal:
    return CancellationSignal()
