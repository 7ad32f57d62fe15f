"""
TECHRUN test fixtures.

The manual clock lets scheduler tests control the throttle window without
real sleeps: sleeping on it advances it.
"""

import threading

import pytest

from pose_service.models import PoseAnalysisService, SimulatedPoseSource

TEST_SEED = 1234


class ManualClock:
    """Millisecond clock advanced only by sleep() or advance()."""

    def __init__(self, start_ms: float = 0.0):
        self._now = start_ms
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, ms: float) -> None:
        with self._lock:
            self._now += ms

    def sleep(self, seconds: float) -> None:
        self.advance(seconds * 1000.0)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def simulated_source():
    return SimulatedPoseSource(seed=TEST_SEED)


@pytest.fixture
def make_service(clock):
    """Factory for services on the manual clock; all are shut down afterwards."""
    services = []

    def _make(**kwargs):
        kwargs.setdefault("throttle_ms", 100)
        kwargs.setdefault("fallback_seed", TEST_SEED)
        source = kwargs.pop("pose_source", None) or SimulatedPoseSource(seed=TEST_SEED)
        service = PoseAnalysisService(source, clock=clock, sleep=clock.sleep, **kwargs)
        services.append(service)
        return service

    yield _make

    for service in services:
        service.shutdown()


@pytest.fixture
def service(make_service):
    return make_service()
