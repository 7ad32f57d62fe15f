"""
🤖 TECHRUN Pose - Analysis Service Tests

End-to-end frame and video analysis on the simulated pose source.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from core.config import Settings
from pose_service.models import (
    DetectionError,
    ExerciseKind,
    FALLBACK_FEEDBACK_MARKER,
    InvalidFrameReference,
    PoseAnalysisService,
    PoseSource,
    ResultCache,
    SimulatedPoseSource,
)

SEED = 1234


class FlakySource(PoseSource):
    """Simulated poses, except for frames named unreadable, bad or empty."""

    name = "flaky"

    def __init__(self):
        self.inner = SimulatedPoseSource(seed=SEED)

    def detect(self, frame_identity, timestamp_ms):
        if "unreadable" in frame_identity:
            raise InvalidFrameReference(frame_identity, "cannot decode frame")
        if "bad" in frame_identity:
            raise DetectionError("engine crashed")
        if "empty" in frame_identity:
            return None
        return self.inner.detect(frame_identity, timestamp_ms)


# ═══════════════════════════════════════════════════════════════════════════════
# FRAME ANALYSIS
# ═══════════════════════════════════════════════════════════════════════════════

def test_analyze_frame_with_simulated_source(service):
    result = service.analyze_frame("frame_1", "squat")

    assert result is not None
    assert result.exercise_type == ExerciseKind.SQUAT
    assert len(result.landmarks) == 33
    assert 0.7 <= result.confidence <= 1.0
    assert 0 <= result.score <= 100


def test_results_are_deterministic_for_a_seed(make_service):
    first = make_service().analyze_frame("frame_7", "pushup")
    second = make_service().analyze_frame("frame_7", "pushup")

    assert first.landmarks == second.landmarks
    assert first.feedback == second.feedback
    assert first.score == second.score


def test_repeat_frame_is_served_from_cache(service):
    first = service.analyze_frame("frame_1", "general")
    second = service.analyze_frame("frame_1", "general")

    assert second is first
    assert len(service.get_history()) == 1
    assert service.get_stats()["cache"]["hits"] >= 1


def test_cache_is_bounded(make_service):
    service = make_service(cache=ResultCache(capacity=10))
    for i in range(15):
        assert service.analyze_frame(f"frame_{i}", "general") is not None

    assert len(service.cache) == 10
    for i in range(5):
        assert (f"frame_{i}", ExerciseKind.GENERAL) not in service.cache


def test_back_to_back_frames_are_queued(service):
    results = [service.analyze_frame(f"frame_{i}", "squat") for i in range(10)]

    assert all(r is not None for r in results)
    stats = service.get_stats()["scheduler"]
    assert stats["immediate_dispatches"] < 10
    assert stats["immediate_dispatches"] + stats["queued_dispatches"] == 10


def test_concurrent_frames_all_resolve(service):
    with ThreadPoolExecutor(max_workers=10) as pool:
        results = list(pool.map(lambda i: service.analyze_frame(f"frame_{i}", "plank"), range(10)))

    assert all(r is not None for r in results)
    stats = service.get_stats()["scheduler"]
    assert stats["immediate_dispatches"] < 10
    assert stats["immediate_dispatches"] + stats["queued_dispatches"] == 10


def test_unknown_exercise_type_is_rejected(service):
    with pytest.raises(ValueError):
        service.analyze_frame("frame_1", "burpee")


def test_empty_frame_has_no_result(service):
    assert service.analyze_frame("", "general") is None
    assert service.get_history() == []


def test_detection_problems_return_none(make_service):
    service = make_service(pose_source=FlakySource())

    assert service.analyze_frame("frame_bad", "general") is None
    assert service.analyze_frame("frame_empty", "general") is None
    assert service.analyze_frame("frame_unreadable", "general") is None
    assert service.analyze_frame("frame_ok", "general") is not None
    assert len(service.get_history()) == 1


def test_async_frame_analysis(service):
    result = asyncio.run(service.analyze_frame_async("frame_async", "plank"))
    assert result.exercise_type == ExerciseKind.PLANK


# ═══════════════════════════════════════════════════════════════════════════════
# VIDEO ANALYSIS
# ═══════════════════════════════════════════════════════════════════════════════

def test_plank_video(service):
    metrics = service.analyze_video("video_1", "plank")

    assert metrics.repetitions == 1
    assert metrics.calories_burned > 0
    assert metrics.duration_seconds > 0
    assert not metrics.used_fallback
    assert metrics.frames_analyzed == 10


def test_video_resets_history(service):
    service.analyze_frame("frame_before", "general")
    service.analyze_video("video_2", "squat")

    history = service.get_history()
    assert 0 < len(history) <= 10
    assert all(r.exercise_type == ExerciseKind.SQUAT for r in history)


def test_video_failure_returns_fallback(make_service):
    service = make_service(pose_source=FlakySource())
    metrics = service.analyze_video("bad_video", "squat")

    assert metrics.used_fallback
    assert metrics.feedback[0] == FALLBACK_FEEDBACK_MARKER
    assert 5 <= metrics.repetitions <= 19


# ═══════════════════════════════════════════════════════════════════════════════
# HOUSEKEEPING
# ═══════════════════════════════════════════════════════════════════════════════

def test_clear_history_and_cache(service):
    service.analyze_frame("frame_1", "general")
    service.clear_history()
    service.clear_cache()

    assert service.get_history() == []
    assert len(service.cache) == 0


def test_supported_exercises():
    assert PoseAnalysisService.get_supported_exercises() == ["squat", "pushup", "plank", "general"]


def test_from_settings_simulated_engine():
    config = Settings(POSE_ENGINE="simulated", SIMULATION_SEED=3, FRAME_THROTTLE_MS=0, ANALYSIS_CACHE_SIZE=5)
    service = PoseAnalysisService.from_settings(config)
    try:
        assert service.simulation_mode
        assert not service.degraded
        assert service.cache.capacity == 5
        assert service.analyze_frame("frame_1", "general") is not None
    finally:
        service.shutdown()


# ═══════════════════════════════════════════════════════════════════════════════
# ASYNC & CACHE ACCOUNTING
# ═══════════════════════════════════════════════════════════════════════════════

class SlowSource(PoseSource):
    """Simulated poses after a blocking delay, like a real engine."""

    name = "slow"

    def __init__(self, delay_seconds):
        self.delay_seconds = delay_seconds
        self.inner = SimulatedPoseSource(seed=SEED)

    def detect(self, frame_identity, timestamp_ms):
        time.sleep(self.delay_seconds)
        return self.inner.detect(frame_identity, timestamp_ms)


class FailAfterSource(PoseSource):
    """Simulated poses for the first N detections, then engine failures."""

    name = "fail_after"

    def __init__(self, successes):
        self.remaining = successes
        self.inner = SimulatedPoseSource(seed=SEED)

    def detect(self, frame_identity, timestamp_ms):
        if self.remaining <= 0:
            raise DetectionError("engine crashed")
        self.remaining -= 1
        return self.inner.detect(frame_identity, timestamp_ms)


def test_async_detection_does_not_block_event_loop(make_service):
    service = make_service(pose_source=SlowSource(0.5))

    async def analyze_while_ticking():
        gaps = []
        finished = asyncio.Event()

        async def tick():
            last = time.monotonic()
            while not finished.is_set():
                await asyncio.sleep(0.05)
                now = time.monotonic()
                gaps.append(now - last)
                last = now

        ticker = asyncio.create_task(tick())
        result = await service.analyze_frame_async("frame_1", "squat")
        finished.set()
        await ticker
        return result, gaps

    result, gaps = asyncio.run(analyze_while_ticking())

    assert result is not None
    assert len(gaps) >= 5
    assert max(gaps) < 0.2


def test_failure_mid_video_returns_fallback(make_service):
    service = make_service(pose_source=FailAfterSource(successes=5))
    metrics = service.analyze_video("video_3", "squat")

    assert metrics.used_fallback
    assert metrics.feedback[0] == FALLBACK_FEEDBACK_MARKER
    assert 5 <= metrics.repetitions <= 19
    assert 70 <= metrics.form_score <= 99
    assert 30 <= metrics.duration_seconds <= 149
    assert 10 <= metrics.calories_burned <= 59
    assert len(service.get_history()) == 5


def test_computed_frame_counts_one_cache_miss(service):
    service.analyze_frame("frame_1", "general")
    service.analyze_frame("frame_2", "general")

    stats = service.cache.stats()
    assert stats["misses"] == 2
    assert stats["hits"] == 0
