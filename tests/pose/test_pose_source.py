"""
🦴 TECHRUN Pose - Pose Source Tests
"""

import pytest

from pose_service.models import (
    EngineUnavailable,
    LandmarkKind,
    PoseSource,
    SimulatedPoseSource,
    create_pose_source,
)
from pose_service.models.pose_source import FrameDecoder
from pose_service.models.errors import InvalidFrameReference


class BrokenEngine(PoseSource):
    name = "broken"

    def initialize(self):
        raise EngineUnavailable("no model")

    def detect(self, frame_identity, timestamp_ms):
        raise AssertionError("never initialized")


class WorkingEngine(PoseSource):
    name = "working"

    def __init__(self):
        self.initialized = False

    def initialize(self):
        self.initialized = True

    def detect(self, frame_identity, timestamp_ms):
        return None


def test_simulated_pose_has_all_landmarks(simulated_source):
    pose = simulated_source.detect("frame_1", 0)

    assert len(pose.landmarks) == 33
    assert [lm.kind for lm in pose.landmarks] == list(LandmarkKind)
    for lm in pose.landmarks:
        assert 0 <= lm.position.x <= 640
        assert 0 <= lm.position.y <= 480
        assert 0.7 <= lm.position.confidence <= 1.0
    assert 0.7 <= pose.confidence <= 1.0


def test_simulated_pose_is_deterministic_per_frame():
    first = SimulatedPoseSource(seed=42).detect("frame_1", 0)
    again = SimulatedPoseSource(seed=42).detect("frame_1", 999)
    other = SimulatedPoseSource(seed=42).detect("frame_2", 0)

    assert first == again
    assert first.landmarks != other.landmarks


def test_simulated_empty_identity_has_no_pose(simulated_source):
    assert simulated_source.detect("", 0) is None
    assert simulated_source.detect("   ", 0) is None


def test_factory_falls_back_to_simulation():
    source = create_pose_source(engine="mediapipe", seed=5, real_source=BrokenEngine())

    assert isinstance(source, SimulatedPoseSource)
    assert source.degraded is True
    assert source.seed == 5


def test_factory_returns_initialized_real_engine():
    engine = WorkingEngine()
    source = create_pose_source(real_source=engine)

    assert source is engine
    assert engine.initialized


def test_factory_simulated_engine_is_not_degraded():
    source = create_pose_source(engine="simulated", seed=1)
    assert isinstance(source, SimulatedPoseSource)
    assert source.degraded is False


def test_factory_rejects_unknown_engine():
    with pytest.raises(ValueError):
        create_pose_source(engine="openpose")


def test_split_video_reference():
    assert FrameDecoder.split_reference("file:///tmp/a.mp4#t=1.50") == ("/tmp/a.mp4", 1.5)
    assert FrameDecoder.split_reference("/tmp/frame.jpg") == ("/tmp/frame.jpg", None)

    with pytest.raises(InvalidFrameReference):
        FrameDecoder.split_reference("/tmp/a.mp4#t=abc")
