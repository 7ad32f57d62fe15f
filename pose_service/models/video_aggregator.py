"""
TECHRUN Pose Service - Video Aggregator

Samples frames across a video, runs repetition detection, estimates calories
and consolidates per-frame feedback into VideoMetrics.
"""

import hashlib
import logging
import math
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidFrameReference
from .pose_source import VIDEO_TIME_MARKER, FrameDecoder
from .pose_types import AnalysisResult, ExerciseKind, LandmarkKind, VideoMetrics

logger = logging.getLogger(__name__)


# Metabolic equivalents per exercise
MET_VALUES: Dict[ExerciseKind, float] = {
    ExerciseKind.SQUAT: 5.0,
    ExerciseKind.PUSHUP: 3.8,
    ExerciseKind.PLANK: 3.5,
    ExerciseKind.GENERAL: 3.0,
}

DEFAULT_BODY_WEIGHT_KG = 70.0
DEFAULT_MAX_SAMPLES = 10
COMMON_FEEDBACK_RATIO = 0.3
MAX_COMMON_FEEDBACK = 3

SUMMARY_EXCELLENT = "🔥 Excellent execution! Perfect form!"
SUMMARY_GOOD = "👍 Good form! Keep it up!"
SUMMARY_ACCEPTABLE = "📈 Acceptable form, but there is room for improvement"
SUMMARY_NEEDS_ATTENTION = "⚠️ Pay attention to your exercise form"
ENCOURAGEMENT = "💪 Keep practicing for better results!"

FALLBACK_FEEDBACK_MARKER = "Analysis processed with alternate method"
FALLBACK_FEEDBACK = (
    FALLBACK_FEEDBACK_MARKER,
    "Keep practicing to improve your form",
    "Maintain consistency in your movement",
)


# ═══════════════════════════════════════════════════════════════════════════════
# VIDEO PROBING
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class VideoInfo:
    """Frame count and rate of a video."""
    frame_count: int
    fps: float

    @property
    def length_seconds(self) -> float:
        return self.frame_count / self.fps

    @property
    def duration_seconds(self) -> int:
        return max(1, round(self.length_seconds))


class VideoProbe(ABC):
    """Reads basic video properties. Frame extraction itself is external."""

    @abstractmethod
    def probe(self, video_identity: str) -> VideoInfo:
        pass


class SimulatedVideoProbe(VideoProbe):
    """Deterministic per (seed, video): 30-149 second clips at 30 fps."""

    FPS = 30.0

    def __init__(self, seed: Optional[int] = None):
        self.seed = 0 if seed is None else seed

    def probe(self, video_identity: str) -> VideoInfo:
        if not video_identity or not video_identity.strip():
            raise InvalidFrameReference(video_identity, "empty video reference")
        digest = hashlib.sha256(f"{self.seed}:{video_identity}".encode("utf-8")).digest()
        rng = np.random.default_rng(int.from_bytes(digest[:8], "big"))
        seconds = int(rng.integers(30, 150))
        return VideoInfo(frame_count=int(seconds * self.FPS), fps=self.FPS)


class OpenCVVideoProbe(VideoProbe):
    """Probe real video files with OpenCV."""

    def __init__(self):
        import cv2
        self._cv2 = cv2

    def probe(self, video_identity: str) -> VideoInfo:
        path, _ = FrameDecoder.split_reference(video_identity)
        cap = self._cv2.VideoCapture(path)
        try:
            if not cap.isOpened():
                raise InvalidFrameReference(video_identity, "cannot open video")
            frame_count = int(cap.get(self._cv2.CAP_PROP_FRAME_COUNT))
            fps = cap.get(self._cv2.CAP_PROP_FPS) or 30.0
        finally:
            cap.release()

        if frame_count <= 0:
            raise InvalidFrameReference(video_identity, "video has no frames")
        return VideoInfo(frame_count=frame_count, fps=fps)


def sample_frame_identities(video_identity: str, info: VideoInfo, max_samples: int) -> List[str]:
    """Evenly spaced frame references across the video."""
    count = min(info.frame_count, max_samples)
    step = info.length_seconds / count
    return [f"{video_identity}{VIDEO_TIME_MARKER}{i * step:.2f}" for i in range(count)]


# ═══════════════════════════════════════════════════════════════════════════════
# REPETITION DETECTION
# ═══════════════════════════════════════════════════════════════════════════════

class RepPhase(Enum):
    UP = "up"
    DOWN = "down"


@dataclass
class RepetitionStateMachine:
    """Counts down/up cycles of a vertical distance between two landmarks."""
    first: LandmarkKind
    second: LandmarkKind
    down_below: float
    up_above: float
    count: int = 0
    phase: RepPhase = RepPhase.UP

    def update(self, distance: float) -> bool:
        """Feed one distance sample. Returns True if a rep completed."""
        if self.phase == RepPhase.UP and distance < self.down_below:
            self.phase = RepPhase.DOWN
        elif self.phase == RepPhase.DOWN and distance > self.up_above:
            self.phase = RepPhase.UP
            self.count += 1
            return True
        return False

    def feed(self, result: AnalysisResult) -> bool:
        first = result.landmark(self.first)
        second = result.landmark(self.second)
        if first is None or second is None:
            return False
        return self.update(abs(first.position.y - second.position.y))


REP_SIGNALS: Dict[ExerciseKind, Tuple[LandmarkKind, LandmarkKind, float, float]] = {
    ExerciseKind.SQUAT: (LandmarkKind.LEFT_HIP, LandmarkKind.LEFT_KNEE, 60, 80),
    ExerciseKind.PUSHUP: (LandmarkKind.LEFT_SHOULDER, LandmarkKind.LEFT_ELBOW, 30, 50),
}


def count_repetitions(results: Sequence[AnalysisResult], exercise_type: ExerciseKind) -> int:
    """Repetitions across sampled frames; at least 1 once a frame was analyzed."""
    if exercise_type == ExerciseKind.PLANK:
        # Isometric: no cycle
        return 1
    if not results:
        return 0

    if exercise_type in REP_SIGNALS:
        machine = RepetitionStateMachine(*REP_SIGNALS[exercise_type])
        for result in results:
            machine.feed(result)
        reps = machine.count
    else:
        reps = len(results) // 3 + 1

    return max(1, reps)


# ═══════════════════════════════════════════════════════════════════════════════
# CALORIES & FEEDBACK
# ═══════════════════════════════════════════════════════════════════════════════

def estimate_calories(
    exercise_type: ExerciseKind,
    duration_seconds: float,
    body_weight_kg: float = DEFAULT_BODY_WEIGHT_KG,
) -> int:
    """MET x weight (kg) x time (h)."""
    per_minute = MET_VALUES[exercise_type] * body_weight_kg / 60
    return max(0, round(per_minute * (duration_seconds / 60)))


def summary_line(avg_score: float) -> str:
    if avg_score >= 90:
        return SUMMARY_EXCELLENT
    elif avg_score >= 80:
        return SUMMARY_GOOD
    elif avg_score >= 70:
        return SUMMARY_ACCEPTABLE
    return SUMMARY_NEEDS_ATTENTION


def common_feedback(results: Sequence[AnalysisResult]) -> List[str]:
    """Up to 3 feedback items seen in at least 30% of frames, most frequent first."""
    if not results:
        return []

    counts = Counter()
    for result in results:
        counts.update(dict.fromkeys(result.feedback, 1))

    threshold = max(1, math.floor(len(results) * COMMON_FEEDBACK_RATIO))
    # ties keep discovery order
    frequent = sorted(
        (item for item in counts.items() if item[1] >= threshold),
        key=lambda item: -item[1],
    )
    return [text for text, _ in frequent[:MAX_COMMON_FEEDBACK]]


def consolidate_feedback(results: Sequence[AnalysisResult], avg_score: float) -> List[str]:
    return [summary_line(avg_score), *common_feedback(results), ENCOURAGEMENT]


class FallbackMetricsGenerator:
    """Seedable generator for plausible metrics when video analysis fails."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)

    def generate(self, exercise_type: ExerciseKind) -> VideoMetrics:
        repetitions = int(self._rng.integers(5, 20))
        if exercise_type == ExerciseKind.PLANK:
            repetitions = 1
        return VideoMetrics(
            repetitions=repetitions,
            form_score=int(self._rng.integers(70, 100)),
            duration_seconds=int(self._rng.integers(30, 150)),
            calories_burned=int(self._rng.integers(10, 60)),
            feedback=list(FALLBACK_FEEDBACK),
            frames_analyzed=0,
            used_fallback=True,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# AGGREGATOR
# ═══════════════════════════════════════════════════════════════════════════════

FrameAnalyzer = Callable[[str, ExerciseKind], Optional[AnalysisResult]]


class VideoAggregator:
    """
    Derives VideoMetrics from sampled frame analyses.

    ``analyze_frame`` must return None for frames without a pose and raise
    on detection failures; a raised failure aborts sampling and the fallback
    metrics are returned instead.
    """

    def __init__(
        self,
        analyze_frame: FrameAnalyzer,
        probe: VideoProbe,
        max_samples: int = DEFAULT_MAX_SAMPLES,
        body_weight_kg: float = DEFAULT_BODY_WEIGHT_KG,
        fallback: Optional[FallbackMetricsGenerator] = None,
    ):
        if max_samples < 1:
            raise ValueError(f"max_samples must be at least 1, got {max_samples}")
        self.analyze_frame = analyze_frame
        self.probe = probe
        self.max_samples = max_samples
        self.body_weight_kg = body_weight_kg
        self.fallback = fallback or FallbackMetricsGenerator()

    def analyze_video(self, video_identity: str, exercise_type: ExerciseKind) -> VideoMetrics:
        exercise_type = ExerciseKind.parse(exercise_type)
        logger.info(f"🎥 Starting video analysis for {exercise_type.value} exercise")

        try:
            info = self.probe.probe(video_identity)
            results = []
            for frame_identity in sample_frame_identities(video_identity, info, self.max_samples):
                result = self.analyze_frame(frame_identity, exercise_type)
                if result is not None:
                    results.append(result)

            if not results:
                logger.warning(f"No usable frames in {video_identity!r}")
                return self.fallback.generate(exercise_type)

            metrics = self._build_metrics(results, exercise_type, info.duration_seconds)
        except Exception as e:
            logger.error(f"❌ Error analyzing video {video_identity!r}: {e}")
            return self.fallback.generate(exercise_type)

        logger.info(
            f"✅ Video analysis completed: {metrics.repetitions} reps, "
            f"{metrics.form_score}% score, {metrics.duration_seconds}s duration"
        )
        return metrics

    def _build_metrics(
        self,
        results: List[AnalysisResult],
        exercise_type: ExerciseKind,
        duration_seconds: int,
    ) -> VideoMetrics:
        avg_score = float(np.mean([r.score for r in results]))
        return VideoMetrics(
            repetitions=count_repetitions(results, exercise_type),
            form_score=int(max(0, min(100, round(avg_score)))),
            duration_seconds=duration_seconds,
            calories_burned=estimate_calories(exercise_type, duration_seconds, self.body_weight_kg),
            feedback=consolidate_feedback(results, avg_score),
            frames_analyzed=len(results),
        )
