"""
TECHRUN Pose Service - Pose Types

Landmark, analysis result and video metrics data classes shared by the
frame-analysis pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class LandmarkKind(Enum):
    """Body points emitted by the pose source, in emission order."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_index(cls, index: int) -> "LandmarkKind":
        return cls(index)


LANDMARK_COUNT = len(LandmarkKind)


class ExerciseKind(str, Enum):
    """Supported exercise types."""
    SQUAT = "squat"
    PUSHUP = "pushup"
    PLANK = "plank"
    GENERAL = "general"

    @classmethod
    def parse(cls, value: "str | ExerciseKind") -> "ExerciseKind":
        """Parse an exercise name, raising ValueError for unknown names."""
        if isinstance(value, ExerciseKind):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Invalid exercise type {value!r}. Valid types: {[e.value for e in cls]}"
            ) from None


# ═══════════════════════════════════════════════════════════════════════════════
# DATA CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PosePoint:
    """Detected coordinate with detection confidence."""
    x: float
    y: float
    confidence: float


@dataclass(frozen=True)
class PoseLandmark:
    """A single named body point."""
    kind: LandmarkKind
    position: PosePoint

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.kind.value,
            "type": self.kind.label,
            "x": self.position.x,
            "y": self.position.y,
            "confidence": self.position.confidence,
        }


@dataclass(frozen=True)
class DetectedPose:
    """Raw pose source output for one frame."""
    landmarks: Tuple[PoseLandmark, ...]
    confidence: float
    world_landmarks: Optional[Tuple[PoseLandmark, ...]] = None


@dataclass(frozen=True)
class AnalysisResult:
    """Per-frame analysis outcome. Immutable once produced."""
    landmarks: Tuple[PoseLandmark, ...]
    confidence: float
    timestamp: int  # ms
    exercise_type: ExerciseKind
    feedback: Tuple[str, ...]
    score: int

    def landmark(self, kind: LandmarkKind) -> Optional[PoseLandmark]:
        return find_landmark(self.landmarks, kind)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "landmarks": [lm.to_dict() for lm in self.landmarks],
            "confidence": round(self.confidence, 4),
            "timestamp": self.timestamp,
            "exercise_type": self.exercise_type.value,
            "feedback": list(self.feedback),
            "score": self.score,
        }


@dataclass
class VideoMetrics:
    """Per-video exercise metrics. Produced once per analysis, never cached."""
    repetitions: int
    form_score: int
    duration_seconds: int
    calories_burned: int
    feedback: List[str] = field(default_factory=list)
    frames_analyzed: int = 0
    used_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repetitions": self.repetitions,
            "form_score": self.form_score,
            "duration_seconds": self.duration_seconds,
            "calories_burned": self.calories_burned,
            "feedback": list(self.feedback),
            "frames_analyzed": self.frames_analyzed,
            "used_fallback": self.used_fallback,
        }


def find_landmark(landmarks, kind: LandmarkKind) -> Optional[PoseLandmark]:
    """Return the first landmark of the given kind, or None."""
    for landmark in landmarks:
        if landmark.kind is kind:
            return landmark
    return None
