"""
TECHRUN Pose Service Models

Frame-analysis pipeline: pose sources, result cache, exercise rules and
video aggregation.
"""

from .errors import (
    PoseServiceError,
    EngineUnavailable,
    DetectionError,
    InvalidFrameReference
)

from .pose_types import (
    LandmarkKind,
    ExerciseKind,
    PosePoint,
    PoseLandmark,
    DetectedPose,
    AnalysisResult,
    VideoMetrics
)

from .pose_source import (
    PoseSource,
    SimulatedPoseSource,
    MediaPipePoseSource,
    create_pose_source
)

from .result_cache import ResultCache, CacheEntry
from .exercise_analyzer import ExerciseAnalyzer

from .video_aggregator import (
    VideoAggregator,
    VideoInfo,
    VideoProbe,
    SimulatedVideoProbe,
    OpenCVVideoProbe,
    RepetitionStateMachine,
    FallbackMetricsGenerator,
    FALLBACK_FEEDBACK_MARKER
)

from .pose_analysis_service import PoseAnalysisService

__all__ = [
    # Errors
    "PoseServiceError",
    "EngineUnavailable",
    "DetectionError",
    "InvalidFrameReference",
    # Types
    "LandmarkKind",
    "ExerciseKind",
    "PosePoint",
    "PoseLandmark",
    "DetectedPose",
    "AnalysisResult",
    "VideoMetrics",
    # Pose sources
    "PoseSource",
    "SimulatedPoseSource",
    "MediaPipePoseSource",
    "create_pose_source",
    # Pipeline
    "ResultCache",
    "CacheEntry",
    "ExerciseAnalyzer",
    "VideoAggregator",
    "VideoInfo",
    "VideoProbe",
    "SimulatedVideoProbe",
    "OpenCVVideoProbe",
    "RepetitionStateMachine",
    "FallbackMetricsGenerator",
    "FALLBACK_FEEDBACK_MARKER",
    "PoseAnalysisService",
]
