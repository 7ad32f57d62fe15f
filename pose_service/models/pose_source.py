"""
TECHRUN Pose Service - Pose Sources

Pluggable pose detection: a MediaPipe-backed source for real frames and a
deterministic simulator used when the engine cannot be loaded.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np

from .errors import DetectionError, EngineUnavailable, InvalidFrameReference
from .pose_types import DetectedPose, LandmarkKind, PoseLandmark, PosePoint

logger = logging.getLogger(__name__)


# Coordinate space of simulated frames (pixels)
SIMULATED_FRAME_WIDTH = 640
SIMULATED_FRAME_HEIGHT = 480
SIMULATED_MIN_CONFIDENCE = 0.7

VIDEO_TIME_MARKER = "#t="


def build_landmarks(points: List[Tuple[float, float, float]]) -> Tuple[PoseLandmark, ...]:
    """Map positional (x, y, confidence) triples onto named landmarks."""
    return tuple(
        PoseLandmark(
            kind=LandmarkKind.from_index(idx),
            position=PosePoint(x=float(x), y=float(y), confidence=float(np.clip(conf, 0.0, 1.0))),
        )
        for idx, (x, y, conf) in enumerate(points[:len(LandmarkKind)])
    )


def pose_confidence(landmarks) -> float:
    """Mean landmark confidence, clipped to [0, 1]."""
    if not landmarks:
        return 0.0
    return float(np.clip(np.mean([lm.position.confidence for lm in landmarks]), 0.0, 1.0))


# ═══════════════════════════════════════════════════════════════════════════════
# BASE INTERFACE
# ═══════════════════════════════════════════════════════════════════════════════

class PoseSource(ABC):
    """Produces raw landmarks for one frame. Not safe for concurrent use."""

    name: str = "base"
    degraded: bool = False

    def initialize(self) -> None:
        """Load the underlying engine. Raises EngineUnavailable on failure."""
        return None

    @abstractmethod
    def detect(self, frame_identity: str, timestamp_ms: int) -> Optional[DetectedPose]:
        """
        Detect a pose in the given frame.

        Returns None when no pose is found; raises DetectionError when the
        engine fails.
        """

    def close(self) -> None:
        """Release resources."""
        return None


# ═══════════════════════════════════════════════════════════════════════════════
# SIMULATED SOURCE
# ═══════════════════════════════════════════════════════════════════════════════

class SimulatedPoseSource(PoseSource):
    """
    Synthesizes a full 33-point pose per frame.

    Landmarks are a pure function of (seed, frame_identity), so repeated
    detections of the same frame are identical.
    """

    name = "simulated"

    def __init__(self, seed: Optional[int] = None, degraded: bool = False):
        if seed is None:
            seed = int(np.random.SeedSequence().entropy % (2 ** 32))
        self.seed = seed
        self.degraded = degraded

    def _rng_for(self, frame_identity: str) -> np.random.Generator:
        digest = hashlib.sha256(f"{self.seed}:{frame_identity}".encode("utf-8")).digest()
        return np.random.default_rng(int.from_bytes(digest[:8], "big"))

    def detect(self, frame_identity: str, timestamp_ms: int) -> Optional[DetectedPose]:
        if not frame_identity or not frame_identity.strip():
            return None

        rng = self._rng_for(frame_identity)
        count = len(LandmarkKind)
        xs = rng.uniform(0, SIMULATED_FRAME_WIDTH, count)
        ys = rng.uniform(0, SIMULATED_FRAME_HEIGHT, count)
        confidences = rng.uniform(SIMULATED_MIN_CONFIDENCE, 1.0, count)

        landmarks = build_landmarks(list(zip(xs, ys, confidences)))
        return DetectedPose(landmarks=landmarks, confidence=pose_confidence(landmarks))


# ═══════════════════════════════════════════════════════════════════════════════
# MEDIAPIPE SOURCE
# ═══════════════════════════════════════════════════════════════════════════════

class FrameDecoder:
    """
    Decodes frame identities into BGR images with OpenCV.

    Accepts plain paths, file:// URIs and "<video>#t=<seconds>" references
    into a video file.
    """

    def __init__(self):
        try:
            import cv2
        except ImportError as e:
            raise EngineUnavailable(f"OpenCV not available: {e}") from e
        self._cv2 = cv2

    @staticmethod
    def split_reference(frame_identity: str) -> Tuple[str, Optional[float]]:
        path, seconds = frame_identity, None
        if VIDEO_TIME_MARKER in frame_identity:
            path, _, raw_time = frame_identity.rpartition(VIDEO_TIME_MARKER)
            try:
                seconds = float(raw_time)
            except ValueError:
                raise InvalidFrameReference(frame_identity, "invalid video timestamp") from None
        if path.startswith("file://"):
            path = path[len("file://"):]
        return path, seconds

    def decode(self, frame_identity: str) -> np.ndarray:
        path, seconds = self.split_reference(frame_identity)

        if seconds is None:
            image = self._cv2.imread(path)
        else:
            cap = self._cv2.VideoCapture(path)
            try:
                if not cap.isOpened():
                    raise InvalidFrameReference(frame_identity, "cannot open video")
                cap.set(self._cv2.CAP_PROP_POS_MSEC, seconds * 1000.0)
                ret, image = cap.read()
                if not ret:
                    image = None
            finally:
                cap.release()

        if image is None:
            raise InvalidFrameReference(frame_identity, "cannot decode frame")
        return image

    def to_rgb(self, image: np.ndarray) -> np.ndarray:
        return self._cv2.cvtColor(image, self._cv2.COLOR_BGR2RGB)


class MediaPipePoseSource(PoseSource):
    """
    MediaPipe-backed pose source.

    Uses the Tasks PoseLandmarker in VIDEO mode when a model asset is
    configured, otherwise the legacy solutions.pose graph. Normalized
    coordinates are scaled to the decoded image size.
    """

    name = "mediapipe"

    def __init__(
        self,
        model_path: Optional[str] = None,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
    ):
        self.model_path = model_path
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence = min_tracking_confidence
        self._mp = None
        self._detector = None
        self._uses_tasks_api = False
        self._decoder: Optional[FrameDecoder] = None
        self._last_timestamp_ms = -1

    @property
    def is_initialized(self) -> bool:
        return self._detector is not None

    def initialize(self) -> None:
        try:
            import mediapipe as mp
        except ImportError as e:
            raise EngineUnavailable(f"MediaPipe not available: {e}") from e

        self._decoder = FrameDecoder()

        try:
            if self.model_path:
                from mediapipe.tasks import python as mp_python
                from mediapipe.tasks.python import vision

                options = vision.PoseLandmarkerOptions(
                    base_options=mp_python.BaseOptions(model_asset_path=self.model_path),
                    running_mode=vision.RunningMode.VIDEO,
                    num_poses=1,
                    min_pose_detection_confidence=self.min_detection_confidence,
                    min_tracking_confidence=self.min_tracking_confidence,
                )
                self._detector = vision.PoseLandmarker.create_from_options(options)
                self._uses_tasks_api = True
            else:
                self._detector = mp.solutions.pose.Pose(
                    static_image_mode=True,
                    model_complexity=1,
                    enable_segmentation=False,
                    min_detection_confidence=self.min_detection_confidence,
                )
        except Exception as e:
            raise EngineUnavailable(f"Failed to load MediaPipe pose model: {e}") from e

        self._mp = mp
        logger.info("✅ MediaPipe pose detector initialized")

    def _next_timestamp(self, timestamp_ms: int) -> int:
        # VIDEO mode rejects non-increasing timestamps
        ts = max(int(timestamp_ms), self._last_timestamp_ms + 1)
        self._last_timestamp_ms = ts
        return ts

    def detect(self, frame_identity: str, timestamp_ms: int) -> Optional[DetectedPose]:
        if not frame_identity or not frame_identity.strip():
            return None
        if not self.is_initialized:
            raise DetectionError("MediaPipe pose source used before initialize()")

        image = self._decoder.decode(frame_identity)
        height, width = image.shape[:2]
        rgb = self._decoder.to_rgb(image)

        try:
            if self._uses_tasks_api:
                mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb)
                results = self._detector.detect_for_video(mp_image, self._next_timestamp(timestamp_ms))
                if not results.pose_landmarks:
                    return None
                raw = results.pose_landmarks[0]
                raw_world = results.pose_world_landmarks[0] if results.pose_world_landmarks else None
            else:
                results = self._detector.process(rgb)
                if not results.pose_landmarks:
                    return None
                raw = results.pose_landmarks.landmark
                raw_world = results.pose_world_landmarks.landmark if results.pose_world_landmarks else None
        except Exception as e:
            raise DetectionError(f"MediaPipe detection failed for {frame_identity!r}: {e}") from e

        landmarks = build_landmarks([(lm.x * width, lm.y * height, lm.visibility) for lm in raw])
        world_landmarks = None
        if raw_world is not None:
            world_landmarks = build_landmarks([(lm.x, lm.y, lm.visibility) for lm in raw_world])

        return DetectedPose(
            landmarks=landmarks,
            confidence=pose_confidence(landmarks),
            world_landmarks=world_landmarks,
        )

    def close(self) -> None:
        if self._detector is not None and hasattr(self._detector, "close"):
            self._detector.close()
        self._detector = None


# ═══════════════════════════════════════════════════════════════════════════════
# FACTORY
# ═══════════════════════════════════════════════════════════════════════════════

def create_pose_source(
    engine: str = "mediapipe",
    model_path: Optional[str] = None,
    seed: Optional[int] = None,
    min_detection_confidence: float = 0.5,
    real_source: Optional[PoseSource] = None,
) -> PoseSource:
    """
    Create and initialize a pose source.

    The real engine (``real_source`` if given, else MediaPipe) is tried first;
    if it cannot be initialized the simulated source is returned with
    ``degraded`` set.
    """
    engine = engine.lower()
    if engine == "simulated":
        return SimulatedPoseSource(seed=seed)
    if engine != "mediapipe":
        raise ValueError(f"Unsupported pose engine: {engine}")

    source = real_source or MediaPipePoseSource(
        model_path=model_path,
        min_detection_confidence=min_detection_confidence,
    )
    try:
        source.initialize()
        return source
    except EngineUnavailable as e:
        logger.warning(f"⚠️ Failed to initialize MediaPipe, falling back to simulation: {e}")
        logger.info("🔄 Pose source running in simulation mode (degraded)")
        return SimulatedPoseSource(seed=seed, degraded=True)
