"""
TECHRUN Pose Service - Pose Analysis Service

Owns the pose source, result cache, frame scheduler and analysis history,
and exposes frame and video analysis to the application layer.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from core.config import Settings, settings
from core.threading import ContentionPolicy, FrameScheduler, monotonic_ms

from .errors import DetectionError, InvalidFrameReference
from .exercise_analyzer import ExerciseAnalyzer
from .pose_source import MediaPipePoseSource, PoseSource, create_pose_source
from .pose_types import AnalysisResult, ExerciseKind, VideoMetrics
from .result_cache import ResultCache
from .video_aggregator import (
    FallbackMetricsGenerator,
    OpenCVVideoProbe,
    SimulatedVideoProbe,
    VideoAggregator,
    VideoProbe,
)

logger = logging.getLogger(__name__)


class PoseAnalysisService:
    """
    Frame-analysis pipeline entry point.

    Frame requests go cache -> scheduler -> pose source -> analyzer -> cache.
    One instance should be created per process and shared by reference.
    """

    def __init__(
        self,
        pose_source: PoseSource,
        cache: Optional[ResultCache] = None,
        analyzer: Optional[ExerciseAnalyzer] = None,
        throttle_ms: Optional[float] = None,
        contention_policy: ContentionPolicy = ContentionPolicy.QUEUE,
        max_queue_depth: Optional[int] = None,
        video_probe: Optional[VideoProbe] = None,
        max_video_samples: Optional[int] = None,
        body_weight_kg: Optional[float] = None,
        fallback_seed: Optional[int] = None,
        clock: Callable[[], float] = monotonic_ms,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.pose_source = pose_source
        self.cache = cache if cache is not None else ResultCache(settings.ANALYSIS_CACHE_SIZE)
        self.analyzer = analyzer or ExerciseAnalyzer()
        self.scheduler = FrameScheduler(
            self._dispatch,
            throttle_ms=throttle_ms,
            policy=contention_policy,
            max_queue_depth=max_queue_depth,
            clock=clock,
            sleep=sleep,
            name="pose_frames",
        )

        self._history: List[AnalysisResult] = []
        self._history_lock = threading.Lock()

        if video_probe is None:
            if isinstance(pose_source, MediaPipePoseSource):
                video_probe = OpenCVVideoProbe()
            else:
                video_probe = SimulatedVideoProbe(seed=getattr(pose_source, "seed", None))

        self.aggregator = VideoAggregator(
            self._analyze,
            video_probe,
            max_samples=max_video_samples or settings.VIDEO_SAMPLE_FRAMES,
            body_weight_kg=body_weight_kg or settings.ASSUMED_BODY_WEIGHT_KG,
            fallback=FallbackMetricsGenerator(fallback_seed),
        )

        mode = "simulation" if self.simulation_mode else self.pose_source.name
        logger.info(f"🤖 Pose Analysis Service initialized ({mode} mode)")

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "PoseAnalysisService":
        """Build a service from application settings."""
        source = create_pose_source(
            engine=config.POSE_ENGINE,
            model_path=config.POSE_MODEL_PATH,
            seed=config.SIMULATION_SEED,
            min_detection_confidence=config.POSE_MIN_DETECTION_CONFIDENCE,
        )
        return cls(
            source,
            cache=ResultCache(config.ANALYSIS_CACHE_SIZE),
            throttle_ms=config.FRAME_THROTTLE_MS,
            contention_policy=ContentionPolicy(config.FRAME_CONTENTION_POLICY),
            max_queue_depth=config.FRAME_QUEUE_MAX_DEPTH,
            max_video_samples=config.VIDEO_SAMPLE_FRAMES,
            body_weight_kg=config.ASSUMED_BODY_WEIGHT_KG,
            fallback_seed=config.SIMULATION_SEED,
        )

    @property
    def simulation_mode(self) -> bool:
        return self.pose_source.name == "simulated"

    @property
    def degraded(self) -> bool:
        return self.pose_source.degraded

    # ═══════════════════════════════════════════════════════════════════════════
    # FRAME ANALYSIS
    # ═══════════════════════════════════════════════════════════════════════════

    def _dispatch(self, frame_identity: str, exercise_type: ExerciseKind) -> Optional[AnalysisResult]:
        """Run one frame through the pose source. Called by the scheduler only."""
        key = (frame_identity, exercise_type)
        # Re-check for a result stored while queued; misses were counted by the caller
        if key in self.cache:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        timestamp = int(time.time() * 1000)
        pose = self.pose_source.detect(frame_identity, timestamp)
        if pose is None:
            logger.info(f"⚠️ No poses detected in frame {frame_identity!r}")
            return None

        feedback, score = self.analyzer.score(pose.landmarks, exercise_type)
        result = AnalysisResult(
            landmarks=pose.landmarks,
            confidence=pose.confidence,
            timestamp=timestamp,
            exercise_type=exercise_type,
            feedback=tuple(feedback),
            score=score,
        )

        self.cache.put(key, result)
        with self._history_lock:
            self._history.append(result)

        logger.debug(f"✅ Frame analysis completed: {score}% score, {len(feedback)} feedback items")
        return result

    def _cached(self, frame_uri: str, exercise_type: ExerciseKind) -> Optional[AnalysisResult]:
        cached = self.cache.get((frame_uri, exercise_type))
        if cached is not None:
            logger.debug("📦 Using cached analysis result")
        return cached

    def _analyze(self, frame_uri: str, exercise_type: ExerciseKind) -> Optional[AnalysisResult]:
        """Analyze a frame, returning None for no pose and raising DetectionError on failure."""
        if not frame_uri or not frame_uri.strip():
            return None

        cached = self._cached(frame_uri, exercise_type)
        if cached is not None:
            return cached

        try:
            return self.scheduler.submit(frame_uri, exercise_type).result()
        except InvalidFrameReference as e:
            logger.warning(f"Invalid frame reference: {e}")
            return None

    def analyze_frame(
        self,
        frame_uri: str,
        exercise_type: "str | ExerciseKind" = ExerciseKind.GENERAL,
    ) -> Optional[AnalysisResult]:
        """
        Analyze a single frame.

        Returns None when no pose was found, the frame reference is unusable
        or detection failed. Raises ValueError for unknown exercise types.
        """
        exercise_type = ExerciseKind.parse(exercise_type)
        try:
            return self._analyze(frame_uri, exercise_type)
        except DetectionError as e:
            logger.error(f"❌ Error analyzing frame: {e}")
            return None

    async def analyze_frame_async(
        self,
        frame_uri: str,
        exercise_type: "str | ExerciseKind" = ExerciseKind.GENERAL,
    ) -> Optional[AnalysisResult]:
        """Async variant of analyze_frame; waits on the scheduler without blocking the loop."""
        exercise_type = ExerciseKind.parse(exercise_type)
        if not frame_uri or not frame_uri.strip():
            return None

        cached = self._cached(frame_uri, exercise_type)
        if cached is not None:
            return cached

        try:
            return await self.scheduler.submit_async(frame_uri, exercise_type)
        except DetectionError as e:
            logger.error(f"❌ Error analyzing frame: {e}")
            return None

    # ═══════════════════════════════════════════════════════════════════════════
    # VIDEO ANALYSIS
    # ═══════════════════════════════════════════════════════════════════════════

    def analyze_video(
        self,
        video_uri: str,
        exercise_type: "str | ExerciseKind" = ExerciseKind.GENERAL,
    ) -> VideoMetrics:
        """Analyze sampled frames of a video. Never raises for analysis failures."""
        exercise_type = ExerciseKind.parse(exercise_type)
        self.clear_history()
        return self.aggregator.analyze_video(video_uri, exercise_type)

    async def analyze_video_async(
        self,
        video_uri: str,
        exercise_type: "str | ExerciseKind" = ExerciseKind.GENERAL,
    ) -> VideoMetrics:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.analyze_video, video_uri, exercise_type)

    # ═══════════════════════════════════════════════════════════════════════════
    # HISTORY, CACHE & STATS
    # ═══════════════════════════════════════════════════════════════════════════

    def get_history(self) -> List[AnalysisResult]:
        with self._history_lock:
            return list(self._history)

    def clear_history(self) -> None:
        with self._history_lock:
            self._history.clear()

    def clear_cache(self) -> None:
        self.cache.clear()

    @staticmethod
    def get_supported_exercises() -> List[str]:
        return [kind.value for kind in ExerciseKind]

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics."""
        with self._history_lock:
            history_size = len(self._history)
        return {
            "pose_source": self.pose_source.name,
            "simulation_mode": self.simulation_mode,
            "degraded": self.degraded,
            "history_size": history_size,
            "cache": self.cache.stats(),
            "scheduler": self.scheduler.get_stats(),
        }

    def shutdown(self) -> None:
        """Drain pending frames and release the pose source."""
        self.scheduler.shutdown(wait=True)
        self.pose_source.close()
