"""
TECHRUN Configuration

Environment variables and application settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "TECHRUN Pose Service"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8081", "http://10.0.2.2:8000"]

    # Pose engine ("mediapipe" falls back to "simulated" when unavailable)
    POSE_ENGINE: str = "mediapipe"
    POSE_MODEL_PATH: Optional[str] = None
    POSE_MIN_DETECTION_CONFIDENCE: float = 0.5
    SIMULATION_SEED: Optional[int] = None

    # Frame scheduling
    FRAME_THROTTLE_MS: int = 100
    FRAME_CONTENTION_POLICY: str = "queue"
    FRAME_QUEUE_MAX_DEPTH: Optional[int] = None

    # Result cache
    ANALYSIS_CACHE_SIZE: int = 100

    # Video analysis
    VIDEO_SAMPLE_FRAMES: int = 10
    ASSUMED_BODY_WEIGHT_KG: float = 70.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
