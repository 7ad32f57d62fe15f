"""
TECHRUN Pose Service - Errors

Exception hierarchy for the frame-analysis pipeline.
"""


class PoseServiceError(Exception):
    """Base class for pose service errors."""


class EngineUnavailable(PoseServiceError):
    """The real pose-estimation engine could not be imported or loaded."""


class DetectionError(PoseServiceError):
    """Pose detection failed for a single frame."""


class InvalidFrameReference(DetectionError):
    """The frame identity could not be decoded into an image."""

    def __init__(self, frame_identity: str, reason: str = "unusable frame reference"):
        self.frame_identity = frame_identity
        self.reason = reason
        super().__init__(f"{reason}: {frame_identity!r}")

