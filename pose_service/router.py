"""
TECHRUN Pose Service Router

Endpoints for frame and video pose analysis, analysis history and cache
management.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from core.threading import QueueFull
from shared.utils import success_response

from .models import ExerciseKind, PoseAnalysisService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_pose_service(request: Request) -> PoseAnalysisService:
    """Service instance created by the application lifespan."""
    service = getattr(request.app.state, "pose_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Pose service not initialized")
    return service


def parse_exercise(exercise_type: str) -> ExerciseKind:
    try:
        return ExerciseKind.parse(exercise_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ============= Pydantic Models =============

class AnalyzeFrameRequest(BaseModel):
    frame_uri: str
    exercise_type: str = "general"


class AnalyzeVideoRequest(BaseModel):
    video_uri: str = Field(..., min_length=1)
    exercise_type: str = "general"


# ============= REST Endpoints =============

@router.post("/analyze-frame")
async def analyze_frame(
    request: AnalyzeFrameRequest,
    service: PoseAnalysisService = Depends(get_pose_service),
):
    """
    Analyze a single frame.

    Returns the landmarks, confidence, feedback and form score, or null
    data when no pose could be detected.
    """
    exercise_type = parse_exercise(request.exercise_type)

    try:
        result = await service.analyze_frame_async(request.frame_uri, exercise_type)
    except QueueFull as e:
        raise HTTPException(status_code=503, detail=str(e))

    if result is None:
        return success_response(None, message="No pose detected")
    return success_response(result.to_dict(), message="Frame analyzed")


@router.post("/analyze-video")
async def analyze_video(
    request: AnalyzeVideoRequest,
    service: PoseAnalysisService = Depends(get_pose_service),
):
    """
    Analyze sampled frames of a video.

    Detects repetitions, average form score, estimated calories and
    consolidated feedback.
    """
    exercise_type = parse_exercise(request.exercise_type)
    metrics = await service.analyze_video_async(request.video_uri, exercise_type)
    return success_response(metrics.to_dict(), message="Video analyzed")


@router.get("/history")
async def get_history(service: PoseAnalysisService = Depends(get_pose_service)):
    """Frame analyses computed since the history was last cleared."""
    history = [result.to_dict() for result in service.get_history()]
    return success_response({"results": history, "total": len(history)})


@router.delete("/history")
async def clear_history(service: PoseAnalysisService = Depends(get_pose_service)):
    service.clear_history()
    return success_response(message="History cleared")


@router.delete("/cache")
async def clear_cache(service: PoseAnalysisService = Depends(get_pose_service)):
    service.clear_cache()
    return success_response(message="Cache cleared")


@router.get("/exercises")
async def get_exercises(service: PoseAnalysisService = Depends(get_pose_service)):
    """Supported exercise types."""
    return success_response({"exercises": service.get_supported_exercises()})


@router.get("/stats")
async def get_stats(service: PoseAnalysisService = Depends(get_pose_service)):
    return success_response(service.get_stats())
