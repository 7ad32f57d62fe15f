"""
TECHRUN Pose Service - Exercise Analyzer

Rule-based form feedback and scoring per exercise type.
Thresholds are expressed in the landmark coordinate space (pixels).
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .pose_types import ExerciseKind, LandmarkKind, PoseLandmark, find_landmark


# Complex movements score slightly lower than simple posture checks
FORM_MULTIPLIERS: Dict[ExerciseKind, float] = {
    ExerciseKind.SQUAT: 0.9,
    ExerciseKind.PUSHUP: 0.9,
    ExerciseKind.PLANK: 0.9,
    ExerciseKind.GENERAL: 1.0,
}

EXERCISE_THRESHOLDS = {
    ExerciseKind.SQUAT: {
        "knee_alignment": 20,
        "min_hip_knee_depth": 50,
    },
    ExerciseKind.PUSHUP: {
        "shoulder_alignment": 15,
        "elbow_shoulder_offset": 30,
    },
    ExerciseKind.PLANK: {
        "shoulder_hip_offset": 40,
    },
}

FEEDBACK_KNEES_ALIGNED = "Keep your knees aligned"
FEEDBACK_SQUAT_DEPTH = "Go lower for a full squat"
FEEDBACK_BODY_ALIGNED = "Keep your body aligned"
FEEDBACK_ELBOWS_CLOSE = "Keep your elbows close to your body"
FEEDBACK_BODY_STRAIGHT = "Keep your body in a straight line"
FEEDBACK_GENERAL = ("Maintain proper posture", "Control the movement")


def _y(landmarks: Sequence[PoseLandmark], *kinds: LandmarkKind) -> Optional[List[float]]:
    """Vertical positions of the requested landmarks, or None if any is missing."""
    values = []
    for kind in kinds:
        landmark = find_landmark(landmarks, kind)
        if landmark is None:
            return None
        values.append(landmark.position.y)
    return values


# ═══════════════════════════════════════════════════════════════════════════════
# PER-EXERCISE RULES
# ═══════════════════════════════════════════════════════════════════════════════

def analyze_squat(landmarks: Sequence[PoseLandmark]) -> List[str]:
    feedback = []
    ys = _y(
        landmarks,
        LandmarkKind.LEFT_KNEE, LandmarkKind.RIGHT_KNEE,
        LandmarkKind.LEFT_HIP, LandmarkKind.RIGHT_HIP,
    )
    if ys is None:
        return feedback
    left_knee, right_knee, left_hip, _ = ys
    thresholds = EXERCISE_THRESHOLDS[ExerciseKind.SQUAT]

    if abs(left_knee - right_knee) > thresholds["knee_alignment"]:
        feedback.append(FEEDBACK_KNEES_ALIGNED)

    if abs(left_hip - left_knee) < thresholds["min_hip_knee_depth"]:
        feedback.append(FEEDBACK_SQUAT_DEPTH)

    return feedback


def analyze_pushup(landmarks: Sequence[PoseLandmark]) -> List[str]:
    feedback = []
    ys = _y(
        landmarks,
        LandmarkKind.LEFT_SHOULDER, LandmarkKind.RIGHT_SHOULDER,
        LandmarkKind.LEFT_ELBOW, LandmarkKind.RIGHT_ELBOW,
    )
    if ys is None:
        return feedback
    left_shoulder, right_shoulder, left_elbow, right_elbow = ys
    thresholds = EXERCISE_THRESHOLDS[ExerciseKind.PUSHUP]

    if abs(left_shoulder - right_shoulder) > thresholds["shoulder_alignment"]:
        feedback.append(FEEDBACK_BODY_ALIGNED)

    elbow_position = (left_elbow + right_elbow) / 2
    shoulder_position = (left_shoulder + right_shoulder) / 2
    if abs(elbow_position - shoulder_position) > thresholds["elbow_shoulder_offset"]:
        feedback.append(FEEDBACK_ELBOWS_CLOSE)

    return feedback


def analyze_plank(landmarks: Sequence[PoseLandmark]) -> List[str]:
    feedback = []
    ys = _y(
        landmarks,
        LandmarkKind.LEFT_SHOULDER, LandmarkKind.RIGHT_SHOULDER,
        LandmarkKind.LEFT_HIP, LandmarkKind.RIGHT_HIP,
    )
    if ys is None:
        return feedback
    left_shoulder, right_shoulder, left_hip, right_hip = ys

    offset = abs((left_shoulder + right_shoulder) / 2 - (left_hip + right_hip) / 2)
    if offset > EXERCISE_THRESHOLDS[ExerciseKind.PLANK]["shoulder_hip_offset"]:
        feedback.append(FEEDBACK_BODY_STRAIGHT)

    return feedback


def analyze_general(landmarks: Sequence[PoseLandmark]) -> List[str]:
    return list(FEEDBACK_GENERAL)


RULES: Dict[ExerciseKind, Callable[[Sequence[PoseLandmark]], List[str]]] = {
    ExerciseKind.SQUAT: analyze_squat,
    ExerciseKind.PUSHUP: analyze_pushup,
    ExerciseKind.PLANK: analyze_plank,
    ExerciseKind.GENERAL: analyze_general,
}


# ═══════════════════════════════════════════════════════════════════════════════
# ANALYZER
# ═══════════════════════════════════════════════════════════════════════════════

class ExerciseAnalyzer:
    """Stateless scorer turning landmarks into feedback and a 0-100 score."""

    def feedback(self, landmarks: Sequence[PoseLandmark], exercise_type: ExerciseKind) -> List[str]:
        return RULES[exercise_type](landmarks)

    def form_score(self, landmarks: Sequence[PoseLandmark], exercise_type: ExerciseKind) -> int:
        if not landmarks:
            return 0
        avg_confidence = float(np.mean([lm.position.confidence for lm in landmarks]))
        score = round(avg_confidence * FORM_MULTIPLIERS[exercise_type] * 100)
        return int(max(0, min(100, score)))

    def score(
        self,
        landmarks: Sequence[PoseLandmark],
        exercise_type: ExerciseKind,
    ) -> Tuple[List[str], int]:
        """Return (feedback, score) for one frame."""
        return self.feedback(landmarks, exercise_type), self.form_score(landmarks, exercise_type)
