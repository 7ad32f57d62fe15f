"""
🌐 TECHRUN Pose - API Router Tests
"""

import pytest
from fastapi.testclient import TestClient

from main import create_app


@pytest.fixture
def client(service):
    with TestClient(create_app(service)) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["pose_source"] == "simulated"
    assert body["simulation_mode"] is True


def test_analyze_frame(client):
    response = client.post("/api/pose/analyze-frame", json={"frame_uri": "frame_1", "exercise_type": "squat"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["exercise_type"] == "squat"
    assert len(data["landmarks"]) == 33
    assert data["landmarks"][0]["type"] == "nose"
    assert 0 <= data["score"] <= 100


def test_analyze_frame_without_pose(client):
    response = client.post("/api/pose/analyze-frame", json={"frame_uri": "", "exercise_type": "general"})

    assert response.status_code == 200
    assert response.json()["data"] is None


def test_unknown_exercise_is_bad_request(client):
    response = client.post("/api/pose/analyze-frame", json={"frame_uri": "frame_1", "exercise_type": "burpee"})
    assert response.status_code == 400

    response = client.post("/api/pose/analyze-video", json={"video_uri": "video_1", "exercise_type": "burpee"})
    assert response.status_code == 400


def test_analyze_video(client):
    response = client.post("/api/pose/analyze-video", json={"video_uri": "video_1", "exercise_type": "plank"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["repetitions"] == 1
    assert data["calories_burned"] > 0
    assert data["duration_seconds"] > 0


def test_history_and_cache_endpoints(client):
    client.post("/api/pose/analyze-frame", json={"frame_uri": "frame_1"})

    history = client.get("/api/pose/history").json()["data"]
    assert history["total"] == 1

    assert client.delete("/api/pose/history").status_code == 200
    assert client.get("/api/pose/history").json()["data"]["total"] == 0

    assert client.delete("/api/pose/cache").status_code == 200
    assert client.get("/api/pose/stats").json()["data"]["cache"]["size"] == 0


def test_exercises(client):
    data = client.get("/api/pose/exercises").json()["data"]
    assert data["exercises"] == ["squat", "pushup", "plank", "general"]
