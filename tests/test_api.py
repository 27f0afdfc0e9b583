import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from studymap.main import app
from studymap.mindmap.normalizer import fallback_mind_map

client = TestClient(app)

SOURCE = "Photosynthesis is the process used by plants to turn light into chemical energy. " * 5


@pytest.fixture
def offline():
    """No provider configured: every artifact takes its fallback path."""
    with patch("studymap.main.generation_available", return_value=False), \
         patch("studymap.api.v1.endpoints.mindmap.generation_available", return_value=False):
        yield


@pytest.fixture
def fake_provider(photosynthesis_payload):
    async def generate(prompt: str) -> str:
        return photosynthesis_payload

    with patch("studymap.api.v1.endpoints.mindmap.generation_available", return_value=True), \
         patch("studymap.api.v1.endpoints.mindmap.generate_text", generate):
        yield


def test_health_check():
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "operational"


def test_mindmap_endpoint_with_provider(fake_provider):
    response = client.post("/api/v1/mindmap", json={"text": SOURCE, "title": "Photosynthesis"})

    assert response.status_code == 200
    data = response.json()
    assert data["used_fallback"] is False
    assert len(data["mind_map"]["nodes"]) == 5
    assert set(data["mind_map"]["edges"][0]) == {"from", "to", "strength"}
    assert data["positions"]["1"] == {"x": 640.0, "y": 266.0}


def test_mindmap_endpoint_offline_falls_back(offline):
    response = client.post("/api/v1/mindmap", json={"text": SOURCE, "title": "Offline"})

    assert response.status_code == 200
    data = response.json()
    assert data["used_fallback"] is True
    assert data["mind_map"]["nodes"][0]["label"] == "Offline"
    assert [e["strength"] for e in data["mind_map"]["edges"]] == [0.8, 0.7, 0.6]


def test_mindmap_endpoint_rejects_short_text():
    response = client.post("/api/v1/mindmap", json={"text": "too short"})
    assert response.status_code == 422


def test_layout_endpoint_round_trips_mind_map():
    mind_map = json.loads(fallback_mind_map("Resize").model_dump_json())
    response = client.post(
        "/api/v1/mindmap/layout",
        json={"mind_map": mind_map, "viewport_width": 1000, "viewport_height": 800},
    )

    assert response.status_code == 200
    positions = response.json()["positions"]
    assert positions["1"] == {"x": 500.0, "y": 266.0}
    assert positions["3"]["x"] == pytest.approx(650.0)


def test_process_text_upload_offline(offline):
    response = client.post(
        "/api/v1/process",
        files={"file": ("photosynthesis.txt", SOURCE.encode(), "text/plain")},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["meta"]["file_name"] == "photosynthesis.txt"
    assert body["data"]["title"] == "photosynthesis"
    assert len(body["data"]["positions"]) == 4
    assert body["notices"]
    assert len(body["data"]["flashcards"]) == 2


def test_process_uses_explicit_title(offline):
    response = client.post(
        "/api/v1/process",
        files={"file": ("notes.md", SOURCE.encode(), "text/markdown")},
        data={"title": "Plant Biology"},
    )

    assert response.status_code == 200
    assert response.json()["data"]["mind_map"]["title"] == "Plant Biology"


def test_process_rejects_unsupported_type(offline):
    response = client.post(
        "/api/v1/process",
        files={"file": ("slides.pptx", b"PK\x03\x04", "application/octet-stream")},
    )

    assert response.status_code == 400
    assert response.json()["status"] == "error"


@pytest.mark.parametrize("content", [b"", b"   \n  "])
def test_process_rejects_empty_text_file(offline, content):
    response = client.post(
        "/api/v1/process",
        files={"file": ("blank.txt", content, "text/plain")},
    )

    assert response.status_code == 400
    assert response.json()["status"] == "error"


def test_view_endpoint_applies_viewer_state():
    mind_map = json.loads(fallback_mind_map("Cell Structure and Function").model_dump_json())
    state = {
        "zoom": 1.4,
        "selected_node_id": "2",
        "saved_node_ids": ["3"],
        "notes_by_node_id": {"3": "review before exam"},
        "exam_mode": True,
    }
    response = client.post("/api/v1/mindmap/view", json={"mind_map": mind_map, "state": state})

    assert response.status_code == 200
    view = response.json()
    assert view["zoom"] == 1.4
    assert view["exam_mode"] is True
    nodes = {n["id"]: n for n in view["nodes"]}
    assert nodes["1"]["position"] == {"x": 640.0, "y": 266.0}
    assert nodes["1"]["display_label"] == "Cell Struc..."
    assert nodes["2"]["is_selected"] is True
    assert nodes["3"]["highlighted"] is True
    assert nodes["3"]["note"] == "review before exam"
    assert len(view["edges"]) == 3


def test_view_endpoint_defaults_to_initial_state():
    mind_map = json.loads(fallback_mind_map("Atoms").model_dump_json())
    response = client.post(
        "/api/v1/mindmap/view",
        json={"mind_map": mind_map, "viewport_width": 1000, "viewport_height": 800},
    )

    assert response.status_code == 200
    view = response.json()
    assert view["zoom"] == 1.0
    assert view["pan"] == {"x": 0.0, "y": 0.0}
    assert not any(n["highlighted"] or n["note"] for n in view["nodes"])
    assert view["nodes"][0]["position"] == {"x": 500.0, "y": 266.0}
