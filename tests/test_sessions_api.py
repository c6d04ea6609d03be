from __future__ import annotations

from pathlib import Path
import json
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest
from fastapi.testclient import TestClient

from backend.app import create_app
from backend.config import get_settings


@pytest.fixture(autouse=True)
def reset_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Force each test to use a clean data store and no remote services."""

    data_file = tmp_path / "sessions.json"
    monkeypatch.setenv("DATA_PATH", str(data_file))
    monkeypatch.setenv("PACING_DELAY", "0")
    for key in ("OPENAI_API_KEY", "COLLABORATOR_BASE_URL", "COLLABORATOR_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


def create_client() -> TestClient:
    app = create_app()
    return TestClient(app)


def start_session(client: TestClient) -> str:
    response = client.post("/sessions")
    assert response.status_code == 201
    return response.json()["session_id"]


def test_health_endpoint_reports_status():
    client = create_client()
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["generation"] is False
    assert payload["collaborators"] is False


def test_create_session_greets_with_path_options():
    client = create_client()
    response = client.post("/sessions")
    assert response.status_code == 201
    payload = response.json()
    assert payload["state"] == "initial"
    assert payload["accepted"] is True
    assert payload["options"]["choices"][0] == "Lead generation (outbound)"
    assert [n["id"] for n in payload["graph"]["nodes"]] == ["start", "end"]
    assert payload["graph"]["edges"][0]["from"] == "start"


def test_reply_walks_to_platform_actions():
    client = create_client()
    session_id = start_session(client)

    response = client.post(f"/sessions/{session_id}/reply", json={"reply": "Automation"})
    assert response.json()["state"] == "platform_selection"

    response = client.post(
        f"/sessions/{session_id}/reply",
        json={"reply": ["LinkedIn", "Email"], "question_key": "platforms"},
    )
    payload = response.json()
    assert payload["state"] == "platform_confirmation"
    assert payload["options"]["choices"] == ["Continue", "Add another platform"]

    response = client.post(f"/sessions/{session_id}/reply", json={"reply": "Continue"})
    payload = response.json()
    assert payload["state"] == "platform_features"
    assert payload["options"]["kind"] == "multi_select"
    assert payload["options"]["platform"] == "linkedin"


def test_toggle_requires_action_step_and_reports_warning():
    client = create_client()
    session_id = start_session(client)

    response = client.post(f"/sessions/{session_id}/actions/toggle", json={"action": "Visit profile"})
    assert response.status_code == 409

    client.post(f"/sessions/{session_id}/reply", json={"reply": "Automation"})
    client.post(f"/sessions/{session_id}/reply", json={"reply": ["LinkedIn"]})
    client.post(f"/sessions/{session_id}/reply", json={"reply": "Continue"})

    response = client.post(
        f"/sessions/{session_id}/actions/toggle",
        json={"action": "Send message (after accepted)"},
    )
    assert response.status_code == 200
    payload = response.json()
    assert "requires" in payload["turns"][-1]["text"]
    assert payload["options"]["prechecked"] == [
        "Send message (after accepted)",
        "Send connection request (without message)",
    ]


def test_unknown_session_is_404():
    client = create_client()
    response = client.get("/sessions/does-not-exist")
    assert response.status_code == 404
    assert "not found" in response.json()["detail"]


def test_launch_and_duplicates_need_the_right_state():
    client = create_client()
    session_id = start_session(client)

    assert client.post(f"/sessions/{session_id}/launch").status_code == 409
    response = client.post(f"/sessions/{session_id}/duplicates", json={"choice": "skip_duplicates"})
    assert response.status_code == 409


def test_leads_without_collaborators_fall_back():
    client = create_client()
    session_id = start_session(client)

    response = client.post(f"/sessions/{session_id}/leads", json={"leads": [{"email": "a@x.io"}]})
    assert response.status_code == 200
    assert response.json()["turns"][-1]["text"].startswith("Sorry, something went wrong")

    response = client.post(f"/sessions/{session_id}/leads", json={"leads": []})
    assert response.status_code == 422


def test_reset_returns_to_greeting():
    client = create_client()
    session_id = start_session(client)
    client.post(f"/sessions/{session_id}/reply", json={"reply": "Automation"})

    response = client.post(f"/sessions/{session_id}/reset")
    payload = response.json()
    assert payload["state"] == "initial"
    assert len(payload["turns"]) == 1


def test_handoff_is_persisted_to_disk(tmp_path: Path):
    client = create_client()
    session_id = start_session(client)
    client.post(f"/sessions/{session_id}/reply", json={"reply": "Automation"})
    client.post(f"/sessions/{session_id}/reply", json={"reply": ["Email"]})

    response = client.get(f"/sessions/{session_id}/handoff")
    assert response.status_code == 200
    payload = response.json()
    assert payload["state"] == "platform_confirmation"
    assert payload["answers"]["platforms"] == ["email"]

    stored = json.loads((tmp_path / "sessions.json").read_text("utf-8"))
    assert stored[0]["session_id"] == session_id

    assert client.get("/sessions/missing/handoff").status_code == 404


def test_handoffs_list_most_recent_first():
    client = create_client()
    first = start_session(client)
    second = start_session(client)
    client.post(f"/sessions/{first}/reply", json={"reply": "Automation"})

    response = client.get("/handoffs")
    assert response.status_code == 200
    ids = [item["session_id"] for item in response.json()["handoffs"]]
    assert ids == [first, second]
