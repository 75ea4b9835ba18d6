"""
HTTP tests for the wizard routes.

The app is built around an orchestrator wired to in-memory fakes, so no
model or storage backend is contacted.
"""

import json

import pytest
from fastapi.testclient import TestClient

from app import create_app
from party_wizard.domain.serialization import serialize_fields
from tests.fakes import OWNER, make_party_info

PREFIX = "/api/parties/wizard"
HEADERS = {"X-User-Id": OWNER}
PARTY_TEXT = 'Birthday party called "Sam\'s 30th" on Saturday at 7pm at the park'


@pytest.fixture
def client(harness):
    return TestClient(create_app(orchestrator=harness.orchestrator))


def sse_events(response):
    """Decode the ``data:`` lines of a streamed response."""
    lines = [line for line in response.text.split("\n") if line.startswith("data: ")]
    assert lines[-1] == "data: [DONE]"
    return [json.loads(line[len("data: "):]) for line in lines[:-1]]


def chat_body(session_id, text, **extra):
    body = {"session_id": session_id, "message": {"role": "user", "parts": [{"type": "text", "text": text}]}}
    body.update(extra)
    return body


class TestAuth:
    def test_missing_user_header(self, client):
        response = client.get(f"{PREFIX}/session")

        assert response.status_code == 401

    def test_blank_user_header(self, client):
        response = client.get(f"{PREFIX}/session", headers={"X-User-Id": "   "})

        assert response.status_code == 401


class TestSessionRoutes:
    def test_active_session_is_created_once(self, client):
        first = client.get(f"{PREFIX}/session", headers=HEADERS).json()
        second = client.get(f"{PREFIX}/session", headers=HEADERS).json()

        assert first["session"]["id"] == second["session"]["id"]
        assert first["session"]["current_step"] == "party-info"
        assert first["session"]["owner_id"] == OWNER
        assert first["messages"] == []

    def test_session_by_id_is_owner_scoped(self, client, harness):
        session_id = harness.new_session()

        ok = client.get(f"{PREFIX}/session/{session_id}", headers=HEADERS)
        other = client.get(f"{PREFIX}/session/{session_id}", headers={"X-User-Id": "someone-else"})

        assert ok.status_code == 200
        assert "messages" not in ok.json()
        assert other.status_code == 404

    def test_start_new_session(self, client, harness):
        old_id = harness.new_session()

        response = client.post(f"{PREFIX}/session/new", headers=HEADERS)

        body = response.json()
        assert response.status_code == 200
        assert body["session"]["id"] != old_id
        assert body["messages"] == []
        assert harness.session(old_id).status == "abandoned"

    def test_progress(self, client, harness):
        session_id = harness.new_session()
        harness.store.update_partial(session_id, OWNER, {"current_step": "guests", "furthest_step_index": 1})

        progress = client.get(f"{PREFIX}/session/{session_id}/progress", headers=HEADERS).json()

        assert progress["current_stage"] == "guests"
        assert [stage["status"] for stage in progress["stages"]] == ["completed", "active", "pending", "pending"]


class TestStepChange:
    def test_back_to_reached_step(self, client, harness):
        session_id = harness.new_session()
        harness.store.update_partial(session_id, OWNER, {"current_step": "menu", "furthest_step_index": 2})

        response = client.put(f"{PREFIX}/session/{session_id}/step", json={"step": "guests"}, headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["session"]["current_step"] == "guests"
        assert response.json()["session"]["furthest_step_index"] == 2

    def test_locked_step(self, client, harness):
        session_id = harness.new_session()

        response = client.put(f"{PREFIX}/session/{session_id}/step", json={"step": "timeline"}, headers=HEADERS)

        assert response.status_code == 409

    def test_unknown_step(self, client, harness):
        session_id = harness.new_session()

        response = client.put(f"{PREFIX}/session/{session_id}/step", json={"step": "dessert-bar"}, headers=HEADERS)

        assert response.status_code == 400


class TestChat:
    def test_turn_streams_events_then_done(self, client, harness):
        session_id = harness.new_session()

        response = client.post(f"{PREFIX}/chat", json=chat_body(session_id, PARTY_TEXT), headers=HEADERS)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = sse_events(response)
        assert [event["type"] for event in events] == ["text", "step-confirmation-request"]
        assert events[1]["data"]["request"]["step"] == "party-info"

    def test_approval_advances_the_session(self, client, harness):
        session_id = harness.new_session()
        first = sse_events(client.post(f"{PREFIX}/chat", json=chat_body(session_id, PARTY_TEXT), headers=HEADERS))
        request_id = first[1]["data"]["request"]["id"]

        response = client.post(
            f"{PREFIX}/chat",
            json=chat_body(
                session_id,
                "",
                confirmation_decision={"request_id": request_id, "decision": {"type": "approve"}},
            ),
            headers=HEADERS,
        )

        assert sse_events(response)[0]["type"] == "step-confirmed"
        assert harness.session(session_id).current_step.value == "guests"

    def test_unknown_session(self, client):
        response = client.post(f"{PREFIX}/chat", json=chat_body("missing", "hi"), headers=HEADERS)

        assert response.status_code == 404

    def test_assistant_message_is_rejected(self, client, harness):
        body = chat_body(harness.new_session(), "hi")
        body["message"]["role"] = "assistant"

        response = client.post(f"{PREFIX}/chat", json=body, headers=HEADERS)

        assert response.status_code == 400

    def test_closed_session(self, client, harness):
        session_id = harness.new_session()
        harness.store.update_partial(session_id, OWNER, {"status": "completed"})

        response = client.post(f"{PREFIX}/chat", json=chat_body(session_id, "hi"), headers=HEADERS)

        assert response.status_code == 409


class TestComplete:
    def test_requires_party_info(self, client, harness):
        session_id = harness.new_session()

        response = client.post(f"{PREFIX}/complete", json={"session_id": session_id}, headers=HEADERS)

        assert response.status_code == 400

    def test_completes_session(self, client, harness):
        session_id = harness.new_session()
        harness.store.update_partial(session_id, OWNER, serialize_fields({"party_info": make_party_info()}))

        response = client.post(f"{PREFIX}/complete", json={"session_id": session_id}, headers=HEADERS)

        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["session_id"] == session_id
        assert body["party_id"]
        assert harness.session(session_id).status == "completed"


def test_root_health_check(client):
    assert client.get("/").status_code == 200
