import time

import pytest
from fastapi.testclient import TestClient

from app.apis.deps import get_pipeline, get_session_manager
from app.core.identity import JWTIdentityProvider
from app.modules.learning.client import GenerationServerError, GenerationTimeout
from app.modules.learning.pipeline import SessionPipeline
from app.modules.learning.sessions import SessionManager
from main import app
from tests.helpers import FakeClient, cards_json, quiz_json


def _auth(subject: str) -> dict:
    token = JWTIdentityProvider("test-secret", audience="authenticated").issue_token(subject)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def manager():
    return SessionManager()


@pytest.fixture
def use_client(manager):
    """Install a pipeline backed by the given fake generation client."""

    def install(fake: FakeClient) -> TestClient:
        pipeline = SessionPipeline(fake)
        app.dependency_overrides[get_pipeline] = lambda: pipeline
        app.dependency_overrides[get_session_manager] = lambda: manager
        return TestClient(app)

    yield install
    app.dependency_overrides.clear()


def test_create_session_as_guest(use_client):
    client = use_client(FakeClient(cards_json("Intro", "Orbits", clean_topic="Gravity")))
    r = client.post("/v1/sessions", json={"topic": "  gravity "})
    assert r.status_code == 201
    body = r.json()
    assert body["state"] == "ready"
    assert body["title"] == "Gravity"
    assert body["topic"] == "gravity"
    assert [c["title"] for c in body["cards"]] == ["Intro", "Orbits"]
    assert body["quiz_status"] == "none"


def test_failed_generation_returns_502_with_message(use_client):
    client = use_client(FakeClient(GenerationTimeout()))
    r = client.post("/v1/sessions", json={"topic": "gravity"})
    assert r.status_code == 502
    body = r.json()
    assert body["state"] == "failed"
    assert body["error"]
    assert body["cards"] == []


def test_blank_topic_is_rejected(use_client):
    client = use_client(FakeClient(cards_json("x")))
    assert client.post("/v1/sessions", json={"topic": "   "}).status_code == 422
    assert client.post("/v1/sessions", json={"topic": ""}).status_code == 422


def test_sessions_are_private_to_their_owner(use_client):
    client = use_client(FakeClient(cards_json("Intro", clean_topic="Gravity")))
    sid = client.post("/v1/sessions", json={"topic": "gravity"}, headers=_auth("u1")).json()["id"]

    assert client.get(f"/v1/sessions/{sid}", headers=_auth("u1")).status_code == 200
    assert client.get(f"/v1/sessions/{sid}", headers=_auth("u2")).status_code == 404
    assert client.get(f"/v1/sessions/{sid}").status_code == 404


def test_invalid_token_is_rejected(use_client):
    client = use_client(FakeClient(cards_json("x")))
    r = client.post(
        "/v1/sessions", json={"topic": "gravity"}, headers={"Authorization": "Bearer nope"}
    )
    assert r.status_code == 401


def test_clarification_flow(use_client):
    client = use_client(
        FakeClient(
            cards_json("Intro", clean_topic="Gravity"),
            cards_json("Clarification Part 1", "Clarification Part 2"),
        )
    )
    sid = client.post("/v1/sessions", json={"topic": "gravity"}).json()["id"]

    r = client.post(f"/v1/sessions/{sid}/clarifications", json={"confusion": "why?"})
    assert r.status_code == 201
    assert r.json()["title"] == "Clarification Part 1"

    view = client.get(f"/v1/sessions/{sid}").json()
    assert len(view["cards"]) == 2
    assert view["state"] == "ready"


def test_clarification_on_failed_session_conflicts(use_client):
    client = use_client(FakeClient(GenerationTimeout()))
    sid = client.post("/v1/sessions", json={"topic": "gravity"}).json()["id"]
    r = client.post(f"/v1/sessions/{sid}/clarifications", json={"confusion": "why?"})
    assert r.status_code == 409


def test_quiz_and_feedback(use_client):
    client = use_client(
        FakeClient(
            cards_json("Intro", clean_topic="Gravity"),
            quiz_json(2),
            '{"feedback": "Nicely done!"}',
        )
    )
    sid = client.post("/v1/sessions", json={"topic": "gravity"}).json()["id"]

    r = client.post(f"/v1/sessions/{sid}/quiz", json={"num_questions": 2})
    assert r.status_code == 200
    questions = r.json()["questions"]
    assert len(questions) == 2
    assert all(q["correctAnswer"] in q["options"] for q in questions)

    r = client.post(f"/v1/sessions/{sid}/quiz/feedback", json={"correct": 3, "total": 2})
    assert r.status_code == 422
    r = client.post(f"/v1/sessions/{sid}/quiz/feedback", json={"correct": 2, "total": 2})
    assert r.status_code == 200
    assert r.json() == {"feedback": "Nicely done!"}


def test_quiz_mode_generates_companion_quiz(use_client):
    fake = FakeClient(cards_json("Intro", clean_topic="Gravity"), quiz_json(3))
    with use_client(fake) as client:
        r = client.post("/v1/sessions", json={"topic": "gravity", "quiz_mode": True})
        assert r.status_code == 201
        assert r.json()["quiz_status"] in ("pending", "ready")
        sid = r.json()["id"]

        view = None
        for _ in range(100):
            view = client.get(f"/v1/sessions/{sid}").json()
            if view["quiz_status"] != "pending":
                break
            time.sleep(0.02)

    assert view["quiz_status"] == "ready"
    assert len(view["quiz"]) == 3


def test_quiz_failure_surfaces_proxy_details(use_client):
    client = use_client(
        FakeClient(
            cards_json("Intro", clean_topic="Gravity"),
            GenerationServerError(500, "quota exceeded"),
        )
    )
    sid = client.post("/v1/sessions", json={"topic": "gravity"}).json()["id"]

    r = client.post(f"/v1/sessions/{sid}/quiz", json={"num_questions": 2})
    assert r.status_code == 502
    assert r.json()["detail"] == "quota exceeded"

    view = client.get(f"/v1/sessions/{sid}").json()
    assert view["quiz_status"] == "unavailable"
    assert view["state"] == "ready"


def test_quiz_timeout_surfaces_user_message(use_client):
    client = use_client(FakeClient(cards_json("Intro", clean_topic="Gravity"), GenerationTimeout()))
    sid = client.post("/v1/sessions", json={"topic": "gravity"}).json()["id"]

    r = client.post(f"/v1/sessions/{sid}/quiz", json={})
    assert r.status_code == 502
    assert r.json()["detail"] == GenerationTimeout.user_message
