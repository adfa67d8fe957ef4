"""
test_routes.py - HTTP surface tests

Tests:
- children, placement, preferences and learner profile endpoints
- lesson start / message / submit / revise, including the 422 quality-gate body
- submit and revise accept camelCase bodies and answer with exact camelCase key sets
- one lock per session id, dropped once nothing holds it
- model failures surface as 502 {"error": "llm_error"}
- curriculum generate / read / revise
- skills, badges and streak endpoints
"""

import gc
import json
import sqlite3
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from conftest import fake_evaluation
from writewise.db.database import SCHEMA_PATH
from writewise.routes import lessons
from writewise.server import app

STORY = (
    "The old lighthouse keeper heard a knock at midnight. Nobody ever visited the island, "
    "especially not in a storm like this one. He lifted his lantern and opened the creaking door."
)
GENERAL_REPLY = fake_evaluation({"creativity": 3, "effort": 3, "skill_practice": 3}, 3.0)


@pytest.fixture
def client(db_path):
    # no lifespan: the schema is created here instead of through migrations
    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA_PATH.read_text())
    conn.close()
    return TestClient(app)


def _set_phase(db_path, session_id, phase):
    conn = sqlite3.connect(db_path)
    conn.execute("UPDATE sessions SET phase = ? WHERE id = ?", (phase, session_id))
    conn.commit()
    conn.close()


def _create_child(client, age=8):
    resp = client.post("/api/children", json={"name": "Maya", "age": age})
    assert resp.status_code == 200
    return resp.json()


def _start_in_assessment(client, db_path, child_id, lesson_id="N1.1.1"):
    with patch("writewise.services.coach.ai_chat", new=AsyncMock(return_value="Hello!")):
        resp = client.post("/api/lessons/start", json={"child_id": child_id, "lesson_id": lesson_id})
    session_id = resp.json()["session_id"]
    _set_phase(db_path, session_id, "assessment")
    return session_id


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}


class TestChildren:

    def test_create_sets_tier_from_age(self, client):
        assert _create_child(client, age=8)["tier"] == 1
        assert _create_child(client, age=11)["tier"] == 2

    def test_get_missing_child(self, client):
        resp = client.get("/api/children/999")
        assert resp.status_code == 404
        assert resp.json() == {"error": "not_found", "message": "Child not found"}

    def test_invalid_age(self, client):
        assert client.post("/api/children", json={"name": "Tiny", "age": 2}).status_code == 422

    def test_preferences(self, client):
        child = _create_child(client)
        resp = client.post(f"/api/children/{child['id']}/preferences", json={"category": "interests", "value": "space"})
        assert resp.status_code == 200
        assert resp.json()["preferences"][0]["value"] == "space"

    def test_learner_profile_before_any_lesson(self, client):
        child = _create_child(client)
        body = client.get(f"/api/children/{child['id']}/learner-profile").json()
        assert body == {"profile": None, "context": None, "prompt": ""}


class TestPlacement:

    PAYLOAD = {
        "prompts": ["Describe your room", "Convince me to read", "Explain a game"],
        "responses": ["It is blue.", "Books are fun.", "You kick the ball."],
    }

    def test_place_then_refuse_second(self, client):
        child = _create_child(client, age=11)
        reply = json.dumps({"recommendedTier": 1, "confidence": 0.8, "strengths": ["ideas"], "gaps": ["detail"]})
        with patch("writewise.services.placement.ai_chat", new=AsyncMock(return_value=reply)):
            first = client.post(f"/api/placement/{child['id']}", json=self.PAYLOAD)
            second = client.post(f"/api/placement/{child['id']}", json=self.PAYLOAD)

        assert first.status_code == 200
        assert first.json()["recommended_tier"] == 1
        assert client.get(f"/api/children/{child['id']}").json()["tier"] == 1
        assert second.status_code == 409
        assert second.json()["error"] == "already_placed"

    def test_bad_reply_is_502(self, client):
        child = _create_child(client)
        with patch("writewise.services.placement.ai_chat", new=AsyncMock(return_value="tier two probably")):
            resp = client.post(f"/api/placement/{child['id']}", json=self.PAYLOAD)
        assert resp.status_code == 502
        assert resp.json()["error"] == "llm_error"

    def test_needs_three_samples(self, client):
        child = _create_child(client)
        resp = client.post(f"/api/placement/{child['id']}", json={"prompts": ["a"], "responses": ["b"]})
        assert resp.status_code == 422


class TestLessons:

    def test_start_unknown_lesson(self, client):
        child = _create_child(client)
        resp = client.post("/api/lessons/start", json={"child_id": child["id"], "lesson_id": "Z9.9.9"})
        assert resp.status_code == 404

    def test_empty_message(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        resp = client.post("/api/lessons/message", json={"session_id": session_id, "message": "   "})
        assert resp.status_code == 400
        assert resp.json()["error"] == "bad_request"

    def test_message_turn(self, client, db_path):
        child = _create_child(client)
        with patch("writewise.services.coach.ai_chat", new=AsyncMock(return_value="Hello!")):
            session_id = client.post(
                "/api/lessons/start", json={"child_id": child["id"], "lesson_id": "N1.1.1"}
            ).json()["session_id"]
        with patch("writewise.services.coach.ai_chat", new=AsyncMock(return_value="Good! [EXPECTS_RESPONSE]")):
            resp = client.post("/api/lessons/message", json={"session_id": session_id, "message": "hi"})
        assert resp.status_code == 200
        assert resp.json()["expects_response"] is True
        assert resp.json()["message"]["content"] == "Good!"

    def test_short_submission_is_422(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock()) as chat:
            resp = client.post("/api/lessons/submit", json={"session_id": session_id, "text": "Too short."})

        chat.assert_not_awaited()
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == "too_short"
        assert body["wordCount"] == 2
        assert body["minWords"] == 10
        assert body["message"]

    def test_submit_then_revise(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock(return_value=GENERAL_REPLY)):
            submitted = client.post("/api/lessons/submit", json={"session_id": session_id, "text": STORY})
            revised = client.post("/api/lessons/revise", json={"session_id": session_id, "text": STORY + " The end."})

        assert submitted.status_code == 200
        body = submitted.json()
        assert body["lessonStatus"] == "completed"
        assert body["revisionsRemaining"] == 2

        assert revised.status_code == 200
        assert revised.json()["revisionsRemaining"] == 1
        assert revised.json()["previousScores"] == body["scores"]

        session = client.get(f"/api/lessons/sessions/{session_id}").json()
        assert session["phase"] == "feedback"
        assert session["phase_state"]["revisionsUsed"] == 1

    def test_scoring_failure_is_502(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock(return_value="oops")):
            resp = client.post("/api/lessons/submit", json={"session_id": session_id, "text": STORY})
        assert resp.status_code == 502
        assert resp.json() == {
            "error": "llm_error",
            "message": "We couldn't score your writing just now. Please try again.",
        }

    def test_revise_before_submit(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        resp = client.post("/api/lessons/revise", json={"session_id": session_id, "text": STORY})
        assert resp.status_code == 400
        assert resp.json()["error"] == "wrong_phase"

    def test_unknown_session(self, client):
        resp = client.post("/api/lessons/submit", json={"session_id": 31337, "text": STORY})
        assert resp.status_code == 404
        assert client.get("/api/lessons/sessions/31337").status_code == 404


class TestAssessmentContract:
    """Submit and revise speak camelCase in both directions."""

    RESULT_KEYS = {
        "assessmentId", "submissionId", "scores", "overallScore", "feedback", "wordCount",
        "lessonStatus", "newBadges", "revisionNumber", "previousScores", "revisionsRemaining",
    }

    def test_camel_case_submit(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock(return_value=GENERAL_REPLY)):
            resp = client.post(
                "/api/lessons/submit", json={"sessionId": session_id, "text": STORY, "timeSpentSec": 420}
            )

        assert resp.status_code == 200
        body = resp.json()
        assert set(body) == self.RESULT_KEYS
        assert body["assessmentId"] > 0
        assert body["revisionNumber"] == 0
        assert body["previousScores"] is None
        assert set(body["feedback"]) == {"strength", "growth", "encouragement"}

        conn = sqlite3.connect(db_path)
        (time_spent,) = conn.execute(
            "SELECT time_spent_sec FROM writing_submissions WHERE session_id = ?", (session_id,)
        ).fetchone()
        conn.close()
        assert time_spent == 420

    def test_quality_gate_body(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        resp = client.post("/api/lessons/submit", json={"sessionId": session_id, "text": "Too short."})

        assert resp.status_code == 422
        assert set(resp.json()) == {"error", "message", "wordCount", "minWords"}

    def test_camel_case_revise(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock(return_value=GENERAL_REPLY)):
            first = client.post("/api/lessons/submit", json={"sessionId": session_id, "text": STORY}).json()
            revised = client.post("/api/lessons/revise", json={"sessionId": session_id, "text": STORY + " Then silence."})

        assert revised.status_code == 200
        body = revised.json()
        assert set(body) == self.RESULT_KEYS
        assert body["revisionNumber"] == 1
        assert body["revisionsRemaining"] == 1
        assert body["previousScores"] == first["scores"]

    def test_revision_limit_body(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock(return_value=GENERAL_REPLY)):
            client.post("/api/lessons/submit", json={"sessionId": session_id, "text": STORY})
            for ending in (" One.", " Two."):
                assert client.post(
                    "/api/lessons/revise", json={"sessionId": session_id, "text": STORY + ending}
                ).status_code == 200
            resp = client.post("/api/lessons/revise", json={"sessionId": session_id, "text": STORY + " Three."})

        assert resp.status_code == 400
        assert resp.json()["error"] == "revision_limit"
        assert set(resp.json()) == {"error", "message", "revisionsUsed", "maxRevisions"}
        assert resp.json()["revisionsUsed"] == resp.json()["maxRevisions"] == 2

    def test_snake_case_still_accepted(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock(return_value=GENERAL_REPLY)):
            resp = client.post(
                "/api/lessons/submit", json={"session_id": session_id, "text": STORY, "time_spent_sec": 60}
            )
        assert resp.status_code == 200
        assert set(resp.json()) == self.RESULT_KEYS

    def test_camel_case_start_and_message(self, client):
        child = _create_child(client)
        with patch("writewise.services.coach.ai_chat", new=AsyncMock(return_value="Hello!")):
            started = client.post("/api/lessons/start", json={"childId": child["id"], "lessonId": "N1.1.1"})
        assert started.status_code == 200
        with patch("writewise.services.coach.ai_chat", new=AsyncMock(return_value="Good!")):
            resp = client.post(
                "/api/lessons/message", json={"sessionId": started.json()["session_id"], "message": "hi"}
            )
        assert resp.status_code == 200


class TestSessionLocks:

    async def test_same_session_shares_a_lock(self):
        lock = lessons._lock_for(42)
        assert lessons._lock_for(42) is lock
        assert lessons._lock_for(43) is not lock

    async def test_released_locks_are_dropped(self):
        async with lessons._lock_for(42):
            assert 42 in lessons._session_locks
        gc.collect()
        assert 42 not in lessons._session_locks


class TestCurriculum:

    def test_generate_read_revise(self, client):
        child = _create_child(client)
        assert client.get(f"/api/curriculum/{child['id']}").status_code == 404

        with patch("writewise.services.curriculum_planner.ai_chat", new=AsyncMock(return_value="no plan")):
            generated = client.post(f"/api/curriculum/{child['id']}/generate", json={"week_count": 2, "lessons_per_week": 2})
        assert generated.status_code == 200
        assert len(generated.json()["weeks"]) == 2

        read = client.get(f"/api/curriculum/{child['id']}").json()
        assert read["curriculum"]["id"] == generated.json()["curriculum"]["id"]

        with patch("writewise.services.curriculum_planner.ai_chat", new=AsyncMock(return_value="[oops")):
            failed = client.post(f"/api/curriculum/{child['id']}/revise", json={"reason": "pace", "description": "Slower"})
        assert failed.status_code == 502
        assert failed.json()["message"] == "Failed to generate revised curriculum. Please try again."

    def test_bad_focus_area(self, client):
        child = _create_child(client)
        resp = client.post(f"/api/curriculum/{child['id']}/generate", json={"focus_areas": ["poetry"]})
        assert resp.status_code == 422


class TestProgress:

    def test_empty_progress(self, client):
        child = _create_child(client)
        skills = client.get(f"/api/children/{child['id']}/skills").json()
        assert skills["child_id"] == child["id"]
        assert all(c["skills"] == [] for c in skills["categories"].values())

        badges = client.get(f"/api/children/{child['id']}/badges").json()
        assert badges["earned_count"] == 0
        assert badges["total"] == 23

        streak = client.get(f"/api/children/{child['id']}/streak").json()
        assert streak["current_streak"] == 0

    def test_weekly_goal(self, client):
        child = _create_child(client)
        resp = client.put(f"/api/children/{child['id']}/streak/goal", json={"weekly_goal": 5})
        assert resp.status_code == 200
        assert resp.json()["weekly_goal"] == 5
        assert client.put(f"/api/children/{child['id']}/streak/goal", json={"weekly_goal": 0}).status_code == 422

    def test_badges_after_submission(self, client, db_path):
        child = _create_child(client)
        session_id = _start_in_assessment(client, db_path, child["id"])
        with patch("writewise.services.writing_evaluator.ai_chat", new=AsyncMock(return_value=GENERAL_REPLY)):
            client.post("/api/lessons/submit", json={"session_id": session_id, "text": STORY})

        badges = client.get(f"/api/children/{child['id']}/badges").json()
        assert "first_lesson" in badges["unseen"]

        marked = client.post(f"/api/children/{child['id']}/badges/seen", json={"badge_ids": ["first_lesson", "nope"]})
        assert marked.json() == {"marked": ["first_lesson"]}
        assert "first_lesson" not in client.get(f"/api/children/{child['id']}/badges").json()["unseen"]

    def test_unknown_child(self, client):
        assert client.get("/api/children/404/streak").status_code == 404
