"""
Test suite for the interview lifecycle and the voice-agent session service

This module tests:
- Interview status transitions (scheduled -> in_progress -> completed | cancelled)
- Creating, updating and listing interviews over HTTP
- The /api/vapi-interview actions against a mocked voice platform
- Setup-required and invalid-action errors

Run tests with: pytest backend/tests/test_interviews.py -v
"""

import json
import os
import re
import sys

import httpx
import pytest
from sqlalchemy import DateTime
from sqlmodel import SQLModel, select

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import OTHER_USER_ID, USER_ID, auth_headers
from models import Evaluation, Interview, InterviewSession, InterviewStatus, InvalidTransition, VapiLog
from services.voice_agent import VapiClient


# ============================================================================
# FIXTURES
# ============================================================================

class FakeVoicePlatform:
    """MockTransport handler standing in for the voice platform's REST API."""

    def __init__(self, call_status=201):
        self.call_status = call_status
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if request.method == "POST" and request.url.path == "/call":
            if self.call_status >= 400:
                return httpx.Response(self.call_status, text="assistant not found")
            return httpx.Response(self.call_status, json={"id": "call-123", "webCallUrl": "https://vapi.example/call-123"})
        if request.method == "GET":
            return httpx.Response(200, json={
                "transcript": "AI: Hi\nUser: Hello",
                "messages": [{"role": "bot", "message": "Hi"}],
                "summary": "Short call",
            })
        if request.method == "DELETE":
            return httpx.Response(200, json={})
        return httpx.Response(404)

    def body(self, index=0):
        return json.loads(self.requests[index].content)


@pytest.fixture
def platform():
    return FakeVoicePlatform()


@pytest.fixture
def vapi_client(test_client, settings, platform):
    """Wire a VapiClient on the fake platform into the app."""
    from api import app, get_vapi_client

    settings.vapi_api_key = "test-vapi-key"
    settings.vapi_assistant_id = "asst-1"
    client = VapiClient("test-vapi-key", http_client=httpx.Client(transport=httpx.MockTransport(platform)))
    app.dependency_overrides[get_vapi_client] = lambda: client
    return client


def vapi(test_client, **body):
    return test_client.post("/api/vapi-interview", json=body, headers=auth_headers())


# ============================================================================
# TEST CASES - Lifecycle
# ============================================================================

class TestTransitions:
    """Tests for Interview.transition()."""

    def test_happy_path(self):
        interview = Interview(user_id=USER_ID)
        interview.transition(InterviewStatus.IN_PROGRESS)
        assert interview.started_at is not None
        interview.transition(InterviewStatus.COMPLETED)
        assert interview.status == "completed"
        assert interview.ended_at is not None

    def test_scheduled_can_be_cancelled(self):
        interview = Interview(user_id=USER_ID)
        interview.transition("cancelled")
        assert interview.status == "cancelled"

    @pytest.mark.parametrize("start, target", [
        ("scheduled", "completed"),
        ("completed", "in_progress"),
        ("cancelled", "in_progress"),
        ("completed", "cancelled"),
    ])
    def test_illegal_moves(self, start, target):
        interview = Interview(user_id=USER_ID, status=start)
        with pytest.raises(InvalidTransition):
            interview.transition(target)


class TestTimestampColumns:
    """Naive UTC timestamps must bind on every table."""

    def test_datetime_columns_are_plain_datetime(self):
        datetime_columns = [
            column
            for table in SQLModel.metadata.sorted_tables
            for column in table.columns
            if isinstance(column.type, DateTime)
        ]

        assert len(datetime_columns) > 20
        for column in datetime_columns:
            assert type(column.type) is DateTime, f"{column.table.name}.{column.name}"
            assert column.type.timezone is False

    def test_naive_timestamps_persist(self, session):
        interview = Interview(user_id=USER_ID)
        interview.transition(InterviewStatus.IN_PROGRESS)
        session.add(interview)
        session.commit()
        session.refresh(interview)

        assert interview.created_at.tzinfo is None
        assert interview.started_at == interview.updated_at


# ============================================================================
# TEST CASES - Interview endpoints
# ============================================================================

class TestInterviewEndpoints:
    """Tests for creating, updating and listing interviews."""

    def test_create_defaults(self, test_client):
        response = test_client.post("/api/interviews", json={}, headers=auth_headers())

        assert response.status_code == 200
        interview = response.json()["interview"]
        assert interview["status"] == "scheduled"
        assert interview["duration"] == "3"
        assert interview["mode"] == "resume_jd"
        assert interview["user_id"] == USER_ID

    def test_invalid_duration_is_400(self, test_client):
        response = test_client.post("/api/interviews", json={"duration": "10"}, headers=auth_headers())
        assert response.status_code == 400

    def test_foreign_resume_is_404(self, test_client, make_resume):
        resume = make_resume(user_id=OTHER_USER_ID)
        response = test_client.post("/api/interviews", json={"resumeId": resume.id}, headers=auth_headers())
        assert response.status_code == 404

    def test_status_update_and_illegal_move(self, test_client, make_interview):
        interview = make_interview(status="scheduled")

        started = test_client.post(
            f"/api/interviews/{interview.id}/status", json={"status": "in_progress"}, headers=auth_headers()
        )
        assert started.status_code == 200
        assert started.json()["interview"]["status"] == "in_progress"

        back = test_client.post(
            f"/api/interviews/{interview.id}/status", json={"status": "scheduled"}, headers=auth_headers()
        )
        assert back.status_code == 400
        assert back.json() == {"error": "Cannot move interview from in_progress to scheduled"}

    def test_other_users_interview_is_404(self, test_client, make_interview):
        interview = make_interview(user_id=OTHER_USER_ID, status="scheduled")
        response = test_client.post(
            f"/api/interviews/{interview.id}/status", json={"status": "cancelled"}, headers=auth_headers()
        )
        assert response.status_code == 404

    def test_list_includes_scores(self, test_client, session, make_interview):
        scored = make_interview(status="completed")
        make_interview(status="scheduled")
        make_interview(user_id=OTHER_USER_ID)
        session.add(Evaluation(interview_id=scored.id, user_id=USER_ID, overall_score=55))
        session.commit()

        interviews = test_client.get("/api/interviews", headers=auth_headers()).json()["interviews"]

        assert len(interviews) == 2
        scores = {i["id"]: i["overallScore"] for i in interviews}
        assert scores[scored.id] == 55
        assert sorted(scores.values(), key=lambda s: s is None) == [55, None]


# ============================================================================
# TEST CASES - /api/vapi-interview
# ============================================================================

class TestVapiInterview:
    """Tests for the voice-agent session actions."""

    def test_missing_key_is_setup_required(self, test_client, make_interview):
        interview = make_interview(status="scheduled")

        response = vapi(test_client, action="start", interviewId=interview.id)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VAPI_API_KEY is not configured"
        assert body["setup_required"] is True

    def test_missing_assistant_is_setup_required(self, test_client, settings, vapi_client, make_interview):
        settings.vapi_assistant_id = None
        interview = make_interview(status="scheduled")

        response = vapi(test_client, action="start", interviewId=interview.id)

        assert response.status_code == 400
        assert response.json()["error"] == "VAPI_ASSISTANT_ID is not configured"

    def test_invalid_action(self, test_client, vapi_client):
        response = vapi(test_client, action="pause")
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid action"}

    def test_start_creates_call_and_session(self, test_client, session, platform, vapi_client, make_interview):
        interview = make_interview(status="scheduled")
        highlights = {"skills": ["Python"], "projects": [{"title": "Ledger", "technologies": ["SQL"]}]}

        response = vapi(test_client, action="start", interviewId=interview.id, resumeHighlights=highlights)

        assert response.status_code == 200
        body = response.json()
        assert body["vapiCallId"] == "call-123"
        assert body["webCallUrl"] == "https://vapi.example/call-123"

        sent = platform.body()
        assert sent["type"] == "webCall"
        assert sent["assistantId"] == "asst-1"
        assert sent["metadata"] == {"interviewId": interview.id}
        variables = sent["assistantOverrides"]["variableValues"]
        assert len(variables["interviewStrategy"].split("\n")) == 5
        assert re.search(r'PROJECT: "Ledger"', variables["interviewStrategy"])
        assert variables["interviewStrategy"] in variables["systemPrompt"]
        assert "Python" in variables["resumeContext"]

        assert session.get(Interview, interview.id).status == "in_progress"
        record = session.get(InterviewSession, body["sessionId"])
        assert record.vapi_session_id == "call-123"
        logs = session.exec(select(VapiLog).where(VapiLog.interview_session_id == record.id)).all()
        assert [log.log_type for log in logs] == ["session_start"]

    def test_start_completed_interview_is_400(self, test_client, vapi_client, make_interview):
        interview = make_interview(status="completed")
        response = vapi(test_client, action="start", interviewId=interview.id)
        assert response.status_code == 400

    def test_platform_error_has_troubleshooting(self, test_client, vapi_client, platform, make_interview):
        platform.call_status = 400
        interview = make_interview(status="scheduled")

        response = vapi(test_client, action="start", interviewId=interview.id)

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to start VAPI session"
        assert body["details"] == "assistant not found"
        assert len(body["troubleshooting"]) == 4

    def test_attach_end_and_transcript(self, test_client, session, platform, vapi_client, make_interview):
        interview = make_interview(status="scheduled")
        session_id = vapi(test_client, action="start", interviewId=interview.id).json()["sessionId"]

        attached = vapi(test_client, action="attach", sessionId=session_id, vapiCallId="call-456")
        assert attached.json() == {"success": True}
        assert session.get(InterviewSession, session_id).vapi_session_id == "call-456"

        transcript = vapi(test_client, action="get_transcript", sessionId=session_id).json()
        assert transcript["summary"] == "Short call"
        assert platform.requests[-1].url.path == "/call/call-456"

        ended = vapi(test_client, action="end", sessionId=session_id)
        assert ended.json() == {"success": True}
        assert platform.requests[-1].method == "DELETE"
        record = session.get(InterviewSession, session_id)
        assert record.end_time is not None
        assert record.duration_seconds is not None

        log_types = [
            log.log_type for log in session.exec(
                select(VapiLog).where(VapiLog.interview_session_id == session_id).order_by(VapiLog.created_at)
            ).all()
        ]
        assert set(log_types) == {"session_start", "call_attached", "session_end"}

    def test_unknown_session_is_404(self, test_client, vapi_client):
        response = vapi(test_client, action="end", sessionId="nope")
        assert response.status_code == 404
