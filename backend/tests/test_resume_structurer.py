"""
Test suite for the Resume Structurer and /api/parse-resume

This module tests:
- Normalization of the model's reply into the fixed highlights schema
- ParseFailure when the reply has no JSON
- Re-parsing a resume overwrites its single highlights row
- The parse-resume endpoint end to end (auth, ownership, response shape)

Run tests with: pytest backend/tests/test_resume_structurer.py -v
"""

import json
import logging
import os
import sys

import pytest
from sqlmodel import select

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import FakeGateway, OTHER_USER_ID, USER_ID, auth_headers
from errors import NotFound, ParseFailure
from models import Resume, ResumeHighlights
from services.resume_structurer import ResumeStructurer, normalize_resume


# ============================================================================
# FIXTURES
# ============================================================================

RESUME_TEXT = (
    "Jane Doe - Software Engineer\n"
    "Experience: Backend developer at Acme Corp building payment APIs in Python.\n"
    "Education: B.Tech in Computer Science, State University, 2021.\n"
    "Skills: Python, FastAPI, PostgreSQL, Docker.\n"
)

MODEL_REPLY = {
    "name": "Jane Doe",
    "email": "jane@example.com",
    "phone": "",
    "summary": "Backend engineer",
    "skills": ["Python", "FastAPI", "Mentoring"],
    "tools": ["Docker", "Git"],
    "projects": [{"title": "Payments API", "description": "Billing", "technologies": ["FastAPI"]}],
    "experience": [{"company": "Acme", "role": "Backend Engineer", "duration": "2021-2023", "description": "APIs"}],
    "education": [{"institution": "State University", "degree": "B.Tech", "year": "2021"}],
}


@pytest.fixture
def structurer(fake_gateway):
    return ResumeStructurer(fake_gateway)


# ============================================================================
# TEST CASES - normalize_resume
# ============================================================================

class TestNormalizeResume:
    """Tests for coercing model output into the highlights schema."""

    def test_legacy_field_names_are_folded(self):
        """Project "name" and experience "highlights" map to title/description."""
        data = normalize_resume({
            "projects": [{"name": "Chat App", "technologies": "React, Node"}],
            "experience": [{"company": "Initech", "title": "Intern", "highlights": ["Built CI", "Wrote tests"]}],
        })

        assert data["projects"] == [{"title": "Chat App", "description": "", "technologies": ["React", "Node"]}]
        assert data["experience"][0]["role"] == "Intern"
        assert data["experience"][0]["description"] == "Built CI Wrote tests"

    def test_missing_sections_become_empty(self):
        data = normalize_resume({})
        assert data["skills"] == []
        assert data["projects"] == []
        assert data["summary"] == ""

    def test_non_dict_entries_are_dropped(self):
        data = normalize_resume({"projects": ["just a string", {"title": "Real"}], "skills": ["Go", "", None]})
        assert [p["title"] for p in data["projects"]] == ["Real"]
        assert data["skills"] == ["Go"]


# ============================================================================
# TEST CASES - ResumeStructurer
# ============================================================================

class TestResumeStructurer:
    """Tests for parse() and save()."""

    def test_parse_extracts_json_from_prose(self, structurer, fake_gateway):
        """JSON wrapped in prose and fences is still recovered."""
        fake_gateway.queue("Here you go:\n```json\n" + json.dumps(MODEL_REPLY) + "\n```")

        parsed = structurer.parse(RESUME_TEXT)

        assert parsed["name"] == "Jane Doe"
        assert parsed["skills"] == ["Python", "FastAPI", "Mentoring"]
        user_message = fake_gateway.calls[0]["messages"][1]["content"]
        assert "Acme Corp" in user_message

    def test_parse_without_json_raises(self, structurer, fake_gateway):
        fake_gateway.queue("I could not read this resume.")

        with pytest.raises(ParseFailure) as exc:
            structurer.parse(RESUME_TEXT)

        assert exc.value.message == "Failed to parse resume data"
        assert exc.value.status_code == 500

    def test_reparse_overwrites_single_row(self, structurer, session, make_resume):
        """Saving twice for the same resume leaves exactly one row, holding the second result."""
        resume = make_resume()

        structurer.save(session, resume.id, USER_ID, normalize_resume(MODEL_REPLY))
        second = normalize_resume({**MODEL_REPLY, "skills": ["Rust"], "summary": "Systems engineer"})
        structurer.save(session, resume.id, USER_ID, second)

        rows = session.exec(select(ResumeHighlights).where(ResumeHighlights.resume_id == resume.id)).all()
        assert len(rows) == 1
        assert rows[0].skills == ["Rust"]
        assert rows[0].summary == "Systems engineer"
        assert session.get(Resume, resume.id).parsed_at is not None

    def test_save_for_foreign_resume_raises(self, structurer, session, make_resume):
        resume = make_resume(user_id=OTHER_USER_ID)

        with pytest.raises(NotFound):
            structurer.save(session, resume.id, USER_ID, normalize_resume(MODEL_REPLY))


# ============================================================================
# TEST CASES - /api/parse-resume
# ============================================================================

class TestParseResumeEndpoint:
    """Tests for the parse-resume HTTP surface."""

    def test_parse_resume_success(self, test_client, fake_gateway, make_resume, session):
        resume = make_resume()
        fake_gateway.queue(json.dumps(MODEL_REPLY))

        response = test_client.post(
            "/api/parse-resume",
            json={"resumeId": resume.id, "userId": USER_ID, "resumeText": RESUME_TEXT},
            headers=auth_headers(),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["ocrUsed"] is False
        assert body["highlights"]["tools"] == ["Docker", "Git"]
        stored = session.exec(select(ResumeHighlights).where(ResumeHighlights.resume_id == resume.id)).one()
        assert stored.skills == ["Python", "FastAPI", "Mentoring"]

    def test_user_mismatch_is_unauthorized(self, test_client, make_resume):
        """A userId that isn't the caller's is rejected before any work."""
        resume = make_resume()

        response = test_client.post(
            "/api/parse-resume",
            json={"resumeId": resume.id, "userId": OTHER_USER_ID, "resumeText": RESUME_TEXT},
            headers=auth_headers(),
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_unreadable_resume_is_400(self, test_client, make_resume):
        resume = make_resume()

        response = test_client.post(
            "/api/parse-resume",
            json={"resumeId": resume.id, "userId": USER_ID, "resumeText": "??"},
            headers=auth_headers(),
        )

        assert response.status_code == 400
        assert "Could not extract meaningful text" in response.json()["error"]

    def test_gateway_rate_limit_is_429(self, test_client, make_resume):
        from api import app, get_gateway
        from errors import UpstreamQuota

        resume = make_resume()
        app.dependency_overrides[get_gateway] = lambda: FakeGateway([UpstreamQuota.rate_limited()])

        response = test_client.post(
            "/api/parse-resume",
            json={"resumeId": resume.id, "userId": USER_ID, "resumeText": RESUME_TEXT},
            headers=auth_headers(),
        )

        assert response.status_code == 429
        assert response.json() == {"error": "Rate limit exceeded. Please try again later."}

    def test_unexpected_failure_is_500_and_logged(self, test_client, fake_gateway, make_resume, caplog):
        resume = make_resume()
        fake_gateway.queue(RuntimeError("gateway exploded"))

        with caplog.at_level(logging.ERROR, logger="api"):
            response = test_client.post(
                "/api/parse-resume",
                json={"resumeId": resume.id, "userId": USER_ID, "resumeText": RESUME_TEXT},
                headers=auth_headers(),
            )

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to parse resume: gateway exploded"}
        failures = [r for r in caplog.records if r.getMessage() == "parse-resume failed"]
        assert [r.name for r in failures] == ["api"]
        assert failures[0].exc_info is not None

    def test_upload_endpoint_reads_docx(self, test_client, fake_gateway, make_resume):
        """Multipart upload goes through the server-side text layer."""
        from test_resume_extractor import make_docx

        resume = make_resume()
        fake_gateway.queue(json.dumps(MODEL_REPLY))
        data = make_docx(RESUME_TEXT.splitlines())

        response = test_client.post(
            "/api/parse-resume/upload",
            data={"resumeId": resume.id},
            files={"file": ("resume.docx", data, "application/vnd.openxmlformats-officedocument.wordprocessingml.document")},
            headers=auth_headers(),
        )

        assert response.status_code == 200
        assert response.json()["highlights"]["name"] == "Jane Doe"
