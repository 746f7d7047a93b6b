"""
Pytest configuration and shared fixtures for all tests.

This file is automatically loaded by pytest before running tests.
It sets up the test environment: an in-memory SQLite database per test,
a fake language-model gateway, bearer-token helpers and a TestClient with
the app's dependencies overridden. No external service is ever contacted.
"""

import os
import sys
import time

# Add backend directory to path for imports FIRST
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Load the real .env file if it exists
from dotenv import load_dotenv
env_path = os.path.join(os.path.dirname(__file__), '..', '.env')
load_dotenv(env_path)

# Tests always run against in-memory SQLite
os.environ["DATABASE_URL"] = "sqlite://"

import random

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import SQLModel, Session

from config import Settings, get_settings
from db import build_engine, get_session, init_db
from models import Interview, InterviewSession, Resume, ResumeHighlights
from services.llm_gateway import LLMGateway
from services.question_pool import QuestionPoolBuilder

TEST_JWT_SECRET = "test-jwt-secret"
TEST_AUDIENCE = "authenticated"
USER_ID = "user-1"
OTHER_USER_ID = "user-2"


# ============================================================================
# FAKES
# ============================================================================

class FakeGateway(LLMGateway):
    """
    LLMGateway that never touches the network.

    Replies are consumed in order from ``replies``; an exception instance in
    the list is raised instead of returned. Every call is recorded in
    ``calls`` so tests can inspect the prompts that were sent.
    """

    def __init__(self, replies=None, model="test-model"):
        self.model = model
        self.replies = list(replies or [])
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)

    def complete(self, messages, model=None, temperature=None, max_tokens=None):
        self.calls.append({"messages": messages, "model": model or self.model, "max_tokens": max_tokens})
        if not self.replies:
            raise AssertionError("FakeGateway has no reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_token(user_id=USER_ID, secret=TEST_JWT_SECRET, audience=TEST_AUDIENCE, expires_in=3600):
    """Signed bearer token the way the auth provider issues them."""
    claims = {"sub": user_id, "aud": audience, "exp": int(time.time()) + expires_in}
    return jwt.encode(claims, secret, algorithm="HS256")


def auth_headers(user_id=USER_ID):
    return {"Authorization": f"Bearer {make_token(user_id)}"}


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def settings():
    """Settings with test secrets; third-party keys set where tests need them."""
    return Settings(
        database_url="sqlite://",
        llm_api_key="test-llm-key",
        did_api_key="test-did-key",
        auth_jwt_secret=TEST_JWT_SECRET,
        auth_jwt_audience=TEST_AUDIENCE,
    )


@pytest.fixture
def engine():
    """Fresh in-memory database with the full schema."""
    test_engine = build_engine("sqlite://")
    init_db(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)
    test_engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def seeded_builder():
    """Question-pool builder with a fixed seed (reproducible ordering)."""
    return QuestionPoolBuilder(rng=random.Random(7))


@pytest.fixture
def test_client(settings, session, fake_gateway, seeded_builder):
    """
    Creates a FastAPI TestClient with every external dependency replaced.
    Tests can add further overrides through ``app.dependency_overrides``.
    """
    from api import app, get_gateway, get_question_builder, get_vapi_client

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_vapi_client] = lambda: None
    app.dependency_overrides[get_question_builder] = lambda: seeded_builder

    yield TestClient(app)

    app.dependency_overrides.clear()


# ============================================================================
# DATA FACTORIES
# ============================================================================

@pytest.fixture
def make_resume(session):
    def _make(user_id=USER_ID, file_name="resume.pdf"):
        resume = Resume(user_id=user_id, file_name=file_name, file_url=f"resumes/{user_id}/{file_name}")
        session.add(resume)
        session.commit()
        session.refresh(resume)
        return resume
    return _make


@pytest.fixture
def make_highlights(session):
    def _make(resume, **fields):
        values = {
            "summary": "Backend engineer focused on APIs",
            "skills": ["Python", "FastAPI", "Leadership"],
            "tools": ["Docker"],
            "projects": [{"title": "Payments API", "description": "Billing service", "technologies": ["FastAPI"]}],
            "experience": [{"company": "Acme", "role": "Backend Engineer", "duration": "2 years", "description": ""}],
            "education": [],
        }
        values.update(fields)
        highlights = ResumeHighlights(resume_id=resume.id, user_id=resume.user_id, **values)
        session.add(highlights)
        session.commit()
        session.refresh(highlights)
        return highlights
    return _make


@pytest.fixture
def make_interview(session):
    def _make(user_id=USER_ID, status="in_progress", mode="resume_jd", resume_id=None, vapi_call_id=None):
        interview = Interview(user_id=user_id, status=status, mode=mode, resume_id=resume_id)
        session.add(interview)
        session.commit()
        session.refresh(interview)
        if vapi_call_id:
            session.add(InterviewSession(interview_id=interview.id, vapi_session_id=vapi_call_id))
            session.commit()
        return interview
    return _make
