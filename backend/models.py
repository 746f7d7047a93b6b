# backend/models.py
"""
Persisted records for the interview simulator.

Tables mirror the relational schema the web client reads: resumes and their
parsed highlights, ATS scores, interviews with their voice sessions,
evaluations with improvement suggestions, and the university tenancy
records (codes, profiles, roles).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import Column, DateTime, JSON, UniqueConstraint
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    """
    Naive UTC timestamp (what both Postgres and SQLite hand back).

    Timestamp columns are pinned to a plain `DateTime` via `sa_type` so that
    naive values bind on every sqlmodel release.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


class InterviewStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InterviewMode(str, Enum):
    RESUME_JD = "resume_jd"
    TECHNICAL = "technical"
    HR = "hr"


class InterviewDuration(str, Enum):
    THREE_MINUTES = "3"
    FIVE_MINUTES = "5"


class AppRole(str, Enum):
    ADMIN = "admin"
    STUDENT = "student"


# Allowed lifecycle moves; completed and cancelled are terminal
INTERVIEW_TRANSITIONS = {
    InterviewStatus.SCHEDULED: {InterviewStatus.IN_PROGRESS, InterviewStatus.CANCELLED},
    InterviewStatus.IN_PROGRESS: {InterviewStatus.COMPLETED, InterviewStatus.CANCELLED},
    InterviewStatus.COMPLETED: set(),
    InterviewStatus.CANCELLED: set(),
}


class InvalidTransition(ValueError):
    pass


# ---------- Resumes ----------

class Resume(SQLModel, table=True):
    __tablename__ = "resumes"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    file_name: str
    file_url: str
    file_size: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    parsed_at: Optional[datetime] = Field(default=None, sa_type=DateTime)


class ResumeHighlights(SQLModel, table=True):
    """
    Structured summary of one resume. Exactly one row per resume: re-parsing
    overwrites it in place (no versioning).
    """
    __tablename__ = "resume_highlights"

    id: str = Field(default_factory=new_id, primary_key=True)
    resume_id: str = Field(foreign_key="resumes.id", unique=True, index=True)
    user_id: str = Field(index=True)
    summary: Optional[str] = None
    skills: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    tools: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    projects: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    experience: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    education: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)

    def as_profile(self) -> Dict[str, Any]:
        return {
            "skills": self.skills or [],
            "tools": self.tools or [],
            "projects": self.projects or [],
            "experience": self.experience or [],
            "summary": self.summary or "",
        }


class ATSScore(SQLModel, table=True):
    """At most one score per (resume, job role); re-analysis overwrites."""
    __tablename__ = "ats_scores"
    __table_args__ = (UniqueConstraint("resume_id", "job_role", name="uq_ats_scores_resume_role"),)

    id: str = Field(default_factory=new_id, primary_key=True)
    resume_id: str = Field(foreign_key="resumes.id", index=True)
    user_id: str = Field(index=True)
    job_role: str
    overall_score: int = 0
    keyword_match_percentage: int = 0
    section_scores: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    missing_keywords: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    strengths: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    weaknesses: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    formatting_issues: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    recruiter_review: str = ""
    improvement_suggestions: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    optimized_bullets: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


# ---------- Interviews ----------

class Interview(SQLModel, table=True):
    __tablename__ = "interviews"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    resume_id: Optional[str] = Field(default=None, foreign_key="resumes.id")
    duration: str = InterviewDuration.THREE_MINUTES.value
    status: str = InterviewStatus.SCHEDULED.value
    mode: str = InterviewMode.RESUME_JD.value
    scheduled_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    started_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    ended_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)

    def transition(self, new_status: InterviewStatus) -> None:
        """Move through scheduled -> in_progress -> completed | cancelled."""
        current = InterviewStatus(self.status)
        new_status = InterviewStatus(new_status)
        if new_status not in INTERVIEW_TRANSITIONS[current]:
            raise InvalidTransition(
                f"Cannot move interview from {current.value} to {new_status.value}"
            )

        now = utcnow()
        if new_status == InterviewStatus.IN_PROGRESS:
            self.started_at = now
        elif new_status in (InterviewStatus.COMPLETED, InterviewStatus.CANCELLED):
            self.ended_at = now
        self.status = new_status.value
        self.updated_at = now


class InterviewSession(SQLModel, table=True):
    """One voice-platform call attached to an interview."""
    __tablename__ = "interview_sessions"

    id: str = Field(default_factory=new_id, primary_key=True)
    interview_id: str = Field(foreign_key="interviews.id", index=True)
    vapi_session_id: Optional[str] = None
    start_time: Optional[datetime] = Field(default=None, sa_type=DateTime)
    end_time: Optional[datetime] = Field(default=None, sa_type=DateTime)
    duration_seconds: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class VapiLog(SQLModel, table=True):
    __tablename__ = "vapi_logs"

    id: str = Field(default_factory=new_id, primary_key=True)
    interview_session_id: str = Field(foreign_key="interview_sessions.id", index=True)
    log_type: Optional[str] = None
    message: Optional[str] = None
    # "metadata" is reserved on declarative classes
    details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class Evaluation(SQLModel, table=True):
    """
    Scored outcome of one completed interview. Sub-scores are stored on a
    0-100 scale (the model scores 0-10).
    """
    __tablename__ = "evaluations"

    id: str = Field(default_factory=new_id, primary_key=True)
    interview_id: str = Field(foreign_key="interviews.id", unique=True, index=True)
    user_id: str = Field(index=True)
    overall_score: Optional[int] = None
    communication_score: Optional[int] = None
    technical_score: Optional[int] = None
    confidence_score: Optional[int] = None
    feedback: Optional[str] = None
    feedback_sections: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    transcript: Optional[str] = None
    response_analysis: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class ImprovementSuggestion(SQLModel, table=True):
    __tablename__ = "improvement_suggestions"

    id: str = Field(default_factory=new_id, primary_key=True)
    evaluation_id: str = Field(foreign_key="evaluations.id", index=True)
    suggestion: str
    category: Optional[str] = None
    priority: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


# ---------- Tenancy & access control ----------

class UniversityCode(SQLModel, table=True):
    __tablename__ = "university_codes"

    id: str = Field(default_factory=new_id, primary_key=True)
    code: str = Field(unique=True, index=True)
    university_name: str
    admin_user_id: Optional[str] = Field(default=None, index=True)
    is_active: bool = True
    current_uses: int = 0
    max_uses: Optional[int] = None
    expires_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class Profile(SQLModel, table=True):
    __tablename__ = "profiles"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(unique=True, index=True)
    email: str
    full_name: Optional[str] = None
    university_id: Optional[str] = Field(default=None, foreign_key="university_codes.id")
    university_code_id: Optional[str] = Field(default=None, foreign_key="university_codes.id")
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class UserRole(SQLModel, table=True):
    __tablename__ = "user_roles"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(unique=True, index=True)
    role: str = AppRole.STUDENT.value
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
