# backend/services/university.py
"""
University Tenancy

Universities are represented by their join code. An admin registers the
university (receiving the code and the admin role); students redeem the
code to link their profile. Admin analytics only ever cover the admin's own
university.
"""

import logging
import math
import re
import time
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from errors import AppError, InputInvalid, NotFound, Unauthorized
from models import (
    AppRole,
    Evaluation,
    Interview,
    InterviewStatus,
    Profile,
    UniversityCode,
    UserRole,
    utcnow,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
INVALID_CODE_MESSAGE = "The university code is invalid, expired, or has reached its usage limit."
RECENT_INTERVIEWS_LIMIT = 10


def _base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def generate_university_code(university_name: str, now_ms: Optional[int] = None) -> str:
    """
    First three letters of the name (upper-cased, non-letters -> X) plus the
    last five base-36 digits of the current time in milliseconds.
    """
    prefix = re.sub(r"[^A-Z]", "X", university_name[:3].upper())
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{prefix}{_base36(now_ms)[-5:]}"


def _round1(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


class UniversityService:
    """
    Registration, code redemption and analytics for universities.

    Attributes:
        session: Database session
    """

    def __init__(self, session: Session):
        self.session = session

    # ---------- Helpers ----------

    def _profile(self, user_id: str, email: Optional[str], full_name: Optional[str]) -> Profile:
        profile = self.session.exec(select(Profile).where(Profile.user_id == user_id)).first()
        if profile is None:
            if not email:
                raise InputInvalid("email is required")
            profile = Profile(user_id=user_id, email=email, full_name=full_name)
        elif full_name:
            profile.full_name = full_name
        return profile

    def _set_role(self, user_id: str, role: AppRole, overwrite: bool = True) -> UserRole:
        row = self.session.exec(select(UserRole).where(UserRole.user_id == user_id)).first()
        if row is None:
            row = UserRole(user_id=user_id, role=role.value)
        elif overwrite:
            row.role = role.value
        self.session.add(row)
        return row

    def role_of(self, user_id: str) -> Optional[str]:
        row = self.session.exec(select(UserRole).where(UserRole.user_id == user_id)).first()
        return row.role if row else None

    # ---------- Registration ----------

    def register(
        self,
        user_id: str,
        email: str,
        full_name: str,
        university_name: str,
        now_ms: Optional[int] = None,
    ) -> UniversityCode:
        """Create a university for the caller and make them its admin."""
        email = (email or "").strip()
        full_name = (full_name or "").strip()
        university_name = (university_name or "").strip()

        if not email or not full_name or not university_name:
            raise InputInvalid("Missing required fields: email, fullName, universityName")
        if not EMAIL_RE.match(email):
            raise InputInvalid("Invalid email format")
        if not 2 <= len(full_name) <= 100:
            raise InputInvalid("Full name must be between 2 and 100 characters")
        if not 2 <= len(university_name) <= 200:
            raise InputInvalid("University name must be between 2 and 200 characters")

        code = generate_university_code(university_name, now_ms)
        existing = self.session.exec(select(UniversityCode).where(UniversityCode.code == code)).first()
        if existing is not None:
            logger.error("University code collision: %s", code)
            raise AppError("Failed to create university. Please try again.")

        university = UniversityCode(
            code=code,
            university_name=university_name,
            admin_user_id=user_id,
            is_active=True,
            current_uses=0,
        )
        self.session.add(university)
        self.session.flush()

        profile = self._profile(user_id, email, full_name)
        profile.university_id = university.id
        profile.updated_at = utcnow()
        self.session.add(profile)
        self._set_role(user_id, AppRole.ADMIN)
        self.session.commit()
        self.session.refresh(university)

        logger.info("Admin account created for university: %s", university_name)
        return university

    # ---------- Redemption ----------

    def validate_code(self, code: str) -> UniversityCode:
        row = self.session.exec(
            select(UniversityCode).where(UniversityCode.code == (code or "").strip().upper())
        ).first()
        if row is None or not row.is_active:
            raise InputInvalid(INVALID_CODE_MESSAGE)
        if row.expires_at is not None and row.expires_at <= utcnow():
            raise InputInvalid(INVALID_CODE_MESSAGE)
        if row.max_uses is not None and row.current_uses >= row.max_uses:
            raise InputInvalid(INVALID_CODE_MESSAGE)
        return row

    def redeem(self, user_id: str, code: str, email: Optional[str] = None, full_name: Optional[str] = None) -> Profile:
        """Link a student's profile to the university behind ``code``."""
        university = self.validate_code(code)
        profile = self._profile(user_id, email, full_name)

        if profile.university_code_id == university.id:
            return profile

        # Check-then-increment; concurrent redemptions can overshoot max_uses
        university.current_uses += 1
        university.updated_at = utcnow()
        profile.university_code_id = university.id
        profile.university_id = university.id
        profile.updated_at = utcnow()

        self.session.add(university)
        self.session.add(profile)
        self._set_role(user_id, AppRole.STUDENT, overwrite=False)
        self.session.commit()
        self.session.refresh(profile)

        logger.info("User %s joined university %s", user_id, university.university_name)
        return profile

    # ---------- Analytics ----------

    def analytics(self, admin_user_id: str) -> Dict[str, Any]:
        if self.role_of(admin_user_id) != AppRole.ADMIN.value:
            raise Unauthorized("Admin role required")

        university = self.session.exec(
            select(UniversityCode).where(UniversityCode.admin_user_id == admin_user_id)
        ).first()
        if university is None:
            raise NotFound("University not found")

        students = self.session.exec(
            select(Profile)
            .join(UserRole, UserRole.user_id == Profile.user_id)
            .where(Profile.university_id == university.id, UserRole.role == AppRole.STUDENT.value)
        ).all()
        profiles = {p.user_id: p for p in students}

        interviews: List[Interview] = []
        if profiles:
            interviews = list(self.session.exec(
                select(Interview)
                .where(Interview.user_id.in_(list(profiles)))
                .order_by(Interview.created_at.desc())
            ).all())

        evaluations: Dict[str, Evaluation] = {}
        if interviews:
            rows = self.session.exec(
                select(Evaluation).where(Evaluation.interview_id.in_([i.id for i in interviews]))
            ).all()
            evaluations = {e.interview_id: e for e in rows}

        result: Dict[str, Any] = {
            "universityName": university.university_name,
            "universityCode": university.code,
            "totalStudents": len(profiles),
            "totalInterviews": len(interviews),
            "completedInterviews": sum(1 for i in interviews if i.status == InterviewStatus.COMPLETED.value),
            "averageScore": 0,
            "skillMetrics": [],
            "recentInterviews": [],
        }

        if evaluations:
            evals = list(evaluations.values())

            def average(field: str) -> float:
                return _round1(sum(getattr(e, field) or 0 for e in evals) / len(evals))

            result["averageScore"] = average("overall_score")
            result["skillMetrics"] = [
                {"name": "Technical Skills", "average": average("technical_score")},
                {"name": "Communication", "average": average("communication_score")},
                {"name": "Confidence", "average": average("confidence_score")},
            ]

        for interview in interviews[:RECENT_INTERVIEWS_LIMIT]:
            profile = profiles.get(interview.user_id)
            evaluation = evaluations.get(interview.id)
            result["recentInterviews"].append({
                "id": interview.id,
                "studentName": (profile.full_name if profile else None) or "Unknown",
                "studentEmail": (profile.email if profile else None) or "Unknown",
                "interviewDate": interview.created_at.isoformat(),
                "score": evaluation.overall_score if evaluation else None,
                "status": interview.status,
            })

        return result
