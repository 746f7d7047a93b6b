# backend/services/resume_structurer.py
"""
Resume Structurer

Sends extracted resume text to the model gateway and stores the structured
result as the resume's highlights (one row per resume, overwritten on
re-parse).
"""

import logging
from typing import Any, Dict, List

from sqlmodel import Session

from db import upsert
from errors import NotFound
from models import Resume, ResumeHighlights, utcnow
from prompts.resume_prompts import RESUME_PARSING_PROMPT, resume_parsing_user_prompt

logger = logging.getLogger(__name__)


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        return " ".join(str(v) for v in value if v)
    return str(value).strip()


def _as_str_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, list):
        return [str(v).strip() for v in value if v and str(v).strip()]
    return []


def normalize_resume(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Coerce the model's reply into the fixed schema. Older prompt versions
    returned projects with "name" and experience with "highlights"; both are
    folded into "title" and "description".
    """
    projects = []
    for p in data.get("projects") or []:
        if not isinstance(p, dict):
            continue
        projects.append({
            "title": _as_str(p.get("title") or p.get("name")),
            "description": _as_str(p.get("description")),
            "technologies": _as_str_list(p.get("technologies")),
        })

    experience = []
    for e in data.get("experience") or []:
        if not isinstance(e, dict):
            continue
        experience.append({
            "company": _as_str(e.get("company")),
            "role": _as_str(e.get("role") or e.get("title")),
            "duration": _as_str(e.get("duration")),
            "description": _as_str(e.get("description") or e.get("highlights")),
        })

    education = []
    for ed in data.get("education") or []:
        if not isinstance(ed, dict):
            continue
        education.append({
            "institution": _as_str(ed.get("institution")),
            "degree": _as_str(ed.get("degree")),
            "year": _as_str(ed.get("year")),
        })

    return {
        "name": _as_str(data.get("name")),
        "email": _as_str(data.get("email")),
        "phone": _as_str(data.get("phone")),
        "summary": _as_str(data.get("summary")),
        "skills": _as_str_list(data.get("skills")),
        "tools": _as_str_list(data.get("tools")),
        "projects": projects,
        "experience": experience,
        "education": education,
    }


class ResumeStructurer:
    """
    Extracts structured resume data with the model gateway.

    Attributes:
        gateway: LLMGateway used for the parsing request
    """

    def __init__(self, gateway):
        self.gateway = gateway

    def parse(self, resume_text: str) -> Dict[str, Any]:
        logger.info("Parsing resume with AI, text length: %d", len(resume_text))
        data = self.gateway.complete_json(
            [
                {"role": "system", "content": RESUME_PARSING_PROMPT},
                {"role": "user", "content": resume_parsing_user_prompt(resume_text)},
            ],
            error_message="Failed to parse resume data",
        )
        logger.info("AI response received, resume parsed")
        return normalize_resume(data)

    def save(self, session: Session, resume_id: str, user_id: str, parsed: Dict[str, Any]) -> ResumeHighlights:
        resume = session.get(Resume, resume_id)
        if resume is None or resume.user_id != user_id:
            raise NotFound("Resume not found")

        highlights = upsert(
            session,
            ResumeHighlights,
            {
                "resume_id": resume_id,
                "user_id": user_id,
                "summary": parsed.get("summary") or None,
                "skills": parsed.get("skills") or [],
                "tools": parsed.get("tools") or [],
                "projects": parsed.get("projects") or [],
                "experience": parsed.get("experience") or [],
                "education": parsed.get("education") or [],
            },
            conflict_columns=["resume_id"],
        )

        resume.parsed_at = utcnow()
        resume.updated_at = resume.parsed_at
        session.add(resume)
        session.commit()

        logger.info("Resume %s parsed successfully", resume_id)
        return highlights
