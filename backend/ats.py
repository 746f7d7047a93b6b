import logging
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from db import upsert
from errors import NotFound
from models import ATSScore, Resume
from prompts.resume_prompts import ATS_ANALYSIS_PROMPT, ats_user_prompt
from services.resume_extractor import ExtractionResult, ResumeTextExtractor

logger = logging.getLogger(__name__)

DEFAULT_JOB_ROLE = "Software Engineer"


def _int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(round(value))
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return default


def _list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def score_values(analysis: Dict[str, Any]) -> Dict[str, Any]:
    # model output -> ats_scores columns, with the same defaults for anything missing
    sections = analysis.get("section_scores")
    return {
        "overall_score": _int(analysis.get("overall_score")),
        "keyword_match_percentage": _int(analysis.get("keyword_match_percentage")),
        "section_scores": sections if isinstance(sections, dict) else {},
        "missing_keywords": _list(analysis.get("missing_keywords")),
        "strengths": _list(analysis.get("strengths")),
        "weaknesses": _list(analysis.get("weaknesses")),
        "improvement_suggestions": _list(analysis.get("improvement_suggestions")),
        "recruiter_review": str(analysis.get("recruiter_review") or ""),
        "formatting_issues": _list(analysis.get("formatting_issues")),
        "optimized_bullets": _list(analysis.get("optimized_bullets")),
    }


class ATSScorer:
    """
    Scores a resume against a target job role with the model gateway.

    The rubric (keyword match 25%, skills 20%, action verbs 15%, structure
    15%, formatting 15%, readability 10%) is guidance for the model; nothing
    here recomputes it.
    """

    def __init__(self, gateway, extractor: Optional[ResumeTextExtractor] = None, model: Optional[str] = None):
        self.gateway = gateway
        self.extractor = extractor or ResumeTextExtractor(gateway)
        self.model = model

    def resume_text(
        self,
        resume_text: Optional[str],
        file_bytes: Optional[bytes] = None,
        file_base64: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> ExtractionResult:
        return self.extractor.extract(
            text=resume_text,
            file_bytes=file_bytes,
            file_base64=file_base64,
            mime_type=mime_type,
        )

    def analyze(self, resume_text: str, job_role: Optional[str] = None) -> Dict[str, Any]:
        role = job_role or DEFAULT_JOB_ROLE
        logger.info("Analyzing resume for role: %s, text length: %d", role, len(resume_text))

        analysis = self.gateway.complete_json(
            [
                {"role": "system", "content": ATS_ANALYSIS_PROMPT},
                {"role": "user", "content": ats_user_prompt(role, resume_text)},
            ],
            model=self.model,
            error_message="Failed to parse ATS analysis",
        )
        logger.info("ATS analysis received, overall score: %s", analysis.get("overall_score"))
        return analysis

    def save(
        self,
        session: Session,
        resume_id: str,
        user_id: str,
        job_role: Optional[str],
        analysis: Dict[str, Any],
    ) -> ATSScore:
        resume = session.get(Resume, resume_id)
        if resume is None or resume.user_id != user_id:
            raise NotFound("Resume not found")

        values = score_values(analysis)
        values.update({
            "resume_id": resume_id,
            "user_id": user_id,
            "job_role": job_role or DEFAULT_JOB_ROLE,
        })
        score = upsert(session, ATSScore, values, conflict_columns=["resume_id", "job_role"])
        logger.info("ATS score saved for resume %s (%s)", resume_id, values["job_role"])
        return score


def list_scores(session: Session, resume_id: str, user_id: str) -> List[ATSScore]:
    return list(session.exec(
        select(ATSScore)
        .where(ATSScore.resume_id == resume_id, ATSScore.user_id == user_id)
        .order_by(ATSScore.updated_at.desc())
    ).all())
