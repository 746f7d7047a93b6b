# backend/services/evaluator.py
"""
Interview Evaluator

Scores a finished interview with the strict rubric prompt and stores the
result.

Flow:
1. Complete the interview (an Evaluation only exists for completed ones)
2. Reconcile the client transcript with the voice platform's call record
3. Attach transcript-quality warnings for the model
4. Evaluate (candidate profile included for resume-based interviews)
5. Persist the Evaluation and replace its ImprovementSuggestions

Unparseable model output is not an error here: a fixed "insufficient data"
evaluation is stored instead. Quota errors (429/402) still propagate.

The feedback markdown keeps the literal ``**Verdict:**``,
``**Critical Weaknesses:**`` and ``**Detailed Scores:**`` headers the web
client splits on; the same content is stored structured in
``feedback_sections``.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

import httpx
from sqlalchemy import delete
from sqlmodel import Session, select

from db import upsert
from errors import AppError, InputInvalid, NotFound, ParseFailure
from models import (
    Evaluation,
    ImprovementSuggestion,
    Interview,
    InterviewMode,
    InterviewStatus,
    ResumeHighlights,
)
from prompts.interview_prompts import PromptTemplates
from services.transcript import quality_signals, reconcile
from services.voice_agent import VapiClient, latest_vapi_session_id

logger = logging.getLogger(__name__)

VERDICT_HEADER = "**Verdict:**"
WEAKNESSES_HEADER = "**Critical Weaknesses:**"
SCORES_HEADER = "**Detailed Scores:**"
NO_WEAKNESSES_LINE = "- No specific weaknesses identified"

DEFAULT_SUB_SCORE = 4

# (response key, label in the feedback)
SCORE_CATEGORIES = [
    ("communication", "Communication"),
    ("technical_accuracy", "Technical"),
    ("confidence", "Confidence"),
    ("relevance", "Relevance"),
]

INSUFFICIENT_DATA_FEEDBACK = "Unable to evaluate from transcript. Insufficient data."


def insufficient_data_evaluation() -> Dict[str, Any]:
    """Stored when the model's reply can't be parsed."""
    return {
        "communication": {"score": 4, "feedback": INSUFFICIENT_DATA_FEEDBACK},
        "technical_accuracy": {"score": 4, "feedback": INSUFFICIENT_DATA_FEEDBACK},
        "confidence": {"score": 4, "feedback": INSUFFICIENT_DATA_FEEDBACK},
        "relevance": {"score": 4, "feedback": INSUFFICIENT_DATA_FEEDBACK},
        "overall_score": 40,
        "verdict": (
            "The interview data was insufficient for proper evaluation. "
            "The candidate should retry with a complete session."
        ),
        "critical_weaknesses": [
            "Incomplete interview session",
            "No evaluable responses provided",
        ],
        "improvements": [
            {"suggestion": "Complete the full interview session", "category": "preparation", "priority": 1},
            {"suggestion": "Ensure stable connection for full transcript capture", "category": "technical", "priority": 2},
        ],
    }


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def sub_score(evaluation: Dict[str, Any], key: str) -> float:
    """0-10 sub-score; missing or non-numeric scores count as 4."""
    entry = evaluation.get(key)
    score = _number(entry.get("score")) if isinstance(entry, dict) else None
    if score is None:
        return DEFAULT_SUB_SCORE
    return min(max(score, 0.0), 10.0)


def sub_feedback(evaluation: Dict[str, Any], key: str) -> str:
    entry = evaluation.get(key)
    if isinstance(entry, dict) and entry.get("feedback"):
        return str(entry["feedback"])
    return "N/A"


def _display(score: float) -> str:
    return str(int(score)) if float(score).is_integer() else str(score)


def build_feedback_sections(evaluation: Dict[str, Any]) -> Dict[str, Any]:
    weaknesses = evaluation.get("critical_weaknesses")
    if not isinstance(weaknesses, list):
        weaknesses = []
    return {
        "verdict": str(evaluation.get("verdict") or "Evaluation complete."),
        "weaknesses": [str(w) for w in weaknesses if w],
        "detailedScores": [
            {
                "category": label,
                "score": sub_score(evaluation, key),
                "feedback": sub_feedback(evaluation, key),
            }
            for key, label in SCORE_CATEGORIES
        ],
    }


def render_feedback(sections: Dict[str, Any]) -> str:
    """The markdown feedback string (legacy format read by the web client)."""
    lines = [f"{VERDICT_HEADER} {sections['verdict']}", "", WEAKNESSES_HEADER]
    if sections["weaknesses"]:
        lines.extend(f"- {w}" for w in sections["weaknesses"])
    else:
        lines.append(NO_WEAKNESSES_LINE)
    lines.extend(["", SCORES_HEADER])
    for item in sections["detailedScores"]:
        lines.append(f"- {item['category']}: {_display(item['score'])}/10 - {item['feedback']}")
    return "\n".join(lines)


def parse_feedback_sections(feedback: Optional[str]) -> Dict[str, Any]:
    """
    Split a stored markdown feedback string back into sections, for rows
    written before ``feedback_sections`` existed.
    """
    sections: Dict[str, Any] = {"verdict": "", "weaknesses": [], "detailedScores": []}
    if not feedback:
        return sections

    current = None
    for raw in feedback.splitlines():
        line = raw.strip()
        if line.startswith(VERDICT_HEADER):
            sections["verdict"] = line[len(VERDICT_HEADER):].strip()
            current = None
        elif line.startswith(WEAKNESSES_HEADER):
            current = "weaknesses"
        elif line.startswith(SCORES_HEADER):
            current = "detailedScores"
        elif line.startswith("- ") and current == "weaknesses":
            if line != NO_WEAKNESSES_LINE:
                sections["weaknesses"].append(line[2:].strip())
        elif line.startswith("- ") and current == "detailedScores":
            sections["detailedScores"].append(_parse_score_line(line[2:]))
    return sections


def _parse_score_line(text: str) -> Dict[str, Any]:
    category, _, rest = text.partition(":")
    score_text, _, feedback = rest.partition(" - ")
    score = _number(score_text.strip().split("/")[0])
    return {
        "category": category.strip(),
        "score": score,
        "feedback": feedback.strip(),
    }


def overall_score(evaluation: Dict[str, Any]) -> int:
    """Model's overall 0-100 score, else the rounded sub-score average x10."""
    overall = _number(evaluation.get("overall_score"))
    if overall:
        return _round_half_up(min(max(overall, 0.0), 100.0))
    scores = [sub_score(evaluation, key) for key, _ in SCORE_CATEGORIES]
    return _round_half_up(sum(scores) / len(scores) * 10)


def improvement_rows(evaluation: Dict[str, Any]) -> List[Dict[str, Any]]:
    improvements = evaluation.get("improvements")
    if not isinstance(improvements, list):
        return []

    rows = []
    for idx, imp in enumerate(improvements):
        if isinstance(imp, str):
            imp = {"suggestion": imp}
        if not isinstance(imp, dict) or not imp.get("suggestion"):
            continue
        priority = _number(imp.get("priority"))
        rows.append({
            "suggestion": str(imp["suggestion"]),
            "category": imp.get("category") or "general",
            "priority": int(priority) if priority else idx + 1,
        })
    return rows


class InterviewEvaluator:
    """
    Evaluates and stores one interview.

    Attributes:
        gateway: LLMGateway for the evaluation request
        vapi: VapiClient for the authoritative transcript (optional)
    """

    def __init__(self, gateway, vapi: Optional[VapiClient] = None):
        self.gateway = gateway
        self.vapi = vapi

    def evaluate(
        self,
        session: Session,
        interview_id: str,
        user_id: str,
        transcript: Optional[str] = None,
        candidate_profile: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Evaluation, List[ImprovementSuggestion]]:
        interview = session.get(Interview, interview_id)
        if interview is None or interview.user_id != user_id:
            raise NotFound("Interview not found")

        if interview.status not in (InterviewStatus.IN_PROGRESS.value, InterviewStatus.COMPLETED.value):
            raise InputInvalid(f"Cannot evaluate an interview that is {interview.status}")

        logger.info("Evaluating interview %s", interview_id)

        final_transcript = reconcile(transcript, self._fetch_call(session, interview_id))
        quality = quality_signals(final_transcript)
        logger.info(
            "Transcript quality: %d words, %d lines, %d candidate turns",
            quality.word_count, quality.line_count, quality.candidate_turns,
        )

        profile = None
        if interview.mode == InterviewMode.RESUME_JD.value:
            profile = candidate_profile or self._resume_profile(session, interview)

        result = self._ask_model(profile, final_transcript, quality.warning_note())
        return self.save(session, interview, final_transcript, result)

    def _fetch_call(self, session: Session, interview_id: str) -> Optional[Dict[str, Any]]:
        call_id = latest_vapi_session_id(session, interview_id)
        if not call_id or self.vapi is None:
            return None
        try:
            return self.vapi.get_call(call_id)
        except (AppError, httpx.HTTPError) as e:
            logger.warning("Could not fetch VAPI call %s, keeping client transcript: %s", call_id, e)
            return None

    def _resume_profile(self, session: Session, interview: Interview) -> Optional[Dict[str, Any]]:
        if not interview.resume_id:
            return None
        highlights = session.exec(
            select(ResumeHighlights).where(ResumeHighlights.resume_id == interview.resume_id)
        ).first()
        return highlights.as_profile() if highlights else None

    def _ask_model(
        self,
        profile: Optional[Dict[str, Any]],
        transcript: str,
        quality_note: Optional[str],
    ) -> Dict[str, Any]:
        messages = [
            {"role": "system", "content": PromptTemplates.evaluation_system_prompt()},
            {"role": "user", "content": PromptTemplates.evaluation_user_prompt(profile, transcript, quality_note)},
        ]
        try:
            result = self.gateway.complete_json(messages)
        except ParseFailure:
            logger.info("Failed to parse AI response, using strict defaults")
            return insufficient_data_evaluation()
        logger.info("AI evaluation response received")
        return result

    def save(
        self,
        session: Session,
        interview: Interview,
        transcript: str,
        result: Dict[str, Any],
    ) -> Tuple[Evaluation, List[ImprovementSuggestion]]:
        # Completing the interview commits together with the evaluation row
        if interview.status == InterviewStatus.IN_PROGRESS.value:
            interview.transition(InterviewStatus.COMPLETED)
            session.add(interview)

        sections = build_feedback_sections(result)
        analysis = result.get("response_analysis")

        evaluation = upsert(
            session,
            Evaluation,
            {
                "interview_id": interview.id,
                "user_id": interview.user_id,
                "overall_score": overall_score(result),
                "communication_score": _round_half_up(sub_score(result, "communication") * 10),
                "technical_score": _round_half_up(sub_score(result, "technical_accuracy") * 10),
                "confidence_score": _round_half_up(sub_score(result, "confidence") * 10),
                "feedback": render_feedback(sections),
                "feedback_sections": sections,
                "transcript": transcript or None,
                "response_analysis": analysis if isinstance(analysis, list) else None,
            },
            conflict_columns=["interview_id"],
        )

        session.execute(delete(ImprovementSuggestion).where(ImprovementSuggestion.evaluation_id == evaluation.id))
        suggestions = [
            ImprovementSuggestion(evaluation_id=evaluation.id, **row)
            for row in improvement_rows(result)
        ]
        session.add_all(suggestions)
        session.commit()
        for suggestion in suggestions:
            session.refresh(suggestion)

        logger.info("Strict evaluation saved for interview %s", interview.id)
        return evaluation, suggestions
