# backend/services/voice_agent.py
"""
Voice-Agent Session Service

Starts, tracks and ends the live voice interview on the voice-agent
platform (VAPI). The platform conducts the spoken interview; this service
builds the interviewer's system prompt from the candidate's resume, records
the platform call id against an InterviewSession, and later fetches the
authoritative call record for evaluation.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from sqlmodel import Session, select

from errors import AppError, ConfigurationMissing, InputInvalid, NotFound
from models import (
    Interview,
    InterviewSession,
    InterviewStatus,
    ResumeHighlights,
    VapiLog,
    utcnow,
)
from prompts.interview_prompts import PromptTemplates
from services.question_pool import QuestionPoolBuilder

logger = logging.getLogger(__name__)

VAPI_SETUP_INSTRUCTIONS = (
    "Please add VAPI_API_KEY to your environment variables. Get it from https://vapi.ai"
)
VAPI_ASSISTANT_INSTRUCTIONS = (
    "Please add VAPI_ASSISTANT_ID to your environment variables. "
    "Create an assistant at https://vapi.ai"
)


class VoicePlatformError(AppError):
    """Non-2xx response from the voice platform."""


class VapiClient:
    """
    Minimal REST client for the voice-agent platform.

    Attributes:
        api_key: Server-held platform key
        base_url: Platform API root
        http: httpx client (injectable for tests)
    """

    def __init__(self, api_key: str, base_url: str = "https://api.vapi.ai", http_client: Optional[httpx.Client] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.http = http_client or httpx.Client()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def create_web_call(
        self,
        assistant_id: str,
        assistant_overrides: Dict[str, Any],
        metadata: Dict[str, Any],
    ) -> Dict[str, Any]:
        response = self.http.post(
            f"{self.base_url}/call",
            headers=self._headers(),
            json={
                "type": "webCall",
                "assistantId": assistant_id,
                "assistantOverrides": assistant_overrides,
                "metadata": metadata,
            },
        )
        if response.status_code >= 400:
            logger.error("VAPI error: %s %s", response.status_code, response.text)
            raise VoicePlatformError(
                "Failed to start VAPI session",
                extra={
                    "details": response.text,
                    "troubleshooting": [
                        "Check if VAPI_API_KEY is valid",
                        "Verify VAPI_ASSISTANT_ID exists and is active",
                        "Ensure your VAPI account has available credits",
                        "Check VAPI dashboard for assistant configuration issues",
                    ],
                },
            )
        return response.json()

    def get_call(self, call_id: str) -> Dict[str, Any]:
        response = self.http.get(f"{self.base_url}/call/{call_id}", headers=self._headers())
        if response.status_code >= 400:
            logger.error("VAPI get call %s failed: %s", call_id, response.status_code)
            raise VoicePlatformError("Failed to get transcript")
        return response.json()

    def end_call(self, call_id: str) -> bool:
        response = self.http.delete(f"{self.base_url}/call/{call_id}", headers=self._headers())
        if response.status_code >= 400:
            logger.warning("VAPI end call %s failed: %s", call_id, response.status_code)
            return False
        return True

    def close(self) -> None:
        self.http.close()


def latest_vapi_session_id(session: Session, interview_id: str) -> Optional[str]:
    """Call id of the most recent voice session for an interview."""
    row = session.exec(
        select(InterviewSession)
        .where(InterviewSession.interview_id == interview_id)
        .order_by(InterviewSession.created_at.desc())
    ).first()
    return row.vapi_session_id if row else None


class VoiceInterviewService:
    """
    Handles the start / attach / end / get_transcript actions.

    Attributes:
        session: Database session
        vapi: VapiClient, or None when VAPI_API_KEY isn't configured
        assistant_id: Platform assistant to run
        system_prompt: Base interviewer persona
        first_message: Opening line
        pool_builder: QuestionPoolBuilder for the interview strategy
    """

    ACTIONS = ("start", "attach", "end", "get_transcript")

    def __init__(
        self,
        session: Session,
        vapi: Optional[VapiClient],
        assistant_id: Optional[str] = None,
        system_prompt: Optional[str] = None,
        first_message: Optional[str] = None,
        pool_builder: Optional[QuestionPoolBuilder] = None,
    ):
        self.session = session
        self.vapi = vapi
        self.assistant_id = assistant_id
        self.system_prompt = system_prompt or PromptTemplates.DEFAULT_SYSTEM_PROMPT
        self.first_message = first_message or PromptTemplates.DEFAULT_FIRST_MESSAGE
        self.pool_builder = pool_builder or QuestionPoolBuilder()

    def handle(self, action: str, user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if self.vapi is None:
            raise ConfigurationMissing("VAPI_API_KEY", VAPI_SETUP_INSTRUCTIONS)

        logger.info("VAPI action: %s", action)
        if action == "start":
            return self.start(user_id, payload.get("interviewId"), payload.get("resumeHighlights"))
        if action == "attach":
            return self.attach(user_id, payload.get("sessionId"), payload.get("vapiCallId"))
        if action == "end":
            return self.end(user_id, payload.get("sessionId"))
        if action == "get_transcript":
            return self.get_transcript(user_id, payload.get("sessionId"))
        raise InputInvalid("Invalid action")

    # ---------- Lookups ----------

    def _interview(self, user_id: str, interview_id: Optional[str]) -> Interview:
        if not interview_id:
            raise InputInvalid("interviewId is required")
        interview = self.session.get(Interview, interview_id)
        if interview is None or interview.user_id != user_id:
            raise NotFound("Interview not found")
        return interview

    def _session(self, user_id: str, session_id: Optional[str]) -> InterviewSession:
        if not session_id:
            raise InputInvalid("sessionId is required")
        record = self.session.get(InterviewSession, session_id)
        if record is None:
            raise NotFound("Session not found")
        self._interview(user_id, record.interview_id)
        return record

    def _profile(self, interview: Interview, highlights: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if highlights:
            return highlights
        if not interview.resume_id:
            return None
        row = self.session.exec(
            select(ResumeHighlights).where(ResumeHighlights.resume_id == interview.resume_id)
        ).first()
        return row.as_profile() if row else None

    def _log(self, session_id: str, log_type: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.session.add(VapiLog(
            interview_session_id=session_id,
            log_type=log_type,
            message=message,
            details=details,
        ))

    # ---------- Actions ----------

    def start(self, user_id: str, interview_id: Optional[str], highlights: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not self.assistant_id:
            raise ConfigurationMissing("VAPI_ASSISTANT_ID", VAPI_ASSISTANT_INSTRUCTIONS)

        interview = self._interview(user_id, interview_id)
        if interview.status == InterviewStatus.SCHEDULED.value:
            interview.transition(InterviewStatus.IN_PROGRESS)
        elif interview.status != InterviewStatus.IN_PROGRESS.value:
            raise InputInvalid(f"Interview is already {interview.status}")

        profile = self._profile(interview, highlights)
        resume_context = PromptTemplates.resume_context(profile)
        strategy = self.pool_builder.build_strategy(profile)
        system_prompt = self.pool_builder.build_system_prompt(
            profile, interview.mode, interview.duration, base_prompt=self.system_prompt, strategy=strategy
        )

        overrides = {
            "firstMessage": self.first_message,
            "variableValues": {
                "resumeContext": resume_context,
                "interviewStrategy": strategy,
                "systemPrompt": system_prompt,
            },
        }

        call = self.vapi.create_web_call(
            self.assistant_id, overrides, metadata={"interviewId": interview.id}
        )

        record = InterviewSession(
            interview_id=interview.id,
            vapi_session_id=call.get("id"),
            start_time=utcnow(),
        )
        self.session.add(interview)
        self.session.add(record)
        self.session.flush()
        self._log(record.id, "session_start", "VAPI session started", {"vapi_call_id": call.get("id")})
        self.session.commit()

        logger.info("Interview %s started, VAPI call %s", interview.id, call.get("id"))
        return {
            "success": True,
            "sessionId": record.id,
            "vapiCallId": call.get("id"),
            "webCallUrl": call.get("webCallUrl"),
            "firstMessage": self.first_message,
            "assistantOverrides": overrides,
        }

    def attach(self, user_id: str, session_id: Optional[str], vapi_call_id: Optional[str]) -> Dict[str, Any]:
        """Record the call id the browser SDK reports once the call connects."""
        if not vapi_call_id:
            raise InputInvalid("vapiCallId is required")
        record = self._session(user_id, session_id)
        record.vapi_session_id = vapi_call_id
        self.session.add(record)
        self._log(record.id, "call_attached", "VAPI call attached", {"vapi_call_id": vapi_call_id})
        self.session.commit()
        return {"success": True}

    def end(self, user_id: str, session_id: Optional[str]) -> Dict[str, Any]:
        record = self._session(user_id, session_id)
        if record.vapi_session_id:
            self.vapi.end_call(record.vapi_session_id)

        record.end_time = utcnow()
        if record.start_time:
            record.duration_seconds = int((record.end_time - record.start_time).total_seconds())
        self.session.add(record)
        self._log(record.id, "session_end", "VAPI session ended")
        self.session.commit()
        return {"success": True}

    def get_transcript(self, user_id: str, session_id: Optional[str]) -> Dict[str, Any]:
        record = self._session(user_id, session_id)
        if not record.vapi_session_id:
            raise NotFound("Session not found")
        call = self.vapi.get_call(record.vapi_session_id)
        return {
            "transcript": call.get("transcript"),
            "messages": call.get("messages"),
            "summary": call.get("summary"),
        }
