# backend/services/__init__.py
"""
Services Package for AI Interview Simulator

This package contains the backend services behind the HTTP surface:

Resume pipeline:
    - llm_gateway: OpenAI-compatible model gateway client (typed errors)
    - resume_extractor: Text-layer extraction with vision-OCR fallback
    - resume_structurer: Structured resume highlights

Voice interview:
    - question_pool: Question pools and the interviewer's strategy menu
    - voice_agent: VAPI call lifecycle (start / attach / end / transcript)
    - transcript: Transcript reconciliation and quality signals
    - evaluator: Strict rubric evaluation and persistence

Talking avatar:
    - avatar_proxy: D-ID streaming REST proxy
    - avatar_relay: D-ID WebSocket relay with inbound allow-list

Administration & practice:
    - university: University codes, redemption and admin analytics
    - aptitude: Aptitude test question generation
"""

from .llm_gateway import LLMGateway, extract_json_object, strip_code_fences
from .resume_extractor import ExtractionResult, ResumeTextExtractor, is_extraction_valid
from .resume_structurer import ResumeStructurer, normalize_resume
from .question_pool import QuestionPool, QuestionPoolBuilder
from .voice_agent import VapiClient, VoiceInterviewService
from .transcript import TranscriptQuality, quality_signals, reconcile
from .evaluator import InterviewEvaluator, parse_feedback_sections
from .avatar_proxy import DidStreamProxy
from .avatar_relay import AvatarRelay, filter_inbound_frame
from .university import UniversityService, generate_university_code
from .aptitude import AptitudeQuestionGenerator

__all__ = [
    # Resume pipeline
    "LLMGateway",
    "extract_json_object",
    "strip_code_fences",
    "ExtractionResult",
    "ResumeTextExtractor",
    "is_extraction_valid",
    "ResumeStructurer",
    "normalize_resume",
    # Voice interview
    "QuestionPool",
    "QuestionPoolBuilder",
    "VapiClient",
    "VoiceInterviewService",
    "TranscriptQuality",
    "quality_signals",
    "reconcile",
    "InterviewEvaluator",
    "parse_feedback_sections",
    # Talking avatar
    "DidStreamProxy",
    "AvatarRelay",
    "filter_inbound_frame",
    # Administration & practice
    "UniversityService",
    "generate_university_code",
    "AptitudeQuestionGenerator",
]
