# backend/prompts/__init__.py
"""
Prompts Package

Language-model prompt contracts for resume parsing, OCR, ATS scoring,
the live voice interviewer, strict evaluation and aptitude questions.
"""

from .interview_prompts import (
    PromptTemplates,
    FORBIDDEN_PHRASES,
    REQUIRED_PHRASES,
    APTITUDE_SYSTEM_PROMPT,
    APTITUDE_USER_PROMPT,
)
from .resume_prompts import (
    RESUME_PARSING_PROMPT,
    OCR_EXTRACTION_PROMPT,
    ATS_ANALYSIS_PROMPT,
    resume_parsing_user_prompt,
    ats_user_prompt,
)

__all__ = [
    "PromptTemplates",
    "FORBIDDEN_PHRASES",
    "REQUIRED_PHRASES",
    "APTITUDE_SYSTEM_PROMPT",
    "APTITUDE_USER_PROMPT",
    "RESUME_PARSING_PROMPT",
    "OCR_EXTRACTION_PROMPT",
    "ATS_ANALYSIS_PROMPT",
    "resume_parsing_user_prompt",
    "ats_user_prompt",
]
