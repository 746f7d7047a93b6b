# backend/services/aptitude.py
"""
Aptitude Test Generator

Asks the model gateway for a fresh set of ten general-aptitude multiple
choice questions (not computer-science specific).
"""

import json
import logging
from typing import Any, Dict, List

from errors import ParseFailure
from prompts.interview_prompts import APTITUDE_SYSTEM_PROMPT, APTITUDE_USER_PROMPT
from services.llm_gateway import strip_code_fences

logger = logging.getLogger(__name__)

QUESTION_COUNT = 10


class AptitudeQuestionGenerator:
    def __init__(self, gateway):
        self.gateway = gateway

    def generate(self) -> List[Dict[str, Any]]:
        content = self.gateway.complete([
            {"role": "system", "content": APTITUDE_SYSTEM_PROMPT},
            {"role": "user", "content": APTITUDE_USER_PROMPT},
        ])
        if not content:
            raise ParseFailure("No content in AI response")

        try:
            questions = json.loads(strip_code_fences(content))
        except ValueError as e:
            logger.error("Failed to parse AI response (%d chars)", len(content))
            raise ParseFailure("Failed to parse questions from AI response") from e

        if not isinstance(questions, list) or len(questions) != QUESTION_COUNT:
            logger.error(
                "Invalid question count: %s",
                len(questions) if isinstance(questions, list) else type(questions).__name__,
            )
            raise ParseFailure("Invalid number of questions generated")

        logger.info("Generated %d aptitude questions", len(questions))
        return questions
