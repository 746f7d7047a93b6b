"""
Test suite for the Aptitude Test Generator

Run tests with: pytest backend/tests/test_aptitude.py -v
"""

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import auth_headers
from errors import ParseFailure
from services.aptitude import AptitudeQuestionGenerator


def question(n):
    return {
        "id": n,
        "question": f"What comes next: {n}, {n * 2}, {n * 4}, ?",
        "options": {"A": str(n * 6), "B": str(n * 8), "C": str(n * 10), "D": str(n * 12)},
        "correctAnswer": "B",
        "difficulty": "easy" if n <= 3 else "medium" if n <= 7 else "hard",
    }


TEN_QUESTIONS = [question(n) for n in range(1, 11)]


class TestAptitudeQuestionGenerator:
    """Tests for generate()."""

    def test_fenced_array_is_accepted(self, fake_gateway):
        fake_gateway.queue("```json\n" + json.dumps(TEN_QUESTIONS) + "\n```")

        questions = AptitudeQuestionGenerator(fake_gateway).generate()

        assert len(questions) == 10
        assert questions[0]["correctAnswer"] == "B"

    def test_wrong_count_is_rejected(self, fake_gateway):
        fake_gateway.queue(json.dumps(TEN_QUESTIONS[:9]))

        with pytest.raises(ParseFailure) as exc:
            AptitudeQuestionGenerator(fake_gateway).generate()

        assert exc.value.message == "Invalid number of questions generated"

    @pytest.mark.parametrize("reply, message", [
        ("", "No content in AI response"),
        ("Here are your questions!", "Failed to parse questions from AI response"),
    ])
    def test_unusable_replies(self, fake_gateway, reply, message):
        fake_gateway.queue(reply)

        with pytest.raises(ParseFailure) as exc:
            AptitudeQuestionGenerator(fake_gateway).generate()

        assert exc.value.message == message

    def test_endpoint(self, test_client, fake_gateway):
        fake_gateway.queue(json.dumps(TEN_QUESTIONS))

        response = test_client.post("/api/aptitude-questions", headers=auth_headers())

        assert response.status_code == 200
        assert [q["id"] for q in response.json()["questions"]] == list(range(1, 11))
