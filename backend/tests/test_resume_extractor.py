"""
Test suite for the Resume Content Extractor

This module tests text extraction and the OCR fallback to ensure:
- The validity heuristic accepts real resumes and rejects broken text
- OCR is never invoked when the text layer is already valid
- OCR takes over for scanned/garbled documents
- Unusable documents fail with ResumeUnreadable, never a crash
- PDF and DOCX text layers are read server-side

Run tests with: pytest backend/tests/test_resume_extractor.py -v
"""

import base64
import io
import os
import sys

import docx
import fitz
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from conftest import FakeGateway
from errors import AppError, ResumeUnreadable
from services.resume_extractor import (
    ResumeTextExtractor,
    alphanumeric_ratio,
    decode_base64_file,
    extract_text_layer,
    is_extraction_valid,
    keyword_hits,
)


# ============================================================================
# FIXTURES
# ============================================================================

VALID_RESUME_TEXT = (
    "Jane Doe - Software Engineer\n"
    "Experience: Backend developer at Acme Corp building payment APIs in Python.\n"
    "Education: B.Tech in Computer Science, State University, 2021.\n"
    "Skills: Python, FastAPI, PostgreSQL, Docker.\n"
)

OCR_TEXT = (
    "JOHN SMITH\nEXPERIENCE\nData Engineer, Globex (2020-2023)\n"
    "EDUCATION\nM.Sc. Statistics, City University\nSKILLS\nSpark, SQL, Airflow\n"
)


def make_pdf(lines):
    doc = fitz.open()
    page = doc.new_page()
    y = 72
    for line in lines:
        page.insert_text((72, y), line, fontsize=10)
        y += 14
    data = doc.tobytes()
    doc.close()
    return data


def make_docx(paragraphs):
    document = docx.Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def extractor(gateway):
    return ResumeTextExtractor(gateway)


# ============================================================================
# TEST CASES - Validity heuristic
# ============================================================================

class TestValidityHeuristic:
    """Tests for is_extraction_valid and its signals."""

    def test_real_resume_is_valid(self):
        """A normal resume passes all three checks."""
        assert is_extraction_valid(VALID_RESUME_TEXT)

    def test_short_text_is_invalid(self):
        """Fewer than 100 characters is treated as a failed extraction."""
        assert not is_extraction_valid("Experience Education Skills")

    def test_gibberish_is_invalid(self):
        """Mostly symbols (< 50% alphanumeric) fails even when long."""
        text = "experience education " + "□■•§" * 60
        assert alphanumeric_ratio(text) < 0.5
        assert not is_extraction_valid(text)

    def test_missing_keywords_is_invalid(self):
        """Long clean text without resume vocabulary is rejected."""
        text = "The quick brown fox jumps over the lazy dog. " * 5
        assert keyword_hits(text) == []
        assert not is_extraction_valid(text)

    def test_keywords_are_case_insensitive(self):
        assert set(keyword_hits("EXPERIENCE and Education")) == {"experience", "education"}

    def test_empty_is_invalid(self):
        assert not is_extraction_valid("")
        assert not is_extraction_valid(None)


# ============================================================================
# TEST CASES - Extraction with OCR fallback
# ============================================================================

class TestExtract:
    """Tests for ResumeTextExtractor.extract."""

    def test_valid_text_never_calls_ocr(self, extractor, gateway):
        """Valid browser text is used as-is; the gateway is not touched."""
        result = extractor.extract(
            text=VALID_RESUME_TEXT,
            file_bytes=b"\x89PNG fake image",
            mime_type="image/png",
        )

        assert result.text == VALID_RESUME_TEXT.strip()
        assert result.ocr_used is False
        assert gateway.calls == []

    def test_garbled_text_falls_back_to_ocr(self, extractor, gateway):
        """Broken text plus an image triggers vision OCR."""
        gateway.queue(OCR_TEXT)

        result = extractor.extract(
            text="□■ □■",
            file_bytes=b"\x89PNG fake image",
            mime_type="image/png",
        )

        assert result.ocr_used is True
        assert result.text == OCR_TEXT.strip()
        content = gateway.calls[0]["messages"][0]["content"]
        assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")
        assert gateway.calls[0]["max_tokens"] == 4000

    def test_ocr_failure_falls_back_to_original_text(self, extractor, gateway):
        """When OCR errors out, usable original text is kept."""
        gateway.queue(AppError("AI gateway error: 500"))
        original = "Experience at Acme, skills in Python and SQL, education at MIT."

        result = extractor.extract(text=original, file_bytes=b"img", mime_type="image/png")

        assert result.text == original
        assert result.ocr_used is False

    def test_short_ocr_output_is_not_used(self, extractor, gateway):
        """OCR output under 50 characters doesn't replace the original."""
        gateway.queue("too short")
        original = "Experience at Acme, skills in Python and SQL, education at MIT."

        result = extractor.extract(text=original, file_bytes=b"img", mime_type="image/png")

        assert result.text == original
        assert result.ocr_used is False

    @pytest.mark.parametrize("text", ["", "   ", "Skills: Python", "□" * 30])
    def test_unusable_without_file_raises_unreadable(self, extractor, text):
        """Under 50 usable characters and nothing to OCR -> ResumeUnreadable."""
        with pytest.raises(ResumeUnreadable):
            extractor.extract(text=text)

    def test_unusable_after_failed_ocr_raises_unreadable(self, extractor, gateway):
        gateway.queue(AppError("AI gateway error: 500"))

        with pytest.raises(ResumeUnreadable) as exc:
            extractor.extract(text="", file_bytes=b"img", mime_type="image/png")

        assert exc.value.status_code == 400

    def test_no_gateway_means_no_ocr(self):
        """Without a gateway, invalid-but-usable text is returned untouched."""
        original = "Experience at Acme, skills in Python and SQL, education at MIT."
        result = ResumeTextExtractor(gateway=None).extract(text=original, file_bytes=b"img", mime_type="image/png")
        assert result.text == original

    def test_unsupported_file_type_skips_ocr(self, extractor, gateway):
        original = "Experience at Acme, skills in Python and SQL, education at MIT."
        result = extractor.extract(text=original, file_bytes=b"plain", mime_type="text/plain")
        assert result.text == original
        assert gateway.calls == []


# ============================================================================
# TEST CASES - Server-side text layer
# ============================================================================

class TestTextLayer:
    """Tests for reading the document's own text."""

    def test_pdf_text_layer(self, extractor, gateway):
        """A text PDF is read with PyMuPDF and needs no OCR."""
        pdf = make_pdf([
            "Jane Doe",
            "Software Engineer with five years of experience",
            "Experience: Backend developer at Acme Corp",
            "Education: B.Tech Computer Science, State University",
            "Skills: Python, FastAPI, PostgreSQL",
        ])

        result = extractor.extract(file_bytes=pdf, filename="resume.pdf")

        assert "Acme Corp" in result.text
        assert result.ocr_used is False
        assert gateway.calls == []

    def test_docx_text_layer(self):
        data = make_docx(["Experience", "Developer at Initech", "Education", "BSc Physics"])
        text = extract_text_layer(data, filename="cv.docx")
        assert text.splitlines() == ["Experience", "Developer at Initech", "Education", "BSc Physics"]

    def test_unknown_type_tries_pdf_then_docx(self):
        data = make_docx(["Skills", "Go and Rust"])
        assert "Go and Rust" in extract_text_layer(data, filename="upload.bin")

    def test_unreadable_bytes_give_empty_text(self):
        assert extract_text_layer(b"not a document", filename="upload.bin") == ""

    def test_base64_data_url_is_decoded(self):
        encoded = base64.b64encode(b"hello").decode()
        assert decode_base64_file(f"data:application/pdf;base64,{encoded}") == b"hello"
        assert decode_base64_file(encoded) == b"hello"
