# backend/services/resume_extractor.py
"""
Resume Content Extractor

Turns an uploaded resume into plain text for the model gateway.

Primary path: the document's own text layer (PDF pages via PyMuPDF, DOCX
paragraphs via python-docx), or text the browser already extracted.
Fallback path: when that text looks broken (too short, mostly symbols, or
missing common resume vocabulary), the document is sent to a vision model
that transcribes it page by page.

If nothing usable (>= 50 characters) comes out of either path the request
fails with ResumeUnreadable; there is no automatic retry.
"""

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import docx
import fitz

from errors import AppError, InputInvalid, ResumeUnreadable
from prompts.resume_prompts import OCR_EXTRACTION_PROMPT

logger = logging.getLogger(__name__)


RESUME_KEYWORDS = (
    "experience",
    "education",
    "skills",
    "project",
    "work",
    "university",
    "degree",
    "developer",
    "engineer",
)

MIN_VALID_LENGTH = 100
MIN_ALNUM_RATIO = 0.5
MIN_KEYWORD_HITS = 2
MIN_USABLE_LENGTH = 50


@dataclass
class ExtractionResult:
    text: str
    ocr_used: bool = False


# ---------- Text layer ----------

def extract_pdf_text(data: bytes) -> str:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return "\n".join(p.get_text() for p in doc)


def extract_docx_text(data: bytes) -> str:
    d = docx.Document(io.BytesIO(data))
    return "\n".join(p.text for p in d.paragraphs)


def clean_text(t: str) -> str:
    t = t.replace("\x00", " ")
    t = re.sub(r"[ \t]+", " ", t)
    t = re.sub(r"\n{2,}", "\n", t)
    return t.strip()


def is_pdf(data: bytes, mime_type: Optional[str] = None, filename: Optional[str] = None) -> bool:
    if mime_type == "application/pdf":
        return True
    if filename and filename.lower().endswith(".pdf"):
        return True
    return data[:5] == b"%PDF-"


def extract_text_layer(data: bytes, filename: Optional[str] = None, mime_type: Optional[str] = None) -> str:
    """
    Read the document's embedded text. Unknown types are tried as PDF, then
    DOCX; returns "" when neither works (a scanned document usually lands
    here with little or no text).
    """
    name = (filename or "").lower()

    try:
        if is_pdf(data, mime_type, filename):
            return clean_text(extract_pdf_text(data))
        if name.endswith(".docx") or (mime_type or "").endswith("wordprocessingml.document"):
            return clean_text(extract_docx_text(data))
    except Exception as e:
        logger.warning("Text-layer extraction failed for %s: %s", filename or mime_type, e)
        return ""

    for reader in (extract_pdf_text, extract_docx_text):
        try:
            return clean_text(reader(data))
        except Exception:
            continue
    return ""


def decode_base64_file(file_base64: str) -> bytes:
    """Decode a base64 document, tolerating a data-URL prefix."""
    payload = file_base64.split(",", 1)[1] if file_base64.startswith("data:") else file_base64
    try:
        return base64.b64decode(payload, validate=False)
    except (binascii.Error, ValueError) as e:
        raise InputInvalid("fileBase64 is not valid base64") from e


# ---------- Validity heuristic ----------

def alphanumeric_ratio(text: str) -> float:
    if not text:
        return 0.0
    kept = sum(1 for c in text if (c.isascii() and c.isalnum()) or c.isspace())
    return kept / len(text)


def keyword_hits(text: str) -> List[str]:
    lower = text.lower()
    return [kw for kw in RESUME_KEYWORDS if kw in lower]


def is_extraction_valid(text: Optional[str]) -> bool:
    """
    True when extracted text looks like a real resume:
    - at least 100 characters
    - at least half alphanumeric/whitespace
    - at least two common resume keywords
    """
    if not text:
        return False
    trimmed = text.strip()
    if len(trimmed) < MIN_VALID_LENGTH:
        return False
    if alphanumeric_ratio(trimmed) < MIN_ALNUM_RATIO:
        return False
    return len(keyword_hits(trimmed)) >= MIN_KEYWORD_HITS


# ---------- Extractor ----------

class ResumeTextExtractor:
    """
    Produces resume text, falling back to vision OCR when the text layer
    fails the validity heuristic.

    Attributes:
        gateway: LLMGateway used for OCR (None disables the fallback)
    """

    MAX_OCR_PAGES = 3
    OCR_DPI = 150

    def __init__(self, gateway=None, ocr_model: Optional[str] = None):
        self.gateway = gateway
        self.ocr_model = ocr_model

    def extract(
        self,
        text: Optional[str] = None,
        file_bytes: Optional[bytes] = None,
        file_base64: Optional[str] = None,
        mime_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> ExtractionResult:
        """
        Args:
            text: Text already extracted by the browser, if any
            file_bytes / file_base64: The original document, if available
            mime_type: Document MIME type
            filename: Original file name (used to pick a reader)

        Returns:
            ExtractionResult with the text to use and whether OCR produced it

        Raises:
            ResumeUnreadable: fewer than 50 usable characters after all fallbacks
        """
        if file_bytes is None and file_base64:
            file_bytes = decode_base64_file(file_base64)

        original = (text or "").strip()
        if not original and file_bytes:
            original = extract_text_layer(file_bytes, filename, mime_type)
            logger.info("Text layer yielded %d characters", len(original))

        if is_extraction_valid(original):
            return ExtractionResult(text=original, ocr_used=False)

        logger.info("Text extraction appears to have failed, attempting OCR")

        if file_bytes:
            try:
                ocr_text = self.ocr(file_bytes, mime_type, filename)
            except (AppError, ValueError, RuntimeError) as e:
                logger.error("OCR failed: %s", e)
                ocr_text = ""

            if ocr_text:
                logger.info("OCR extracted %d characters", len(ocr_text))
                if len(ocr_text) >= MIN_USABLE_LENGTH:
                    return ExtractionResult(text=ocr_text, ocr_used=True)

            if original:
                logger.info("Using original text since OCR gave nothing usable")

        if len(original) < MIN_USABLE_LENGTH:
            raise ResumeUnreadable()

        return ExtractionResult(text=original, ocr_used=False)

    def ocr(self, data: bytes, mime_type: Optional[str] = None, filename: Optional[str] = None) -> str:
        """Transcribe a document with the vision model."""
        if self.gateway is None:
            raise ValueError("OCR is not available: no model gateway configured")

        if is_pdf(data, mime_type, filename):
            urls = self.render_pdf_pages(data)
        elif mime_type and mime_type.startswith("image/"):
            encoded = base64.b64encode(data).decode("ascii")
            urls = [f"data:{mime_type};base64,{encoded}"]
        else:
            raise ValueError(f"OCR does not support {mime_type or filename or 'this file type'}")

        return self.gateway.transcribe_images(OCR_EXTRACTION_PROMPT, urls, model=self.ocr_model)

    def render_pdf_pages(self, data: bytes) -> List[str]:
        urls = []
        with fitz.open(stream=data, filetype="pdf") as doc:
            for index in range(min(len(doc), self.MAX_OCR_PAGES)):
                pix = doc[index].get_pixmap(dpi=self.OCR_DPI)
                encoded = base64.b64encode(pix.tobytes("png")).decode("ascii")
                urls.append(f"data:image/png;base64,{encoded}")
        return urls
