# backend/errors.py
"""
Typed application errors.

Each error carries the HTTP status it maps to, so handlers raise the variant
that describes the failure and api.py turns it into a JSON response
{"error": message} without comparing message strings.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base error: a generic server-side failure (HTTP 500)."""

    status_code = 500

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class Unauthorized(AppError):
    """Missing/invalid bearer token or a userId that isn't the caller's."""

    status_code = 401

    def __init__(self, reason: str = "Unauthorized"):
        super().__init__("Unauthorized")
        # Kept for logs only; the response body never says why
        self.reason = reason


class UpstreamQuota(AppError):
    """Rate-limit (429) or payment-required (402) from the model gateway."""

    RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."
    PAYMENT_MESSAGE = "Payment required. Please add credits to continue."

    def __init__(self, status_code: int, message: Optional[str] = None):
        if message is None:
            message = self.RATE_LIMIT_MESSAGE if status_code == 429 else self.PAYMENT_MESSAGE
        super().__init__(message)
        self.status_code = status_code

    @classmethod
    def rate_limited(cls) -> "UpstreamQuota":
        return cls(429)

    @classmethod
    def payment_required(cls) -> "UpstreamQuota":
        return cls(402)


class ParseFailure(AppError):
    """The model's response held no recoverable JSON."""

    status_code = 500


class InputInvalid(AppError):
    """Bad request: missing field, unknown action, unreadable document."""

    status_code = 400


class NotFound(InputInvalid):
    status_code = 404


class ConfigurationMissing(InputInvalid):
    """A third-party API key needed for this request is not configured."""

    def __init__(self, setting: str, instructions: str):
        super().__init__(
            f"{setting} is not configured",
            extra={"setup_required": True, "instructions": instructions},
        )


class ResumeUnreadable(InputInvalid):
    """Neither the text layer nor OCR produced usable resume text."""

    def __init__(self, message: str = "Could not extract meaningful text from resume. Please upload a PDF with selectable text."):
        super().__init__(message)
