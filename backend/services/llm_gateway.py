# backend/services/llm_gateway.py
"""
Language-Model Gateway Client

Thin wrapper over the OpenAI SDK pointed at an OpenAI-compatible gateway.
Every text-understanding step (resume parsing, OCR, ATS scoring, interview
evaluation, aptitude questions) goes through ``LLMGateway.complete``.

Gateway failures are translated into typed errors:
- 429 -> UpstreamQuota (rate limit)
- 402 -> UpstreamQuota (payment required)
- anything else non-2xx -> AppError with the status code

No retries are attempted; the client is built with ``max_retries=0``.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from openai import APIConnectionError, APIStatusError, OpenAI, RateLimitError

from config import Settings
from errors import AppError, ConfigurationMissing, ParseFailure, UpstreamQuota

logger = logging.getLogger(__name__)

# Greedy: first "{" to last "}" across lines
JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def extract_json_object(content: Optional[str]) -> Dict[str, Any]:
    """
    Pull the JSON object out of a model reply that may carry prose or
    markdown fences around it.

    Raises:
        ValueError: no object found, or it doesn't parse
    """
    if not content:
        raise ValueError("Empty model response")

    match = JSON_OBJECT_RE.search(content)
    if not match:
        raise ValueError("No JSON found in response")

    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Model response is not a JSON object")
    return data


def strip_code_fences(content: str) -> str:
    cleaned = content.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


class LLMGateway:
    """
    Chat-completions client for the hosted model gateway.

    Attributes:
        model: Default model for text requests
        client: Underlying OpenAI SDK client
    """

    OCR_MAX_TOKENS = 4000

    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        http_client: Optional[httpx.Client] = None,
    ):
        self.model = model
        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=0,
            http_client=http_client,
        )

    def close(self) -> None:
        """Release the SDK client's connection pool."""
        self.client.close()

    @classmethod
    def from_settings(cls, settings: Settings, http_client: Optional[httpx.Client] = None) -> "LLMGateway":
        if not settings.llm_api_key:
            raise ConfigurationMissing(
                "LLM_API_KEY",
                "Set LLM_API_KEY to the language-model gateway key.",
            )
        return cls(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            http_client=http_client,
        )

    def complete(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Send a chat completion and return the first choice's text.

        Args:
            messages: OpenAI-style [{role, content}] list
            model: Override the default model
            temperature: Sampling temperature, gateway default when None
            max_tokens: Completion cap, gateway default when None

        Returns:
            The assistant message content ("" if the gateway sent none)
        """
        kwargs: Dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        try:
            response = self.client.chat.completions.create(**kwargs)
        except RateLimitError as e:
            logger.error("Model gateway rate limit: %s", e)
            raise UpstreamQuota.rate_limited() from e
        except APIStatusError as e:
            if e.status_code == 402:
                logger.error("Model gateway payment required")
                raise UpstreamQuota.payment_required() from e
            logger.error("Model gateway error: %s %s", e.status_code, e.message)
            raise AppError(f"AI gateway error: {e.status_code}") from e
        except APIConnectionError as e:
            logger.error("Model gateway unreachable: %s", e)
            raise AppError("AI gateway unreachable") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def complete_json(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        error_message: str = "Failed to parse AI response",
    ) -> Dict[str, Any]:
        """complete() + extract_json_object(); unparseable -> ParseFailure."""
        content = self.complete(messages, model=model)
        try:
            return extract_json_object(content)
        except ValueError as e:
            logger.error("Failed to parse AI response (%d chars): %s", len(content), e)
            raise ParseFailure(error_message) from e

    def transcribe_images(self, prompt: str, data_urls: List[str], model: Optional[str] = None) -> str:
        """
        Ask a vision-capable model to read document images.

        Args:
            prompt: Transcription instructions
            data_urls: ``data:<mime>;base64,...`` URLs, one per page/image

        Returns:
            The transcribed text, stripped
        """
        content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        for url in data_urls:
            content.append({"type": "image_url", "image_url": {"url": url}})

        text = self.complete(
            [{"role": "user", "content": content}],
            model=model,
            max_tokens=self.OCR_MAX_TOKENS,
        )
        return text.strip()
