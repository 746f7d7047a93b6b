# backend/config.py
"""
Application Settings

All secrets and third-party endpoints live here. Services receive a Settings
instance (or a client built from it) through their constructors; nothing
below api.py reads the environment directly.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env from the backend directory without overriding real env vars
env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


class Settings(BaseModel):
    database_url: str = "sqlite://"

    # Language-model gateway (OpenAI-compatible chat completions)
    llm_api_key: Optional[str] = None
    llm_base_url: str = "https://ai.gateway.lovable.dev/v1"
    llm_model: str = "google/gemini-2.5-flash"
    ats_model: str = "google/gemini-3-flash-preview"

    # Voice-agent platform
    vapi_api_key: Optional[str] = None
    vapi_assistant_id: Optional[str] = None
    vapi_base_url: str = "https://api.vapi.ai"
    vapi_system_prompt: Optional[str] = None
    vapi_first_message: Optional[str] = None

    # Talking-avatar platform
    did_api_key: Optional[str] = None
    did_api_url: str = "https://api.d-id.com"
    did_ws_url: str = "wss://ws-api.d-id.com"
    did_default_avatar_url: str = (
        "https://create-images-results.d-id.com/DefaultPresenters/Emma_f/image.png"
    )

    # Bearer tokens are JWTs issued by the auth provider; no secret means
    # every token is rejected
    auth_jwt_secret: Optional[str] = None
    auth_jwt_audience: str = "authenticated"

    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://localhost:4173",
            "http://localhost:8080",
        ]
    )

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        values = {
            "database_url": os.getenv("DATABASE_URL"),
            "llm_api_key": os.getenv("LLM_API_KEY") or os.getenv("LOVABLE_API_KEY"),
            "llm_base_url": os.getenv("LLM_BASE_URL"),
            "llm_model": os.getenv("LLM_MODEL"),
            "ats_model": os.getenv("ATS_MODEL"),
            "vapi_api_key": os.getenv("VAPI_API_KEY"),
            "vapi_assistant_id": os.getenv("VAPI_ASSISTANT_ID"),
            "vapi_base_url": os.getenv("VAPI_BASE_URL"),
            "vapi_system_prompt": os.getenv("VAPI_SYSTEM_PROMPT"),
            "vapi_first_message": os.getenv("VAPI_FIRST_MESSAGE"),
            "did_api_key": os.getenv("DID_API_KEY"),
            "did_api_url": os.getenv("DID_API_URL"),
            "did_ws_url": os.getenv("DID_WS_URL"),
            "did_default_avatar_url": os.getenv("DID_DEFAULT_AVATAR_URL"),
            "auth_jwt_secret": os.getenv("AUTH_JWT_SECRET"),
            "auth_jwt_audience": os.getenv("AUTH_JWT_AUDIENCE"),
        }
        origins = os.getenv("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

        # Unset variables fall back to the field defaults
        return cls(**{k: v for k, v in values.items() if v is not None})


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide Settings instance."""
    global _settings_instance

    if _settings_instance is None:
        _settings_instance = Settings.from_env()

    return _settings_instance


def reset_settings() -> None:
    """Drop the cached Settings (used by tests)."""
    global _settings_instance
    _settings_instance = None
