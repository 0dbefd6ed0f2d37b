"""Application configuration loaded from environment variables."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class ConfigurationError(RuntimeError):
    """Raised at startup when a required setting is missing."""


class Settings(BaseSettings):
    """All configuration is read from env vars (or a .env file)."""

    # --- Twilio (webhook signatures + outbound SMS) ---
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    verify_signatures: bool = True
    public_base_url: str = ""  # e.g. https://receptionist.example.com
    allow_all_cors: bool = True

    # --- OpenAI (transcription + extraction) ---
    transcription_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("transcription_api_key", "openai_api_key"),
    )
    extraction_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("extraction_api_key", "openai_api_key"),
    )
    openai_base_url: str = "https://api.openai.com/v1"
    transcription_model: str = "whisper-1"
    extraction_model: str = "gpt-4o"

    # --- Contractor directory ---
    contractor_phones: dict[str, str] = Field(default_factory=dict)  # E.164 -> contractor id
    contractor_profiles: dict[str, dict[str, Any]] = Field(default_factory=dict)
    contractor_directory_url: str = ""

    # --- Job store ---
    job_store_url: str = ""
    job_store_file: str = ""  # optional JSON persistence for the in-memory store

    # --- Onboarding link sent to callers ---
    onboarding_url: str = "https://fairtradeworker.com/onboard"

    # --- Pipeline policy ---
    confidence_threshold: float = Field(default=0.6, ge=0, le=1)
    retry_base_delay: float = 1.0  # seconds; doubled after every failed attempt
    transcription_max_attempts: int = 3
    directory_max_attempts: int = 3
    store_max_attempts: int = 3
    extraction_max_attempts: int = 2
    sms_max_attempts: int = 2
    transcription_timeout: float = 30.0
    extraction_timeout: float = 15.0
    http_timeout: float = 10.0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }

    @property
    def sms_configured(self) -> bool:
        return bool(
            self.twilio_account_sid and self.twilio_auth_token and self.twilio_phone_number
        )

    def missing_required(self) -> list[str]:
        """Return the names of settings the service cannot start without."""
        missing = []
        if not self.transcription_api_key:
            missing.append("TRANSCRIPTION_API_KEY (or OPENAI_API_KEY)")
        if not self.extraction_api_key:
            missing.append("EXTRACTION_API_KEY (or OPENAI_API_KEY)")
        if not self.contractor_phones and not self.contractor_directory_url:
            missing.append("CONTRACTOR_PHONES or CONTRACTOR_DIRECTORY_URL")
        if self.verify_signatures and not self.twilio_auth_token:
            missing.append("TWILIO_AUTH_TOKEN (required while VERIFY_SIGNATURES is on)")
        return missing

    def ensure_complete(self) -> None:
        """Fail fast when a required setting is absent."""
        missing = self.missing_required()
        if missing:
            raise ConfigurationError("Missing required configuration: " + ", ".join(missing))


def get_settings() -> Settings:
    """Return a settings instance built from the environment."""
    return Settings()
