"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    log_level: str = Field(default="INFO")

    # HTTP listener
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=10000)

    # Telnyx Call Control
    telnyx_api_key: str = Field(description="Bearer token for the Telnyx v2 API.")
    telnyx_public_key: str | None = Field(
        default=None,
        description=(
            "Base64 Ed25519 public key used to verify webhook signatures. "
            "When unset, signature verification is DISABLED and every webhook is accepted."
        ),
    )
    telnyx_api_base_url: str = Field(default="https://api.telnyx.com/v2")
    telnyx_timeout_seconds: float = Field(default=12.0, gt=0)
    from_number: str = Field(description="Caller ID presented on outbound legs, E.164.")
    connection_id: str = Field(description="Call Control application / connection id.")
    ai_assistant_id: str | None = Field(
        default=None,
        description="Optional assistant started on the agent leg once the conference is live.",
    )

    # Caller screening
    allow_list: str | None = Field(
        default=None,
        description="Comma-separated caller numbers allowed to use the coach. Empty allows everyone.",
    )
    country_code: str = Field(default="61", description="Country calling code for local numbers.")

    # Speech
    tts_voice: str = Field(default="female")
    tts_language: str = Field(default="en-AU")

    # Call script
    collect_prompt: str = Field(default="Enter the number to call, then press hash.")
    rejection_message: str = Field(default="This number is not authorised. Goodbye.")
    invalid_number_message: str = Field(default="Invalid number. Goodbye.")
    whisper_trigger_digits: str = Field(default="*2")
    whisper_script: str = Field(
        default="Whisper: recommend the ninety nine per user plan, then confirm how many users."
    )

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("country_code")
    @classmethod
    def country_code_is_digits(cls, value: str) -> str:
        value = value.strip().lstrip("+")
        if not value.isdigit():
            raise ValueError("country_code must contain digits only, e.g. 61")
        return value

    @field_validator("telnyx_public_key", "ai_assistant_id", "allow_list")
    @classmethod
    def blank_as_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
