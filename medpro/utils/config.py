"""
Configuration management for the MedPro practitioner client.
Handles backend location, paging sizes, limits and logging settings.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings, SettingsConfigDict

FALLBACK_API_BASE_URL = "https://medproapp.ngrok.dev"


class Settings(PydanticBaseSettings):
    """Application settings with environment variable support (MEDPRO_ prefix)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MEDPRO_",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = Field(False)

    # Backend
    api_base_url: str = Field(FALLBACK_API_BASE_URL)
    request_timeout: float = Field(30.0)

    # Credentials (normally provided by the auth store after login)
    token: Optional[str] = Field(None)
    practitioner_id: Optional[str] = Field(None)
    organization: Optional[str] = Field(None)

    # Assistant
    transcription_language: str = Field("pt-BR")
    session_page_size: int = Field(50)
    message_page_size: int = Field(50)
    message_more_page_size: int = Field(30)
    max_retries: int = Field(3)
    new_session_title: str = Field("Nova conversa")
    session_title_max_length: int = Field(50)
    context_history_limit: int = Field(10)

    # Attachments
    max_attachment_bytes: int = Field(10 * 1024 * 1024)

    # Appointments
    recent_patients_limit: int = Field(5)

    # Caching
    enable_caching: bool = Field(True)
    cache_ttl: int = Field(3600)
    patient_cache_ttl: int = Field(300)

    # Latency thresholds (ms)
    api_latency_threshold: int = Field(2000)
    assistant_latency_threshold: int = Field(8000)
    transcription_latency_threshold: int = Field(15000)

    # Logging
    log_level: str = Field("INFO")
    compliance_log_file: Optional[str] = Field(None)
    enable_structured_logging: bool = Field(True)

    @field_validator("api_base_url", mode="before")
    @classmethod
    def normalize_url(cls, value: Optional[str]) -> str:
        if not isinstance(value, str) or not value.strip():
            return FALLBACK_API_BASE_URL
        return value.strip().rstrip("/")


# Global settings instance
settings = Settings()


def get_api_url(path: str = "", base_url: Optional[str] = None) -> str:
    """Join an endpoint path onto the configured backend URL."""
    base = (base_url or settings.api_base_url).rstrip("/")
    if not path:
        return base
    return f"{base}{'' if path.startswith('/') else '/'}{path}"


class AssistantConfig:
    """Assistant constants shared by the API client and the store."""

    CHANNEL = "app"
    AUDIO_MIME_TYPE = "audio/mp4"
    NO_REPLY_TEXT = "Desculpe, não consegui processar sua mensagem."
    UNAUTHENTICATED_TEXT = "Usuário não autenticado"
    TOO_MANY_RETRIES_TEXT = "Muitas tentativas. Tente novamente mais tarde."

    ACTION_TYPES = {
        "PRESCRIPTION_SIGN": "prescription-sign",
        "PRESCRIPTION_SEND": "prescription-send",
        "NAVIGATE_PATIENT": "navigate-patient",
        "NAVIGATE_ENCOUNTER": "navigate-encounter",
        "ANALYZE_DOCUMENT": "analyze-document",
    }

    # Paths whose 404 means "nothing recorded yet"
    HISTORY_ENDPOINT_MARKERS = (
        "/encounter/",
        "/clinical/",
        "/medication/",
        "/diagnostic/",
        "/attach/",
        "/images/",
    )

