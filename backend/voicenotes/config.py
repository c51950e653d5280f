from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="APP_",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:3000"

    # API
    api_prefix: str = "/api"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ]

    cors_origin_regex: str | None = None
    trusted_hosts: list[str] = ["*"]
    root_path: str = ""

    # Supabase (Postgres via PostgREST)
    supabase_url: str
    supabase_service_role_key: str
    supabase_timeout: int = 30
    seed_categories_on_startup: bool = True

    # Authentication
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expires_in: int = 7 * 24 * 3600
    password_reset_ttl: int = 3600
    bcrypt_rounds: int = 10

    max_login_attempts: int = 5  # Maximum failed login attempts before rate limiting
    login_attempt_window: int = 300  # Time window for login attempts (5 minutes)
    enable_rate_limiting: bool = True  # Enable rate limiting for auth endpoints

    # OpenAI (summaries and action items)
    openai_api_key: str
    enrichment_model: str = "gpt-5-nano"
    enrichment_model_reasoning: str = "medium"
    openai_timeout: float = 60.0
    openai_max_retries: int = 2

    # Storage
    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: str = "uploads"
    scratch_dir: str | None = None
    s3_bucket_name: str | None = None
    s3_endpoint_url: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str = "us-east-1"

    # Media tools
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Google Cloud Speech
    google_application_credentials: str | None = None
    gcs_bucket_name: str = "voice-notes-audio"
    speech_language: str = "en-US"
    speech_alternative_languages: list[str] = ["it-IT", "es-ES", "fr-FR", "de-DE"]
    speech_phrases: list[str] = ["voicenotes", "voice note", "transcription"]
    transcription_timeout: int = 900
    max_transcription_bytes: int = 480 * 1024 * 1024

    # spaCy model used for entity detection during categorization
    spacy_model: str = "en_core_web_sm"

    # Postmark
    postmark_server_token: str | None = None
    postmark_from_email: str = "noreply@voicenotes.app"
    postmark_inbound_address: str = "notes@inbound.voicenotes.app"
    postmark_webhook_token: str | None = None
    webhook_signature_required: bool = True
    max_attachment_bytes: int = 25 * 1024 * 1024

    # Notion fallbacks when a user has no credentials of their own
    notion_api_key: str | None = None
    notion_database_id: str | None = None

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


settings = Settings()
