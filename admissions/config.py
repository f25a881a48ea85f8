"""Configuration management for the admissions outreach caller."""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()


class OutreachSettings(BaseModel):
    """Explicit settings handed to the resolver, dialer and call engine.

    The core components never read `Config` directly; they get one of these
    at construction so tests can build any combination of flags.
    """

    enable_telephony_sync: bool = False
    enable_facebook_sync: bool = False
    enable_google_ads_sync: bool = False
    default_preferred_exam: str = "Sainik School"
    caller_id: Optional[str] = None
    turn_cap: int = 6
    base_url: str = "http://localhost:8000"
    status_callback_url: Optional[str] = None
    voice: str = "Polly.Aditi"
    voice_language: str = "en-IN"
    reply_model: str = "gpt-4o-mini"
    reply_timeout_seconds: float = 8.0
    telephony_timeout_seconds: float = 10.0


class Config:
    """Application configuration."""

    # OpenAI Configuration
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_TIMEOUT_SECONDS: float = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "8"))

    # Twilio Configuration
    TWILIO_ACCOUNT_SID: str = os.getenv("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN: str = os.getenv("TWILIO_AUTH_TOKEN", "")
    TWILIO_CALLER_ID: str = os.getenv("TWILIO_CALLER_ID", "")
    TWILIO_STATUS_CALLBACK_URL: str = os.getenv("TWILIO_STATUS_CALLBACK_URL", "")
    TWILIO_TIMEOUT_SECONDS: float = float(os.getenv("TWILIO_TIMEOUT_SECONDS", "10"))

    # Voice used for <Say>. Polly.Aditi speaks Indian English.
    TWILIO_TTS_VOICE: str = os.getenv("TWILIO_TTS_VOICE", "Polly.Aditi")
    CALLER_LANGUAGE: str = os.getenv("CALLER_LANGUAGE", "en-IN")

    # Application Settings
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    BASE_URL: str = os.getenv("BASE_URL", "http://localhost:8000")  # For webhooks - use ngrok URL in production
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./admissions.db")

    # Optional: log prospect/assistant transcript to console.
    # May include sensitive content.
    LOG_CALL_TRANSCRIPT: bool = os.getenv(
        "LOG_CALL_TRANSCRIPT",
        "True" if DEBUG else "False",
    ).lower() == "true"
    LOG_CALL_TRANSCRIPT_MAX_CHARS: int = int(os.getenv("LOG_CALL_TRANSCRIPT_MAX_CHARS", "500"))

    # Lead channels
    ENABLE_FACEBOOK_SYNC: bool = os.getenv("ENABLE_FACEBOOK_SYNC", "False").lower() == "true"
    ENABLE_GOOGLE_ADS_SYNC: bool = os.getenv("ENABLE_GOOGLE_ADS_SYNC", "False").lower() == "true"
    DEFAULT_PREFERRED_EXAM: str = os.getenv("DEFAULT_PREFERRED_EXAM", "Sainik School")

    # Conversation length in prospect/assistant cycles
    CALL_TURN_CAP: int = int(os.getenv("CALL_TURN_CAP", "6"))

    # Security
    API_KEY: str = os.getenv("API_KEY", "")  # For operator API authentication

    @classmethod
    def has_openai_key(cls) -> bool:
        """Check if OpenAI API key is configured."""
        return bool(cls.OPENAI_API_KEY)

    @classmethod
    def has_twilio_config(cls) -> bool:
        """Check if Twilio configuration is complete."""
        return all([
            cls.TWILIO_ACCOUNT_SID,
            cls.TWILIO_AUTH_TOKEN,
            cls.TWILIO_CALLER_ID
        ])

    @classmethod
    def outreach_settings(cls) -> OutreachSettings:
        """Snapshot the environment into the settings the core components take."""
        return OutreachSettings(
            enable_telephony_sync=cls.has_twilio_config(),
            enable_facebook_sync=cls.ENABLE_FACEBOOK_SYNC,
            enable_google_ads_sync=cls.ENABLE_GOOGLE_ADS_SYNC,
            default_preferred_exam=cls.DEFAULT_PREFERRED_EXAM,
            caller_id=cls.TWILIO_CALLER_ID or None,
            turn_cap=cls.CALL_TURN_CAP,
            base_url=cls.BASE_URL.rstrip("/"),
            status_callback_url=cls.TWILIO_STATUS_CALLBACK_URL or None,
            voice=cls.TWILIO_TTS_VOICE,
            voice_language=cls.CALLER_LANGUAGE,
            reply_model=cls.OPENAI_MODEL,
            reply_timeout_seconds=cls.OPENAI_TIMEOUT_SECONDS,
            telephony_timeout_seconds=cls.TWILIO_TIMEOUT_SECONDS,
        )


# Create a global config instance
config = Config()
