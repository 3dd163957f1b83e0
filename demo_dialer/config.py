"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("demo_dialer.config")


class Settings(BaseSettings):
    # Realtime speech model
    openai_api_key: str = ""
    openai_realtime_url: str = "wss://api.openai.com/v1/realtime?model=gpt-4o-realtime-preview"
    openai_voice: str = "alloy"
    openai_temperature: float = 0.8

    # Server-side turn detection
    vad_threshold: float = 0.5
    vad_prefix_padding_ms: int = 300
    vad_silence_duration_ms: int = 1500

    # Twilio
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    public_base_url: str = ""  # e.g. https://<tunnel>.ngrok-free.app; falls back to Host header

    # Notifications
    slack_webhook_url: str = ""
    admin_phone: str = ""

    # Persona
    agent_name: str = "Kora"
    company_name: str = "Boostly"
    rep_name: str = "Jakob"
    calendar_timezone: str = "America/Denver"

    # Audio relay tuning
    telephony_frame_ms: int = 20        # Twilio sends 20ms u-law frames
    commit_threshold_ms: int = 100      # finalize caller audio every ~100ms
    keepalive_interval_s: float = 25.0

    # Call lifecycle
    session_expiry_s: float = 60.0
    max_call_attempts: int = 2
    call_timeout_s: int = 30

    # Admin auth
    admin_api_key: str = ""

    # Server
    host: str = "0.0.0.0"
    port: int = 5050
    debug: bool = False
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"sk-...", "AC...", "your_auth_token"}

        if not self.openai_api_key or self.openai_api_key in _placeholders:
            raise ValueError(
                "OPENAI_API_KEY is missing or still a placeholder. "
                "Set it in .env to reach the realtime model."
            )

        if self.commit_threshold_ms < self.telephony_frame_ms:
            raise ValueError(
                "COMMIT_THRESHOLD_MS must be at least one telephony frame "
                f"({self.telephony_frame_ms}ms)."
            )

        if (
            not self.twilio_account_sid
            or not self.twilio_auth_token
            or self.twilio_account_sid in _placeholders
        ):
            warnings.append("Twilio credentials not set — outbound calls and SMS won't work.")

        if not self.twilio_phone_number:
            warnings.append("TWILIO_PHONE_NUMBER not set — outbound calls won't work.")

        if not self.slack_webhook_url:
            warnings.append("SLACK_WEBHOOK_URL not set — Slack booking notifications disabled.")

        if not self.admin_api_key:
            if self.debug:
                warnings.append("ADMIN_API_KEY not set. Admin APIs are open (DEBUG=true).")
            else:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are locked in production. "
                    "Set ADMIN_API_KEY in .env to enable admin access."
                )

        return warnings


settings = Settings()
