"""Service configuration loaded from environment variables."""

import os

from pydantic import BaseModel


class Settings(BaseModel):
    """Runtime settings for the assistant service."""

    anthropic_api_key: str | None = None
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    agent_max_turns: int = 5

    # Human-in-the-loop approval handshake
    approval_timeout_ms: int = 30_000
    approval_poll_interval_ms: int = 500
    approval_ttl_ms: int = 60_000
    approval_sweep_interval_ms: int = 60_000

    max_message_chars: int = 4000  # Roughly 1000 tokens
    auth_header: str = "X-User-Id"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        defaults = cls()
        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            model=os.getenv("ASSISTANT_MODEL", defaults.model),
            max_tokens=int(os.getenv("ASSISTANT_MAX_TOKENS", defaults.max_tokens)),
            agent_max_turns=int(os.getenv("ASSISTANT_AGENT_MAX_TURNS", defaults.agent_max_turns)),
            approval_timeout_ms=int(os.getenv("ASSISTANT_APPROVAL_TIMEOUT_MS", defaults.approval_timeout_ms)),
            approval_poll_interval_ms=int(
                os.getenv("ASSISTANT_APPROVAL_POLL_INTERVAL_MS", defaults.approval_poll_interval_ms)
            ),
            approval_ttl_ms=int(os.getenv("ASSISTANT_APPROVAL_TTL_MS", defaults.approval_ttl_ms)),
            approval_sweep_interval_ms=int(
                os.getenv("ASSISTANT_APPROVAL_SWEEP_INTERVAL_MS", defaults.approval_sweep_interval_ms)
            ),
            max_message_chars=int(os.getenv("ASSISTANT_MAX_MESSAGE_CHARS", defaults.max_message_chars)),
            auth_header=os.getenv("ASSISTANT_AUTH_HEADER", defaults.auth_header),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        )


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
