"""
Wayfarer Configuration

Loads configuration from environment variables with sensible defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


class Config:
    """Application configuration loaded from environment variables."""

    # LLM Provider Configuration
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "anthropic")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "claude-haiku-4-5")
    LLM_MAX_TOKENS: int = int(os.getenv("LLM_MAX_TOKENS", "1024"))
    LLM_TIMEOUT_SECONDS: float = _float_env("LLM_TIMEOUT_SECONDS", 60.0)

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Local LLM (Ollama) endpoint, used when LLM_PROVIDER=ollama
    OLLAMA_BASE_URL: str | None = os.getenv("OLLAMA_BASE_URL")

    # Bot identity on the data channel. Clients filter the bot's own
    # messages and render its avatar by this identity.
    BOT_IDENTITY: str = os.getenv("BOT_IDENTITY", "bot-claude")
    BOT_DISPLAY_NAME: str = os.getenv("BOT_DISPLAY_NAME", "Clawd")

    # Grid defaults, overwritten when map-info arrives from a client
    DEFAULT_GRID_SIZE: int = int(os.getenv("DEFAULT_GRID_SIZE", "50"))
    DEFAULT_CELL_SIZE: int = int(os.getenv("DEFAULT_CELL_SIZE", "32"))
    DEFAULT_SPAWN_X: int = int(os.getenv("DEFAULT_SPAWN_X", "25"))
    DEFAULT_SPAWN_Y: int = int(os.getenv("DEFAULT_SPAWN_Y", "25"))

    # Movement. STEP_DURATION_MS must match the client's per-step animation.
    STEP_DURATION_MS: int = int(os.getenv("STEP_DURATION_MS", "200"))
    MAX_PATH_LENGTH: int = int(os.getenv("MAX_PATH_LENGTH", "20"))

    # Proactive help
    STUCK_THRESHOLD_SECONDS: float = _float_env("STUCK_THRESHOLD_SECONDS", 120.0)
    STUCK_SCAN_INTERVAL_SECONDS: float = _float_env("STUCK_SCAN_INTERVAL_SECONDS", 10.0)
    LINGER_SECONDS: float = _float_env("LINGER_SECONDS", 10.0)

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider"
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider. "
                "For local LLMs, set LLM_PROVIDER=ollama instead."
            )

        if cls.STEP_DURATION_MS <= 0:
            raise ValueError("STEP_DURATION_MS must be positive")

        if cls.MAX_PATH_LENGTH < 1:
            raise ValueError("MAX_PATH_LENGTH must be at least 1")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Wayfarer Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  Bot Identity: {cls.BOT_IDENTITY} ({cls.BOT_DISPLAY_NAME})",
            f"  Grid Defaults: {cls.DEFAULT_GRID_SIZE}x{cls.DEFAULT_GRID_SIZE} @ {cls.DEFAULT_CELL_SIZE}px",
            f"  Step Duration: {cls.STEP_DURATION_MS}ms",
            f"  Stuck Threshold: {cls.STUCK_THRESHOLD_SECONDS}s",
        ]
        return "\n".join(lines)


@dataclass(frozen=True)
class BehaviorTiming:
    """Every duration the behaviors sleep for, in seconds.

    Defaults mirror the client-facing constants. Tests construct this directly
    with tiny values so full walk/linger cycles finish in milliseconds.
    """

    step_duration: float = 0.2
    min_pause: float = 2.0
    max_pause: float = 5.0
    map_poll_interval: float = 1.0
    no_destination_backoff: float = 2.0
    no_path_backoff: float = 1.0
    retry_backoff: float = 2.0
    linger: float = 10.0
    stuck_threshold: float = 120.0
    stuck_scan_interval: float = 10.0
    max_path_length: int = 20
    destination_attempts: int = 20

    @classmethod
    def from_config(cls) -> "BehaviorTiming":
        return cls(
            step_duration=Config.STEP_DURATION_MS / 1000.0,
            linger=Config.LINGER_SECONDS,
            stuck_threshold=Config.STUCK_THRESHOLD_SECONDS,
            stuck_scan_interval=Config.STUCK_SCAN_INTERVAL_SECONDS,
            max_path_length=Config.MAX_PATH_LENGTH,
        )
