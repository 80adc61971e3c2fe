"""
Application Configuration

Loads environment variables and provides typed settings
for the weekly feedback health analysis job. Uses python-dotenv
to load from the .env file at the project root.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env file from the project root
_env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=_env_path)

# --- Supabase ---
SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
STORE_TIMEOUT_SECONDS: float = float(os.getenv("STORE_TIMEOUT_SECONDS", "30"))

# --- Anthropic ---
ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
CLAUDE_MODEL: str = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-20250514")
AI_TIMEOUT_SECONDS: float = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))

# --- Weekly analysis job ---
ANALYSIS_BATCH_SIZE: int = int(os.getenv("ANALYSIS_BATCH_SIZE", "75"))
ANALYSIS_MAX_BATCHES: int = int(os.getenv("ANALYSIS_MAX_BATCHES", "50"))
ANALYSIS_BATCH_DELAY_SECONDS: float = float(
    os.getenv("ANALYSIS_BATCH_DELAY_SECONDS", "0.1")
)
# "local" computes health scores in Python, "store" delegates to the scoring RPCs
HEALTH_SCORE_MODE: str = os.getenv("HEALTH_SCORE_MODE", "local").strip().lower()


class AnalysisSettings(BaseModel):
    """
    Tunables for one weekly analysis run.

    batch_size:          users fetched per page (default 75).
    max_batches:         hard cap on pages per run (default 50). The run stops
                         after this many pages even if more users remain.
    batch_delay_seconds: pause between pages to bound load on the store and
                         the AI service (default 0.1s).
    """

    batch_size: int = Field(default=75, ge=1, le=1000)
    max_batches: int = Field(default=50, ge=1)
    batch_delay_seconds: float = Field(default=0.1, ge=0.0)


def get_analysis_settings() -> AnalysisSettings:
    """Build AnalysisSettings from the environment."""
    return AnalysisSettings(
        batch_size=ANALYSIS_BATCH_SIZE,
        max_batches=ANALYSIS_MAX_BATCHES,
        batch_delay_seconds=ANALYSIS_BATCH_DELAY_SECONDS,
    )


def validate_supabase_config() -> bool:
    """Check that the Supabase credentials needed by the job are present."""
    missing = []
    if not SUPABASE_URL:
        missing.append("SUPABASE_URL")
    if not SUPABASE_SERVICE_ROLE_KEY:
        missing.append("SUPABASE_SERVICE_ROLE_KEY")
    if missing:
        raise EnvironmentError(
            f"Missing required Supabase environment variables: {', '.join(missing)}. "
            f"Please fill in your .env file at: {_env_path}"
        )
    return True


def is_anthropic_configured() -> bool:
    """
    Check if the Anthropic API is available without raising exceptions.

    When it is not, every AI-backed analysis step uses its heuristic
    fallback and the job still completes.
    """
    return bool(ANTHROPIC_API_KEY)
