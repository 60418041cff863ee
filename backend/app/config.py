"""
backend/app/config.py

Purpose:
    Central settings loading for backend services. Values are read once here
    and passed into services at construction time.

Dependencies:
    - pydantic-settings
    - pathlib
"""

from pathlib import Path

from pydantic_settings import BaseSettings

# Prefer backend/.env, fallback to project-root .env.
_BACKEND_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
_ROOT_ENV_FILE = Path(__file__).resolve().parent.parent.parent / ".env"


class Settings(BaseSettings):
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "pickem"
    JWT_SECRET: str = "change-me"
    JWT_SECRET_OLD: str = ""  # Set during rotation; cleared after 7 days
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"

    LOG_LEVEL: str = "INFO"
    # Include exception internals in error responses (never in production)
    DIAGNOSTIC_ERRORS: bool = False

    # NFL season label rolls over in September
    SEASON_ROLLOVER_MONTH: int = 9

    # Scoring policy
    SCORING_POINTS_PER_SELECTION: int = 1
    SCORING_LOCK_BONUS: int = 2
    SCORING_LOCK_PENALTY: int = -1
    SCORING_TD_SCORER_BONUS: int = 3
    SCORING_PROP_POINTS: int = 1

    # Live reveal stream (SSE)
    LIVE_REPLAY_BUFFER_SIZE: int = 500
    LIVE_SUBSCRIBER_QUEUE_SIZE: int = 100
    LIVE_HEARTBEAT_SECONDS: int = 25
    LIVE_MAX_SUBSCRIBERS: int = 500

    # Background jobs
    SCHEDULER_ENABLED: bool = True
    KICKOFF_WATCH_SECONDS: int = 60
    LEADERBOARD_REFRESH_MINUTES: int = 30

    model_config = {
        "env_file": (str(_BACKEND_ENV_FILE), str(_ROOT_ENV_FILE)),
        "extra": "ignore",
    }


settings = Settings()
