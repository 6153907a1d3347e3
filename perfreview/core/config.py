import os
import logging
from pydantic import BaseModel, Field
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class ReviewRules(BaseModel):
    text_limit: int = Field(default=int(os.getenv("REVIEW_TEXT_LIMIT", "500")))
    min_score: int = 1
    max_score: int = 4
    peer_reviewer_count: int = Field(default=int(os.getenv("REVIEW_PEER_REVIEWERS", "2")))
    # Reviewer selection is frozen as soon as one peer has written feedback
    lock_reviewers_after_feedback: bool = Field(
        default=_env_flag("LOCK_REVIEWERS_AFTER_FEEDBACK", "true")
    )


class Config(BaseModel):
    environment: str = os.getenv("APP_ENV", "development")

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./perfreview.db")

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Review lifecycle
    reviews: ReviewRules = ReviewRules()
    reminder_window_days: int = int(os.getenv("REMINDER_WINDOW_DAYS", "7"))


settings = Config()

_logger = logging.getLogger(__name__)
if settings.environment != "development" and settings.database_url.startswith("sqlite:///./"):
    _logger.warning("Using a local SQLite file outside development; set DATABASE_URL.")
