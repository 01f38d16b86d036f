"""Configuration settings for the trainer."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
WORD_LIST_FILE = Path(os.getenv("WORD_LIST_FILE", str(DATA_DIR / "words.csv")))

# Scheduling constants
INITIAL_EASE = 2.5
MIN_EASE = 1.3
RELEARN_GAP_MINUTES = 10
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 3
MASTERY_INTERVAL_DAYS = 21
MASTERY_STREAK = 3


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else None


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR
    word_list_file: Path = WORD_LIST_FILE


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = field(default_factory=lambda: os.getenv("DATABASE_URL", "sqlite:///kalima.db"))
    echo: bool = field(default_factory=lambda: os.getenv("DATABASE_ECHO", "false").lower() == "true")


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    dir: Optional[str] = os.getenv("LOG_DIR", None)
    rotation: str = os.getenv("LOG_ROTATION", "midnight")
    interval: int = int(os.getenv("LOG_INTERVAL", "1"))
    backup_count: int = int(os.getenv("LOG_BACKUP_COUNT", "7"))


@dataclass
class SchedulerSettings:
    """SM-2 scheduler parameters."""
    initial_ease: float = INITIAL_EASE
    min_ease: float = MIN_EASE
    relearn_gap_minutes: int = RELEARN_GAP_MINUTES
    first_interval_days: int = FIRST_INTERVAL_DAYS
    second_interval_days: int = SECOND_INTERVAL_DAYS
    mastery_interval_days: int = MASTERY_INTERVAL_DAYS
    mastery_streak: int = MASTERY_STREAK
    correct_grade: int = int(os.getenv("CORRECT_GRADE", "4"))
    incorrect_grade: int = int(os.getenv("INCORRECT_GRADE", "1"))


@dataclass
class LearningSettings:
    """Daily session settings."""
    daily_new_target: int = int(os.getenv("DAILY_NEW_TARGET", "10"))
    daily_review_target: int = int(os.getenv("DAILY_REVIEW_TARGET", "40"))
    backfill_learning: bool = os.getenv("BACKFILL_LEARNING", "false").lower() == "true"
    persist_retries: int = int(os.getenv("PERSIST_RETRIES", "3"))
    queue_seed: Optional[int] = field(default_factory=lambda: _optional_int("QUEUE_SEED"))


@dataclass
class EnrichmentSettings:
    """Enrichment (text generation) settings."""
    api_key: str = os.getenv("OPENAI_API_KEY", "")
    model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    temperature: float = float(os.getenv("OPENAI_TEMPERATURE", "0.3"))
    max_tokens: int = int(os.getenv("OPENAI_MAX_TOKENS", "700"))
    examples_count: int = 3
    max_synonyms: int = 3


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_scheduler_settings() -> SchedulerSettings:
    """Get scheduler settings."""
    return SchedulerSettings()


def get_learning_settings() -> LearningSettings:
    """Get learning settings."""
    return LearningSettings()


def get_enrichment_settings() -> EnrichmentSettings:
    """Get enrichment settings."""
    return EnrichmentSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    scheduler: SchedulerSettings = field(default_factory=get_scheduler_settings)
    learning: LearningSettings = field(default_factory=get_learning_settings)
    enrichment: EnrichmentSettings = field(default_factory=get_enrichment_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if self.learning.daily_new_target < 0:
            raise ValueError("DAILY_NEW_TARGET must not be negative")

        if self.learning.daily_review_target < 0:
            raise ValueError("DAILY_REVIEW_TARGET must not be negative")

        if self.learning.persist_retries < 1:
            raise ValueError("PERSIST_RETRIES must be positive")

        if self.scheduler.min_ease > self.scheduler.initial_ease:
            raise ValueError("Minimum ease cannot be greater than initial ease")

        for name, grade in (("CORRECT_GRADE", self.scheduler.correct_grade),
                            ("INCORRECT_GRADE", self.scheduler.incorrect_grade)):
            if grade < 0 or grade > 5:
                raise ValueError(f"{name} must be between 0 and 5")

        if self.scheduler.correct_grade < 3:
            raise ValueError("CORRECT_GRADE must be a passing grade (3-5)")

        if self.scheduler.incorrect_grade >= 3:
            raise ValueError("INCORRECT_GRADE must be a failing grade (0-2)")


# Create global settings instance
settings = Settings()
settings.validate()
