"""Tests for configuration settings."""
import os

import pytest

from kalima.config import DATA_DIR, Settings, ensure_directories, settings


def test_data_directory_exists():
    """Test that the data directory is created."""
    ensure_directories()
    assert DATA_DIR.exists()


def test_settings_defaults():
    """Test default settings values."""
    assert settings.scheduler.initial_ease == 2.5
    assert settings.scheduler.min_ease == 1.3
    assert settings.scheduler.relearn_gap_minutes == 10
    assert settings.scheduler.first_interval_days == 1
    assert settings.scheduler.second_interval_days == 3
    assert settings.scheduler.mastery_interval_days == 21
    assert settings.scheduler.mastery_streak == 3
    assert settings.scheduler.correct_grade == 4
    assert settings.scheduler.incorrect_grade == 1
    assert settings.learning.persist_retries >= 1


def test_database_url_from_env():
    """Test that the database URL is read when settings are created."""
    os.environ["DATABASE_URL"] = "sqlite:///other.db"
    try:
        assert Settings().database.url == "sqlite:///other.db"
    finally:
        os.environ["DATABASE_URL"] = "sqlite:///:memory:"


def test_queue_seed_from_env():
    """Test that an empty seed means no seed."""
    os.environ["QUEUE_SEED"] = ""
    try:
        assert Settings().learning.queue_seed is None
        os.environ["QUEUE_SEED"] = "17"
        assert Settings().learning.queue_seed == 17
    finally:
        del os.environ["QUEUE_SEED"]


@pytest.mark.parametrize(
    "group,name,value",
    [
        ("learning", "daily_new_target", -1),
        ("learning", "daily_review_target", -1),
        ("learning", "persist_retries", 0),
        ("scheduler", "min_ease", 3.0),
        ("scheduler", "correct_grade", 2),
        ("scheduler", "incorrect_grade", 3),
        ("scheduler", "correct_grade", 6),
    ],
)
def test_validate_rejects_bad_values(group, name, value):
    """Test that invalid settings are rejected."""
    invalid = Settings()
    setattr(getattr(invalid, group), name, value)
    with pytest.raises(ValueError):
        invalid.validate()
