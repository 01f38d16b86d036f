"""Test configuration."""
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Generator

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from sqlalchemy.orm import Session

from kalima.models.base import SessionLocal, drop_db, init_db
from kalima.models.models import Example, Word
from kalima.services.word_service import stable_word_id

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    """Fixed point in time for scheduling tests."""
    return NOW


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create a fresh database session for each test."""
    init_db()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        drop_db()


@pytest.fixture
def make_word():
    """Factory for detached Word objects."""
    def _make_word(arabic_raw: str, english: str = "", dutch: str = "", examples=None) -> Word:
        word = Word(
            id=stable_word_id(arabic_raw),
            arabic_raw=arabic_raw,
            english=english,
            dutch=dutch,
        )
        for position, example in enumerate(examples or []):
            word.examples.append(Example(position=position, **example))
        return word
    return _make_word
