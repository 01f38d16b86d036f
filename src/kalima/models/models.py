"""Database models for the trainer."""
from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from kalima.models.base import Base, TimestampMixin
from kalima.models.srs_models import ReviewState, state_key


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Word(Base, TimestampMixin):
    """Vocabulary item shared by all users."""

    __tablename__ = "words"

    id = Column(String, primary_key=True)  # stable_word_id(arabic_raw)
    arabic_raw = Column(String, unique=True, nullable=False)
    arabic_vowelized = Column(String, default="")
    transliteration = Column(String, default="")
    pos = Column(String, default="")
    english = Column(String, default="")
    dutch = Column(String, default="")
    synonyms_ar = Column(JSON, default=list)
    synonyms_en = Column(JSON, default=list)
    synonyms_nl = Column(JSON, default=list)
    notes = Column(String, default="")
    ai_generated = Column(Boolean, default=False)
    ai_error = Column(Boolean, default=False)

    # Relationships
    examples = relationship(
        "Example",
        back_populates="word",
        order_by="Example.position",
        cascade="all, delete-orphan",
    )

    @property
    def display_arabic(self) -> str:
        """Vowelized form when known, raw form otherwise."""
        return self.arabic_vowelized or self.arabic_raw

    def __repr__(self) -> str:
        return f"<Word {self.id} {self.arabic_raw!r}>"


class Example(Base, TimestampMixin):
    """Example sentence of a word with both glosses."""

    __tablename__ = "examples"

    id = Column(Integer, primary_key=True)
    word_id = Column(String, ForeignKey("words.id"), nullable=False)
    position = Column(Integer, default=0)
    ar = Column(String, nullable=False)
    en = Column(String, default="")
    nl = Column(String, default="")

    # Relationships
    word = relationship("Word", back_populates="examples")

    def to_dict(self) -> dict:
        return {"ar": self.ar, "en": self.en, "nl": self.nl}


class ReviewStateRecord(Base, TimestampMixin):
    """Stored review state of one item for one user."""

    __tablename__ = "review_states"

    id = Column(String, primary_key=True)  # "{user_id}_{item_id}"
    user_id = Column(String, nullable=False, index=True)
    item_id = Column(String, nullable=False)
    due_at = Column(DateTime(timezone=True), nullable=False, index=True)
    interval_days = Column(Integer, default=0)
    ease_factor = Column(Float, default=2.5)
    repetitions = Column(Integer, default=0)
    lapses = Column(Integer, default=0)
    last_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    last_grade = Column(Integer, default=0)
    total_reviews = Column(Integer, default=0)
    success_streak = Column(Integer, default=0)

    def to_state(self) -> ReviewState:
        """Convert to the detached ReviewState value."""
        return ReviewState(
            user_id=self.user_id,
            item_id=self.item_id,
            due_at=as_utc(self.due_at),
            interval_days=self.interval_days,
            ease_factor=self.ease_factor,
            repetitions=self.repetitions,
            lapses=self.lapses,
            last_reviewed_at=as_utc(self.last_reviewed_at),
            last_grade=self.last_grade,
            total_reviews=self.total_reviews,
            success_streak=self.success_streak,
        )

    def update_from_state(self, state: ReviewState) -> None:
        """Copy every scheduling field from a ReviewState."""
        self.user_id = state.user_id
        self.item_id = state.item_id
        self.due_at = state.due_at
        self.interval_days = state.interval_days
        self.ease_factor = state.ease_factor
        self.repetitions = state.repetitions
        self.lapses = state.lapses
        self.last_reviewed_at = state.last_reviewed_at
        self.last_grade = state.last_grade
        self.total_reviews = state.total_reviews
        self.success_streak = state.success_streak

    @classmethod
    def from_state(cls, state: ReviewState) -> "ReviewStateRecord":
        record = cls(id=state_key(state.user_id, state.item_id))
        record.update_from_state(state)
        return record


class DailyStats(Base, TimestampMixin):
    """Per-user per-day review statistics."""

    __tablename__ = "daily_stats"

    id = Column(String, primary_key=True)  # "{user_id}_{date}"
    user_id = Column(String, nullable=False, index=True)
    date = Column(String, nullable=False)  # ISO date, e.g. "2026-10-19"
    reviews_done = Column(Integer, default=0)
    new_learned = Column(Integer, default=0)
    correct = Column(Integer, default=0)
    time_spent_seconds = Column(Integer, default=0)
    accuracy_by_mode = Column(JSON, default=dict)  # mode -> {"correct": n, "total": n}

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "reviews_done": self.reviews_done,
            "new_learned": self.new_learned,
            "correct": self.correct,
            "time_spent_seconds": self.time_spent_seconds,
            "accuracy_by_mode": dict(self.accuracy_by_mode or {}),
        }
