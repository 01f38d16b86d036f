"""Tests for learning service."""
import json
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import Mock

import pytest
from faker import Faker
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from kalima.config import PathSettings, Settings
from kalima.models.models import Word
from kalima.models.queue_models import StepKind
from kalima.services.enrichment_service import EnrichmentError, EnrichmentResult
from kalima.services.learning_service import LearningService, PersistenceError

fake = Faker()

ENTRIES = [
    {"ar": "كتاب", "en": "book", "nl": "boek"},
    {"ar": "قلم", "en": "pen", "nl": "pen"},
    {"ar": "بيت", "en": "house", "nl": "huis"},
    {"ar": "شمس", "en": "sun", "nl": "zon"},
    {"ar": "قمر", "en": "moon", "nl": "maan"},
]


@pytest.fixture
def learning_service(db: Session) -> LearningService:
    """Create a learning service with a small collection."""
    service = LearningService(db, seed=7)
    service.words.import_entries(ENTRIES)
    return service


@pytest.fixture
def user_id(learning_service: LearningService, now: datetime) -> str:
    """Create a user with initial review states."""
    user_id = fake.user_name()
    learning_service.initialize_collection(user_id, now)
    return user_id


def _db_error() -> OperationalError:
    return OperationalError("UPDATE review_states", {}, Exception("database is locked"))


def test_initialize_collection(learning_service: LearningService, user_id: str, now: datetime) -> None:
    """Test that every word gets a state once."""
    assert len(learning_service.progress.get_all_states(user_id)) == len(ENTRIES)
    assert learning_service.initialize_collection(user_id, now) == 0


def test_initialize_collection_loads_word_list(db: Session, tmp_path: Path, now: datetime) -> None:
    """Test that an empty collection is filled from the configured word list."""
    path = tmp_path / "words.csv"
    path.write_text("ar,en,nl\nماء,water,water\nباب,door,deur\n", encoding="utf-8")
    config = Settings()
    config.paths = PathSettings(word_list_file=path)

    service = LearningService(db, config=config)

    assert service.initialize_collection("alice", now) == 2
    assert service.words.count() == 2


def test_ordered_words_is_stable_per_user(learning_service: LearningService) -> None:
    """Test that each user gets a fixed word order."""
    first = [word.id for word in learning_service.ordered_words("alice")]
    second = [word.id for word in learning_service.ordered_words("alice")]

    assert first == second
    assert sorted(first) == sorted(word.id for word in learning_service.words.list_words())


def test_daily_plan_caps(learning_service: LearningService, user_id: str, now: datetime) -> None:
    """Test that the daily plan respects the caps."""
    plan = learning_service.get_daily_plan(user_id, new_cap=2, review_cap=10, now=now)

    assert len(plan.new_items) == 2
    assert plan.review_items == []
    assert len(plan.extra_items) == len(ENTRIES) - 2


def test_full_session(learning_service: LearningService, user_id: str, now: datetime) -> None:
    """Test running a session with only correct answers."""
    session = learning_service.start_session(user_id, new_cap=1, review_cap=0, now=now)
    assert [item.step for item in session.queue.items] == [StepKind.INTRO, StepKind.EXERCISE, StepKind.EXERCISE]
    word_id = session.current.word_id

    while not session.is_finished:
        session.answer(correct=True, now=now)
    summary = session.finish()

    state = learning_service.progress.get_state(user_id, word_id)
    assert state.repetitions == 2
    assert state.interval_days == 3
    assert state.total_reviews == 2
    assert summary.reviewed == 2
    assert summary.new_learned == 1
    assert summary.accuracy == 100

    today = learning_service.stats.get_today(user_id)
    assert today.reviews_done == 2
    assert today.new_learned == 1
    assert sum(mode["total"] for mode in today.accuracy_by_mode.values()) == 2


def test_wrong_answer_is_saved(learning_service: LearningService, user_id: str, now: datetime) -> None:
    """Test that a failure is stored and the word comes back."""
    session = learning_service.start_session(user_id, new_cap=1, review_cap=0, now=now)
    session.answer(now=now)
    result = session.answer(correct=False, now=now)

    assert result.requeued is not None
    assert len(session.queue) == 4
    stored = learning_service.progress.get_state(user_id, result.item.word_id)
    assert stored.lapses == 1
    assert stored.due_at == now + timedelta(minutes=10)


def test_due_words_come_back(learning_service: LearningService, user_id: str, now: datetime) -> None:
    """Test that a learned word is reviewed once it is due."""
    session = learning_service.start_session(user_id, new_cap=1, review_cap=0, now=now)
    while not session.is_finished:
        session.answer(correct=True, now=now)

    later = now + timedelta(days=4)
    plan = learning_service.get_daily_plan(user_id, new_cap=0, review_cap=10, now=later)

    assert len(plan.review_items) == 1
    assert plan.review_items[0].word.id == session.queue[0].word_id


def test_failed_save_keeps_state(learning_service: LearningService, user_id: str, now: datetime, mocker) -> None:
    """Test that a failed write raises and is retried with the next answer."""
    session = learning_service.start_session(user_id, new_cap=2, review_cap=0, now=now)
    session.answer(now=now)

    put_states = mocker.patch.object(learning_service.progress, "put_states", side_effect=_db_error())
    with pytest.raises(PersistenceError):
        session.answer(correct=True, now=now)

    assert put_states.call_count == learning_service.config.learning.persist_retries
    assert len(session.unsaved_states) == 1
    assert learning_service.stats.get_today(user_id).reviews_done == 1
    word_id = next(iter(session.unsaved_states))
    assert learning_service.progress.get_state(user_id, word_id).total_reviews == 0

    mocker.stopall()
    while session.unsaved_states and not session.is_finished:
        session.answer(correct=True, now=now)

    assert session.unsaved_states == {}
    assert learning_service.progress.get_state(user_id, word_id).total_reviews >= 1


def test_save_succeeds_after_retry(learning_service: LearningService, user_id: str, now: datetime, mocker) -> None:
    """Test that one failed attempt is retried within the same answer."""
    session = learning_service.start_session(user_id, new_cap=1, review_cap=0, now=now)
    session.answer(now=now)

    put_states = mocker.patch.object(learning_service.progress, "put_states", side_effect=[_db_error(), 1])
    session.answer(correct=True, now=now)

    assert put_states.call_count == 2
    assert session.unsaved_states == {}


def test_status_counts(learning_service: LearningService, user_id: str, now: datetime) -> None:
    """Test counting words per status."""
    session = learning_service.start_session(user_id, new_cap=1, review_cap=0, now=now)
    while not session.is_finished:
        session.answer(correct=True, now=now)

    counts = learning_service.status_counts(user_id, now)

    assert counts["new"] == len(ENTRIES) - 1
    assert counts["learning"] == 1
    assert counts["due"] == 0
    assert counts["mastered"] == 0
    assert counts["total"] == len(ENTRIES)


def test_hardest_words(learning_service: LearningService, user_id: str, now: datetime) -> None:
    """Test listing words by lapses."""
    session = learning_service.start_session(user_id, new_cap=1, review_cap=0, now=now)
    session.answer(now=now)
    session.answer(correct=False, now=now)

    hardest = learning_service.hardest_words(user_id)

    assert len(hardest) == 1
    assert hardest[0].lapses == 1


def test_reset_word(learning_service: LearningService, user_id: str, now: datetime) -> None:
    """Test starting one word over."""
    session = learning_service.start_session(user_id, new_cap=1, review_cap=0, now=now)
    session.answer(now=now)
    result = session.answer(correct=True, now=now)

    state = learning_service.reset_word(user_id, result.item.word_id, now)

    assert state.total_reviews == 0
    with pytest.raises(ValueError):
        learning_service.reset_word(user_id, "w0", now)


def test_reset_progress(learning_service: LearningService, user_id: str, now: datetime) -> None:
    """Test dropping all progress of a user."""
    session = learning_service.start_session(user_id, new_cap=2, review_cap=0, now=now)
    while not session.is_finished:
        session.answer(correct=True, now=now)

    assert learning_service.reset_progress(user_id, now) == len(ENTRIES)
    assert learning_service.status_counts(user_id, now)["new"] == len(ENTRIES)
    assert learning_service.stats.get_all(user_id) == []


def test_export_import(learning_service: LearningService, user_id: str, now: datetime) -> None:
    """Test copying progress to another user through an export."""
    session = learning_service.start_session(user_id, new_cap=1, review_cap=0, now=now)
    while not session.is_finished:
        session.answer(correct=True, now=now)

    payload = learning_service.export_user_data(user_id)
    data = json.loads(payload)
    assert len(data["words"]) == len(ENTRIES)
    assert len(data["srs"]) == len(ENTRIES)

    imported = learning_service.import_user_data("copy", payload)

    assert imported["srs"] == len(ENTRIES)
    assert imported["stats"] == 1
    assert learning_service.status_counts("copy", now) == learning_service.status_counts(user_id, now)


def test_export_import_keeps_enrichment(db: Session, learning_service: LearningService, user_id: str) -> None:
    """Test that enriched word content survives an export and import."""
    word = learning_service.words.get_word_by_arabic("كتاب")
    learning_service.words.update_word(
        word.id,
        arabic_vowelized="كِتَاب",
        transliteration="kitaab",
        pos="noun",
        synonyms_en=["volume"],
        notes="Plural: كتب",
        ai_generated=True,
    )
    learning_service.words.set_examples(word, [{"ar": "هذا كتاب", "en": "This is a book", "nl": "Dit is een boek"}])
    payload = learning_service.export_user_data(user_id)

    db.delete(word)
    db.commit()
    learning_service.import_user_data(user_id, payload)

    restored = learning_service.words.get_word_by_arabic("كتاب")
    assert restored.english == "book"
    assert restored.arabic_vowelized == "كِتَاب"
    assert restored.transliteration == "kitaab"
    assert restored.pos == "noun"
    assert restored.synonyms_en == ["volume"]
    assert restored.notes == "Plural: كتب"
    assert restored.ai_generated is True
    assert [example.ar for example in restored.examples] == ["هذا كتاب"]


def test_import_updates_existing_word(learning_service: LearningService, user_id: str) -> None:
    """Test that an import overwrites the stored content of a known word."""
    payload = json.loads(learning_service.export_user_data(user_id))
    for entry in payload["words"]:
        if entry["arabic_raw"] == "قلم":
            entry["transliteration"] = "qalam"

    learning_service.import_user_data(user_id, json.dumps(payload))

    assert learning_service.words.get_word_by_arabic("قلم").transliteration == "qalam"


def test_enrich_word(learning_service: LearningService) -> None:
    """Test storing enrichment content."""
    word = learning_service.words.get_word_by_arabic("كتاب")
    enrichment = Mock()
    enrichment.enrich.return_value = EnrichmentResult(
        arabic_vowelized="كِتَاب",
        examples=[{"ar": "هذا كتاب", "en": "This is a book", "nl": "Dit is een boek"}],
    )
    learning_service._enrichment = enrichment

    enriched = learning_service.enrich_word(word.id)

    assert enriched.display_arabic == "كِتَاب"
    assert len(enriched.examples) == 1


def test_enrich_word_failure(learning_service: LearningService) -> None:
    """Test that a failed enrichment is flagged on the word."""
    word: Word = learning_service.words.get_word_by_arabic("قلم")
    enrichment = Mock()
    enrichment.enrich.side_effect = EnrichmentError("no content")
    learning_service._enrichment = enrichment

    with pytest.raises(EnrichmentError):
        learning_service.enrich_word(word.id)

    assert learning_service.words.get_word(word.id).ai_error is True
