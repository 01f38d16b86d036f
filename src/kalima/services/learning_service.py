"""Learning service for building daily sessions and recording reviews."""
import json
import logging
import random
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kalima.config import Settings, settings as default_settings
from kalima.models.models import Word
from kalima.models.queue_models import DailyPlan, QueueItem, StepResult
from kalima.models.srs_models import ItemStatus, ReviewState
from kalima.services import srs
from kalima.services.enrichment_service import EnrichmentError, EnrichmentService
from kalima.services.progress_service import ProgressService
from kalima.services.queue_builder import SessionQueue, SessionQueueBuilder
from kalima.services.stats_service import StatsService
from kalima.services.word_service import WordService

logger = logging.getLogger(__name__)

# Word fields an import never writes; examples are replaced separately
IMMUTABLE_WORD_FIELDS = {"id", "arabic_raw", "examples"}


class PersistenceError(RuntimeError):
    """Raised when a review state could not be written after all retries."""


@dataclass
class SessionSummary:
    """Running totals of one session."""
    reviewed: int = 0
    new_learned: int = 0
    correct: int = 0
    requeued: int = 0

    @property
    def accuracy(self) -> int:
        """Share of correct answers in percent."""
        return round(self.correct / self.reviewed * 100) if self.reviewed else 0


class LearningSession:
    """One user's run through a session queue.

    Every completed exercise is written to the progress store right away. A
    failed write keeps the state in ``unsaved_states``; it is written again
    before the next one and the failure is raised to the caller.
    """

    def __init__(
        self,
        user_id: str,
        queue: SessionQueue,
        progress: ProgressService,
        stats: StatsService,
        retries: int = 3,
    ):
        self.user_id = user_id
        self.queue = queue
        self.progress = progress
        self.stats = stats
        self.retries = retries
        self.summary = SessionSummary()
        self.unsaved_states: Dict[str, ReviewState] = {}
        self._started = time.monotonic()

    @property
    def current(self) -> Optional[QueueItem]:
        return self.queue.current

    @property
    def is_finished(self) -> bool:
        return self.queue.is_finished

    def answer(
        self,
        correct: Optional[bool] = None,
        grade: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> StepResult:
        """Complete the current step and store the outcome."""
        result = self.queue.complete_current(correct=correct, grade=grade, now=now)
        if result.new_state is None:
            return result

        item = result.item
        self.summary.reviewed += 1
        if result.correct:
            self.summary.correct += 1
        if item.is_new:
            self.summary.new_learned += 1
        if result.requeued is not None:
            self.summary.requeued += 1

        self._record_stats(item, bool(result.correct))
        self.unsaved_states[result.new_state.item_id] = result.new_state
        self.flush()
        return result

    def flush(self) -> None:
        """Write pending states, retrying before giving up."""
        if not self.unsaved_states:
            return

        pending = list(self.unsaved_states.values())
        last_error: Optional[Exception] = None
        for attempt in range(1, self.retries + 1):
            try:
                self.progress.put_states(pending)
                self.unsaved_states.clear()
                return
            except SQLAlchemyError as e:
                self.progress.db.rollback()
                last_error = e
                logger.warning(
                    f"Saving {len(pending)} review states for user {self.user_id} failed "
                    f"(attempt {attempt}/{self.retries}): {e}"
                )

        logger.error(f"Could not save review states for user {self.user_id}: {last_error}")
        raise PersistenceError(
            f"Could not save {len(pending)} review states for user {self.user_id}"
        ) from last_error

    def _record_stats(self, item: QueueItem, correct: bool) -> None:
        try:
            self.stats.record_exercise(
                self.user_id,
                item.exercise_type.value,
                correct=correct,
                is_new=item.is_new,
            )
        except SQLAlchemyError as e:
            self.stats.db.rollback()
            logger.error(f"Could not update daily stats for user {self.user_id}: {e}")

    def finish(self) -> SessionSummary:
        """Store time spent and any pending state."""
        self.flush()
        elapsed = round(time.monotonic() - self._started)
        self.stats.add_time(self.user_id, elapsed)
        logger.info(
            f"Session of user {self.user_id} finished: {self.summary.reviewed} reviewed, "
            f"{self.summary.new_learned} new, accuracy {self.summary.accuracy}%"
        )
        return self.summary


class LearningService:
    """Service for managing a user's collection and daily sessions."""

    def __init__(
        self,
        db: Session,
        config: Optional[Settings] = None,
        seed: Optional[int] = None,
        enrichment: Optional[EnrichmentService] = None,
    ):
        """Initialize the service with a database session."""
        self.db = db
        self.config = config or default_settings
        self.seed = seed if seed is not None else self.config.learning.queue_seed
        self.words = WordService(db)
        self.progress = ProgressService(db)
        self.stats = StatsService(db)
        self._enrichment = enrichment

    @property
    def enrichment(self) -> EnrichmentService:
        if self._enrichment is None:
            self._enrichment = EnrichmentService(config=self.config.enrichment)
        return self._enrichment

    def initialize_collection(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Give the user a review state for every word.

        An empty word table is first filled from the configured word list.
        """
        if self.words.count() == 0 and self.config.paths.word_list_file.exists():
            self.words.load_word_list(self.config.paths.word_list_file)
        word_ids = [word.id for word in self.words.list_words()]
        return self.progress.initialize_states(user_id, word_ids, now)

    def get_states_by_item(self, user_id: str) -> Dict[str, ReviewState]:
        return {state.item_id: state for state in self.progress.get_all_states(user_id)}

    def ordered_words(self, user_id: str) -> List[Word]:
        """All words in a per-user order that stays the same between sessions."""
        words = self.words.list_words()
        random.Random(user_id).shuffle(words)
        return words

    def _builder(self) -> SessionQueueBuilder:
        return SessionQueueBuilder(seed=self.seed, params=self.config.scheduler)

    def get_daily_plan(
        self,
        user_id: str,
        new_cap: Optional[int] = None,
        review_cap: Optional[int] = None,
        now: Optional[datetime] = None,
        builder: Optional[SessionQueueBuilder] = None,
    ) -> DailyPlan:
        """Select today's new words and reviews."""
        builder = builder or self._builder()
        return builder.select_daily_plan(
            self.ordered_words(user_id),
            self.get_states_by_item(user_id),
            new_cap if new_cap is not None else self.config.learning.daily_new_target,
            review_cap if review_cap is not None else self.config.learning.daily_review_target,
            now=now,
            backfill=self.config.learning.backfill_learning,
        )

    def start_session(
        self,
        user_id: str,
        new_cap: Optional[int] = None,
        review_cap: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> LearningSession:
        """Build today's queue and wrap it in a session."""
        builder = self._builder()
        plan = self.get_daily_plan(user_id, new_cap, review_cap, now, builder=builder)
        queue = builder.build(plan)
        logger.info(f"Started session for user {user_id} with {len(queue)} steps")
        return LearningSession(
            user_id,
            queue,
            self.progress,
            self.stats,
            retries=self.config.learning.persist_retries,
        )

    def status_counts(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, int]:
        """Count the user's words per status."""
        now = now or datetime.now(UTC)
        counts = {status.value: 0 for status in ItemStatus}
        states = self.progress.get_all_states(user_id)
        for state in states:
            counts[srs.status(state, now, self.config.scheduler).value] += 1
        counts["total"] = len(states)
        return counts

    def hardest_words(self, user_id: str, limit: int = 20) -> List[ReviewState]:
        """States with the most lapses first."""
        states = [state for state in self.progress.get_all_states(user_id) if state.lapses > 0]
        states.sort(key=lambda state: state.lapses, reverse=True)
        return states[:limit]

    def reset_word(self, user_id: str, item_id: str, now: Optional[datetime] = None) -> ReviewState:
        """Start a single word over."""
        if self.words.get_word(item_id) is None:
            raise ValueError(f"Word {item_id} not found")
        return self.progress.reset_item(user_id, item_id, now)

    def reset_progress(self, user_id: str, now: Optional[datetime] = None) -> int:
        """Drop all progress of a user and recreate the initial states."""
        self.progress.reset_user(user_id)
        return self.initialize_collection(user_id, now)

    def enrich_word(self, word_id: str) -> Word:
        """Fetch enrichment content for a word and store it."""
        word = self.words.get_word(word_id)
        if word is None:
            raise ValueError(f"Word {word_id} not found")
        try:
            result = self.enrichment.enrich(word)
        except EnrichmentError:
            self.words.mark_enrichment_failed(word)
            raise
        return self.words.apply_enrichment(word, result)

    def add_more_examples(self, word_id: str) -> Word:
        """Append freshly generated example sentences to a word."""
        word = self.words.get_word(word_id)
        if word is None:
            raise ValueError(f"Word {word_id} not found")
        return self.words.add_examples(word, self.enrichment.generate_more_examples(word))

    def export_user_data(self, user_id: str) -> str:
        """Dump words, review states and stats of a user as JSON."""
        data = {
            "words": [self.words.get_word_details(word.id) for word in self.words.list_words()],
            "srs": [state.to_dict() for state in self.progress.get_all_states(user_id)],
            "stats": [row.to_dict() for row in self.stats.get_all(user_id)],
        }
        return json.dumps(data, ensure_ascii=False, indent=2)

    def import_user_data(self, user_id: str, payload: str) -> Dict[str, int]:
        """Load data produced by export_user_data into the given user."""
        data = json.loads(payload)
        imported = {"words": 0, "srs": 0, "stats": 0}

        if data.get("words"):
            for entry in data["words"]:
                words = self.words.import_entries(
                    [{"ar": entry["arabic_raw"], "en": entry.get("english", ""), "nl": entry.get("dutch", "")}]
                )
                if not words:
                    continue
                fields = {key: value for key, value in entry.items() if key not in IMMUTABLE_WORD_FIELDS}
                self.words.update_word(words[0].id, **fields)
                if "examples" in entry:
                    self.words.set_examples(words[0], entry["examples"])
                imported["words"] += 1

        if data.get("srs"):
            states = []
            for raw in data["srs"]:
                state = ReviewState.from_dict({**raw, "user_id": user_id})
                states.append(state)
            imported["srs"] = self.progress.put_states(states)

        if data.get("stats"):
            for raw in data["stats"]:
                stats = self.stats.get_today(user_id, datetime.fromisoformat(raw["date"]).date())
                stats.reviews_done = raw.get("reviews_done", 0)
                stats.new_learned = raw.get("new_learned", 0)
                stats.correct = raw.get("correct", 0)
                stats.time_spent_seconds = raw.get("time_spent_seconds", 0)
                stats.accuracy_by_mode = raw.get("accuracy_by_mode", {})
                imported["stats"] += 1
            self.db.commit()

        logger.info(f"Imported data for user {user_id}: {imported}")
        return imported
