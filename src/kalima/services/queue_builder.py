"""Session queue construction and run-time requeuing.

A session is a single ordered list of steps. New words get an intro step, a
first recognition exercise and a reinforcement exercise a few steps later.
Due reviews are shuffled and dripped in between the new words. Wrong answers
put the word back into the queue a few steps ahead with the easiest exercise.
"""
import logging
import math
import random
from datetime import UTC, datetime
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from kalima.config import SchedulerSettings, settings
from kalima.models.queue_models import (
    DailyPlan,
    ExerciseType,
    PlanEntry,
    QueueItem,
    StepKind,
    StepResult,
)
from kalima.models.srs_models import PASSING_GRADE, ReviewState
from kalima.services import srs

logger = logging.getLogger(__name__)

MAX_REVIEWS_BETWEEN_NEW = 3
REINFORCE_MIN_GAP = 4
REINFORCE_JITTER = 3  # reinforcement lands 5-8 positions after the first exercise
RETRY_MIN_GAP = 3
RETRY_JITTER = 2  # retry lands 3-5 steps ahead of the failed step

WEAK_EASE = 2.0
WEAK_LAPSES = 2
STRONG_EASE = 2.5
STRONG_STREAK = 3


def has_examples(word) -> bool:
    """True when the word has at least one example sentence."""
    return bool(getattr(word, "examples", None))


class SessionQueue:
    """Live queue of one session, consumed one step at a time.

    The queue owns its list of steps; callers read it through ``items`` and
    change it only through ``insert``, ``pop_next`` and ``complete_current``.
    """

    def __init__(
        self,
        items: Optional[Iterable[QueueItem]] = None,
        rng: Optional[random.Random] = None,
        params: Optional[SchedulerSettings] = None,
    ):
        self._items: List[QueueItem] = list(items or [])
        self._cursor = 0
        self.rng = rng or random.Random()
        self.params = params or settings.scheduler
        self._latest: Dict[str, ReviewState] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> QueueItem:
        return self._items[index]

    @property
    def items(self) -> List[QueueItem]:
        """Copy of all steps, completed ones included."""
        return list(self._items)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current(self) -> Optional[QueueItem]:
        """Step to present next, or None once the session is over."""
        if self.is_finished:
            return None
        return self._items[self._cursor]

    @property
    def is_finished(self) -> bool:
        return self._cursor >= len(self._items)

    @property
    def remaining(self) -> int:
        return len(self._items) - self._cursor

    @property
    def latest_states(self) -> Dict[str, ReviewState]:
        """Newest state of every word advanced in this session, by word id."""
        return dict(self._latest)

    def insert(self, index: int, item: QueueItem) -> int:
        """Insert a step ahead of the cursor and return where it landed.

        The index is clamped to the pending part of the queue so completed
        steps and the current step never move.
        """
        lowest = min(self._cursor + 1, len(self._items))
        index = max(lowest, min(index, len(self._items)))
        self._items.insert(index, item)
        return index

    def pop_next(self) -> QueueItem:
        """Return the current step and move past it without grading."""
        if self.is_finished:
            raise IndexError("Session queue is finished")
        item = self._items[self._cursor]
        self._cursor += 1
        return item

    def complete_current(
        self,
        correct: Optional[bool] = None,
        grade: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> StepResult:
        """Complete the current step.

        Intro steps only move the cursor. Exercise steps need either a
        correct/incorrect verdict or an explicit 0-5 grade; the word is
        advanced by the scheduler and a wrong answer is requeued.
        """
        item = self.current
        if item is None:
            raise IndexError("Session queue is finished")

        if item.step is StepKind.INTRO:
            self._cursor += 1
            return StepResult(item=item)

        if grade is None:
            if correct is None:
                raise ValueError("Exercise steps need a verdict or a grade")
            grade = srs.grade_for_answer(correct, self.params)
        else:
            srs.validate_grade(grade)
            correct = grade >= PASSING_GRADE

        previous = self._latest.get(item.word_id, item.state)
        new_state = srs.advance(previous, grade, now=now or datetime.now(UTC), params=self.params)
        self._latest[item.word_id] = new_state
        self._refresh_pending(item.word_id, new_state)

        result = StepResult(item=item, correct=correct, grade=grade, new_state=new_state)
        if not correct:
            result.requeued, result.requeued_at = self.requeue_failed(item, new_state)
        self._cursor += 1
        return result

    def requeue_failed(self, item: QueueItem, state: Optional[ReviewState] = None) -> Tuple[QueueItem, int]:
        """Put a failed word back 3-5 steps ahead with a recognition exercise."""
        retry = QueueItem(
            word=item.word,
            state=state or item.state,
            step=StepKind.EXERCISE,
            exercise_type=ExerciseType.RECOGNITION,
            is_new=False,
        )
        target = self._cursor + RETRY_MIN_GAP + self.rng.randint(0, RETRY_JITTER)
        index = self.insert(target, retry)
        logger.info(f"Requeued word {item.word_id} at position {index} of {len(self._items)}")
        return retry, index

    def _refresh_pending(self, word_id: str, state: ReviewState) -> None:
        for pending in self._items[self._cursor + 1:]:
            if pending.word_id == word_id:
                pending.state = state


class SessionQueueBuilder:
    """Selects today's words and builds the interleaved session queue."""

    def __init__(
        self,
        seed: Optional[int] = None,
        rng: Optional[random.Random] = None,
        params: Optional[SchedulerSettings] = None,
    ):
        self.rng = rng or random.Random(seed)
        self.params = params or settings.scheduler

    def select_daily_plan(
        self,
        words: Iterable,
        states: Mapping[str, ReviewState],
        new_cap: int,
        review_cap: int,
        now: Optional[datetime] = None,
        backfill: bool = False,
    ) -> DailyPlan:
        """Pick at most ``new_cap`` new words and ``review_cap`` due reviews.

        New words keep the order of ``words``. Reviews are taken oldest
        overdue first. Everything not selected, and every mid-interval word,
        goes to ``extra_items``. With ``backfill`` the free review slots are
        filled with mid-interval words, soonest due first.
        """
        now = now or datetime.now(UTC)
        new_candidates: List[PlanEntry] = []
        due_candidates: List[PlanEntry] = []
        learning: List[PlanEntry] = []
        skipped = 0

        for word in words:
            state = states.get(word.id)
            if state is None:
                skipped += 1
                logger.warning(f"Word {word.id} has no review state, skipping it")
                continue
            entry = PlanEntry(word=word, state=state)
            if srs.is_new(state):
                new_candidates.append(entry)
            elif srs.is_due(state, now):
                due_candidates.append(entry)
            elif not srs.is_mastered(state, self.params):
                learning.append(entry)

        due_candidates.sort(key=lambda entry: entry.state.due_at)

        plan = DailyPlan(
            new_items=new_candidates[:max(new_cap, 0)],
            review_items=due_candidates[:max(review_cap, 0)],
        )
        plan.extra_items = (
            new_candidates[max(new_cap, 0):]
            + due_candidates[max(review_cap, 0):]
            + learning
        )

        if backfill:
            free = max(review_cap, 0) - len(plan.review_items)
            if free > 0 and learning:
                learning.sort(key=lambda entry: entry.state.due_at)
                fill = learning[:free]
                plan.review_items.extend(fill)
                plan.extra_items = [e for e in plan.extra_items if all(e is not f for f in fill)]
                logger.info(f"Backfilled {len(fill)} mid-interval words into the review slots")

        logger.info(
            f"Daily plan: {len(plan.new_items)} new, {len(plan.review_items)} reviews, "
            f"{len(plan.extra_items)} deferred, {skipped} skipped"
        )
        return plan

    def pick_exercise_for_new(self) -> ExerciseType:
        """First contact with a word is always recognition."""
        return ExerciseType.RECOGNITION

    def pick_reinforcement_exercise(self) -> ExerciseType:
        """Reinforcement uses a different direction than the intro."""
        return self.rng.choice([ExerciseType.REVERSE_RECOGNITION, ExerciseType.RECALL])

    def pick_exercise_for_review(self, state: ReviewState, with_examples: bool) -> ExerciseType:
        """Match the exercise difficulty to the strength of the item."""
        weak = state.ease_factor < WEAK_EASE or state.lapses > WEAK_LAPSES
        strong = state.ease_factor >= STRONG_EASE and state.success_streak >= STRONG_STREAK

        if weak:
            pool = [ExerciseType.RECOGNITION, ExerciseType.REVERSE_RECOGNITION]
        elif strong:
            pool = [ExerciseType.RECALL, ExerciseType.REVERSE_RECOGNITION]
        else:
            pool = [ExerciseType.RECOGNITION, ExerciseType.REVERSE_RECOGNITION, ExerciseType.RECALL]
        if with_examples and not weak:
            pool.extend([ExerciseType.CLOZE, ExerciseType.LISTENING])
        return self.rng.choice(pool)

    def build(self, plan: DailyPlan) -> SessionQueue:
        """Interleave new words and shuffled reviews into a session queue."""
        reviews = [
            QueueItem(
                word=entry.word,
                state=entry.state,
                step=StepKind.EXERCISE,
                exercise_type=self.pick_exercise_for_review(entry.state, has_examples(entry.word)),
                is_new=False,
            )
            for entry in plan.review_items
        ]
        self.rng.shuffle(reviews)

        queue: List[QueueItem] = []
        pending: Dict[int, QueueItem] = {}  # target index -> reinforcement step
        next_review = 0
        total_new = len(plan.new_items)

        for index, entry in enumerate(plan.new_items):
            remaining_reviews = len(reviews) - next_review
            remaining_new = total_new - index
            batch = min(MAX_REVIEWS_BETWEEN_NEW, math.ceil(remaining_reviews / remaining_new))
            for review in reviews[next_review:next_review + batch]:
                self._append(queue, pending, review)
            next_review += batch

            self._append(queue, pending, QueueItem(
                word=entry.word,
                state=entry.state,
                step=StepKind.INTRO,
                exercise_type=ExerciseType.RECOGNITION,
                is_new=True,
            ))
            first_exercise = len(queue)
            self._append(queue, pending, QueueItem(
                word=entry.word,
                state=entry.state,
                step=StepKind.EXERCISE,
                exercise_type=self.pick_exercise_for_new(),
                is_new=True,
            ))

            # Only the previous word's reinforcement can claim a slot in this window
            window = first_exercise + 1 + REINFORCE_MIN_GAP
            slots = [window + offset for offset in range(REINFORCE_JITTER + 1) if window + offset not in pending]
            pending[self.rng.choice(slots)] = QueueItem(
                word=entry.word,
                state=entry.state,
                step=StepKind.EXERCISE,
                exercise_type=self.pick_reinforcement_exercise(),
                is_new=False,
            )

        for review in reviews[next_review:]:
            self._append(queue, pending, review)

        # Targets past the end of the queue are appended in order
        for target in sorted(pending):
            queue.append(pending[target])

        logger.info(
            f"Built session queue with {len(queue)} steps "
            f"({total_new} new, {len(reviews)} reviews)"
        )
        return SessionQueue(queue, rng=self.rng, params=self.params)

    @staticmethod
    def _append(queue: List[QueueItem], pending: Dict[int, QueueItem], item: QueueItem) -> None:
        """Append a step, then any reinforcement whose target is the next index."""
        queue.append(item)
        while len(queue) in pending:
            queue.append(pending.pop(len(queue)))
