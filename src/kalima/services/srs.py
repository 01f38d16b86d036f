"""SM-2 review scheduler.

Pure functions over a ReviewState; nothing here touches the database.

Grades run from 0 to 5. Grades 0-2 are failures: the item is reset and comes
back after a short relearning gap. Grades 3-5 are successes: the interval
grows along the 1 day, 3 days, previous interval x ease factor ladder, and the
ease factor moves by ``0.1 - (5 - grade) * (0.08 + (5 - grade) * 0.02)`` with
a floor of 1.3.
"""
import logging
import math
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Optional

from kalima.config import SchedulerSettings, settings
from kalima.models.srs_models import (
    MAX_GRADE,
    MIN_GRADE,
    PASSING_GRADE,
    ItemStatus,
    ReviewState,
)

logger = logging.getLogger(__name__)


class InvalidGradeError(ValueError):
    """Raised when a grade is not an integer between 0 and 5."""


def _now() -> datetime:
    return datetime.now(UTC)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def create_initial_state(
    user_id: str,
    item_id: str,
    now: Optional[datetime] = None,
    params: Optional[SchedulerSettings] = None,
) -> ReviewState:
    """Create the state of an item the user has never reviewed.

    The item is due immediately, which makes it eligible as a new item.
    """
    params = params or settings.scheduler
    return ReviewState(
        user_id=user_id,
        item_id=item_id,
        due_at=now or _now(),
        interval_days=0,
        ease_factor=params.initial_ease,
        repetitions=0,
        lapses=0,
        last_reviewed_at=None,
        last_grade=0,
        total_reviews=0,
        success_streak=0,
    )


def validate_grade(grade: int) -> int:
    """Reject anything that is not an integer grade in 0-5."""
    if isinstance(grade, bool) or not isinstance(grade, int):
        raise InvalidGradeError(f"Grade must be an integer, got {grade!r}")
    if grade < MIN_GRADE or grade > MAX_GRADE:
        raise InvalidGradeError(f"Grade must be between {MIN_GRADE} and {MAX_GRADE}, got {grade}")
    return grade


def grade_for_answer(correct: bool, params: Optional[SchedulerSettings] = None) -> int:
    """Map a correct/incorrect verdict to a grade."""
    params = params or settings.scheduler
    return params.correct_grade if correct else params.incorrect_grade


def next_ease(ease_factor: float, grade: int, min_ease: float = 1.3) -> float:
    """SM-2 ease factor update."""
    miss = MAX_GRADE - grade
    return max(min_ease, ease_factor + 0.1 - miss * (0.08 + miss * 0.02))


def advance(
    state: ReviewState,
    grade: int,
    now: Optional[datetime] = None,
    params: Optional[SchedulerSettings] = None,
) -> ReviewState:
    """Apply one review to a state and return the new state.

    The given state is left untouched.
    """
    validate_grade(grade)
    params = params or settings.scheduler
    now = now or _now()

    new_state = replace(
        state,
        last_grade=grade,
        last_reviewed_at=now,
        total_reviews=state.total_reviews + 1,
    )

    if grade < PASSING_GRADE:
        new_state.repetitions = 0
        new_state.interval_days = 0
        new_state.lapses = state.lapses + 1
        new_state.success_streak = 0
        new_state.due_at = now + timedelta(minutes=params.relearn_gap_minutes)
        logger.debug(f"Lapse on {state.item_id} for {state.user_id}, due again at {new_state.due_at}")
        return new_state

    new_state.success_streak = state.success_streak + 1
    if state.repetitions == 0:
        new_state.interval_days = params.first_interval_days
    elif state.repetitions == 1:
        new_state.interval_days = params.second_interval_days
    else:
        new_state.interval_days = _round_half_up(state.interval_days * state.ease_factor)
    new_state.repetitions = state.repetitions + 1
    new_state.ease_factor = next_ease(state.ease_factor, grade, params.min_ease)
    new_state.due_at = now + timedelta(days=new_state.interval_days)
    logger.debug(
        f"Success on {state.item_id} for {state.user_id}: interval {new_state.interval_days}d, "
        f"ease {new_state.ease_factor:.2f}"
    )
    return new_state


def is_new(state: ReviewState) -> bool:
    """True when the item was never reviewed."""
    return state.total_reviews == 0


def is_due(state: ReviewState, now: Optional[datetime] = None) -> bool:
    """True when the scheduled review time has passed."""
    return state.due_at <= (now or _now())


def is_mastered(state: ReviewState, params: Optional[SchedulerSettings] = None) -> bool:
    """True for a long interval backed by a success streak."""
    params = params or settings.scheduler
    return (
        state.interval_days >= params.mastery_interval_days
        and state.success_streak >= params.mastery_streak
    )


def is_learning(state: ReviewState, params: Optional[SchedulerSettings] = None) -> bool:
    """True for reviewed items that are not mastered yet."""
    return not is_new(state) and not is_mastered(state, params)


def status(
    state: ReviewState,
    now: Optional[datetime] = None,
    params: Optional[SchedulerSettings] = None,
) -> ItemStatus:
    """Classify a state as new, mastered, due or learning, in that order."""
    if is_new(state):
        return ItemStatus.NEW
    if is_mastered(state, params):
        return ItemStatus.MASTERED
    if is_due(state, now):
        return ItemStatus.DUE
    return ItemStatus.LEARNING
