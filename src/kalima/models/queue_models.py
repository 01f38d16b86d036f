"""Models for session queue data structures."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional

from kalima.models.srs_models import ReviewState


class ExerciseType(Enum):
    """Available exercise types."""
    RECOGNITION = "recognition"  # Arabic shown, pick the meaning
    REVERSE_RECOGNITION = "reverseRecognition"  # Meaning shown, pick the Arabic
    RECALL = "recall"  # Meaning shown, type the Arabic
    CLOZE = "cloze"  # Fill the word into an example sentence
    LISTENING = "listening"  # Hear the word, pick the meaning


class StepKind(Enum):
    """Kind of a queue step."""
    INTRO = "intro"  # Present a new word, no grading
    EXERCISE = "exercise"  # Graded exercise


@dataclass
class PlanEntry:
    """A word together with its review state snapshot."""
    word: Any  # Word
    state: ReviewState


@dataclass
class DailyPlan:
    """Words selected for today's session."""
    new_items: List[PlanEntry] = field(default_factory=list)
    review_items: List[PlanEntry] = field(default_factory=list)
    extra_items: List[PlanEntry] = field(default_factory=list)  # Deferred or mid-interval

    def is_empty(self) -> bool:
        return not self.new_items and not self.review_items


@dataclass
class QueueItem:
    """One step of a session queue."""
    word: Any  # Word
    state: ReviewState
    step: StepKind
    exercise_type: ExerciseType
    is_new: bool = False

    @property
    def word_id(self) -> str:
        return self.word.id


@dataclass
class StepResult:
    """Outcome of completing one queue step."""
    item: QueueItem
    correct: Optional[bool] = None
    grade: Optional[int] = None
    new_state: Optional[ReviewState] = None  # None for intro steps
    requeued: Optional[QueueItem] = None
    requeued_at: Optional[int] = None
