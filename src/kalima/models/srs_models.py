"""Models for spaced-repetition review state."""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

MIN_GRADE = 0
MAX_GRADE = 5
PASSING_GRADE = 3  # 0-2 is a failure, 3-5 a success


class ItemStatus(Enum):
    """Derived status of an item for a user, computed fresh on read."""
    NEW = "new"  # Never reviewed
    LEARNING = "learning"  # Reviewed, mid-interval
    DUE = "due"  # Scheduled review time has passed
    MASTERED = "mastered"  # Long interval with a steady success streak


@dataclass
class ReviewState:
    """Scheduling state of one item for one user."""
    user_id: str
    item_id: str
    due_at: datetime
    interval_days: int = 0
    ease_factor: float = 2.5
    repetitions: int = 0  # Consecutive successes since the last reset
    lapses: int = 0  # Lifetime failures
    last_reviewed_at: Optional[datetime] = None
    last_grade: int = 0
    total_reviews: int = 0
    success_streak: int = 0

    @property
    def id(self) -> str:
        """Storage key of the state."""
        return state_key(self.user_id, self.item_id)

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary."""
        return {
            "user_id": self.user_id,
            "item_id": self.item_id,
            "due_at": self.due_at.isoformat(),
            "interval_days": self.interval_days,
            "ease_factor": self.ease_factor,
            "repetitions": self.repetitions,
            "lapses": self.lapses,
            "last_reviewed_at": self.last_reviewed_at.isoformat() if self.last_reviewed_at else None,
            "last_grade": self.last_grade,
            "total_reviews": self.total_reviews,
            "success_streak": self.success_streak,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ReviewState":
        """Create a ReviewState from a dictionary produced by to_dict."""
        last_reviewed_at = data.get("last_reviewed_at")
        return cls(
            user_id=data["user_id"],
            item_id=data["item_id"],
            due_at=datetime.fromisoformat(data["due_at"]),
            interval_days=int(data.get("interval_days", 0)),
            ease_factor=float(data.get("ease_factor", 2.5)),
            repetitions=int(data.get("repetitions", 0)),
            lapses=int(data.get("lapses", 0)),
            last_reviewed_at=datetime.fromisoformat(last_reviewed_at) if last_reviewed_at else None,
            last_grade=int(data.get("last_grade", 0)),
            total_reviews=int(data.get("total_reviews", 0)),
            success_streak=int(data.get("success_streak", 0)),
        )


def state_key(user_id: str, item_id: str) -> str:
    """Build the storage key for a user's state of an item."""
    return f"{user_id}_{item_id}"
