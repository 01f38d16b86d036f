"""Per-user daily review statistics."""
import logging
from datetime import UTC, date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from kalima.models.models import DailyStats

logger = logging.getLogger(__name__)

MAX_STREAK_DAYS = 365


def today_key(today: Optional[date] = None) -> str:
    """ISO date of today in UTC."""
    return (today or datetime.now(UTC).date()).isoformat()


def stats_key(user_id: str, day: str) -> str:
    return f"{user_id}_{day}"


class StatsService:
    """Records and summarizes review activity per day."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def get_today(self, user_id: str, today: Optional[date] = None) -> DailyStats:
        """Get today's stats row, creating it when missing."""
        day = today_key(today)
        stats = self.db.get(DailyStats, stats_key(user_id, day))
        if stats is None:
            stats = DailyStats(
                id=stats_key(user_id, day),
                user_id=user_id,
                date=day,
                reviews_done=0,
                new_learned=0,
                correct=0,
                time_spent_seconds=0,
                accuracy_by_mode={},
            )
            self.db.add(stats)
            self.db.commit()
        return stats

    def record_exercise(
        self,
        user_id: str,
        exercise_type: str,
        correct: bool,
        is_new: bool,
        today: Optional[date] = None,
    ) -> DailyStats:
        """Count one completed exercise."""
        stats = self.get_today(user_id, today)
        stats.reviews_done += 1
        if is_new:
            stats.new_learned += 1
        if correct:
            stats.correct += 1

        # JSON columns only notice reassignment
        accuracy = {mode: dict(counts) for mode, counts in (stats.accuracy_by_mode or {}).items()}
        counts = accuracy.setdefault(exercise_type, {"correct": 0, "total": 0})
        counts["total"] += 1
        if correct:
            counts["correct"] += 1
        stats.accuracy_by_mode = accuracy

        self.db.commit()
        return stats

    def add_time(self, user_id: str, seconds: int, today: Optional[date] = None) -> DailyStats:
        """Add study time to today's stats."""
        stats = self.get_today(user_id, today)
        stats.time_spent_seconds += max(int(seconds), 0)
        self.db.commit()
        return stats

    def get_all(self, user_id: str) -> List[DailyStats]:
        """Get all stats rows of a user, oldest first."""
        return (
            self.db.query(DailyStats)
            .filter(DailyStats.user_id == user_id)
            .order_by(DailyStats.date)
            .all()
        )

    def current_streak(self, user_id: str, today: Optional[date] = None) -> int:
        """Count consecutive study days up to today.

        A day without reviews today does not break a streak that ran until
        yesterday.
        """
        active = {stats.date for stats in self.get_all(user_id) if stats.reviews_done > 0}
        if not active:
            return 0

        day = today or datetime.now(UTC).date()
        streak = 0
        for offset in range(MAX_STREAK_DAYS):
            if (day - timedelta(days=offset)).isoformat() in active:
                streak += 1
            elif offset > 0:
                break
        return streak

    def totals(self, user_id: str) -> Dict[str, int]:
        """Lifetime totals of a user."""
        rows = self.get_all(user_id)
        return {
            "reviews_done": sum(row.reviews_done for row in rows),
            "new_learned": sum(row.new_learned for row in rows),
            "correct": sum(row.correct for row in rows),
            "time_spent_seconds": sum(row.time_spent_seconds for row in rows),
            "active_days": sum(1 for row in rows if row.reviews_done > 0),
        }
