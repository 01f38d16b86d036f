"""Progress store: per-user review states."""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from kalima.models.models import DailyStats, ReviewStateRecord
from kalima.models.srs_models import ReviewState, state_key
from kalima.services import srs

logger = logging.getLogger(__name__)


class ProgressService:
    """Reads and writes review states of a user's collection."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def _get_record(self, user_id: str, item_id: str) -> Optional[ReviewStateRecord]:
        return self.db.get(ReviewStateRecord, state_key(user_id, item_id))

    def get_state(self, user_id: str, item_id: str) -> Optional[ReviewState]:
        """Get the review state of one item."""
        record = self._get_record(user_id, item_id)
        return record.to_state() if record else None

    def get_all_states(self, user_id: str) -> List[ReviewState]:
        """Get all review states of a user."""
        records = (
            self.db.query(ReviewStateRecord)
            .filter(ReviewStateRecord.user_id == user_id)
            .all()
        )
        return [record.to_state() for record in records]

    def put_state(self, state: ReviewState) -> None:
        """Insert or replace a review state."""
        self._upsert(state)
        self.db.commit()

    def put_states(self, states: Iterable[ReviewState]) -> int:
        """Insert or replace several review states in one transaction."""
        count = 0
        for state in states:
            self._upsert(state)
            count += 1
        self.db.commit()
        return count

    def _upsert(self, state: ReviewState) -> None:
        record = self._get_record(state.user_id, state.item_id)
        if record is None:
            self.db.add(ReviewStateRecord.from_state(state))
        else:
            record.update_from_state(state)

    def initialize_states(
        self, user_id: str, item_ids: Iterable[str], now: Optional[datetime] = None
    ) -> int:
        """Create initial states for items that have none yet."""
        existing = {
            item_id
            for (item_id,) in self.db.query(ReviewStateRecord.item_id)
            .filter(ReviewStateRecord.user_id == user_id)
            .all()
        }
        created = 0
        for item_id in item_ids:
            if item_id in existing:
                continue
            existing.add(item_id)
            self.db.add(ReviewStateRecord.from_state(srs.create_initial_state(user_id, item_id, now)))
            created += 1
        self.db.commit()
        logger.info(f"Initialized {created} review states for user {user_id}")
        return created

    def reset_item(self, user_id: str, item_id: str, now: Optional[datetime] = None) -> ReviewState:
        """Recreate the state of one item at its initial values."""
        state = srs.create_initial_state(user_id, item_id, now)
        self.put_state(state)
        logger.info(f"Reset progress of item {item_id} for user {user_id}")
        return state

    def reset_user(self, user_id: str) -> int:
        """Delete every review state and daily stat of a user."""
        deleted = (
            self.db.query(ReviewStateRecord)
            .filter(ReviewStateRecord.user_id == user_id)
            .delete()
        )
        self.db.query(DailyStats).filter(DailyStats.user_id == user_id).delete()
        self.db.commit()
        logger.info(f"Deleted {deleted} review states for user {user_id}")
        return deleted
