"""Service for recording free practice attempts."""
import logging
from typing import List

from sqlalchemy.orm import Session

from drillbook.errors import ValidationError
from drillbook.models.base import atomic
from drillbook.models.models import Attempt
from drillbook.monitoring import attempt_time, attempts_recorded
from drillbook.owner import Owner
from drillbook.services.word_service import WordService

logger = logging.getLogger(__name__)


def validate_time_ms(time_ms: int) -> int:
    """Reject negative or non-numeric stopwatch readings."""
    if isinstance(time_ms, bool) or not isinstance(time_ms, (int, float)):
        raise ValidationError("Time must be a number of milliseconds")
    if time_ms < 0:
        raise ValidationError("Time cannot be negative")
    return int(round(time_ms))


class AttemptService:
    """Service for recording free practice attempts."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db
        self.words = WordService(db)

    def record(self, owner: Owner, word_id: int, correct: bool, time_ms: int) -> int:
        """Append an attempt for one of the owner's words and return its id."""
        with atomic(self.db):
            time_ms = validate_time_ms(time_ms)
            self.words.get_owned(owner, word_id)
            attempt = Attempt(
                word_id=word_id,
                correct=bool(correct),
                time_ms=time_ms,
                **owner.columns(),
            )
            self.db.add(attempt)
            self.db.flush()
            attempt_id = attempt.id

        attempts_recorded.labels(correct=str(bool(correct)).lower()).inc()
        attempt_time.observe(time_ms)
        return attempt_id

    def history(self, owner: Owner, word_id: int) -> List[Attempt]:
        """All attempts of one of the owner's words, oldest first, including reset ones."""
        with atomic(self.db):
            self.words.get_owned(owner, word_id)
            return (
                self.db.query(Attempt)
                .filter(Attempt.word_id == word_id)
                .order_by(Attempt.created_at, Attempt.id)
                .all()
            )
