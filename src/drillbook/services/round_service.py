"""Round engine: bounded practice sessions with per-word goals."""
import logging
import random
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from drillbook.config import settings
from drillbook.errors import ConflictError, NotFoundError, ValidationError, report
from drillbook.models.base import atomic, utcnow
from drillbook.models.models import ROUND_ACTIVE, ROUND_DONE, Attempt, Round, RoundItem
from drillbook.models.projections import RoundState
from drillbook.monitoring import (
    attempt_time,
    record_retries,
    round_attempts,
    rounds_completed,
    rounds_started,
)
from drillbook.owner import Owner
from drillbook.services.attempt_service import validate_time_ms

logger = logging.getLogger(__name__)


def is_item_solved(
    reps_done: int,
    best_time_ms: Optional[int],
    reps_per_word: int,
    max_time_ms: Optional[int] = None,
) -> bool:
    """Whether an item has met the round's repetition and time goals."""
    if reps_done < reps_per_word:
        return False
    if max_time_ms is None:
        return True
    return best_time_ms is not None and best_time_ms <= max_time_ms


def validate_round_policy(reps_per_word: int, max_time_ms: Optional[int]) -> None:
    """Check the target policy a round is created with."""
    if isinstance(reps_per_word, bool) or not isinstance(reps_per_word, int):
        raise ValidationError("Repetitions per word must be a whole number")
    if reps_per_word < 1:
        raise ValidationError("Repetitions per word must be at least 1")
    if max_time_ms is not None:
        if isinstance(max_time_ms, bool) or not isinstance(max_time_ms, int):
            raise ValidationError("Max time must be a whole number of milliseconds")
        if max_time_ms <= 0:
            raise ValidationError("Max time must be positive")


class RoundService:
    """Service owning the round lifecycle.

    Every public method runs in a single transaction. Rounds and items are
    versioned and every record updates its round, so two writers on one
    round take turns: the loser's flush fails and :meth:`record` replays it
    against the winner's committed state.
    """

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def _get_owned(self, owner: Owner, round_id: int) -> Optional[Round]:
        return (
            self.db.query(Round)
            .filter(Round.id == round_id, owner.filter(Round))
            .first()
        )

    def _items(self, round_id: int) -> List[RoundItem]:
        return (
            self.db.query(RoundItem)
            .filter(RoundItem.round_id == round_id)
            .order_by(RoundItem.id)
            .all()
        )

    def start(
        self,
        owner: Owner,
        word_ids: Iterable[int],
        reps_per_word: Optional[int] = None,
        max_time_ms: Optional[int] = None,
    ) -> int:
        """Create an active round with one fresh item per word and return its id."""
        if reps_per_word is None:
            reps_per_word = settings.rounds.default_reps_per_word
        # One item per (round, word); repeated ids keep their first position
        unique_word_ids = list(dict.fromkeys(word_ids))

        with atomic(self.db):
            validate_round_policy(reps_per_word, max_time_ms)
            round_ = Round(
                status=ROUND_ACTIVE,
                reps_per_word=reps_per_word,
                max_time_ms=max_time_ms,
                **owner.columns(),
            )
            self.db.add(round_)
            self.db.flush()

            self.db.add_all(
                [
                    RoundItem(
                        round_id=round_.id,
                        word_id=word_id,
                        reps_done=0,
                        best_time_ms=None,
                        solved=False,
                    )
                    for word_id in unique_word_ids
                ]
            )
            round_id = round_.id

        rounds_started.inc()
        logger.info(
            f"Round {round_id} started with {len(unique_word_ids)} word(s), "
            f"{reps_per_word} rep(s) per word, max time {max_time_ms}"
        )
        return round_id

    def _record_once(
        self,
        owner: Owner,
        round_id: int,
        word_id: int,
        time_ms: int,
        correct: bool,
    ) -> bool:
        """Apply one attempt to its round item. Returns True if the round just finished."""
        self.db.add(
            Attempt(word_id=word_id, correct=correct, time_ms=time_ms, round_id=round_id)
        )

        round_ = self._get_owned(owner, round_id)
        if not round_:
            raise NotFoundError("Round not found")

        item = (
            self.db.query(RoundItem)
            .filter(RoundItem.round_id == round_id, RoundItem.word_id == word_id)
            .first()
        )
        if not item:
            raise NotFoundError("Round item not found")

        item.reps_done += 1 if correct else 0
        if item.best_time_ms is None or time_ms < item.best_time_ms:
            item.best_time_ms = time_ms
        item.solved = item.solved or is_item_solved(
            item.reps_done, item.best_time_ms, round_.reps_per_word, round_.max_time_ms
        )
        round_.updated_at = utcnow()
        # Items are read after the round row is claimed
        self.db.flush()

        if round_.status == ROUND_DONE:
            return False
        if all(i.solved for i in self._items(round_id)):
            round_.status = ROUND_DONE
            return True
        return False

    def record(
        self,
        owner: Owner,
        round_id: int,
        word_id: int,
        time_ms: int,
        correct: bool,
    ) -> None:
        """Record an attempt on a round word and update round progress."""
        correct = bool(correct)
        max_tries = settings.rounds.max_record_retries

        for try_number in range(1, max_tries + 1):
            try:
                with atomic(self.db):
                    time_ms = validate_time_ms(time_ms)
                    finished = self._record_once(owner, round_id, word_id, time_ms, correct)
            except StaleDataError:
                record_retries.inc()
                logger.warning(
                    f"Concurrent update on round {round_id} word {word_id} "
                    f"(try {try_number}/{max_tries})"
                )
                continue

            round_attempts.labels(correct=str(correct).lower()).inc()
            attempt_time.observe(time_ms)
            if finished:
                rounds_completed.inc()
                logger.info(f"Round {round_id} completed")
            return

        raise report(ConflictError("Round was updated concurrently, please retry"))

    def get(self, owner: Owner, round_id: Optional[int]) -> Optional[RoundState]:
        """Project the round for readers, or None if there is nothing to show."""
        if round_id is None:
            return None
        round_ = self._get_owned(owner, round_id)
        if not round_:
            return None
        items = self._items(round_id)
        return RoundState(
            round=round_,
            items=items,
            solved=sum(1 for item in items if item.solved),
            total=len(items),
        )

    def get_active(self, owner: Owner) -> Optional[Round]:
        """Get the owner's most recently started round that is still active."""
        return (
            self.db.query(Round)
            .filter(owner.filter(Round), Round.status == ROUND_ACTIVE)
            .order_by(Round.created_at.desc(), Round.id.desc())
            .first()
        )

    def pick_next_word(self, owner: Owner, round_id: Optional[int]) -> Optional[int]:
        """Pick the next word to practise, preferring items not yet solved."""
        state = self.get(owner, round_id)
        if not state or not state.items:
            return None
        candidates = state.unsolved_items or state.items
        return random.choice(candidates).word_id
