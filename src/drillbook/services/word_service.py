"""Service for managing words and their practice statistics."""
import logging
import math
import random
from typing import Iterable, List, Optional, Sequence, Union

from sqlalchemy.orm import Session

from drillbook.errors import ConflictError, NotFoundError, ValidationError
from drillbook.models.base import atomic, utcnow
from drillbook.models.models import Attempt, Word
from drillbook.models.projections import WordStats, WordWithStats
from drillbook.monitoring import words_added, words_deleted
from drillbook.owner import Owner
from drillbook.services.dictionary_service import DictionaryService

logger = logging.getLogger(__name__)


def normalize_word_text(text: str) -> str:
    """Trim and lowercase a word, rejecting blank input."""
    text = (text or "").strip().lower()
    if not text:
        raise ValidationError("Word cannot be empty")
    return text


def median(values: Sequence[int]) -> Optional[int]:
    """Median of ``values``; even-length input averages the middle pair, half up."""
    if not values:
        return None
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return math.floor((ordered[mid - 1] + ordered[mid]) / 2 + 0.5)


def compute_word_stats(attempts: Iterable[Attempt]) -> WordStats:
    """Aggregate a word's attempts into total, accuracy, typical and best time."""
    attempts = list(attempts)
    total = len(attempts)
    if total == 0:
        return WordStats()

    correct_times = [a.time_ms for a in attempts if a.correct]
    return WordStats(
        total=total,
        correct_rate=len(correct_times) / total,
        typical_time_ms=median([a.time_ms for a in attempts]),
        high_score_ms=min(correct_times) if correct_times else None,
    )


class WordService:
    """Service for managing words and their practice statistics."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db
        self.dictionaries = DictionaryService(db)

    def get_owned(self, owner: Owner, word_id: int) -> Word:
        """Get an active word owned by ``owner`` or raise NotFoundError."""
        word = (
            self.db.query(Word)
            .filter(
                Word.id == word_id,
                Word.active == True,  # noqa: E712
                owner.filter(Word),
            )
            .first()
        )
        if not word:
            raise NotFoundError("Word not found")
        return word

    def _active_words(self, dictionary_id: int) -> List[Word]:
        return (
            self.db.query(Word)
            .filter(Word.dictionary_id == dictionary_id, Word.active == True)  # noqa: E712
            .all()
        )

    def add(
        self,
        owner: Owner,
        text: str,
        dictionary_id: int,
        tags: Optional[List[str]] = None,
        grade_level: Optional[Union[str, int]] = None,
    ) -> int:
        """Add a word to one of the owner's dictionaries and return its id."""
        with atomic(self.db):
            text = normalize_word_text(text)
            self.dictionaries.get_owned(owner, dictionary_id)
            existing = (
                self.db.query(Word)
                .filter(
                    Word.text == text,
                    Word.dictionary_id == dictionary_id,
                    Word.active == True,  # noqa: E712
                )
                .first()
            )
            if existing:
                raise ConflictError("Word already exists in this dictionary")

            word = Word(
                text=text,
                dictionary_id=dictionary_id,
                active=True,
                tags=list(tags or []),
                grade_level=str(grade_level) if grade_level is not None else None,
                **owner.columns(),
            )
            self.db.add(word)
            self.db.flush()
            word_id = word.id

        words_added.inc()
        logger.info(f"Word {word_id} '{text}' added to dictionary {dictionary_id}")
        return word_id

    def get_stats(self, word: Word) -> WordStats:
        """Compute statistics for one word, honouring its reset cutoff."""
        query = self.db.query(Attempt).filter(Attempt.word_id == word.id)
        if word.reset_at is not None:
            query = query.filter(Attempt.created_at > word.reset_at)
        return compute_word_stats(query.all())

    def list_with_stats(self, owner: Owner, dictionary_id: int) -> List[WordWithStats]:
        """List the dictionary's active words with statistics, sorted by text."""
        with atomic(self.db):
            self.dictionaries.get_owned(owner, dictionary_id)
            result = [WordWithStats(word, self.get_stats(word)) for word in self._active_words(dictionary_id)]
        result.sort(key=lambda item: item.text)
        return result

    def reset_stats(
        self,
        owner: Owner,
        word_id: Optional[int] = None,
        dictionary_id: Optional[int] = None,
    ) -> None:
        """Hide existing attempts from statistics without deleting them.

        Resets one word, every word of a dictionary, or every word the owner
        has, depending on which id is given.
        """
        timestamp = utcnow()
        with atomic(self.db):
            if word_id is not None and dictionary_id is not None:
                raise ValidationError("Pass either a word id or a dictionary id, not both")
            if word_id is not None:
                words = [self.get_owned(owner, word_id)]
            elif dictionary_id is not None:
                self.dictionaries.get_owned(owner, dictionary_id)
                words = (
                    self.db.query(Word)
                    .filter(Word.dictionary_id == dictionary_id, owner.filter(Word))
                    .all()
                )
            else:
                words = self.db.query(Word).filter(owner.filter(Word)).all()

            for word in words:
                word.reset_at = timestamp
        logger.info(f"Statistics reset for {len(words)} word(s)")

    def deactivate(self, owner: Owner, word_id: int) -> Word:
        """Soft-delete a word. Does not commit."""
        word = self.get_owned(owner, word_id)
        word.active = False
        return word

    def purge_attempts(self, word_id: int) -> int:
        """Hard-delete every attempt of a word. Does not commit."""
        return (
            self.db.query(Attempt)
            .filter(Attempt.word_id == word_id)
            .delete(synchronize_session=False)
        )

    def delete_word(self, owner: Owner, word_id: int) -> bool:
        """Soft-delete a word and purge its attempt history in one transaction."""
        with atomic(self.db):
            self.deactivate(owner, word_id)
            purged = self.purge_attempts(word_id)
        words_deleted.inc()
        logger.info(f"Word {word_id} deleted, {purged} attempt(s) purged")
        return True

    def pick_random_word(self, owner: Owner, dictionary_id: int) -> Optional[int]:
        """Pick a random active word of the dictionary for free practice."""
        with atomic(self.db):
            self.dictionaries.get_owned(owner, dictionary_id)
            words = self._active_words(dictionary_id)
        if not words:
            return None
        return random.choice(words).id

    def count_words(self, owner: Owner, dictionary_id: Optional[int] = None) -> int:
        """Count the owner's active words, optionally within one dictionary."""
        query = self.db.query(Word).filter(owner.filter(Word), Word.active == True)  # noqa: E712
        if dictionary_id is not None:
            query = query.filter(Word.dictionary_id == dictionary_id)
        return query.count()
