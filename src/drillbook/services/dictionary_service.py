"""Service for managing dictionaries."""
import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from drillbook.errors import ConflictError, NotFoundError, ValidationError
from drillbook.models.base import atomic
from drillbook.models.models import Dictionary, Word
from drillbook.models.projections import DictionarySummary
from drillbook.owner import Owner

logger = logging.getLogger(__name__)


def normalize_dictionary_name(name: str) -> str:
    """Trim a dictionary name and reject blank ones."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Dictionary name cannot be empty")
    return name


class DictionaryService:
    """Service for managing dictionaries."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def _active_query(self, owner: Owner):
        return self.db.query(Dictionary).filter(
            owner.filter(Dictionary),
            Dictionary.active == True,  # noqa: E712
        )

    def get_owned(self, owner: Owner, dictionary_id: int) -> Dictionary:
        """Get an active dictionary owned by ``owner`` or raise NotFoundError."""
        dictionary = self._active_query(owner).filter(Dictionary.id == dictionary_id).first()
        if not dictionary:
            raise NotFoundError("Dictionary not found")
        return dictionary

    def _ensure_unique_name(self, owner: Owner, name: str, exclude_id: Optional[int] = None) -> None:
        query = self._active_query(owner).filter(Dictionary.name == name)
        if exclude_id is not None:
            query = query.filter(Dictionary.id != exclude_id)
        if query.first():
            raise ConflictError("Dictionary with this name already exists")

    def _word_count(self, dictionary_id: int) -> int:
        return (
            self.db.query(func.count(Word.id))
            .filter(Word.dictionary_id == dictionary_id, Word.active == True)  # noqa: E712
            .scalar()
        )

    def create(
        self,
        owner: Owner,
        name: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
    ) -> int:
        """Create a dictionary and return its id."""
        with atomic(self.db):
            name = normalize_dictionary_name(name)
            self._ensure_unique_name(owner, name)
            dictionary = Dictionary(
                name=name,
                description=description,
                color=color,
                active=True,
                **owner.columns(),
            )
            self.db.add(dictionary)
            self.db.flush()
            dictionary_id = dictionary.id
        logger.info(f"Dictionary {dictionary_id} '{name}' created")
        return dictionary_id

    def list(self, owner: Owner) -> List[DictionarySummary]:
        """List active dictionaries with word counts, newest first."""
        dictionaries = (
            self._active_query(owner)
            .order_by(Dictionary.created_at.desc(), Dictionary.id.desc())
            .all()
        )
        return [DictionarySummary(d, self._word_count(d.id)) for d in dictionaries]

    def get(self, owner: Owner, dictionary_id: int) -> DictionarySummary:
        """Get one active dictionary with its word count."""
        with atomic(self.db):
            dictionary = self.get_owned(owner, dictionary_id)
            return DictionarySummary(dictionary, self._word_count(dictionary.id))

    def get_first(self, owner: Owner) -> Optional[Dictionary]:
        """Get the owner's oldest active dictionary, if any."""
        return (
            self._active_query(owner)
            .order_by(Dictionary.created_at, Dictionary.id)
            .first()
        )

    def update(
        self,
        owner: Owner,
        dictionary_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        color: Optional[str] = None,
    ) -> int:
        """Patch the given fields of a dictionary and return its id."""
        with atomic(self.db):
            dictionary = self.get_owned(owner, dictionary_id)
            if name is not None:
                name = normalize_dictionary_name(name)
                self._ensure_unique_name(owner, name, exclude_id=dictionary_id)
                dictionary.name = name
            if description is not None:
                dictionary.description = description
            if color is not None:
                dictionary.color = color
        return dictionary_id

    def remove(self, owner: Owner, dictionary_id: int) -> int:
        """Soft-delete an empty dictionary.

        A dictionary that still holds live words, or the owner's last active
        dictionary, cannot be removed.
        """
        with atomic(self.db):
            dictionary = self.get_owned(owner, dictionary_id)
            if self._word_count(dictionary_id) > 0:
                raise ConflictError(
                    "Cannot delete dictionary that contains words. "
                    "Please move or delete all words first."
                )
            if self._active_query(owner).count() <= 1:
                raise ConflictError("Cannot delete the only remaining dictionary")
            dictionary.active = False
        logger.info(f"Dictionary {dictionary_id} removed")
        return dictionary_id
