"""One-off back-fills for data created before dictionaries and owners existed."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from drillbook.config import settings
from drillbook.models.base import atomic
from drillbook.models.models import Dictionary, Round, Word
from drillbook.models.projections import MigrationStatus
from drillbook.services.dictionary_service import normalize_dictionary_name

logger = logging.getLogger(__name__)


def _unowned(model):
    return and_(model.user_id.is_(None), model.session_id.is_(None))


class MigrationService:
    """Idempotent administrative migrations. Safe to run repeatedly."""

    def __init__(self, db: Session):
        """Initialize the service with a database session."""
        self.db = db

    def check_status(self) -> MigrationStatus:
        """Report what the migrations would still change."""
        return MigrationStatus(
            dictionaries_count=self.db.query(Dictionary).count(),
            words_without_dictionary=self.db.query(Word).filter(Word.dictionary_id.is_(None)).count(),
            dictionaries_without_owner=self.db.query(Dictionary).filter(_unowned(Dictionary)).count(),
            words_without_owner=self.db.query(Word).filter(_unowned(Word)).count(),
            rounds_without_owner=self.db.query(Round).filter(_unowned(Round)).count(),
        )

    def migrate_to_multiple_dictionaries(self) -> Dict[str, Any]:
        """Put every dictionary-less word into a freshly created default dictionary.

        Does nothing once any dictionary exists.
        """
        if self.db.query(Dictionary).first():
            logger.info("Migration already completed - dictionaries exist")
            return {"migrated": False, "dictionary_id": None, "migrated_count": 0}

        with atomic(self.db):
            dictionary_id = self._create_legacy_dictionary(
                settings.migration.default_dictionary_name,
                settings.migration.default_dictionary_description,
            )
            migrated_count = self._assign_orphan_words(dictionary_id)

        logger.info(f"Migration completed: {migrated_count} word(s) moved to dictionary {dictionary_id}")
        return {"migrated": True, "dictionary_id": dictionary_id, "migrated_count": migrated_count}

    def force_migration(
        self,
        dictionary_name: Optional[str] = None,
        assign_existing_words: bool = True,
    ) -> Dict[str, Any]:
        """Create a default dictionary even when others exist.

        Meant for development databases. Dictionary-less words move into the
        new dictionary unless ``assign_existing_words`` is False.
        """
        with atomic(self.db):
            name = normalize_dictionary_name(dictionary_name or settings.migration.default_dictionary_name)
            dictionary_id = self._create_legacy_dictionary(name, "Dictionary created during forced migration")
            migrated_count = self._assign_orphan_words(dictionary_id) if assign_existing_words else 0

        logger.info(f"Forced migration created dictionary {dictionary_id} '{name}', {migrated_count} word(s) moved")
        return {"dictionary_id": dictionary_id, "dictionary_name": name, "migrated_count": migrated_count}

    def _create_legacy_dictionary(self, name: str, description: Optional[str]) -> int:
        dictionary = Dictionary(
            name=name,
            description=description,
            color=settings.migration.default_dictionary_color,
            active=True,
            session_id=settings.migration.legacy_session_id,
        )
        self.db.add(dictionary)
        self.db.flush()
        return dictionary.id

    def _assign_orphan_words(self, dictionary_id: int) -> int:
        words = self.db.query(Word).filter(Word.dictionary_id.is_(None)).all()
        for word in words:
            word.dictionary_id = dictionary_id
        return len(words)

    def migrate_to_user_scoping(self) -> Dict[str, int]:
        """Hand every unowned dictionary, word and round to the legacy session."""
        legacy = settings.migration.legacy_session_id
        counts = {}
        with atomic(self.db):
            for key, model in (("dictionaries", Dictionary), ("words", Word), ("rounds", Round)):
                rows = self.db.query(model).filter(_unowned(model)).all()
                for row in rows:
                    row.session_id = legacy
                counts[key] = len(rows)

        logger.info(
            f"User scoping migration: {counts['dictionaries']} dictionaries, "
            f"{counts['words']} words, {counts['rounds']} rounds assigned to '{legacy}'"
        )
        return counts

    def run_all(self) -> Dict[str, Any]:
        """Run every back-fill in order."""
        return {
            "dictionaries": self.migrate_to_multiple_dictionaries(),
            "user_scoping": self.migrate_to_user_scoping(),
        }
