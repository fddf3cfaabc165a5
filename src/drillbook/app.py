"""Application facade exposing the practice operations."""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from drillbook.config import settings
from drillbook.models.base import SessionLocal, init_db
from drillbook.monitoring import start_monitoring
from drillbook.services.attempt_service import AttemptService
from drillbook.services.dictionary_service import DictionaryService
from drillbook.services.round_service import RoundService
from drillbook.services.word_service import WordService


class Drillbook:
    """Opens a database session and wires the services onto it.

    The attribute names follow the operation groups a client calls:
    ``dictionaries``, ``words``, ``attempts`` and ``rounds``.
    """

    _metrics_started = False

    def __init__(self, db: Optional[Session] = None):
        """Initialize the application, optionally around an existing session."""
        self.db: Optional[Session] = db
        self._owns_session = db is None
        self.running = False
        self.dictionaries: Optional[DictionaryService] = None
        self.words: Optional[WordService] = None
        self.attempts: Optional[AttemptService] = None
        self.rounds: Optional[RoundService] = None
        self.logger = logging.getLogger(__name__)

    def start(self) -> "Drillbook":
        """Create tables if needed, open a session and build the services."""
        if self.running:
            return self

        try:
            init_db()
            if self.db is None:
                self.db = SessionLocal()
            self.logger.info("Database initialized")

            self.dictionaries = DictionaryService(self.db)
            self.words = WordService(self.db)
            self.attempts = AttemptService(self.db)
            self.rounds = RoundService(self.db)

            if settings.monitoring.enabled and not Drillbook._metrics_started:
                start_monitoring(settings.monitoring.port)
                Drillbook._metrics_started = True
                self.logger.info(f"Metrics server listening on port {settings.monitoring.port}")

            self.running = True
        except Exception as e:
            self.logger.error("Failed to start application: %s", str(e))
            self.stop()
            raise
        return self

    def stop(self) -> None:
        """Close the session if this instance opened it."""
        if self.db is not None and self._owns_session:
            self.db.close()
            self.db = None
            self.logger.info("Database session closed")
        self.running = False

    def __enter__(self) -> "Drillbook":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
