"""Base model configuration."""
import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Generator

from sqlalchemy import Column, DateTime, String, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from drillbook.config import settings
from drillbook.errors import DrillbookError, report

logger = logging.getLogger(__name__)

# Create SQLAlchemy engine
engine = create_engine(settings.database.url, echo=settings.database.echo)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create declarative base class
Base = declarative_base()


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class TimestampMixin:
    """Mixin to add timestamp columns to models."""
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class OwnedMixin:
    """Mixin for rows owned by a user id or an anonymous session id."""
    user_id = Column(String, nullable=True, index=True)
    session_id = Column(String, nullable=True, index=True)


@contextmanager
def atomic(db: Session) -> Generator[Session, None, None]:
    """Run a block as one transaction: commit on success, roll back on error."""
    try:
        yield db
        db.commit()
    except DrillbookError as e:
        db.rollback()
        report(e)
        logger.warning(f"Transaction rolled back ({e.kind}): {e.message}")
        raise
    except Exception:
        db.rollback()
        raise


def init_db() -> None:
    """Initialize database."""
    from drillbook.models import models  # noqa: F401  register tables

    Base.metadata.create_all(bind=engine)  # Create tables if they don't exist


def drop_db() -> None:
    """Drop every table known to the metadata."""
    from drillbook.models import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
