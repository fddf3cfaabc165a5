"""Database models for drillbook."""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from drillbook.models.base import Base, OwnedMixin, TimestampMixin

ROUND_ACTIVE = "active"
ROUND_DONE = "done"


class Dictionary(Base, TimestampMixin, OwnedMixin):
    """Named word list owned by a user or an anonymous session."""

    __tablename__ = "dictionaries"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    color = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False, index=True)

    # Relationships
    words = relationship("Word", back_populates="dictionary")


class Word(Base, TimestampMixin, OwnedMixin):
    """Word model."""

    __tablename__ = "words"
    __table_args__ = (
        Index("ix_words_dictionary_active", "dictionary_id", "active"),
        Index("ix_words_text", "text"),
    )

    id = Column(Integer, primary_key=True)
    text = Column(String, nullable=False)  # stripped and lowercased
    # Nullable only for rows created before dictionaries existed
    dictionary_id = Column(Integer, ForeignKey("dictionaries.id"), nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    tags = Column(JSON, default=list, nullable=False)
    grade_level = Column(String, nullable=True)
    reset_at = Column(DateTime(timezone=True), nullable=True)  # stats ignore attempts up to here

    # Relationships
    dictionary = relationship("Dictionary", back_populates="words")
    attempts = relationship("Attempt", back_populates="word")


class Attempt(Base, TimestampMixin, OwnedMixin):
    """A single practice repetition. Rows are never updated."""

    __tablename__ = "attempts"
    __table_args__ = (
        Index("ix_attempts_word_created_at", "word_id", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    word_id = Column(Integer, ForeignKey("words.id"), nullable=False, index=True)
    correct = Column(Boolean, nullable=False)
    time_ms = Column(Integer, nullable=False)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=True, index=True)

    # Relationships
    word = relationship("Word", back_populates="attempts")


class Round(Base, TimestampMixin, OwnedMixin):
    """A bounded practice session over a fixed set of words."""

    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True)
    status = Column(String, default=ROUND_ACTIVE, nullable=False)
    reps_per_word = Column(Integer, nullable=False)
    max_time_ms = Column(Integer, nullable=True)
    version = Column(Integer, nullable=False)

    # Relationships
    items = relationship("RoundItem", back_populates="round", order_by="RoundItem.id")

    @property
    def is_done(self) -> bool:
        return self.status == ROUND_DONE

    # Every record bumps the round, so records on different items of one
    # round also conflict and get replayed
    __mapper_args__ = {"version_id_col": version}


class RoundItem(Base, TimestampMixin):
    """Progress of one word within a round."""

    __tablename__ = "round_items"
    __table_args__ = (
        UniqueConstraint("round_id", "word_id", name="uq_round_items_round_word"),
    )

    id = Column(Integer, primary_key=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False, index=True)
    word_id = Column(Integer, ForeignKey("words.id"), nullable=False)
    reps_done = Column(Integer, default=0, nullable=False)
    best_time_ms = Column(Integer, nullable=True)
    solved = Column(Boolean, default=False, nullable=False)
    version = Column(Integer, nullable=False)

    # Relationships
    round = relationship("Round", back_populates="items")
    word = relationship("Word")

    # Concurrent writers to the same item fail with StaleDataError on flush
    __mapper_args__ = {"version_id_col": version}
