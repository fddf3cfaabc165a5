"""Read-only projections returned by the query operations."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from drillbook.models.models import Dictionary, Round, RoundItem, Word


@dataclass
class DictionarySummary:
    """An active dictionary together with its live word count."""
    dictionary: Dictionary
    word_count: int

    @property
    def id(self) -> int:
        return self.dictionary.id

    @property
    def name(self) -> str:
        return self.dictionary.name

    @property
    def created_at(self) -> datetime:
        return self.dictionary.created_at


@dataclass
class WordStats:
    """Statistics over the attempts that survived the word's reset cutoff."""
    total: int = 0
    correct_rate: Optional[float] = None
    typical_time_ms: Optional[int] = None
    high_score_ms: Optional[int] = None


@dataclass
class WordWithStats:
    """A word row plus its computed statistics."""
    word: Word
    stats: WordStats = field(default_factory=WordStats)

    @property
    def id(self) -> int:
        return self.word.id

    @property
    def text(self) -> str:
        return self.word.text


@dataclass
class RoundState:
    """Snapshot of a round for HUD counters and completion banners."""
    round: Round
    items: List[RoundItem]
    solved: int
    total: int

    @property
    def unsolved_items(self) -> List[RoundItem]:
        return [item for item in self.items if not item.solved]

    @property
    def is_done(self) -> bool:
        return self.round.is_done


@dataclass
class MigrationStatus:
    """Counts describing how much legacy data still needs back-filling."""
    dictionaries_count: int
    words_without_dictionary: int
    dictionaries_without_owner: int
    words_without_owner: int
    rounds_without_owner: int

    @property
    def dictionaries_exist(self) -> bool:
        return self.dictionaries_count > 0

    @property
    def migration_needed(self) -> bool:
        return self.dictionaries_count == 0 and self.words_without_dictionary > 0

    @property
    def user_migration_needed(self) -> bool:
        return (
            self.dictionaries_without_owner > 0
            or self.words_without_owner > 0
            or self.rounds_without_owner > 0
        )
