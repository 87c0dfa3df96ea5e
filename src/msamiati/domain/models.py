"""
Domain models for the vocabulary trainer.

These are pure, immutable data structures with no I/O. State transitions
build new instances with dataclasses.replace instead of mutating.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from msamiati.domain.constants import (
    ALL_WORDS_DECK,
    CLOUD_CATEGORY_DECKS,
    INITIAL_EASE,
)

Mode = Literal["sw", "ko"]


class Grade(str, Enum):
    """Review outcome buttons."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"


@dataclass(frozen=True)
class Srs:
    """
    Spaced-repetition state embedded in every VocabItem.

    Attributes:
        due_at: Epoch ms; the item is due once due_at <= now.
        interval_days: Current interval. 0 until the first review.
        ease: Difficulty coefficient in [1.3, 2.8].
        correct_streak: Consecutive non-"again" reviews.
        total_reviews: Monotonic review counter.
        last_reviewed_at: Epoch ms of the most recent review.
    """

    due_at: float
    interval_days: float = 0
    ease: float = INITIAL_EASE
    correct_streak: int = 0
    total_reviews: int = 0
    last_reviewed_at: float | None = None


@dataclass(frozen=True)
class NewVocab:
    """Payload of an add action: a VocabItem before id, timestamps and srs exist."""

    deck_id: str
    sw: str
    ko: str
    en: str | None = None
    pos: str | None = None
    tags: tuple[str, ...] = ()
    example: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class VocabItem:
    id: str
    deck_id: str
    sw: str
    ko: str
    created_at: float
    updated_at: float
    srs: Srs
    en: str | None = None
    pos: str | None = None
    tags: tuple[str, ...] = ()
    example: str | None = None
    note: str | None = None


# Fields an UpdateItem patch may touch.
EDITABLE_ITEM_FIELDS = frozenset(
    {"deck_id", "sw", "ko", "en", "pos", "tags", "example", "note"}
)


@dataclass(frozen=True)
class Deck:
    id: str
    name: str
    created_at: float
    updated_at: float


def is_cloud_deck(name: str) -> bool:
    """Reserved decks display remote catalog content instead of local items."""
    return name == ALL_WORDS_DECK or name in CLOUD_CATEGORY_DECKS


@dataclass(frozen=True)
class WrongNoteItem:
    id: str
    wrong_count: int
    last_wrong_at: float


@dataclass(frozen=True)
class ReviewLogItem:
    id: str
    at: float
    grade: Grade


@dataclass(frozen=True)
class DeckQuizSource:
    deck_id: str


@dataclass(frozen=True)
class CloudQuizSource:
    cloud: str


QuizSource = Literal["all", "wrong"] | DeckQuizSource | CloudQuizSource


@dataclass(frozen=True)
class AppSettings:
    """
    User preferences.

    Attributes:
        due_only: Study screens show only due cards.
        show_english: Word lists also show the English gloss.
        meaning_lang: "sw" for Swahili speakers, "ko" for Korean speakers.
        top_tab: Active top navigation tab.
        bottom_tab: Active bottom navigation tab.
        quiz_count: Default quiz size.
        quiz_source: Where quiz questions are drawn from.
    """

    due_only: bool = True
    show_english: bool = True
    meaning_lang: Mode = "sw"
    top_tab: Literal["home", "settings"] = "home"
    bottom_tab: Literal["wordbook", "quiz", "wrong"] = "wordbook"
    quiz_count: Literal[5, 10, 20, 50] = 10
    quiz_source: QuizSource = field(
        default_factory=lambda: CloudQuizSource(cloud=ALL_WORDS_DECK)
    )


@dataclass(frozen=True)
class AppState:
    """Root aggregate. The single in-memory source of truth."""

    now: float
    decks: tuple[Deck, ...] = ()
    items: tuple[VocabItem, ...] = ()
    wrong: tuple[WrongNoteItem, ...] = ()
    review_log: tuple[ReviewLogItem, ...] = ()
    settings: AppSettings = field(default_factory=AppSettings)

    def find_item(self, item_id: str) -> VocabItem | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_deck_by_name(self, name: str) -> Deck | None:
        for deck in self.decks:
            if deck.name == name:
                return deck
        return None
