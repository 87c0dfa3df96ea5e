"""
Offline catalog records and cache bookkeeping types.

CachedVocab is the strongly-typed form of a remote catalog row. Untyped rows
only become CachedVocab through msamiati.application.catalog_parser.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from msamiati.domain.models import Mode

_OPTIONAL_TEXT_FIELDS = (
    "word_pronunciation",
    "word_audio_url",
    "image_url",
    "meaning_sw",
    "meaning_sw_pronunciation",
    "meaning_sw_audio_url",
    "meaning_ko",
    "meaning_ko_pronunciation",
    "meaning_ko_audio_url",
    "meaning_en",
    "meaning_en_pronunciation",
    "meaning_en_audio_url",
    "example",
    "example_pronunciation",
    "example_audio_url",
    "example_translation_sw",
    "example_translation_ko",
    "example_translation_en",
    "pos",
    "category",
)

URL_FIELDS = (
    "word_audio_url",
    "image_url",
    "meaning_sw_audio_url",
    "meaning_ko_audio_url",
    "meaning_en_audio_url",
    "example_audio_url",
)

FREE_TEXT_FIELDS = (
    "word",
    "word_pronunciation",
    "meaning_sw",
    "meaning_sw_pronunciation",
    "meaning_ko",
    "meaning_ko_pronunciation",
    "meaning_en",
    "meaning_en_pronunciation",
    "example",
    "example_pronunciation",
    "example_translation_sw",
    "example_translation_ko",
    "example_translation_en",
    "pos",
    "category",
)


def parse_created_at(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class CachedVocab(BaseModel):
    """Denormalized snapshot of one remote catalog entry."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    mode: Mode
    word: str = Field(min_length=1)
    word_pronunciation: str | None = None
    word_audio_url: str | None = None
    image_url: str | None = None

    meaning_sw: str | None = None
    meaning_sw_pronunciation: str | None = None
    meaning_sw_audio_url: str | None = None

    meaning_ko: str | None = None
    meaning_ko_pronunciation: str | None = None
    meaning_ko_audio_url: str | None = None

    meaning_en: str | None = None
    meaning_en_pronunciation: str | None = None
    meaning_en_audio_url: str | None = None

    example: str | None = None
    example_pronunciation: str | None = None
    example_audio_url: str | None = None
    example_translation_sw: str | None = None
    example_translation_ko: str | None = None
    example_translation_en: str | None = None

    pos: str | None = None
    category: str | None = None
    difficulty: int | None = Field(default=None, ge=1, le=5)

    created_at: str

    @field_validator(*_OPTIONAL_TEXT_FIELDS, mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("created_at")
    @classmethod
    def check_created_at(cls, v: str) -> str:
        parse_created_at(v)
        return v

    @property
    def created_ms(self) -> float:
        """Creation time in epoch ms; the day-pagination sort key."""
        return parse_created_at(self.created_at).timestamp() * 1000


def cache_key(mode: Mode, category: str | None) -> str:
    return f"{mode}_{category or 'all'}"


@dataclass(frozen=True)
class CacheMeta:
    key: str
    last_updated: int
    count: int
    checksum: str | None = None


@dataclass(frozen=True)
class CacheStatus:
    total_count: int
    per_mode_counts: dict[str, int] = field(default_factory=dict)
    last_updated: int | None = None


@dataclass(frozen=True)
class BulkReplaceResult:
    """Outcome of one bulk replace; dropped records were invalid or tombstoned."""

    accepted: int
    total: int

    @property
    def dropped(self) -> int:
        return self.total - self.accepted


@dataclass(frozen=True)
class IntegrityReport:
    """
    Advisory integrity diagnostics. Never used to block reads.

    Attributes:
        missing: Record ids without a stored hash.
        mismatched: Record ids whose stored hash no longer matches.
        bad_batches: Meta keys whose checksum no longer matches.
    """

    missing: list[str] = field(default_factory=list)
    mismatched: list[str] = field(default_factory=list)
    bad_batches: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.missing or self.mismatched or self.bad_batches)
