"""Parse/validate boundary for rows arriving from the remote catalog."""

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from msamiati.application.utils.text import (
    contains_dangerous_pattern,
    is_tombstone,
    is_valid_url,
)
from msamiati.domain.catalog import FREE_TEXT_FIELDS, URL_FIELDS, CachedVocab
from msamiati.domain.models import Mode

logger = logging.getLogger(__name__)


def validate_row(
    raw: Any, mode: Mode | None = None, category: str | None = None
) -> tuple[CachedVocab | None, str | None]:
    """
    Convert one untyped row into a CachedVocab.

    Returns (record, None) when accepted, (None, reason) otherwise.
    When mode/category are given the row must belong to that cache key.
    """
    if isinstance(raw, CachedVocab):
        data = raw.model_dump()
    elif isinstance(raw, dict):
        data = raw
    else:
        return None, "not_a_mapping"

    word = data.get("word")
    if isinstance(word, str) and is_tombstone(word):
        return None, "tombstone"

    try:
        record = CachedVocab.model_validate(data)
    except ValidationError as e:
        fields = ",".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
        return None, f"invalid:{fields}"

    if mode is not None and record.mode != mode:
        return None, f"wrong_mode:{record.mode}"
    if category is not None and record.category != category:
        return None, f"wrong_category:{record.category}"

    for name in FREE_TEXT_FIELDS:
        if contains_dangerous_pattern(getattr(record, name)):
            return None, f"unsafe_text:{name}"

    for name in URL_FIELDS:
        url = getattr(record, name)
        if url is not None and not is_valid_url(url):
            return None, f"unsafe_url:{name}"

    return record, None


def parse_cached_vocab(
    raw: Any, mode: Mode | None = None, category: str | None = None
) -> CachedVocab | None:
    record, reason = validate_row(raw, mode, category)
    if reason:
        row_id = raw.get("id", "unknown") if isinstance(raw, dict) else "unknown"
        logger.warning(f"Dropping catalog row {row_id}: {reason}")
    return record


def parse_catalog_rows(
    rows: Iterable[Any], mode: Mode | None = None, category: str | None = None
) -> tuple[list[CachedVocab], int]:
    """
    Parse a batch of rows.

    Returns the accepted records (input order preserved) and the number of
    rows seen, so callers can report accepted vs. total.
    """
    accepted: list[CachedVocab] = []
    total = 0
    for raw in rows:
        total += 1
        record = parse_cached_vocab(raw, mode, category)
        if record is not None:
            accepted.append(record)
    return accepted, total


def drop_tombstones(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Filter soft-deleted rows out of a raw remote page."""
    return [r for r in rows if not is_tombstone(r.get("word"))]
