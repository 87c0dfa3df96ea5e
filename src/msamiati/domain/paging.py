"""
Day pagination over a creation-ordered word list.

A "day" is a derived view, not stored structure: day N is the slice
[(N-1)*size, N*size) of the list sorted by creation time ascending.
The offline cache and the remote client both go through these helpers,
so online and offline modes agree on day boundaries.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class DayPage:
    day_number: int
    page_size: int

    def __post_init__(self):
        if self.day_number < 1:
            raise ValueError(f"day_number must be >= 1, got {self.day_number}")
        if self.page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")


def day_bounds(page: DayPage) -> tuple[int, int]:
    """Return the half-open [start, end) index range of a day."""
    start = (page.day_number - 1) * page.page_size
    return start, start + page.page_size


def slice_day(records: Sequence[T], page: DayPage | None) -> list[T]:
    if page is None:
        return list(records)
    start, end = day_bounds(page)
    return list(records[start:end])


def day_count(total: int, page_size: int) -> int:
    if total <= 0:
        return 0
    return math.ceil(total / page_size)
