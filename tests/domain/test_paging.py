import pytest

from msamiati.domain.catalog import CachedVocab, cache_key
from msamiati.domain.paging import DayPage, day_bounds, day_count, slice_day


def test_day_bounds():
    assert day_bounds(DayPage(1, 40)) == (0, 40)
    assert day_bounds(DayPage(3, 40)) == (80, 120)


def test_slice_day_clips_last_day():
    records = list(range(85))
    assert slice_day(records, DayPage(3, 40)) == list(range(80, 85))
    assert slice_day(records, DayPage(4, 40)) == []
    assert slice_day(records, None) == records


def test_day_count():
    assert day_count(0, 40) == 0
    assert day_count(40, 40) == 1
    assert day_count(85, 40) == 3


@pytest.mark.parametrize("day_number,page_size", [(0, 40), (1, 0), (-1, 10)])
def test_day_page_rejects_non_positive(day_number, page_size):
    with pytest.raises(ValueError):
        DayPage(day_number, page_size)


def test_cache_key():
    assert cache_key("sw", None) == "sw_all"
    assert cache_key("ko", "여행") == "ko_여행"


def test_cached_vocab_normalizes_blank_fields():
    record = CachedVocab.model_validate(
        {
            "id": "a",
            "mode": "sw",
            "word": "habari",
            "meaning_en": "  ",
            "category": "",
            "created_at": "2024-01-01T00:00:00",
            "unknown_column": "ignored",
        }
    )
    assert record.meaning_en is None
    assert record.category is None
    # Naive timestamps are read as UTC
    assert record.created_ms == 1_704_067_200_000


def test_cached_vocab_rejects_bad_difficulty():
    from pydantic import ValidationError

    with pytest.raises(ValidationError):
        CachedVocab.model_validate(
            {"id": "a", "mode": "sw", "word": "x", "difficulty": 9, "created_at": "2024-01-01"}
        )
