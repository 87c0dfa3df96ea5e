import itertools

import pytest

from msamiati.infrastructure.crypto import CryptoBox
from msamiati.infrastructure.kv_store import MemoryKeyValueStore
from msamiati.infrastructure.persistence import StatePersistence

NOW = 1_700_000_000_000.0


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def new_id():
    """Deterministic id factory: id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def persistence(kv, new_id):
    return StatePersistence(kv, CryptoBox(kv), clock=lambda: NOW, new_id=new_id)


def make_row(n: int, mode: str = "sw", category: str | None = "입문", **overrides) -> dict:
    """A raw catalog row as the remote returns it, created n seconds after a base time."""
    row = {
        "id": f"{mode}-{n:04d}",
        "mode": mode,
        "word": f"neno{n}",
        "meaning_ko": f"단어{n}",
        "meaning_en": f"word {n}",
        "category": category,
        "difficulty": 1,
        "created_at": f"2024-01-01T00:{n // 60:02d}:{n % 60:02d}+00:00",
    }
    row.update(overrides)
    return row


@pytest.fixture
def row_factory():
    return make_row
