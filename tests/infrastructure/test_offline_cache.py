import asyncio
import sqlite3
from unittest.mock import MagicMock

import pytest

from conftest import make_row
from msamiati.domain.errors import OfflineCacheError
from msamiati.domain.paging import DayPage
from msamiati.infrastructure.offline_cache import OfflineCache

NOW = 1_700_000_000_000


@pytest.fixture
def cache(tmp_path):
    cache = OfflineCache(tmp_path / "cache.sqlite3", clock=lambda: NOW).open()
    yield cache
    cache.close()


@pytest.mark.asyncio
async def test_bulk_replace_and_query_in_creation_order(cache):
    rows = [make_row(n) for n in (3, 1, 2)]
    result = await cache.bulk_replace("sw", None, rows)

    assert result.accepted == 3
    assert result.total == 3
    assert result.dropped == 0
    assert [r.id for r in await cache.query("sw")] == ["sw-0001", "sw-0002", "sw-0003"]


@pytest.mark.asyncio
async def test_equal_timestamps_keep_insertion_order(cache):
    rows = [make_row(n, created_at="2024-01-01T00:00:00+00:00") for n in (5, 2, 9)]
    await cache.bulk_replace("sw", None, rows)
    assert [r.id for r in await cache.query("sw")] == ["sw-0005", "sw-0002", "sw-0009"]


@pytest.mark.asyncio
async def test_day_pagination_exact(cache):
    await cache.bulk_replace("sw", None, [make_row(n) for n in range(85)])

    day1 = await cache.query("sw", page=DayPage(1, 40))
    day3 = await cache.query("sw", page=DayPage(3, 40))
    day4 = await cache.query("sw", page=DayPage(4, 40))

    assert len(day1) == 40
    assert day1[0].id == "sw-0000"
    assert [r.id for r in day3] == [f"sw-{n:04d}" for n in range(80, 85)]
    assert day4 == []


@pytest.mark.asyncio
async def test_replace_removes_previous_rows(cache):
    await cache.bulk_replace("sw", None, [make_row(n) for n in range(5)])
    await cache.bulk_replace("sw", None, [make_row(n) for n in range(10, 12)])
    assert [r.id for r in await cache.query("sw")] == ["sw-0010", "sw-0011"]
    assert (await cache.get_meta("sw")).count == 2


@pytest.mark.asyncio
async def test_category_replace_only_touches_that_category(cache):
    await cache.bulk_replace("sw", "입문", [make_row(n, category="입문") for n in range(3)])
    await cache.bulk_replace("sw", "여행", [make_row(n, category="여행") for n in range(10, 12)])
    await cache.bulk_replace("sw", "입문", [make_row(0, category="입문")])

    assert await cache.count("sw", "입문") == 1
    assert await cache.count("sw", "여행") == 2
    assert await cache.count("sw") == 3


@pytest.mark.asyncio
async def test_modes_are_isolated(cache):
    await cache.bulk_replace("sw", None, [make_row(n, mode="sw") for n in range(3)])
    await cache.bulk_replace("ko", None, [make_row(n, mode="ko") for n in range(2)])
    await cache.bulk_replace("sw", None, [])

    status = await cache.status()
    assert status.per_mode_counts == {"sw": 0, "ko": 2}
    assert status.total_count == 2
    assert status.last_updated == NOW


@pytest.mark.asyncio
async def test_invalid_tombstoned_and_foreign_rows_are_dropped(cache):
    rows = [
        make_row(1),
        make_row(2, word="__deleted__neno2"),
        make_row(3, mode="ko"),
        make_row(4, meaning_en="<script>alert(1)</script>"),
        make_row(5, word_audio_url="javascript:alert(1)"),
        make_row(6, created_at="yesterday"),
        make_row(1),
        {"id": "", "mode": "sw"},
        "not a row",
    ]
    result = await cache.bulk_replace("sw", None, rows)
    assert result.accepted == 1
    assert result.total == 9
    assert result.dropped == 8
    assert [r.id for r in await cache.query("sw")] == ["sw-0001"]


@pytest.mark.asyncio
async def test_null_category_round_trips(cache):
    await cache.bulk_replace("sw", None, [make_row(1, category=None)])
    (record,) = await cache.query("sw")
    assert record.category is None
    assert record == (await cache.get_by_ids(["sw-0001"]))[0]


@pytest.mark.asyncio
async def test_get_by_ids_preserves_request_order(cache):
    await cache.bulk_replace("sw", None, [make_row(n) for n in range(5)])
    records = await cache.get_by_ids(["sw-0003", "missing", "sw-0000", "sw-0003"])
    assert [r.id for r in records] == ["sw-0003", "sw-0000"]
    assert await cache.get_by_ids([]) == []


@pytest.mark.asyncio
async def test_subscribers_notified_after_commit(cache):
    callback = MagicMock()
    cache.subscribe(callback)
    await cache.bulk_replace("sw", "입문", [make_row(1)])
    change = callback.call_args.args[0]
    assert change.key == "sw_입문"
    assert change.result.accepted == 1


@pytest.mark.asyncio
async def test_failed_replace_rolls_back(cache):
    await cache.bulk_replace("sw", None, [make_row(n) for n in range(3)])
    callback = MagicMock()
    cache.subscribe(callback)

    # Drop the integrity table so the replace fails mid-transaction
    cache._conn.execute("DROP TABLE integrity")
    with pytest.raises(OfflineCacheError):
        await cache.bulk_replace("sw", None, [make_row(9)])

    assert [r.id for r in await cache.query("sw")] == ["sw-0000", "sw-0001", "sw-0002"]
    callback.assert_not_called()


@pytest.mark.asyncio
async def test_readers_never_see_partial_replace(cache):
    old = [make_row(n) for n in range(200)]
    new = [make_row(n) for n in range(1000, 1300)]
    await cache.bulk_replace("sw", None, old)
    old_ids = {r["id"] for r in old}
    new_ids = {r["id"] for r in new}

    async def reader():
        seen = []
        for _ in range(20):
            seen.append({r.id for r in await cache.query("sw")})
            await asyncio.sleep(0)
        return seen

    _, snapshots = await asyncio.gather(cache.bulk_replace("sw", None, new), reader())
    for ids in snapshots:
        assert ids in (old_ids, new_ids)


@pytest.mark.asyncio
async def test_verify_integrity_detects_tampering(cache):
    await cache.bulk_replace("sw", None, [make_row(n) for n in range(3)])
    assert (await cache.verify_integrity()).ok

    cache._conn.execute("UPDATE vocab SET meaning_en = 'changed' WHERE id = 'sw-0001'")
    cache._conn.execute("DELETE FROM integrity WHERE id = 'sw-0002'")
    report = await cache.verify_integrity()

    assert report.mismatched == ["sw-0001"]
    assert report.missing == ["sw-0002"]
    assert report.bad_batches == ["sw_all"]
    # Advisory only: reads still work
    assert len(await cache.query("sw")) == 3


@pytest.mark.asyncio
async def test_category_replace_keeps_mode_checksum_valid(cache):
    await cache.bulk_replace("sw", None, [make_row(n, category="입문") for n in range(3)])
    await cache.bulk_replace("sw", "입문", [make_row(7, category="입문")])
    assert (await cache.verify_integrity()).ok
    assert (await cache.get_meta("sw")).count == 1


@pytest.mark.asyncio
async def test_clear(cache):
    await cache.bulk_replace("sw", None, [make_row(1)])
    await cache.clear()
    assert await cache.count("sw") == 0
    assert await cache.get_meta("sw") is None


@pytest.mark.asyncio
async def test_closed_cache_raises(tmp_path):
    cache = OfflineCache(tmp_path / "c.sqlite3")
    with pytest.raises(OfflineCacheError):
        await cache.query("sw")


@pytest.mark.asyncio
async def test_context_manager_opens_and_closes(tmp_path):
    async with OfflineCache(tmp_path / "nested" / "c.sqlite3") as cache:
        assert cache.is_open
        await cache.bulk_replace("ko", None, [make_row(1, mode="ko")])
    assert not cache.is_open

    async with OfflineCache(tmp_path / "nested" / "c.sqlite3") as reopened:
        assert await reopened.count("ko") == 1


def test_open_failure_raises(tmp_path, monkeypatch):
    monkeypatch.setattr(sqlite3, "connect", MagicMock(side_effect=sqlite3.OperationalError("no")))
    with pytest.raises(OfflineCacheError):
        OfflineCache(tmp_path / "c.sqlite3").open()
