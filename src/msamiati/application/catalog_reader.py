import logging
from dataclasses import dataclass
from typing import Literal

from msamiati.application.catalog_parser import parse_catalog_rows
from msamiati.application.connectivity import ConnectivityMonitor
from msamiati.domain.catalog import CachedVocab
from msamiati.domain.constants import DEFAULT_WORDS_PER_DAY
from msamiati.domain.errors import CatalogError
from msamiati.domain.interfaces import RemoteCatalog
from msamiati.domain.models import Mode
from msamiati.domain.paging import DayPage, day_bounds, day_count
from msamiati.infrastructure.offline_cache import OfflineCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DayResult:
    records: list[CachedVocab]
    source: Literal["remote", "cache"]


class CatalogReader:
    """
    Serves day slices of the catalog.

    Online reads go to the remote; offline reads (or a failed online read)
    go to the cache, as do all reads when no remote is configured. Both
    sides order by creation time, so day N contains the same words either way.
    """

    def __init__(
        self,
        remote: RemoteCatalog | None,
        cache: OfflineCache,
        connectivity: ConnectivityMonitor,
        words_per_day: int = DEFAULT_WORDS_PER_DAY,
    ):
        self.remote = remote
        self.cache = cache
        self.connectivity = connectivity
        self.words_per_day = words_per_day

    async def day(self, mode: Mode, day_number: int, category: str | None = None) -> DayResult:
        """
        Words for one study day.

        Online slices are positioned on the remote row order and rows the
        parser rejects are dropped after slicing, so such a day comes back
        short. The cache drops them before positions are assigned. The two
        agree whenever the remote holds no rejectable rows besides
        tombstones, which the server already filters.
        """
        page = DayPage(day_number, self.words_per_day)
        if self.remote is not None and self.connectivity.online:
            try:
                start, end = day_bounds(page)
                rows = await self.remote.fetch_page(mode, category, start, end - start)
                records, _ = parse_catalog_rows(rows, mode, category)
                return DayResult(records, "remote")
            except CatalogError as e:
                logger.warning(f"Remote read failed, serving day {day_number} from cache: {e}")
                self.connectivity.set_online(False)

        records = await self.cache.query(mode, category, page)
        return DayResult(records, "cache")

    async def day_count(self, mode: Mode, category: str | None = None) -> int:
        total = None
        if self.remote is not None and self.connectivity.online:
            try:
                total = await self.remote.count(mode, category)
            except CatalogError as e:
                logger.warning(f"Remote count failed, using cache: {e}")
                self.connectivity.set_online(False)
        if total is None:
            total = await self.cache.count(mode, category)
        return day_count(total, self.words_per_day)
