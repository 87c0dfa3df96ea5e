"""
Bulk download of the cloud catalog into the offline cache.

A sync is all-or-nothing per (mode, category): every page is downloaded into
memory first and handed to a single bulk_replace. If the download fails or is
cancelled, the cache keeps serving the previous batch.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from msamiati.application.catalog_parser import drop_tombstones
from msamiati.domain.constants import DEFAULT_SYNC_PAGE_SIZE, MODES
from msamiati.domain.errors import CatalogError
from msamiati.domain.interfaces import RemoteCatalog
from msamiati.domain.models import Mode
from msamiati.infrastructure.offline_cache import OfflineCache

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncReport:
    mode: Mode
    category: str | None
    ok: bool
    accepted: int = 0
    total: int = 0
    fetched: int = 0
    error: str | None = None
    # On failure this is the previous successful sync, i.e. how stale the cache is.
    last_updated: int | None = None

    @property
    def dropped(self) -> int:
        return self.total - self.accepted

    def describe(self) -> str:
        scope = f"{self.mode}/{self.category or 'all'}"
        if self.ok:
            return f"{scope}: stored {self.accepted} of {self.total} words ({self.dropped} dropped)"
        stale = f"cache from {self.last_updated}" if self.last_updated else "no cached copy"
        return f"{scope}: sync failed ({self.error}); {stale}"


class CatalogSyncService:
    def __init__(
        self,
        remote: RemoteCatalog,
        cache: OfflineCache,
        page_size: int = DEFAULT_SYNC_PAGE_SIZE,
    ):
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.remote = remote
        self.cache = cache
        self.page_size = page_size

    async def download(self, mode: Mode, category: str | None = None) -> list[dict[str, Any]]:
        """Fetch every page for the scope. Raises CatalogError."""
        rows: list[dict[str, Any]] = []
        offset = 0
        while True:
            page = await self.remote.fetch_page(mode, category, offset, self.page_size)
            rows.extend(page)
            if len(page) < self.page_size:
                break
            offset += self.page_size
        logger.debug(f"Downloaded {len(rows)} rows for {mode}/{category or 'all'}")
        return drop_tombstones(rows)

    async def sync(self, mode: Mode, category: str | None = None) -> SyncReport:
        """
        Replace the cached batch for (mode, category) with the remote contents.

        Remote failures are reported, not raised. Cache storage failures
        (OfflineCacheError) propagate.
        """
        try:
            rows = await self.download(mode, category)
        except CatalogError as e:
            logger.warning(f"Catalog sync for {mode}/{category or 'all'} failed: {e}")
            meta = await self.cache.get_meta(mode, category)
            return SyncReport(
                mode=mode,
                category=category,
                ok=False,
                error=str(e),
                last_updated=meta.last_updated if meta else None,
            )

        result = await self.cache.bulk_replace(mode, category, rows)
        meta = await self.cache.get_meta(mode, category)
        report = SyncReport(
            mode=mode,
            category=category,
            ok=True,
            accepted=result.accepted,
            total=result.total,
            fetched=len(rows),
            last_updated=meta.last_updated if meta else None,
        )
        logger.info(report.describe())
        return report

    async def sync_all(self, modes: Iterable[Mode] = MODES) -> list[SyncReport]:
        return [await self.sync(mode) for mode in modes]
