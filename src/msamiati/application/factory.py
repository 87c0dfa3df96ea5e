"""
Composition root.

Every service is constructed here and passed explicitly to its consumers;
nothing below this module reaches for a module-level singleton.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from msamiati.application.catalog_reader import CatalogReader
from msamiati.application.catalog_sync import CatalogSyncService
from msamiati.application.config import AppConfig
from msamiati.application.connectivity import ConnectivityMonitor
from msamiati.application.session import AppSession
from msamiati.domain.constants import CACHE_DB_FILENAME
from msamiati.domain.interfaces import KeyValueStore, RemoteCatalog
from msamiati.infrastructure.adapters.supabase_catalog import SupabaseCatalogClient
from msamiati.infrastructure.crypto import CryptoBox
from msamiati.infrastructure.kv_store import FileKeyValueStore
from msamiati.infrastructure.offline_cache import OfflineCache
from msamiati.infrastructure.persistence import StatePersistence

logger = logging.getLogger(__name__)


def build_kv_store(config: AppConfig) -> KeyValueStore:
    return FileKeyValueStore(config.data_dir / "state")


def build_persistence(config: AppConfig, kv: KeyValueStore | None = None) -> StatePersistence:
    kv = kv or build_kv_store(config)
    return StatePersistence(kv, CryptoBox(kv, use_aead=config.encrypt_state))


def build_session(config: AppConfig, persistence: StatePersistence | None = None) -> AppSession:
    return AppSession(
        persistence or build_persistence(config),
        debounce=config.save_debounce_seconds,
    )


def build_offline_cache(config: AppConfig) -> OfflineCache:
    return OfflineCache(config.data_dir / CACHE_DB_FILENAME)


def build_remote_catalog(config: AppConfig) -> RemoteCatalog | None:
    """Returns None when no catalog URL is configured (offline-only install)."""
    if not config.catalog_configured:
        return None
    return SupabaseCatalogClient(
        base_url=config.catalog_url,
        api_key=config.catalog_key,
        table=config.catalog_table,
        timeout=config.request_timeout,
    )


@dataclass
class Services:
    config: AppConfig
    session: AppSession
    cache: OfflineCache
    connectivity: ConnectivityMonitor
    reader: CatalogReader
    remote: RemoteCatalog | None = None
    sync: CatalogSyncService | None = None


@asynccontextmanager
async def open_services(config: AppConfig, hydrate: bool = True) -> AsyncIterator[Services]:
    """
    Open every long-lived resource for one process and close it on exit.

    The session is hydrated before yielding unless `hydrate` is False, and
    pending state changes are flushed on exit.
    """
    session = build_session(config)
    cache = build_offline_cache(config).open()
    remote = build_remote_catalog(config)
    connectivity = ConnectivityMonitor(online=remote is not None)

    services = Services(
        config=config,
        session=session,
        cache=cache,
        connectivity=connectivity,
        reader=CatalogReader(remote, cache, connectivity, config.words_per_day),
        remote=remote,
        sync=CatalogSyncService(remote, cache, config.sync_page_size) if remote else None,
    )
    try:
        session.start()
        if hydrate:
            await session.hydrate()
        yield services
    finally:
        try:
            await session.close()
        finally:
            cache.close()
            if isinstance(remote, SupabaseCatalogClient):
                await remote.aclose()
        logger.debug("Services closed")
