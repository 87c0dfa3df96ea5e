"""
Ports (interfaces) for the storage and catalog collaborators.

Application services depend on these abstractions, not on concrete
adapters, so tests can substitute fakes.
"""

from abc import ABC, abstractmethod
from typing import Any

from msamiati.domain.models import Mode


class KeyValueStore(ABC):
    """
    Small string key-value store holding the encrypted state blob and key.

    Implementations:
        - FileKeyValueStore: one file per key under a data directory.
        - MemoryKeyValueStore: process-local dict, for tests.

    Implementations raise OSError (or a subclass) on genuine I/O failure.
    """

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        pass


class RemoteCatalog(ABC):
    """
    Port for the cloud word catalog.

    Implementations:
        - SupabaseCatalogClient: PostgREST endpoint over httpx.
    """

    @abstractmethod
    async def count(self, mode: Mode, category: str | None = None) -> int:
        """Number of catalog rows for the mode (and category, if given)."""
        pass

    @abstractmethod
    async def fetch_page(
        self, mode: Mode, category: str | None, offset: int, limit: int
    ) -> list[dict[str, Any]]:
        """
        Fetch raw rows ordered by creation time ascending.

        Rows may include tombstones; callers must filter them.
        """
        pass

    @abstractmethod
    async def is_responsive(self) -> bool:
        pass
