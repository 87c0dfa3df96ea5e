class MsamiatiError(Exception):
    """Base class for all msamiati errors."""


class PersistenceError(MsamiatiError):
    """The key-value store could not be read or written."""


class DecryptionError(MsamiatiError):
    """A stored envelope could not be opened."""


class OfflineCacheError(MsamiatiError):
    """The offline cache storage engine failed."""


class CatalogError(MsamiatiError):
    """The remote catalog could not be reached or returned an error."""
