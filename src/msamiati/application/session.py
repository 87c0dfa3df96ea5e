"""
Hydration-gated persistence around the Store.

Startup:
    1. start()    paints from load_sync() (or a seed) immediately.
    2. hydrate()  replaces that with the authoritative load_async() result.

Until hydrate() finishes, state changes are never written: an interim save
of the seed would otherwise clobber real data that is still being decrypted.
"""

import asyncio
import logging

from msamiati.application.state import Hydrate, IdFactory, create_seed_state, generate_id
from msamiati.application.store import Clock, Store
from msamiati.application.utils.clock import wall_clock_ms
from msamiati.domain.constants import DEFAULT_SAVE_DEBOUNCE
from msamiati.domain.errors import PersistenceError
from msamiati.domain.models import AppState
from msamiati.infrastructure.persistence import StatePersistence

logger = logging.getLogger(__name__)


class AppSession:
    """
    Owns the Store and keeps the persisted copy in step with it.

    Saves are debounced: bursts of dispatches collapse into one write, and a
    write always serializes the store's latest state at the time it runs, so
    an older snapshot can never land on top of a newer one.
    """

    def __init__(
        self,
        persistence: StatePersistence,
        debounce: float = DEFAULT_SAVE_DEBOUNCE,
        clock: Clock = wall_clock_ms,
        new_id: IdFactory = generate_id,
    ):
        self._persistence = persistence
        self._debounce = debounce
        self._clock = clock
        self._new_id = new_id

        self._store: Store | None = None
        self._unsubscribe = None
        self._hydrated = False
        self._saved_version = 0
        self._timer: asyncio.TimerHandle | None = None
        self._write_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self.last_error: PersistenceError | None = None

    @property
    def store(self) -> Store:
        if self._store is None:
            raise RuntimeError("AppSession.start() has not been called")
        return self._store

    @property
    def state(self) -> AppState:
        return self.store.state

    @property
    def hydrated(self) -> bool:
        return self._hydrated

    @property
    def dirty(self) -> bool:
        return self._store is not None and self._store.version != self._saved_version

    def start(self) -> Store:
        """Build the store from whatever can be read synchronously."""
        if self._store is not None:
            return self._store
        initial = self._persistence.load_sync()
        if initial is None:
            initial = create_seed_state(self._clock(), self._new_id)
        self._store = Store(initial, clock=self._clock, new_id=self._new_id)
        self._unsubscribe = self._store.subscribe(self._on_change)
        return self._store

    async def hydrate(self) -> AppState:
        """Apply the authoritative load as a full replacement, then enable saves."""
        store = self.start()
        loaded = await self._persistence.load_async()
        seeded = loaded is None
        if seeded:
            logger.info("No usable saved state; starting from a fresh seed")
            loaded = create_seed_state(self._clock(), self._new_id)

        store.dispatch(Hydrate(loaded))
        self._hydrated = True
        if seeded:
            await self.flush()
        else:
            self._saved_version = store.version
        return store.state

    def _on_change(self, state: AppState) -> None:
        if not self._hydrated:
            logger.debug("State changed before hydration; not saving")
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: the change stays dirty until flush()
            return
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self._debounce, self._start_write)

    def _start_write(self) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self._write_latest())
        self._pending.add(task)
        task.add_done_callback(self._write_done)

    def _write_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.last_error = exc if isinstance(exc, PersistenceError) else PersistenceError(str(exc))
            logger.error(f"Background state save failed: {exc}")

    async def _write_latest(self) -> None:
        async with self._write_lock:
            store = self.store
            version = store.version
            if version == self._saved_version:
                return
            await self._persistence.save(store.state)
            self._saved_version = version
            self.last_error = None

    async def flush(self) -> None:
        """Write pending changes now. Raises PersistenceError on storage failure."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if not self._hydrated:
            return
        await self._write_latest()

    async def close(self) -> None:
        await self.flush()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
