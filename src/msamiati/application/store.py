"""In-memory owner of AppState. All mutation flows through dispatch()."""

import logging
from collections.abc import Callable

from msamiati.application.state import Action, IdFactory, generate_id, reduce
from msamiati.application.utils.clock import wall_clock_ms
from msamiati.application.utils.observable import Subscribers, Unsubscribe
from msamiati.domain.models import AppState

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class Store:
    """
    Applies actions strictly in dispatch order and notifies subscribers.

    `version` increments on every state-changing dispatch; no-op actions
    (the reducer returned the same object) neither bump it nor notify.
    """

    def __init__(
        self,
        initial: AppState,
        clock: Clock = wall_clock_ms,
        new_id: IdFactory = generate_id,
    ):
        self._state = initial
        self._clock = clock
        self._new_id = new_id
        self._version = 0
        self._subscribers: Subscribers[AppState] = Subscribers()

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def version(self) -> int:
        return self._version

    def dispatch(self, action: Action, now: float | None = None) -> AppState:
        if now is None:
            now = self._clock()
        new_state = reduce(self._state, action, now, self._new_id)
        if new_state is self._state:
            logger.debug(f"No-op action: {type(action).__name__}")
            return new_state
        self._state = new_state
        self._version += 1
        self._subscribers.emit(new_state)
        return new_state

    def subscribe(self, callback: Callable[[AppState], None]) -> Unsubscribe:
        return self._subscribers.subscribe(callback)
