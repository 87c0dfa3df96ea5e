import logging
from collections.abc import Callable

from msamiati.application.utils.observable import Subscribers, Unsubscribe
from msamiati.domain.interfaces import RemoteCatalog

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Online/offline flag with change notifications."""

    def __init__(self, online: bool = True):
        self._online = online
        self._subscribers: Subscribers[bool] = Subscribers()

    @property
    def online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity: online" if online else "Connectivity: offline")
        self._subscribers.emit(online)

    def subscribe(self, callback: Callable[[bool], None]) -> Unsubscribe:
        return self._subscribers.subscribe(callback)

    async def probe(self, remote: RemoteCatalog) -> bool:
        self.set_online(await remote.is_responsive())
        return self._online
