# Overview: Online/offline state with transition notifications.

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .remote_store import RemoteStore

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """
    Tracks the network-reachability signal.

    Listeners are called only when the state flips, never for a repeated
    report of the same state.
    """

    def __init__(self, initial_online: bool = False, remote: Optional[RemoteStore] = None):
        self._online = initial_online
        self._remote = remote
        self._listeners: list[ConnectivityListener] = []
        self._lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a transition listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def update(self, is_online: bool) -> bool:
        """Feed a reachability reading. Returns True if the state changed."""
        with self._lock:
            if is_online == self._online:
                return False
            self._online = is_online

        logger.info("Connectivity changed: %s", "online" if is_online else "offline")
        for listener in list(self._listeners):
            listener(is_online)
        return True

    async def probe(self) -> bool:
        """Ask the remote store whether it is reachable and record the answer."""
        if self._remote is None:
            online = False
        else:
            online = await self._remote.ping()
        self.update(online)
        return online
