# Overview: Background worker that probes connectivity and runs periodic sync cycles.

from __future__ import annotations

import asyncio
import logging
import threading
import time

from flask import Flask

from ..extensions import db
from .connectivity import ConnectivityMonitor
from .sync_engine import SyncEngine

logger = logging.getLogger(__name__)


class BackgroundSync:
    """
    Runs an asyncio loop on a daemon thread with the app context pushed.

    Every probe_seconds it feeds a reachability reading to the monitor (which
    may trigger the engine's back-online sync). Every interval_minutes, when
    online and auto-sync is on, it runs a regular cycle.
    """

    def __init__(
        self,
        app: Flask,
        engine: SyncEngine,
        connectivity: ConnectivityMonitor,
        *,
        interval_minutes: float,
        probe_seconds: float,
    ):
        self.app = app
        self.engine = engine
        self.connectivity = connectivity
        self.interval_seconds = interval_minutes * 60
        self.probe_seconds = probe_seconds
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._last_periodic = 0.0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="background-sync", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        with self.app.app_context():
            asyncio.run(self._loop())

    async def tick(self) -> None:
        """One probe plus, if due, one periodic cycle."""
        await self.connectivity.probe()

        now = time.monotonic()
        due = now - self._last_periodic >= self.interval_seconds
        if due and self.connectivity.is_online and self.engine.auto_sync and not self.engine.is_syncing:
            self._last_periodic = now
            result = await self.engine.sync_all()
            if not result.success and result.started:
                logger.warning("Periodic sync failed: %s", result.message)

    async def _loop(self) -> None:
        try:
            while not self._stop.is_set():
                try:
                    await self.tick()
                except Exception:
                    # Keep the worker alive; the next tick retries
                    logger.exception("Background sync tick failed")
                finally:
                    db.session.remove()
                await asyncio.sleep(self.probe_seconds)
        finally:
            await self.engine.release_remote()
