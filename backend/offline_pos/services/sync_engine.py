"""
Sync engine - reconciles the local store with the remote document store.

Cycle state machine: Idle -> Syncing -> Idle (success) | Idle (failed, error).

Sync Invariants (authoritative)
- At most one cycle in flight; a request while Syncing returns started=False.
- No remote configured -> successful no-op (local-only mode is first class).
- Products: push every local record (merge), then pull every remote record;
  malformed remote documents are skipped, the rest go through
  ProductRepository.upsert_from_remote (last-write-wins, local wins ties).
- Sales and inventory changes: push only. The authoring device is
  authoritative for its own ledger.
- The three sub-syncs run concurrently and share nothing but the local store.
- Any sub-sync failure fails the cycle with that error's message; completed
  work is kept, nothing is rolled back.
- Errors never escape sync_all(); they become result/status text.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Optional

from ..models import EntityParseError, Product
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from .connectivity import ConnectivityMonitor
from .local_store import INVENTORY_CHANGES, PRODUCTS, SALES, LocalStore
from .product_repository import ProductRepository
from .remote_store import (
    REMOTE_INVENTORY_CHANGES,
    REMOTE_PRODUCTS,
    REMOTE_SALES,
    RemoteStore,
)

logger = logging.getLogger(__name__)

LAST_SYNC_TIME_KEY = "lastSyncTime"
AUTO_SYNC_KEY = "autoSync"


@dataclass
class SyncResult:
    success: bool
    message: str
    started: bool = True
    products_uploaded: int = 0
    products_downloaded: int = 0
    sales_uploaded: int = 0
    inventory_changes_uploaded: int = 0
    skipped_remote_records: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SyncStatus:
    is_online: bool
    is_syncing: bool
    has_unsynced_data: bool
    unsynced_products: int
    unsynced_sales: int
    unsynced_inventory_changes: int
    last_sync_time: Optional[datetime]
    last_sync_error: Optional[str]
    auto_sync: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_sync_time"] = to_utc_z(self.last_sync_time)
        return data


@dataclass(frozen=True)
class _PendingCounts:
    products: int
    sales: int
    inventory_changes: int

    @property
    def total(self) -> int:
        return self.products + self.sales + self.inventory_changes


StatusListener = Callable[[SyncStatus], None]


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


class SyncEngine:
    def __init__(
        self,
        store: LocalStore,
        products: ProductRepository,
        remote: Optional[RemoteStore],
        connectivity: ConnectivityMonitor,
        *,
        auto_sync_default: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._products = products
        self._remote = remote
        self._connectivity = connectivity
        self._auto_sync_default = auto_sync_default
        self._clock = clock

        self._cycle_lock = threading.Lock()
        self._is_syncing = False
        self._last_sync_error: Optional[str] = None
        self._pending: Optional[_PendingCounts] = None
        self._listeners: list[StatusListener] = []
        self._auto_task: Optional[asyncio.Task] = None

        connectivity.subscribe(self._on_connectivity_changed)

    # ------------------------------------------------------------------
    # Status accessors
    # ------------------------------------------------------------------
    @property
    def remote_configured(self) -> bool:
        return self._remote is not None

    @property
    def is_online(self) -> bool:
        return self._connectivity.is_online

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    @property
    def has_unsynced_data(self) -> bool:
        if self._pending is None:
            self._pending = self._count_pending()
        return self._pending.total > 0

    @property
    def last_sync_time(self) -> Optional[datetime]:
        return parse_iso_datetime(self._store.get_setting(LAST_SYNC_TIME_KEY))

    @property
    def last_sync_error(self) -> Optional[str]:
        return self._last_sync_error

    @property
    def auto_sync(self) -> bool:
        return bool(self._store.get_setting(AUTO_SYNC_KEY, self._auto_sync_default))

    def set_auto_sync(self, enabled: bool) -> None:
        self._store.set_setting(AUTO_SYNC_KEY, bool(enabled))
        self._notify()

    def clear_sync_error(self) -> None:
        self._last_sync_error = None
        self._notify()

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def _count_pending(self) -> _PendingCounts:
        return _PendingCounts(
            products=self._store.pending_count(PRODUCTS),
            sales=self._store.pending_count(SALES),
            inventory_changes=self._store.pending_count(INVENTORY_CHANGES),
        )

    def _status(self) -> SyncStatus:
        pending = self._pending or self._count_pending()
        return SyncStatus(
            is_online=self.is_online,
            is_syncing=self._is_syncing,
            has_unsynced_data=pending.total > 0,
            unsynced_products=pending.products,
            unsynced_sales=pending.sales,
            unsynced_inventory_changes=pending.inventory_changes,
            last_sync_time=self.last_sync_time,
            last_sync_error=self._last_sync_error,
            auto_sync=self.auto_sync,
        )

    def _notify(self) -> None:
        if not self._listeners:
            return
        try:
            status = self._status()
        except Exception:
            logger.exception("Could not compute sync status for listeners")
            return
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Sync status listener %r failed", listener)

    def get_sync_status(self) -> SyncStatus:
        """Poll: recompute pending counts and return a fresh status."""
        self._pending = self._count_pending()
        status = self._status()
        self._notify()
        return status

    def status_text(self, now: datetime | None = None) -> str:
        if self._is_syncing:
            return "Syncing..."
        if not self.is_online:
            return "Offline"
        if self.has_unsynced_data:
            return "Has unsynced data"

        last = self.last_sync_time
        if last is None:
            return "Not synced"

        elapsed = (now or self._clock()) - last
        minutes = int(elapsed.total_seconds() // 60)
        if minutes < 1:
            return "Synced just now"
        if minutes < 60:
            return f"Synced {minutes}m ago"
        if minutes < 60 * 24:
            return f"Synced {minutes // 60}h ago"
        return f"Synced {elapsed.days}d ago"

    def unsynced_text(self) -> str:
        if not self.has_unsynced_data:
            return ""
        pending = self._pending
        parts = []
        if pending.products:
            parts.append(_plural(pending.products, "product"))
        if pending.sales:
            parts.append(_plural(pending.sales, "sale"))
        if pending.inventory_changes:
            parts.append(_plural(pending.inventory_changes, "stock change"))
        return ", ".join(parts)

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------
    def _on_connectivity_changed(self, is_online: bool) -> None:
        self._pending = self._count_pending()
        self._notify()
        if not is_online:
            return
        if self.auto_sync and self._pending.total > 0 and not self._is_syncing:
            logger.info("Back online with %d unsynced record(s); starting sync", self._pending.total)
            self._schedule_sync()

    def _schedule_sync(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.run_blocking()
            return
        self._auto_task = loop.create_task(self.sync_all())

    # ------------------------------------------------------------------
    # Sync cycle
    # ------------------------------------------------------------------
    def run_blocking(self) -> SyncResult:
        """Run one cycle on a fresh event loop (views, CLI, inline auto sync)."""
        return asyncio.run(self.sync_and_release())

    async def sync_and_release(self) -> SyncResult:
        """One cycle, then close the remote client bound to the running loop."""
        try:
            return await self.sync_all()
        finally:
            await self.release_remote()

    async def release_remote(self) -> None:
        if self._remote is None:
            return
        try:
            await self._remote.aclose()
        except Exception:
            logger.exception("Closing the remote store client failed")

    async def sync_all(self) -> SyncResult:
        if not self._cycle_lock.acquire(blocking=False):
            return SyncResult(success=False, started=False, message="Sync already in progress")

        try:
            if self._remote is None:
                return SyncResult(success=True, message="Local-only mode; nothing to sync")

            self._is_syncing = True
            self._last_sync_error = None
            self._notify()
            try:
                return await self._run_cycle()
            except Exception as exc:
                logger.exception("Sync cycle aborted")
                return self._fail(SyncResult(success=False, message=""), exc)
        finally:
            self._is_syncing = False
            self._cycle_lock.release()
            if self._remote is not None:
                self._refresh_pending()
                self._notify()

    def _refresh_pending(self) -> None:
        try:
            self._pending = self._count_pending()
        except Exception:
            logger.exception("Could not recount unsynced records")

    def _fail(self, result: SyncResult, exc: BaseException) -> SyncResult:
        result.success = False
        result.message = f"Sync failed: {exc}"
        self._last_sync_error = result.message
        return result

    async def _run_cycle(self) -> SyncResult:
        outcomes = await asyncio.gather(
            self._sync_products(),
            self._sync_sales(),
            self._sync_inventory_changes(),
            return_exceptions=True,
        )

        result = SyncResult(success=True, message="Sync completed successfully")
        errors = []
        for outcome in outcomes:
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                errors.append(outcome)
                continue
            for name, value in outcome.items():
                setattr(result, name, getattr(result, name) + value)

        if errors:
            for exc in errors:
                logger.error("Sync step failed: %s", exc, exc_info=exc)
            return self._fail(result, errors[0])

        self._store.set_setting(LAST_SYNC_TIME_KEY, to_utc_z(self._clock()))
        logger.info(
            "Sync done: products up=%d down=%d, sales up=%d, stock changes up=%d, skipped=%d",
            result.products_uploaded,
            result.products_downloaded,
            result.sales_uploaded,
            result.inventory_changes_uploaded,
            result.skipped_remote_records,
        )
        return result

    async def _push(self, collection: str, remote_collection: str) -> int:
        pushed = 0
        for entity, revision in self._store.snapshot(collection):
            await self._remote.set(remote_collection, entity.id, entity.to_dict(), merge=True)
            self._store.mark_synced(collection, entity.id, revision)
            pushed += 1
        return pushed

    async def _sync_products(self) -> dict:
        uploaded = await self._push(PRODUCTS, REMOTE_PRODUCTS)

        downloaded = 0
        skipped = 0
        for document in await self._remote.get_all(REMOTE_PRODUCTS):
            try:
                remote = Product.from_dict(document)
            except EntityParseError as exc:
                skipped += 1
                logger.warning("Skipping malformed remote product: %s", exc)
                continue
            if self._products.upsert_from_remote(remote):
                downloaded += 1

        return {
            "products_uploaded": uploaded,
            "products_downloaded": downloaded,
            "skipped_remote_records": skipped,
        }

    async def _sync_sales(self) -> dict:
        return {"sales_uploaded": await self._push(SALES, REMOTE_SALES)}

    async def _sync_inventory_changes(self) -> dict:
        return {"inventory_changes_uploaded": await self._push(INVENTORY_CHANGES, REMOTE_INVENTORY_CHANGES)}
