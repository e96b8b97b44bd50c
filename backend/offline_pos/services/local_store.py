# Overview: Embedded key-value store over SQLite; one logical collection per entity type.

from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy import func, update

from ..extensions import db
from ..models import InventoryChange, Product, Sale, StoreRecord
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)
"""
Local Store Invariants (authoritative)

- Records are addressed by (collection, key); put() is an upsert by key.
- get_all() order is unspecified; callers must not rely on it.
- Entity collections are never deleted from; delete() is for settings/cache.
- put(commit=False) participates in the caller's transaction; the caller
  commits or rolls back.
- Every put bumps revision and, unless told otherwise, marks the record as
  pending sync.
"""

PRODUCTS = "products"
SALES = "sales"
INVENTORY_CHANGES = "inventory_changes"
SETTINGS = "settings"
CACHE = "cache"

ENTITY_COLLECTIONS = (PRODUCTS, SALES, INVENTORY_CHANGES)
COLLECTIONS = ENTITY_COLLECTIONS + (SETTINGS, CACHE)


class StoreNotInitializedError(RuntimeError):
    """The store was used before init()."""


class _Codec:
    def __init__(self, schema_version: int, encode: Callable[[Any], Any], decode: Callable[[Any], Any]):
        self.schema_version = schema_version
        self.encode = encode
        self.decode = decode


def _entity_codec(entity_cls) -> _Codec:
    return _Codec(entity_cls.SCHEMA_VERSION, lambda e: e.to_dict(), entity_cls.from_dict)


# Free-form collections hold any JSON value wrapped in {"value": ...}
_RAW_CODEC = _Codec(1, lambda v: {"value": v}, lambda payload: payload.get("value"))

_CODECS = {
    PRODUCTS: _entity_codec(Product),
    SALES: _entity_codec(Sale),
    INVENTORY_CHANGES: _entity_codec(InventoryChange),
    SETTINGS: _RAW_CODEC,
    CACHE: _RAW_CODEC,
}


class LocalStore:
    """
    Persistent, single-device key-value store.

    The only owner of persisted entity state. Repositories write through it;
    the sync engine reads/writes through repositories and the sync
    bookkeeping methods below.
    """

    def __init__(self):
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def init(self) -> None:
        """Create tables if missing. Safe to call repeatedly."""
        db.create_all()
        if not self._initialized:
            logger.info("Local store ready (%s)", db.engine.url.render_as_string(hide_password=True))
        self._initialized = True

    def _codec(self, collection: str) -> _Codec:
        if not self._initialized:
            raise StoreNotInitializedError("LocalStore.init() must run before the store is used")
        try:
            return _CODECS[collection]
        except KeyError:
            raise ValueError(f"Unknown collection {collection!r}") from None

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------
    def get(self, collection: str, key: str):
        codec = self._codec(collection)
        record = db.session.get(StoreRecord, (collection, key))
        if record is None:
            return None
        return codec.decode(record.payload)

    def lock(self, collection: str, key: str):
        """Read a record with a row lock, inside the caller's write transaction."""
        codec = self._codec(collection)
        record = lock_for_update(
            db.session.query(StoreRecord).filter_by(collection=collection, key=key)
        ).first()
        if record is None:
            return None
        return codec.decode(record.payload)

    def exists(self, collection: str, key: str) -> bool:
        self._codec(collection)
        return db.session.query(
            db.session.query(StoreRecord).filter_by(collection=collection, key=key).exists()
        ).scalar()

    def put(self, collection: str, key: str, value, *, pending_sync: bool = True, commit: bool = True) -> int:
        """
        Upsert one record. Returns the new revision.
        """
        codec = self._codec(collection)
        payload = codec.encode(value)

        record = db.session.get(StoreRecord, (collection, key))
        if record is None:
            record = StoreRecord(
                collection=collection,
                key=key,
                schema_version=codec.schema_version,
                payload=payload,
                pending_sync=pending_sync,
                revision=1,
            )
            db.session.add(record)
        else:
            record.schema_version = codec.schema_version
            record.payload = payload
            record.pending_sync = pending_sync
            record.revision = record.revision + 1

        db.session.flush()
        revision = record.revision
        if commit:
            db.session.commit()
        return revision

    def get_all(self, collection: str) -> list:
        codec = self._codec(collection)
        records = db.session.query(StoreRecord).filter_by(collection=collection).all()
        return [codec.decode(r.payload) for r in records]

    def delete(self, collection: str, key: str) -> bool:
        if collection in ENTITY_COLLECTIONS:
            raise ValueError(f"Records in {collection!r} are never deleted")
        self._codec(collection)
        deleted = db.session.query(StoreRecord).filter_by(collection=collection, key=key).delete()
        db.session.commit()
        return bool(deleted)

    def count(self, collection: str) -> int:
        self._codec(collection)
        return (
            db.session.query(func.count(StoreRecord.key))
            .filter(StoreRecord.collection == collection)
            .scalar()
        )

    # ------------------------------------------------------------------
    # Sync bookkeeping
    # ------------------------------------------------------------------
    def pending(self, collection: str) -> list[tuple[Any, int]]:
        """Return (value, revision) for every record awaiting push."""
        codec = self._codec(collection)
        records = (
            db.session.query(StoreRecord)
            .filter_by(collection=collection, pending_sync=True)
            .all()
        )
        return [(codec.decode(r.payload), r.revision) for r in records]

    def snapshot(self, collection: str) -> list[tuple[Any, int]]:
        """Return (value, revision) for every record in a collection."""
        codec = self._codec(collection)
        records = db.session.query(StoreRecord).filter_by(collection=collection).all()
        return [(codec.decode(r.payload), r.revision) for r in records]

    def pending_count(self, collection: str) -> int:
        self._codec(collection)
        return (
            db.session.query(func.count(StoreRecord.key))
            .filter(StoreRecord.collection == collection, StoreRecord.pending_sync.is_(True))
            .scalar()
        )

    def mark_synced(self, collection: str, key: str, revision: int) -> bool:
        """
        Clear pending_sync if the record is still at the pushed revision.

        Returns False when the record was rewritten after the push.
        """
        self._codec(collection)
        result = db.session.execute(
            update(StoreRecord)
            .where(
                StoreRecord.collection == collection,
                StoreRecord.key == key,
                StoreRecord.revision == revision,
            )
            .values(pending_sync=False)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def get_setting(self, key: str, default=None):
        value = self.get(SETTINGS, key)
        return default if value is None else value

    def set_setting(self, key: str, value) -> None:
        # Settings are device-local and never pushed
        self.put(SETTINGS, key, value, pending_sync=False)


def collection_stats(store: LocalStore) -> dict[str, dict[str, int]]:
    return {
        name: {"records": store.count(name), "pending": store.pending_count(name)}
        for name in ENTITY_COLLECTIONS
    }

