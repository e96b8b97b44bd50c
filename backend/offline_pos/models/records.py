from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z


class StoreRecord(db.Model):
    """
    One addressable record in the local key-value store.

    COLLECTIONS: products, sales, inventory_changes, settings, cache.
    The entity itself lives in payload (wire format); everything else is
    store metadata.

    SYNC BOOKKEEPING:
    - pending_sync is set on every local write and cleared once the record
      has been pushed (or when it was written from remote data).
    - revision increases on every put; clearing pending_sync is conditional on
      the revision that was pushed, so an edit racing a push stays pending.
    """
    __tablename__ = "store_records"
    __table_args__ = (
        db.Index("ix_store_records_pending", "collection", "pending_sync"),
    )

    collection = db.Column(db.String(64), primary_key=True)
    key = db.Column(db.String(191), primary_key=True)

    schema_version = db.Column(db.Integer, nullable=False, default=1)
    payload = db.Column(db.JSON, nullable=False)

    pending_sync = db.Column(db.Boolean, nullable=False, default=True)
    revision = db.Column(db.Integer, nullable=False, default=1)

    written_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<StoreRecord {self.collection}/{self.key} rev={self.revision} pending={self.pending_sync}>"

    def to_dict(self) -> dict:
        return {
            "collection": self.collection,
            "key": self.key,
            "schema_version": self.schema_version,
            "payload": self.payload,
            "pending_sync": self.pending_sync,
            "revision": self.revision,
            "written_at": to_utc_z(self.written_at),
        }
