# Overview: Product repository; CRUD over the local store plus the remote-merge entry point.

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from ..models import Product
from ..time_utils import utcnow
from .local_store import PRODUCTS, LocalStore

logger = logging.getLogger(__name__)


class ProductRepository:
    """
    Products are keyed by id and never deleted.

    Conflict policy for upsert_from_remote (last-write-wins):
    - No local record -> take remote.
    - remote.updated_at strictly later than local -> take remote.
    - Otherwise (older or tie) -> keep local.

    There are no vector clocks: with skewed device clocks one side of two
    concurrent edits is lost. Known limitation.
    """

    def __init__(
        self,
        store: LocalStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self._store = store
        self._clock = clock
        self._id_factory = id_factory

    def get_all(self) -> list[Product]:
        return self._store.get_all(PRODUCTS)

    def get_by_id(self, product_id: str) -> Optional[Product]:
        return self._store.get(PRODUCTS, product_id)

    def get_by_barcode(self, barcode: str) -> Optional[Product]:
        for product in self.get_all():
            if product.barcode == barcode:
                return product
        return None

    def search(self, query: str) -> list[Product]:
        """Case-insensitive substring match on name or barcode."""
        q = (query or "").strip().lower()
        products = self.get_all()
        if not q:
            return products
        return [
            p for p in products
            if q in p.name.lower() or (p.barcode is not None and q in p.barcode.lower())
        ]

    def create(
        self,
        *,
        name: str,
        price: float,
        stock_quantity: int,
        id: str | None = None,
        description: str | None = None,
        barcode: str | None = None,
        cost: float | None = None,
        category: str | None = None,
        image_base64: str | None = None,
    ) -> Product:
        product = Product(
            id=id or self._id_factory(),
            name=name,
            description=description,
            barcode=barcode,
            price=price,
            cost=cost,
            category=category,
            stock_quantity=stock_quantity,
            image_base64=image_base64,
            updated_at=self._clock(),
        )
        self.upsert(product)
        return product

    def update(self, product: Product) -> Product:
        """Overwrite with a fresh updated_at stamp."""
        updated = replace(product, updated_at=self._clock())
        self.upsert(updated)
        return updated

    def upsert(self, product: Product) -> Product:
        """Write/overwrite by id as given; no validation beyond type shape."""
        if not isinstance(product, Product):
            raise TypeError(f"expected Product, got {type(product).__name__}")
        self._store.put(PRODUCTS, product.id, product)
        return product

    def upsert_from_remote(self, remote: Product) -> bool:
        """
        Merge a product pulled from the remote store.

        Returns True when the remote version was written.
        """
        local = self._store.get(PRODUCTS, remote.id)
        if local is not None and not remote.updated_at > local.updated_at:
            return False

        # Accepted remote state is already in sync with the remote store
        self._store.put(PRODUCTS, remote.id, remote, pending_sync=False)
        logger.debug("Took remote version of product %s", remote.id)
        return True
