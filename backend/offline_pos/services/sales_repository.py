"""
Sales repository - sale capture with stock deduction.

Sale creation runs as a two-step saga:

1. The Sale is written with stock_status="pending" and committed. From here
   on the sale is durable no matter what happens next.
2. In ONE write transaction, for each item in input order: read the product,
   deduct the quantity, write it back and append an InventoryChange with the
   deterministic id "<sale_id>:<line_index>"; then flip the sale to
   stock_status="applied".

If step 2 fails it is rolled back as a whole, the sale stays pending and
SaleError propagates. reconcile_pending_sales() replays step 2; change ids
make the replay idempotent.

Missing products are skipped (no stock write, no change row) and reported
through on_missing_product; the sale still records the line.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from ..extensions import db
from ..models import (
    InventoryChange,
    Sale,
    SaleItem,
    REASON_SALE,
    STOCK_APPLIED,
    STOCK_PENDING,
    sale_line_change_id,
)
from ..time_utils import utcnow
from .concurrency import begin_write, run_with_retry
from .local_store import INVENTORY_CHANGES, PRODUCTS, SALES, LocalStore

logger = logging.getLogger(__name__)

# (operation, product_id, reference) -> None; reference is the sale id for sales
MissingProductHook = Callable[[str, str, Optional[str]], None]


class SaleError(Exception):
    """Raised when a durable sale could not have its stock applied."""
    def __init__(self, message: str, sale_id: str, details: dict | None = None):
        super().__init__(message)
        self.sale_id = sale_id
        self.details = details or {}


class SalesRepository:
    def __init__(
        self,
        store: LocalStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        on_missing_product: MissingProductHook | None = None,
    ):
        self._store = store
        self._clock = clock
        self._id_factory = id_factory
        self._on_missing_product = on_missing_product
        self.missing_product_skips = 0

    def get_all(self) -> list[Sale]:
        return self._store.get_all(SALES)

    def get_by_id(self, sale_id: str) -> Optional[Sale]:
        return self._store.get(SALES, sale_id)

    def get_inventory_changes(self, product_id: str | None = None) -> list[InventoryChange]:
        changes = self._store.get_all(INVENTORY_CHANGES)
        if product_id is not None:
            changes = [c for c in changes if c.product_id == product_id]
        return changes

    def _report_missing(self, operation: str, product_id: str, reference: str | None) -> None:
        self.missing_product_skips += 1
        logger.warning("%s skipped missing product %s (ref=%s)", operation, product_id, reference)
        if self._on_missing_product is not None:
            self._on_missing_product(operation, product_id, reference)

    # ------------------------------------------------------------------
    # Sale capture
    # ------------------------------------------------------------------
    def create_sale(
        self,
        items: Iterable[SaleItem],
        order_discount: float = 0.0,
        tax_rate_percent: float = 0.0,
        cash_paid: float = 0.0,
        card_paid: float = 0.0,
        mobile_money_paid: float = 0.0,
    ) -> Sale:
        now = self._clock()
        sale = Sale(
            id=self._id_factory(),
            items=tuple(items),
            discount=order_discount,
            tax_rate_percent=tax_rate_percent,
            cash_paid=cash_paid,
            card_paid=card_paid,
            mobile_money_paid=mobile_money_paid,
            created_at=now,
            updated_at=now,
            stock_status=STOCK_PENDING,
        )

        # Step 1: durable sale record
        self._store.put(SALES, sale.id, sale)

        # Step 2: stock deduction + audit trail, all or nothing
        return self._apply_stock(sale)

    def _apply_stock(self, sale: Sale) -> Sale:
        def _op():
            begin_write()
            current = self._store.lock(SALES, sale.id)
            if current is None:
                raise SaleError("Sale not found", sale_id=sale.id)
            if current.stock_status == STOCK_APPLIED:
                db.session.commit()
                return current, []

            now = self._clock()
            missing = []
            for index, item in enumerate(current.items):
                change_id = sale_line_change_id(current.id, index)
                if self._store.exists(INVENTORY_CHANGES, change_id):
                    continue

                product = self._store.lock(PRODUCTS, item.product_id)
                if product is None:
                    missing.append(item.product_id)
                    continue

                updated = product.with_stock_delta(-item.quantity, now)
                self._store.put(PRODUCTS, updated.id, updated, commit=False)
                change = InventoryChange(
                    id=change_id,
                    product_id=product.id,
                    delta=-item.quantity,
                    reason=REASON_SALE,
                    created_at=now,
                    sale_id=current.id,
                )
                self._store.put(INVENTORY_CHANGES, change.id, change, commit=False)

            applied = replace(current, stock_status=STOCK_APPLIED)
            self._store.put(SALES, applied.id, applied, commit=False)
            db.session.commit()
            return applied, missing

        try:
            applied, missing = run_with_retry(_op)
        except SaleError:
            db.session.rollback()
            raise
        except Exception as exc:
            db.session.rollback()
            logger.exception("Stock application failed for sale %s; sale left pending", sale.id)
            raise SaleError(
                "Sale recorded but stock was not applied",
                sale_id=sale.id,
                details={"error": str(exc)},
            ) from exc

        for product_id in missing:
            self._report_missing("sale", product_id, applied.id)
        return applied

    def reconcile_pending_sales(self) -> list[str]:
        """
        Re-apply stock for every sale still marked pending.

        Idempotent. Returns the ids of sales that were completed.
        """
        reconciled = []
        for sale in self.get_all():
            if not sale.stock_pending:
                continue
            self._apply_stock(sale)
            reconciled.append(sale.id)
        if reconciled:
            logger.info("Reconciled stock for %d pending sale(s)", len(reconciled))
        return reconciled

    # ------------------------------------------------------------------
    # Manual stock adjustments
    # ------------------------------------------------------------------
    def record_manual_adjustment(self, product_id: str, delta: int, reason: str) -> Optional[InventoryChange]:
        """
        Apply a signed stock delta (returns, damage, counts...).

        Missing product -> silent no-op (returns None).
        """
        def _op():
            begin_write()
            product = self._store.lock(PRODUCTS, product_id)
            if product is None:
                db.session.commit()
                return None

            now = self._clock()
            updated = product.with_stock_delta(delta, now)
            self._store.put(PRODUCTS, updated.id, updated, commit=False)
            change = InventoryChange(
                id=self._id_factory(),
                product_id=product_id,
                delta=delta,
                reason=reason,
                created_at=now,
            )
            self._store.put(INVENTORY_CHANGES, change.id, change, commit=False)
            db.session.commit()
            return change

        change = run_with_retry(_op)
        if change is None:
            self._report_missing("adjustment", product_id, None)
        return change
