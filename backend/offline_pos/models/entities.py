"""
Entity model for the offline-first data layer.

Wire format (local persistence AND remote sync payloads):
- Each entity serializes to a flat dict of camelCase field name -> JSON value.
- Timestamps are ISO-8601 UTC strings with trailing 'Z'.
- Money and quantities are plain numbers.

Entities are immutable; use dataclasses.replace() to derive updated copies.
Decoders tolerate missing optional fields so new fields can be added
additively; SCHEMA_VERSION is stored beside each persisted record.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

from ..time_utils import parse_iso_datetime, to_utc_z

STOCK_PENDING = "pending"
STOCK_APPLIED = "applied"

# Open enum: any other string is accepted and persisted as-is
REASON_SALE = "sale"
REASON_ADJUSTMENT = "adjustment"
REASON_RETURN = "return"
REASON_DAMAGE = "damage"
KNOWN_REASONS = (REASON_SALE, REASON_ADJUSTMENT, REASON_RETURN, REASON_DAMAGE)


class EntityParseError(ValueError):
    """Wire data could not be decoded into an entity."""


def _require(data: dict, key: str) -> Any:
    if not isinstance(data, dict):
        raise EntityParseError("document must be a mapping")
    if key not in data or data[key] is None:
        raise EntityParseError(f"{key} is required")
    return data[key]


def _str(data: dict, key: str, *, required: bool = True) -> Optional[str]:
    value = _require(data, key) if required else data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise EntityParseError(f"{key} must be a string")
    return value


def _number(data: dict, key: str, *, required: bool = True, default: float | None = None) -> Optional[float]:
    value = _require(data, key) if required else data.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EntityParseError(f"{key} must be a number")
    return float(value)


def _int(data: dict, key: str) -> int:
    value = _require(data, key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EntityParseError(f"{key} must be a number")
    if isinstance(value, float) and not value.is_integer():
        raise EntityParseError(f"{key} must be a whole number")
    return int(value)


def _timestamp(data: dict, key: str) -> datetime:
    raw = _str(data, key)
    try:
        parsed = parse_iso_datetime(raw)
    except ValueError as exc:
        raise EntityParseError(f"{key} is not an ISO-8601 timestamp") from exc
    if parsed is None:
        raise EntityParseError(f"{key} is required")
    return parsed


@dataclass(frozen=True)
class Product:
    SCHEMA_VERSION = 1

    id: str
    name: str
    price: float
    stock_quantity: int
    updated_at: datetime
    description: Optional[str] = None
    barcode: Optional[str] = None
    cost: Optional[float] = None
    category: Optional[str] = None
    image_base64: Optional[str] = None

    def with_stock_delta(self, delta: int, updated_at: datetime) -> "Product":
        # No floor: over-selling is allowed to drive stock negative
        return replace(self, stock_quantity=self.stock_quantity + delta, updated_at=updated_at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "barcode": self.barcode,
            "price": self.price,
            "cost": self.cost,
            "category": self.category,
            "stockQuantity": self.stock_quantity,
            "imageBase64": self.image_base64,
            "updatedAt": to_utc_z(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        return cls(
            id=_str(data, "id"),
            name=_str(data, "name"),
            description=_str(data, "description", required=False),
            barcode=_str(data, "barcode", required=False),
            price=_number(data, "price"),
            cost=_number(data, "cost", required=False),
            category=_str(data, "category", required=False),
            stock_quantity=_int(data, "stockQuantity"),
            image_base64=_str(data, "imageBase64", required=False),
            updated_at=_timestamp(data, "updatedAt"),
        )


@dataclass(frozen=True)
class SaleItem:
    product_id: str
    name: str
    quantity: int
    unit_price: float
    discount: float = 0.0

    @property
    def line_subtotal(self) -> float:
        return self.unit_price * self.quantity

    @property
    def line_total(self) -> float:
        return self.line_subtotal - self.discount

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "discount": self.discount,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SaleItem":
        return cls(
            product_id=_str(data, "productId"),
            name=_str(data, "name"),
            quantity=_int(data, "quantity"),
            unit_price=_number(data, "unitPrice"),
            discount=_number(data, "discount", required=False, default=0.0) or 0.0,
        )


@dataclass(frozen=True)
class Sale:
    """
    A completed checkout.

    total and paid_total are derived independently; over/under payment is
    representable and left to the caller.
    """
    SCHEMA_VERSION = 1

    id: str
    items: tuple[SaleItem, ...]
    discount: float
    tax_rate_percent: float
    cash_paid: float
    card_paid: float
    mobile_money_paid: float
    created_at: datetime
    updated_at: datetime
    stock_status: str = STOCK_APPLIED

    @property
    def subtotal(self) -> float:
        return sum((item.line_total for item in self.items), 0.0) - self.discount

    @property
    def tax(self) -> float:
        return self.subtotal * (self.tax_rate_percent / 100.0)

    @property
    def total(self) -> float:
        return self.subtotal + self.tax

    @property
    def paid_total(self) -> float:
        return self.cash_paid + self.card_paid + self.mobile_money_paid

    @property
    def stock_pending(self) -> bool:
        return self.stock_status == STOCK_PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "items": [item.to_dict() for item in self.items],
            "discount": self.discount,
            "taxRatePercent": self.tax_rate_percent,
            "cashPaid": self.cash_paid,
            "cardPaid": self.card_paid,
            "mobileMoneyPaid": self.mobile_money_paid,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
            "stockStatus": self.stock_status,
        }

    def to_summary(self) -> dict:
        """Wire dict plus derived totals, for UI consumers."""
        data = self.to_dict()
        data.update({
            "subtotal": self.subtotal,
            "tax": self.tax,
            "total": self.total,
            "paidTotal": self.paid_total,
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Sale":
        raw_items = _require(data, "items")
        if not isinstance(raw_items, list):
            raise EntityParseError("items must be a list")
        return cls(
            id=_str(data, "id"),
            items=tuple(SaleItem.from_dict(item) for item in raw_items),
            discount=_number(data, "discount"),
            tax_rate_percent=_number(data, "taxRatePercent"),
            cash_paid=_number(data, "cashPaid"),
            card_paid=_number(data, "cardPaid"),
            mobile_money_paid=_number(data, "mobileMoneyPaid"),
            created_at=_timestamp(data, "createdAt"),
            updated_at=_timestamp(data, "updatedAt"),
            stock_status=_str(data, "stockStatus", required=False) or STOCK_APPLIED,
        )


@dataclass(frozen=True)
class InventoryChange:
    """Append-only record of why a product's stock moved."""
    SCHEMA_VERSION = 1

    id: str
    product_id: str
    delta: int
    reason: str
    created_at: datetime
    sale_id: Optional[str] = field(default=None)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "delta": self.delta,
            "reason": self.reason,
            "createdAt": to_utc_z(self.created_at),
            "saleId": self.sale_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InventoryChange":
        return cls(
            id=_str(data, "id"),
            product_id=_str(data, "productId"),
            delta=_int(data, "delta"),
            reason=_str(data, "reason"),
            created_at=_timestamp(data, "createdAt"),
            sale_id=_str(data, "saleId", required=False),
        )


def sale_line_change_id(sale_id: str, line_index: int) -> str:
    """Deterministic id of the InventoryChange for one sale line."""
    return f"{sale_id}:{line_index}"
