from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models import SaleItem

# Maximum price: 9,999,999.99 in any currency
# This prevents nonsensical prices from a mistyped barcode/price field
MAX_PRICE = 9_999_999.99


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer:
    - fields: wire name -> (attribute name, kind) clients may set
    - required_on_create: wire names required for POST
    """
    fields: dict[str, tuple[str, str]]
    required_on_create: frozenset[str] = frozenset()


PRODUCT_POLICY = PayloadPolicy(
    fields={
        "id": ("id", "str"),
        "name": ("name", "str"),
        "description": ("description", "str"),
        "barcode": ("barcode", "str"),
        "price": ("price", "money"),
        "cost": ("cost", "money"),
        "category": ("category", "str"),
        "stockQuantity": ("stock_quantity", "int"),
        "imageBase64": ("image_base64", "str"),
    },
    required_on_create=frozenset({"name", "price", "stockQuantity"}),
)

NULLABLE_PRODUCT_FIELDS = {"description", "barcode", "cost", "category", "imageBase64"}


def coerce_int(key: str, value: Any) -> int:
    # bool is a subclass of int; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15") and decimals
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    raise ValidationError(f"{key} must be an integer")


def coerce_money(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, (int, float)):
        amount = float(value)
    elif isinstance(value, str):
        try:
            amount = float(value.strip())
        except ValueError:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")

    if amount != amount or amount in (float("inf"), float("-inf")):
        raise ValidationError(f"{key} must be a finite number")
    if amount < 0:
        raise ValidationError(f"{key} cannot be negative")
    if amount > MAX_PRICE:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE:,.2f}")
    return amount


def coerce_str(key: str, value: Any) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value.strip()


_COERCERS = {"int": coerce_int, "money": coerce_money, "str": coerce_str}


def validate_payload(payload: Any, policy: PayloadPolicy, *, partial: bool) -> dict[str, Any]:
    """
    Validate a JSON body against a policy.

    Returns a patch keyed by entity attribute name. Unknown keys are rejected.
    """
    if not isinstance(payload, dict):
        raise ValidationError("JSON body must be an object")

    unknown = set(payload) - set(policy.fields)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    if not partial:
        missing = [k for k in sorted(policy.required_on_create) if payload.get(k) is None]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    patch: dict[str, Any] = {}
    for key, value in payload.items():
        attr, kind = policy.fields[key]
        if value is None:
            if key not in NULLABLE_PRODUCT_FIELDS:
                raise ValidationError(f"{key} cannot be null")
            patch[attr] = None
            continue
        patch[attr] = _COERCERS[kind](key, value)

    if "name" in patch and not patch["name"]:
        raise ValidationError("name cannot be empty")
    return patch


def parse_sale_items(raw_items: Any) -> list[SaleItem]:
    """
    Sale lines from a request body.

    Quantities must be positive; product ids are not checked against the
    store (unknown products are skipped at stock-deduction time).
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        prefix = f"items[{index}]"
        for key in ("productId", "name", "quantity", "unitPrice"):
            if raw.get(key) is None:
                raise ValidationError(f"{prefix}.{key} is required")

        quantity = coerce_int(f"{prefix}.quantity", raw["quantity"])
        if quantity <= 0:
            raise ValidationError(f"{prefix}.quantity must be positive")

        items.append(SaleItem(
            product_id=coerce_str(f"{prefix}.productId", raw["productId"]),
            name=coerce_str(f"{prefix}.name", raw["name"]),
            quantity=quantity,
            unit_price=coerce_money(f"{prefix}.unitPrice", raw["unitPrice"]),
            discount=coerce_money(f"{prefix}.discount", raw.get("discount") or 0),
        ))
    return items


def parse_sale_payload(payload: Any, default_tax_rate_percent: float) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError("JSON body must be an object")

    tax_rate = payload.get("taxRatePercent")
    return {
        "items": parse_sale_items(payload.get("items")),
        "order_discount": coerce_money("discount", payload.get("discount") or 0),
        "tax_rate_percent": (
            default_tax_rate_percent if tax_rate is None else coerce_money("taxRatePercent", tax_rate)
        ),
        "cash_paid": coerce_money("cashPaid", payload.get("cashPaid") or 0),
        "card_paid": coerce_money("cardPaid", payload.get("cardPaid") or 0),
        "mobile_money_paid": coerce_money("mobileMoneyPaid", payload.get("mobileMoneyPaid") or 0),
    }


def parse_adjustment_payload(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise ValidationError("JSON body must be an object")
    if payload.get("delta") is None:
        raise ValidationError("delta is required")
    delta = coerce_int("delta", payload["delta"])
    if delta == 0:
        raise ValidationError("delta cannot be zero")
    reason = coerce_str("reason", payload.get("reason") or "adjustment")
    if not reason:
        raise ValidationError("reason cannot be empty")
    return {"delta": delta, "reason": reason}
