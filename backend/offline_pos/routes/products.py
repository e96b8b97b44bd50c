# Overview: Flask API routes for products; parses input and returns JSON responses.

from dataclasses import replace

from flask import Blueprint, current_app, request

from ..services.container import get_services
from ..validation import (
    PRODUCT_POLICY,
    ValidationError,
    parse_adjustment_payload,
    validate_payload,
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List products.

    Query params:
    - q: str (optional) - case-insensitive match on name or barcode
    - barcode: str (optional) - exact barcode lookup (returns 0 or 1 item)
    """
    products = get_services().products
    barcode = request.args.get("barcode")
    if barcode:
        found = products.get_by_barcode(barcode)
        items = [found] if found else []
    else:
        items = products.search(request.args.get("q", ""))

    items.sort(key=lambda p: (p.name.lower(), p.id))
    return {"items": [p.to_dict() for p in items], "count": len(items)}


@products_bp.get("/<product_id>")
def get_product(product_id: str):
    product = get_services().products.get_by_id(product_id)
    if product is None:
        return {"error": "Product not found"}, 404
    return product.to_dict()


@products_bp.post("")
def create_product_route():
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(payload, PRODUCT_POLICY, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    products = get_services().products
    if patch.get("id") and products.get_by_id(patch["id"]) is not None:
        return {"error": f"Product {patch['id']} already exists"}, 409

    try:
        created = products.create(**patch)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500
    return created.to_dict(), 201


@products_bp.put("/<product_id>")
def update_product_route(product_id: str):
    payload = request.get_json(silent=True)
    try:
        patch = validate_payload(payload, PRODUCT_POLICY, partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400
    patch.pop("id", None)

    products = get_services().products
    existing = products.get_by_id(product_id)
    if existing is None:
        return {"error": "Product not found"}, 404

    try:
        updated = products.update(replace(existing, **patch))
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500
    return updated.to_dict()


@products_bp.post("/<product_id>/adjustments")
def adjust_stock_route(product_id: str):
    """
    Record a manual stock adjustment.

    Body: {"delta": int, "reason": "adjustment" | "return" | "damage" | ...}
    """
    try:
        data = parse_adjustment_payload(request.get_json(silent=True))
    except ValidationError as e:
        return {"error": str(e)}, 400

    services = get_services()
    try:
        change = services.sales.record_manual_adjustment(product_id, data["delta"], data["reason"])
    except Exception:
        current_app.logger.exception("Failed to record stock adjustment")
        return {"error": "Internal server error"}, 500

    if change is None:
        return {"error": "Product not found"}, 404
    return {
        "change": change.to_dict(),
        "product": services.products.get_by_id(product_id).to_dict(),
    }, 201
