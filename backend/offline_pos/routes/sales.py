# Overview: Flask API routes for sales and the stock audit trail.

from flask import Blueprint, current_app, request

from ..services.container import get_services
from ..services.sales_repository import SaleError
from ..validation import ValidationError, parse_sale_payload

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales():
    sales = sorted(get_services().sales.get_all(), key=lambda s: s.created_at, reverse=True)
    return {"items": [s.to_summary() for s in sales], "count": len(sales)}


@sales_bp.get("/<sale_id>")
def get_sale(sale_id: str):
    sale = get_services().sales.get_by_id(sale_id)
    if sale is None:
        return {"error": "Sale not found"}, 404
    return sale.to_summary()


@sales_bp.post("")
def create_sale_route():
    """
    Record a checkout and deduct stock.

    Totals are derived; payment tenders are recorded as given and are not
    required to match the total.
    """
    try:
        data = parse_sale_payload(
            request.get_json(silent=True),
            current_app.config.get("DEFAULT_TAX_RATE_PERCENT", 0.0),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        sale = get_services().sales.create_sale(**data)
    except SaleError as e:
        # The sale itself is durable; stock is pending reconciliation
        current_app.logger.error("Sale %s recorded without stock: %s", e.sale_id, e.details)
        return {"error": str(e), "sale_id": e.sale_id, "details": e.details}, 500
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return {"error": "Internal server error"}, 500

    return sale.to_summary(), 201


@sales_bp.post("/reconcile")
def reconcile_route():
    try:
        reconciled = get_services().sales.reconcile_pending_sales()
    except SaleError as e:
        return {"error": str(e), "sale_id": e.sale_id, "details": e.details}, 500
    return {"reconciled": reconciled, "count": len(reconciled)}


@sales_bp.get("/inventory-changes")
def list_inventory_changes():
    """Stock audit trail, newest first; optional product_id filter."""
    changes = get_services().sales.get_inventory_changes(request.args.get("product_id"))
    changes.sort(key=lambda c: c.created_at, reverse=True)
    return {"items": [c.to_dict() for c in changes], "count": len(changes)}
