# backend/storepos/routes/inventory.py
"""
Inventory routes.

SECURITY: All routes require authentication.
- Receive operations require RECEIVE_INVENTORY permission
- Adjust operations require ADJUST_INVENTORY permission
- Stock summary requires VIEW_CATALOG permission
- Movement ledger requires VIEW_STOCK_MOVEMENTS permission
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import PosError, ValidationError, error_response
from ..services import stock_ledger
from storepos.time_utils import parse_date

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api")


def _product_id(payload: dict) -> int:
    product_id = payload.get("product_id")
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValidationError("product_id must be an integer")
    return product_id


def _optional_text(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    return value.strip() or None


@inventory_bp.post("/inventory/receive")
@require_auth
@require_permission("RECEIVE_INVENTORY")
def receive_inventory():
    """
    Receive stock: {product_id, qty > 0, unit_cost?, note?}
    """
    payload = request.get_json(silent=True) or {}

    try:
        product_id = _product_id(payload)
        if payload.get("qty") is None:
            raise ValidationError("qty is required")
        movement = stock_ledger.receive_stock(
            product_id=product_id,
            qty=payload["qty"],
            unit_cost=payload.get("unit_cost"),
            note=_optional_text(payload, "note"),
            actor=g.actor,
        )
        summary = stock_ledger.get_stock_summary(product_id)
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to receive inventory")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"movement": movement.to_dict(), "summary": summary}), 201


@inventory_bp.post("/inventory/adjust")
@require_auth
@require_permission("ADJUST_INVENTORY")
def adjust_inventory():
    """
    Adjust stock: {product_id, qty != 0, reason?, note?}
    """
    payload = request.get_json(silent=True) or {}

    try:
        product_id = _product_id(payload)
        if payload.get("qty") is None:
            raise ValidationError("qty is required")
        movement = stock_ledger.adjust_stock(
            product_id=product_id,
            qty=payload["qty"],
            reason=_optional_text(payload, "reason"),
            note=_optional_text(payload, "note"),
            actor=g.actor,
        )
        summary = stock_ledger.get_stock_summary(product_id)
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"movement": movement.to_dict(), "summary": summary}), 201


@inventory_bp.get("/inventory/<int:product_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def stock_summary(product_id: int):
    try:
        summary = stock_ledger.get_stock_summary(product_id)
    except PosError as e:
        return error_response(e)
    return jsonify(summary), 200


@inventory_bp.get("/stock-movements")
@require_auth
@require_permission("VIEW_STOCK_MOVEMENTS")
def list_stock_movements():
    """
    Query params: product_id, type, date (YYYY-MM-DD), page, per_page
    """
    try:
        try:
            day = parse_date(request.args.get("date"))
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
        result = stock_ledger.list_movements(
            product_id=request.args.get("product_id", type=int),
            movement_type=request.args.get("type") or None,
            day=day,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
    except PosError as e:
        return error_response(e)
    return jsonify(result), 200
