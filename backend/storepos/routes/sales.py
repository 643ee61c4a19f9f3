# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/storepos/routes/sales.py
"""Sales API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import PosError, ValidationError, error_response
from ..services import sales_service
from storepos.time_utils import parse_date


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def post_sale_route():
    """
    Post a cart as a sale.

    Body: {items: [{product_id, qty}], cash_received, payment_type?}

    Requires: CREATE_SALE permission
    Available to: admin, cashier
    """
    data = request.get_json(silent=True) or {}

    try:
        if data.get("cash_received") is None:
            raise ValidationError("cash_received is required")
        sale = sales_service.post_sale(
            items=data.get("items"),
            cash_received=data["cash_received"],
            payment_type=data.get("payment_type"),
            actor=g.actor,
        )
        receipt = sales_service.receipt_payload(sale)
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to post sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": receipt}), 201


@sales_bp.get("")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """
    Most recent 50 sales, optionally for one day (?date=YYYY-MM-DD).
    """
    try:
        day = parse_date(request.args.get("date"))
    except ValueError:
        return error_response(ValidationError("date must be YYYY-MM-DD"))

    return jsonify({"items": sales_service.list_sales(day=day)}), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    """
    Receipt payload for rendering or reprinting.

    Admins see every receipt; a cashier sees only their own sales.
    """
    try:
        receipt = sales_service.get_receipt(sale_id, actor=g.actor)
    except PosError as e:
        return error_response(e)
    return jsonify({"sale": receipt}), 200


@sales_bp.post("/<int:sale_id>/void")
@require_auth
@require_permission("VOID_SALE")
def void_sale_route(sale_id: int):
    """
    Void a posted sale and restore its stock.

    Requires: VOID_SALE permission
    Available to: admin
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = sales_service.void_sale(
            sale_id=sale_id,
            reason=data.get("reason"),
            actor=g.actor,
        )
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"sale": sale.to_dict()}), 200
