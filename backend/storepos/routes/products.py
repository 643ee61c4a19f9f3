# backend/storepos/routes/products.py
"""
Catalog routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_CATALOG permission
- Write operations require MANAGE_PRODUCTS permission
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission
from ..errors import PosError, error_response
from ..models import Product
from ..money import parse_qty
from ..services import products_service
from ..validation import ModelValidationPolicy, validate_payload

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"category_id", "sku", "name", "barcode", "price", "cost", "uom", "is_active"},
    required_on_create={"sku", "name", "price"},
    extra_fields={"qty_on_hand"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api")


@products_bp.get("/categories")
@require_auth
@require_permission("VIEW_CATALOG")
def list_categories():
    categories = products_service.list_categories()
    return jsonify({"items": [c.to_dict() for c in categories]}), 200


@products_bp.get("/products")
@require_auth
@require_permission("VIEW_CATALOG")
def list_products():
    """
    Query params:
    - search: substring of name, sku, or barcode
    - category_id: int
    - status: active | inactive | deleted
    - active_only: bool
    """
    try:
        products = products_service.list_products(
            search=request.args.get("search"),
            category_id=request.args.get("category_id", type=int),
            status=request.args.get("status"),
            active_only=request.args.get("active_only", "").lower() in ("1", "true", "yes"),
        )
    except PosError as e:
        return error_response(e)

    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/products/by-barcode/<string:barcode>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_product_by_barcode(barcode: str):
    try:
        product = products_service.get_product_by_barcode(barcode)
    except PosError as e:
        return error_response(e)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/products/<int:product_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_product(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except PosError as e:
        return error_response(e)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/products")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product():
    """
    Create a product. Optional qty_on_hand is posted as opening stock.
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        opening_qty = None
        if payload.get("qty_on_hand") is not None:
            opening_qty = parse_qty("qty_on_hand", payload["qty_on_hand"])
        product = products_service.create_product(patch=patch, actor=g.actor, opening_qty=opening_qty)
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 201


@products_bp.put("/products/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product(product_id: int):
    payload = request.get_json(silent=True) or {}
    payload.pop("qty_on_hand", None)  # stock only changes through the ledger

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        product = products_service.update_product(product_id=product_id, patch=patch)
    except PosError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/products/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def delete_product(product_id: int):
    try:
        product = products_service.delete_product(product_id=product_id)
    except PosError as e:
        return error_response(e)
    return jsonify({"id": product.id, "deleted": True}), 200


@products_bp.post("/products/<int:product_id>/restore")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def restore_product(product_id: int):
    try:
        product = products_service.restore_product(product_id=product_id)
    except PosError as e:
        return error_response(e)
    return jsonify({"product": product.to_dict()}), 200
