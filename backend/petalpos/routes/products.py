# Overview: Flask API routes for the product catalog.

from flask import Blueprint, jsonify, request

from ..decorators import api_errors, current_actor, json_body
from ..models import Product
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_product,
    require_int,
    validate_payload,
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"name", "price_cents"},
)


@products_bp.get("")
@api_errors("list products")
def list_products_route():
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    products = products_service.list_products(
        type=request.args.get("type") or None,
        active_only=not include_inactive,
    )
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.post("")
@api_errors("create product")
def create_product_route():
    """
    Create a product. Optional `initial_stock` (stems) is posted to the
    stock ledger as a restock.
    """
    payload = dict(json_body())
    initial_stock = require_int(payload, "initial_stock", default=0)
    payload.pop("initial_stock", None)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    product = products_service.create_product(patch, initial_stock=initial_stock, actor=current_actor())
    return jsonify({"product": product.to_dict()}), 201


@products_bp.get("/<int:product_id>")
@api_errors("get product")
def get_product_route(product_id: int):
    return jsonify({"product": products_service.get_product(product_id).to_dict()}), 200


@products_bp.patch("/<int:product_id>")
@api_errors("update product")
def update_product_route(product_id: int):
    patch = validate_payload(model=Product, payload=json_body(), policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)
    product = products_service.update_product(product_id, patch)
    return jsonify({"product": product.to_dict()}), 200
