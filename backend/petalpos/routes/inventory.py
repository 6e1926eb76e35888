# backend/petalpos/routes/inventory.py
"""
Stock ledger routes.

Quantities are stems unless a `unit` of "package" is given. Time inputs
accept ISO-8601 with Z/offsets and are normalized to UTC-naive.
"""
from flask import Blueprint, jsonify, request

from ..decorators import api_errors, current_actor, json_body
from ..services import inventory_service
from ..units import PACKAGE, STEM, to_packages
from ..validation import ValidationError, optional_str, require_int

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _stock_summary(product_id: int) -> dict:
    product = inventory_service.load_product(product_id)
    packages, loose = to_packages(product, product.stock)
    return {
        "product_id": product.id,
        "stock": product.stock,
        "units_per_package": product.units_per_package,
        "packages": packages,
        "loose_stems": loose,
    }


@inventory_bp.get("/<int:product_id>")
@api_errors("get stock")
def get_stock_route(product_id: int):
    return jsonify(_stock_summary(product_id)), 200


@inventory_bp.post("/receive")
@api_errors("receive stock")
def receive_stock_route():
    payload = json_body()
    movement = inventory_service.receive_stock(
        product_id=require_int(payload, "product_id"),
        quantity=require_int(payload, "quantity"),
        unit=payload.get("unit") or PACKAGE,
        note=optional_str(payload, "note"),
        actor=current_actor(),
        occurred_at=payload.get("occurred_at"),
    )
    return jsonify({"movement": movement.to_dict(), "summary": _stock_summary(movement.product_id)}), 201


@inventory_bp.post("/shrinkage")
@api_errors("record shrinkage")
def record_shrinkage_route():
    """
    Write off stems. {"clamp": true} removes at most what is on hand and
    reports the clamped amount.
    """
    payload = json_body()
    clamp = payload.get("clamp", False)
    if not isinstance(clamp, bool):
        raise ValidationError("clamp must be a boolean")

    result = inventory_service.record_shrinkage(
        product_id=require_int(payload, "product_id"),
        quantity=require_int(payload, "quantity"),
        unit=payload.get("unit") or STEM,
        note=optional_str(payload, "note"),
        clamp=clamp,
        actor=current_actor(),
        occurred_at=payload.get("occurred_at"),
    )
    body = result.to_dict()
    body["summary"] = _stock_summary(result.movement.product_id)
    return jsonify(body), 201


@inventory_bp.post("/adjust")
@api_errors("adjust stock")
def adjust_stock_route():
    payload = json_body()
    reason = payload.get("reason")
    if not reason:
        raise ValidationError("reason is required")

    movement = inventory_service.adjust_stock(
        product_id=require_int(payload, "product_id"),
        delta=require_int(payload, "delta"),
        reason=reason,
        note=optional_str(payload, "note"),
        actor=current_actor(),
        occurred_at=payload.get("occurred_at"),
    )
    return jsonify({"movement": movement.to_dict(), "summary": _stock_summary(movement.product_id)}), 201


@inventory_bp.get("/<int:product_id>/movements")
@api_errors("list stock movements")
def list_movements_route(product_id: int):
    limit = request.args.get("limit", default=200, type=int)
    movements = inventory_service.list_movements(product_id=product_id, limit=min(max(limit, 1), 1000))
    return jsonify({"items": [m.to_dict() for m in movements]}), 200
