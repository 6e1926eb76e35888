# Overview: Flask API routes for the point-of-sale cart; parses input and returns JSON responses.

"""Order composer API routes"""

from flask import Blueprint, jsonify, request

from ..decorators import api_errors, current_actor, json_body
from ..services import order_service
from ..validation import ValidationError, optional_str, require_int

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@api_errors("create order")
def create_order_route():
    payload = json_body()
    order = order_service.create_order(actor=current_actor(), **_detail_fields(payload))
    return jsonify({"order": order.to_dict()}), 201


_DETAIL_LIMITS = {"client_name": 128, "client_phone": 32, "dedication": 255, "note": 255}


def _detail_fields(payload: dict) -> dict:
    """Client/schedule fields present in the body, length-checked."""
    fields = {key: optional_str(payload, key, max_length=limit)
              for key, limit in _DETAIL_LIMITS.items() if key in payload}
    if "scheduled_for" in payload:
        fields["scheduled_for"] = payload["scheduled_for"] or None
    return fields


@orders_bp.patch("/<int:order_id>")
@api_errors("update order details")
def update_details_route(order_id: int):
    payload = json_body()
    unknown = set(payload) - order_service.ORDER_DETAIL_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    order = order_service.update_details(order_id, _detail_fields(payload))
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/fulfillment")
@api_errors("advance order fulfilment")
def advance_fulfillment_route(order_id: int):
    """Body: {"status": "preparing" | "delivered", "now"?}"""
    payload = json_body()
    status = payload.get("status")
    if not status:
        raise ValidationError("status is required")
    order = order_service.advance_fulfillment(
        order_id, status, now=payload.get("now"), actor=current_actor(),
    )
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.get("")
@api_errors("list orders")
def list_orders_route():
    limit = request.args.get("limit", default=50, type=int)
    orders = order_service.list_orders(
        status=request.args.get("status") or None,
        limit=min(max(limit, 1), 500),
    )
    return jsonify({"items": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/<int:order_id>")
@api_errors("get order")
def get_order_route(order_id: int):
    return jsonify({"order": order_service.get_order(order_id).to_dict()}), 200


@orders_bp.post("/<int:order_id>/items/standard")
@api_errors("add standard item")
def add_standard_item_route(order_id: int):
    payload = json_body()
    line = order_service.add_standard_item(
        order_id,
        require_int(payload, "product_id"),
        require_int(payload, "quantity", default=1),
    )
    return jsonify({"line": line.to_dict(), "order": line.order.to_dict()}), 201


@orders_bp.post("/<int:order_id>/items/custom")
@api_errors("add custom item")
def add_custom_item_route(order_id: int):
    """
    Body: {"name", "unit_price_cents", "quantity"?, "composition": [
        {"product_id": 1, "color_allocations": {"red": 6, "white": 3}}
    ]}
    """
    payload = json_body()
    composition = payload.get("composition") or []
    if not isinstance(composition, list):
        raise ValidationError("composition must be a list")

    line = order_service.add_custom_item(
        order_id,
        name=payload.get("name") or "",
        unit_price_cents=require_int(payload, "unit_price_cents"),
        composition=composition,
        quantity=require_int(payload, "quantity", default=1),
    )
    return jsonify({"line": line.to_dict(), "order": line.order.to_dict()}), 201


@orders_bp.patch("/<int:order_id>/items/<int:line_id>")
@api_errors("update item quantity")
def update_quantity_route(order_id: int, line_id: int):
    payload = json_body()
    line = order_service.update_quantity(order_id, line_id, require_int(payload, "delta"))
    return jsonify({"line": line.to_dict(), "order": line.order.to_dict()}), 200


@orders_bp.delete("/<int:order_id>/items/<int:line_id>")
@api_errors("remove item")
def remove_item_route(order_id: int, line_id: int):
    order = order_service.remove_item(order_id, line_id)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/clear")
@api_errors("clear order")
def clear_order_route(order_id: int):
    order = order_service.clear_order(order_id)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/commit")
@api_errors("commit order")
def commit_order_route(order_id: int):
    order = order_service.commit_order(order_id, actor=current_actor())
    return jsonify({"order": order.to_dict()}), 200
