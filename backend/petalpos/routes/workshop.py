# backend/petalpos/routes/workshop.py
"""
Workshop routes: perishable batches (baldes), the due-maintenance list and
the queue of committed orders waiting to be prepared or delivered.

`now` may be passed (ISO-8601) on every mutating call and on the task list;
it defaults to the server clock.
"""
from flask import Blueprint, jsonify, request

from ..decorators import api_errors, json_body
from ..services import batch_service, maintenance_service, order_service
from ..validation import ValidationError, optional_str, require_int

workshop_bp = Blueprint("workshop", __name__, url_prefix="/api/workshop")


@workshop_bp.post("/batches")
@api_errors("create batch")
def create_batch_route():
    payload = json_body()
    batch = batch_service.create_batch(
        product_id=require_int(payload, "product_id"),
        stem_count=require_int(payload, "stem_count"),
        now=payload.get("now"),
        bucket_code=optional_str(payload, "bucket_code", max_length=32),
        note=optional_str(payload, "note"),
    )
    return jsonify({"batch": batch.to_dict()}), 201


@workshop_bp.get("/batches")
@api_errors("list batches")
def list_batches_route():
    status = request.args.get("status", batch_service.ACTIVE)
    if status == "all":
        status = None
    elif status not in (batch_service.ACTIVE, batch_service.DISCARDED):
        raise ValidationError("status must be active, discarded or all")
    batches = batch_service.list_batches(status=status)
    return jsonify({"items": [b.to_dict() for b in batches]}), 200


@workshop_bp.get("/batches/<int:batch_id>")
@api_errors("get batch")
def get_batch_route(batch_id: int):
    return jsonify({"batch": batch_service.get_batch(batch_id).to_dict()}), 200


@workshop_bp.post("/batches/<int:batch_id>/water")
@api_errors("record water change")
def record_water_change_route(batch_id: int):
    batch = batch_service.record_water_change(batch_id, json_body().get("now"))
    return jsonify({"batch": batch.to_dict()}), 200


@workshop_bp.post("/batches/<int:batch_id>/cut")
@api_errors("record stem cut")
def record_cut_route(batch_id: int):
    batch = batch_service.record_cut(batch_id, json_body().get("now"))
    return jsonify({"batch": batch.to_dict()}), 200


@workshop_bp.post("/batches/<int:batch_id>/discard")
@api_errors("discard batch")
def discard_batch_route(batch_id: int):
    batch = batch_service.discard_batch(batch_id, json_body().get("now"))
    return jsonify({"batch": batch.to_dict()}), 200


@workshop_bp.get("/tasks")
@api_errors("list due tasks")
def list_due_tasks_route():
    tasks = maintenance_service.list_due_tasks(request.args.get("now"))
    items = [task.to_dict() for task in tasks]
    return jsonify({"items": items, "count": len(items)}), 200


@workshop_bp.post("/tasks/complete")
@api_errors("complete maintenance task")
def complete_task_route():
    payload = json_body()
    kind = payload.get("kind")
    if not kind:
        raise ValidationError("kind is required")
    batch = maintenance_service.complete_task(require_int(payload, "batch_id"), kind, payload.get("now"))
    return jsonify({"batch": batch.to_dict()}), 200


@workshop_bp.get("/orders")
@api_errors("list workshop orders")
def list_workshop_orders_route():
    """Committed orders to prepare (?status=open, default) or already delivered."""
    status = request.args.get("status", "open")
    if status not in ("open", "delivered"):
        raise ValidationError("status must be open or delivered")
    limit = request.args.get("limit", default=100, type=int)
    orders = order_service.list_fulfillment_queue(
        delivered=status == "delivered",
        limit=min(max(limit, 1), 500),
    )
    return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200
