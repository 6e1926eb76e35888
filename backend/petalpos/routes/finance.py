# Overview: Flask API routes for the transaction recorder (append-only; no update/delete routes).

from flask import Blueprint, jsonify, request

from ..decorators import api_errors, current_actor, json_body
from ..services import finance_service
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, optional_str, require_int

finance_bp = Blueprint("finance", __name__, url_prefix="/api/finance")


def _range_args() -> tuple:
    try:
        since = parse_iso_datetime(request.args.get("since"))
        until = parse_iso_datetime(request.args.get("until"))
    except ValueError:
        raise ValidationError("since/until must be ISO-8601 datetimes")
    return since, until


@finance_bp.get("/transactions")
@api_errors("list transactions")
def list_transactions_route():
    since, until = _range_args()
    limit = request.args.get("limit", default=200, type=int)
    items = finance_service.list_transactions(
        type=request.args.get("type") or None,
        since=since,
        until=until,
        limit=min(max(limit, 1), 1000),
    )
    return jsonify({"items": [tx.to_dict() for tx in items]}), 200


@finance_bp.post("/transactions")
@api_errors("record transaction")
def record_transaction_route():
    """Manual income/expense entry (e.g. supplies, advance payments)."""
    payload = json_body()
    tx = finance_service.record_transaction(
        description=optional_str(payload, "description") or "",
        amount_cents=require_int(payload, "amount_cents"),
        type=payload.get("type") or "",
        date=payload.get("date"),
        category=optional_str(payload, "category", max_length=64),
        related_order_id=require_int(payload, "related_order_id", default=None),
        related_batch_id=require_int(payload, "related_batch_id", default=None),
        actor=current_actor(),
    )
    return jsonify({"transaction": tx.to_dict()}), 201


@finance_bp.get("/summary")
@api_errors("summarize transactions")
def summary_route():
    since, until = _range_args()
    return jsonify(finance_service.get_summary(since=since, until=until)), 200
