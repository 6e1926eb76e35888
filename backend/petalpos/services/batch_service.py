# Overview: Service-layer operations for perishable batches (baldes); lifecycle and due-time derivation.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import InvalidStemCount, InvalidState, NotFound
from ..extensions import db
from ..models import Batch, Product
from ..time_utils import add_days, coerce_datetime
from ..validation import ValidationError
"""
Batch Lifecycle Invariants (authoritative)

- Batches hold stems already withdrawn from stock; nothing here reads or
  writes Product.stock.
- active -> discarded is the only transition and is an operator decision.
  Discarding is idempotent; a discarded batch accepts no maintenance.
- Due times are never stored. They are derived from the batch timestamps
  plus the product's *current* care intervals, so editing a product's
  interval reschedules all of its live batches.
"""

ACTIVE = "active"
DISCARDED = "discarded"


def _now(value) -> datetime:
    try:
        return coerce_datetime(value)
    except ValueError as e:
        raise ValidationError(str(e))


def care_intervals(product: Product | None) -> tuple[int, int]:
    """(water_days, cut_days) for a product, falling back to configured defaults."""
    water = product.care_days_water if product is not None else None
    cut = product.care_days_cut if product is not None else None
    return (
        water or current_app.config.get("DEFAULT_CARE_DAYS_WATER", 2),
        cut or current_app.config.get("DEFAULT_CARE_DAYS_CUT", 3),
    )


def next_water_due(batch: Batch) -> datetime:
    water_days, _ = care_intervals(batch.product)
    return add_days(batch.last_water_change_at, water_days)


def next_cut_due(batch: Batch) -> datetime:
    _, cut_days = care_intervals(batch.product)
    return add_days(batch.last_cut_at, cut_days)


def get_batch(batch_id: int) -> Batch:
    batch = db.session.get(Batch, batch_id)
    if batch is None:
        raise NotFound("batch not found", details={"batch_id": batch_id})
    return batch


def list_batches(*, status: str | None = ACTIVE) -> list[Batch]:
    q = db.session.query(Batch)
    if status is not None:
        q = q.filter(Batch.status == status)
    return q.order_by(Batch.created_at.asc(), Batch.id.asc()).all()


def create_batch(
    *,
    product_id: int,
    stem_count: int,
    now=None,
    bucket_code: str | None = None,
    note: str | None = None,
) -> Batch:
    if isinstance(stem_count, bool) or not isinstance(stem_count, int) or stem_count <= 0:
        raise InvalidStemCount("stem_count must be a positive integer", details={"stem_count": stem_count})

    if db.session.get(Product, product_id) is None:
        raise NotFound("product not found", details={"product_id": product_id})

    created = _now(now)
    batch = Batch(
        product_id=product_id,
        stem_count=stem_count,
        bucket_code=bucket_code,
        note=note,
        status=ACTIVE,
        created_at=created,
        last_water_change_at=created,
        last_cut_at=created,
    )
    db.session.add(batch)
    db.session.commit()
    return batch


def _active_batch(batch_id: int) -> Batch:
    batch = get_batch(batch_id)
    if batch.status == DISCARDED:
        raise InvalidState("batch is discarded", details={"batch_id": batch_id})
    return batch


def record_water_change(batch_id: int, now=None) -> Batch:
    batch = _active_batch(batch_id)
    batch.last_water_change_at = _now(now)
    db.session.commit()
    return batch


def record_cut(batch_id: int, now=None) -> Batch:
    batch = _active_batch(batch_id)
    batch.last_cut_at = _now(now)
    db.session.commit()
    return batch


def discard_batch(batch_id: int, now=None) -> Batch:
    batch = get_batch(batch_id)
    if batch.status == DISCARDED:
        return batch
    batch.status = DISCARDED
    batch.discarded_at = _now(now)
    db.session.commit()
    return batch
