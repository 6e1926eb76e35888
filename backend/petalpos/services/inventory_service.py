# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

# backend/petalpos/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..errors import InsufficientStock, InvalidQuantity, NotFound
from ..extensions import db
from ..models import Product, StockMovement, Transaction
from ..signals import send_safely, shrinkage_recorded
from ..time_utils import coerce_datetime, utcnow
from ..units import PACKAGE, STEM, to_stems
from ..validation import ValidationError
from .concurrency import lock_for_update, product_locks, run_with_retry
from .finance_service import EXPENSE, INCOME, record_transaction
"""
Stock Ledger Invariants (authoritative)

Stock model:
- Product.stock is the authoritative stem count; only this module writes it.
- Every applied adjustment appends one StockMovement (signed stems, reason,
  stock_after). Movements are never updated or deleted.

Business invariants:
- Stock may never go negative. An adjustment that would do so is rejected
  in full with InsufficientStock; the ledger itself never clamps.
- Delta sign follows the reason: restock / sale-reversal add stems,
  shrinkage / sale remove them.
- shrinkage posts an expense of stems * cost_cents, sale posts an income of
  stems * price_cents, both in the same DB transaction as the stock change.

Concurrency:
- Read-check-write runs under the product's arena lock and a row lock, and
  commits before the lock is released, so two adjustments can never both
  pass the sufficiency check against a stale read.
"""

RESTOCK = "restock"
SHRINKAGE = "shrinkage"
SALE = "sale"
SALE_REVERSAL = "sale-reversal"

INBOUND_REASONS = {RESTOCK, SALE_REVERSAL}
OUTBOUND_REASONS = {SHRINKAGE, SALE}
REASONS = INBOUND_REASONS | OUTBOUND_REASONS


@dataclass(frozen=True)
class ShrinkageResult:
    movement: StockMovement
    transaction: Transaction | None
    requested: int
    applied: int

    @property
    def clamped(self) -> bool:
        return self.applied < self.requested

    def to_dict(self) -> dict:
        return {
            "movement": self.movement.to_dict(),
            "transaction": self.transaction.to_dict() if self.transaction else None,
            "requested_stems": self.requested,
            "applied_stems": self.applied,
            "clamped": self.clamped,
        }


def _parse_occurred_at(value) -> datetime:
    try:
        occurred = coerce_datetime(value, field="occurred_at")
    except ValueError as e:
        raise ValidationError(str(e))
    if occurred > utcnow() + timedelta(minutes=2):
        raise ValidationError("occurred_at cannot be in the future")
    return occurred


def load_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        # populate_existing: never decide on a copy cached before the lock
        query = lock_for_update(query).populate_existing()
    product = query.first()
    if product is None:
        raise NotFound("product not found", details={"product_id": product_id})
    return product


def _validate_delta(delta, reason: str) -> None:
    if reason not in REASONS:
        raise ValidationError(f"reason must be one of {', '.join(sorted(REASONS))}")
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise InvalidQuantity("delta must be a non-zero integer", details={"delta": delta})
    if reason in INBOUND_REASONS and delta < 0:
        raise InvalidQuantity(f"{reason} must add stems", details={"delta": delta})
    if reason in OUTBOUND_REASONS and delta > 0:
        raise InvalidQuantity(f"{reason} must remove stems", details={"delta": delta})


def _paired_transaction(product: Product, stems: int, reason: str, *, note, actor, occurred_at):
    if reason == SHRINKAGE:
        amount = stems * (product.cost_cents or 0)
        tx_type = EXPENSE
        description = f"Shrinkage: {product.name} - {stems} stems"
        if note:
            description += f" ({note})"
    else:
        amount = stems * (product.price_cents or 0)
        tx_type = INCOME
        description = f"Sale: {product.name} x{stems}"

    if amount <= 0:
        current_app.logger.warning(
            "Skipping zero-amount %s entry for product %s (no %s configured)",
            reason, product.id, "cost" if reason == SHRINKAGE else "price",
        )
        return None

    return record_transaction(
        description=description,
        amount_cents=amount,
        type=tx_type,
        date=occurred_at,
        category=reason,
        actor=actor,
        commit=False,
    )


def apply_adjustment_locked(
    product: Product,
    delta: int,
    reason: str,
    *,
    note: str | None = None,
    actor: str | None = None,
    occurred_at: datetime | None = None,
    order_id: int | None = None,
    pair_transaction: bool = True,
) -> StockMovement:
    """Core adjustment without locking, retry or commit.

    Caller must hold the product lock. Also used by the order composer,
    which posts one aggregate income entry instead of per-product ones.
    """
    current = product.stock or 0
    if current + delta < 0:
        raise InsufficientStock(
            "adjustment would make stock negative",
            details={"items": [{"product_id": product.id, "requested": -delta, "available": current}]},
        )

    occurred_at = occurred_at or utcnow()
    product.stock = current + delta

    movement = StockMovement(
        product_id=product.id,
        reason=reason,
        quantity_delta=delta,
        stock_after=product.stock,
        note=note,
        order_id=order_id,
        actor=actor,
        occurred_at=occurred_at,
    )
    db.session.add(movement)

    if pair_transaction and reason in (SHRINKAGE, SALE):
        tx = _paired_transaction(product, abs(delta), reason, note=note, actor=actor, occurred_at=occurred_at)
        if tx is not None:
            movement.transaction_id = tx.id

    db.session.flush()
    return movement


def _locked_adjust(product_id: int, reason: str, compute_delta, *, note, actor, occurred_at):
    def _op():
        with product_locks.hold([product_id]):
            product = load_product(product_id, lock=True)
            delta = compute_delta(product)
            movement = apply_adjustment_locked(
                product, delta, reason, note=note, actor=actor, occurred_at=occurred_at,
            )
            db.session.commit()
            return product, movement

    product, movement = run_with_retry(_op)

    if reason == SHRINKAGE:
        current_app.logger.info(
            "Shrinkage recorded: product=%s stems=%s stock_after=%s",
            product.id, -movement.quantity_delta, movement.stock_after,
        )
        send_safely(shrinkage_recorded, product=product, movement=movement)
    return movement


def adjust_stock(
    *,
    product_id: int,
    delta: int,
    reason: str,
    note: str | None = None,
    actor: str | None = None,
    occurred_at=None,
) -> StockMovement:
    """
    Apply a signed stem delta to a product.

    Rejected in full (InsufficientStock) when the result would be negative.
    """
    _validate_delta(delta, reason)
    occurred_dt = _parse_occurred_at(occurred_at)
    return _locked_adjust(
        product_id, reason, lambda product: delta,
        note=note, actor=actor, occurred_at=occurred_dt,
    )


def get_stock(product_id: int) -> int:
    return load_product(product_id).stock


def receive_stock(
    *,
    product_id: int,
    quantity: int,
    unit: str = PACKAGE,
    note: str | None = None,
    actor: str | None = None,
    occurred_at=None,
) -> StockMovement:
    """Restock expressed in packages or stems."""
    stems = to_stems(load_product(product_id), quantity, unit)
    return adjust_stock(
        product_id=product_id,
        delta=stems,
        reason=RESTOCK,
        note=note,
        actor=actor,
        occurred_at=occurred_at,
    )


def record_shrinkage(
    *,
    product_id: int,
    quantity: int,
    unit: str = STEM,
    note: str | None = None,
    clamp: bool = False,
    actor: str | None = None,
    occurred_at=None,
) -> ShrinkageResult:
    """
    Write off spoiled or damaged stems and post the matching expense.

    clamp=True is the shrinkage screen's affordance: remove at most what is
    on hand and report the applied amount. The clamp is decided under the
    product lock.
    """
    occurred_dt = _parse_occurred_at(occurred_at)
    sizes: dict = {}

    def _compute(product: Product) -> int:
        requested = to_stems(product, quantity, unit)
        applied = min(requested, product.stock) if clamp else requested
        if applied <= 0:
            raise InsufficientStock(
                "nothing on hand to write off",
                details={"items": [{"product_id": product.id, "requested": requested, "available": product.stock}]},
            )
        sizes.update(requested=requested, applied=applied)
        return -applied

    movement = _locked_adjust(
        product_id, SHRINKAGE, _compute,
        note=note, actor=actor, occurred_at=occurred_dt,
    )
    tx = db.session.get(Transaction, movement.transaction_id) if movement.transaction_id else None
    return ShrinkageResult(
        movement=movement,
        transaction=tx,
        requested=sizes["requested"],
        applied=sizes["applied"],
    )


def list_movements(*, product_id: int, limit: int = 200) -> list[StockMovement]:
    load_product(product_id)
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
