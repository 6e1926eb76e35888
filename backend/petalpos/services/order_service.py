"""
Order Composer - cart building and all-or-nothing commit

Carts are documents: lines are edited freely while the cart is open and
stock is only touched at commit, where every affected product is locked
(ascending id), checked, and deducted in one DB transaction together with
a single aggregate income entry.
"""
from __future__ import annotations

from collections import defaultdict

from flask import current_app

from ..errors import InsufficientStock, InvalidAmount, InvalidQuantity, InvalidState, NotFound
from ..extensions import db
from ..models import Order, OrderLine, OrderLineAllocation, Product
from ..signals import order_committed, order_delivered, send_safely
from ..time_utils import coerce_datetime, utcnow
from ..units import STEM, to_stems
from ..validation import ValidationError
from .concurrency import lock_for_update, product_locks, run_with_retry
from .finance_service import INCOME, record_transaction
from .inventory_service import SALE, apply_adjustment_locked, load_product

EMPTY = "EMPTY"
BUILDING = "BUILDING"
COMMITTED = "COMMITTED"
DISCARDED = "DISCARDED"

STANDARD = "standard"
CUSTOM = "custom"

# Fulfilment of committed orders
PENDING = "pending"
PREPARING = "preparing"
DELIVERED = "delivered"
FULFILLMENT_STATUSES = (PENDING, PREPARING, DELIVERED)
_NEXT_FULFILLMENT = {
    PENDING: {PREPARING, DELIVERED},
    PREPARING: {DELIVERED},
    DELIVERED: set(),
}

ORDER_DETAIL_FIELDS = {"client_name", "client_phone", "dedication", "scheduled_for", "note"}


def _positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidQuantity(f"{field} must be a positive integer", details={field: value})
    return value


def _load_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    order = query.first()
    if order is None:
        raise NotFound("order not found", details={"order_id": order_id})
    return order


def _require_open(order: Order) -> None:
    if order.status not in (EMPTY, BUILDING):
        raise InvalidState(f"cannot modify a {order.status} order", details={"order_id": order.id})


def _require_building(order: Order, action: str) -> None:
    if order.status != BUILDING:
        raise InvalidState(f"cannot {action} a {order.status} order", details={"order_id": order.id})


def _find_line(order: Order, line_id: int) -> OrderLine:
    for line in order.lines:
        if line.id == line_id:
            return line
    raise NotFound("order line not found", details={"order_id": order.id, "line_id": line_id})


def _next_position(order: Order) -> int:
    return max((line.position for line in order.lines), default=-1) + 1


def _refresh_total(order: Order) -> None:
    order.total_cents = sum(line.line_total_cents for line in order.lines)
    if order.status in (EMPTY, BUILDING):
        order.status = BUILDING if order.lines else EMPTY


def _standard_stems(line: OrderLine):
    yield line.product_id, to_stems(line.product, line.quantity, STEM)


def _custom_stems(line: OrderLine):
    for alloc in line.allocations:
        yield alloc.product_id, alloc.quantity * line.quantity


_STEMS_BY_KIND = {
    STANDARD: _standard_stems,
    CUSTOM: _custom_stems,
}


def required_stems(lines) -> dict[int, int]:
    """Total stems each product must supply for the given lines."""
    totals: dict[int, int] = defaultdict(int)
    for line in lines:
        for product_id, stems in _STEMS_BY_KIND[line.kind](line):
            totals[product_id] += stems
    return dict(totals)


def _normalize_composition(composition) -> list[tuple[int, str, int]]:
    """
    Flatten [{product_id, color_allocations: {color_id: stems}}] into
    (product_id, color_id, stems) rows in first-seen order.

    Repeated product/color pairs are summed, zero allocations dropped. At
    least one stem must remain, else InvalidQuantity.
    """
    if composition is None:
        composition = []
    if not isinstance(composition, list):
        raise ValidationError("composition must be a list")

    merged: dict[tuple[int, str], int] = {}
    for entry in composition:
        if not isinstance(entry, dict):
            raise ValidationError("composition entries must be objects")
        product_id = entry.get("product_id")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError("composition product_id must be an integer")
        colors = entry.get("color_allocations") or {}
        if not isinstance(colors, dict):
            raise ValidationError("color_allocations must be an object")
        for color_id, stems in colors.items():
            if isinstance(stems, bool) or not isinstance(stems, int) or stems < 0:
                raise InvalidQuantity(
                    "color allocation must be a non-negative integer",
                    details={"product_id": product_id, "color_id": color_id, "quantity": stems},
                )
            if stems:
                key = (product_id, str(color_id))
                merged[key] = merged.get(key, 0) + stems

    if not merged:
        raise InvalidQuantity("a custom item needs at least one stem")
    return [(product_id, color_id, stems) for (product_id, color_id), stems in merged.items()]


def _shortages(required: dict[int, int], products: dict[int, Product]) -> list[dict]:
    short = []
    for product_id in sorted(required):
        product = products.get(product_id)
        if product is None:
            raise NotFound("product not found", details={"product_id": product_id})
        if product.stock < required[product_id]:
            short.append({
                "product_id": product_id,
                "requested": required[product_id],
                "available": product.stock,
            })
    return short


def _scheduled_for(value):
    if value is None:
        return None
    try:
        return coerce_datetime(value, field="scheduled_for")
    except ValueError as e:
        raise ValidationError(str(e))


def create_order(
    *,
    actor: str | None = None,
    note: str | None = None,
    client_name: str | None = None,
    client_phone: str | None = None,
    dedication: str | None = None,
    scheduled_for=None,
) -> Order:
    """Create a new empty cart, optionally as a scheduled order for a client."""
    order = Order(
        status=EMPTY,
        total_cents=0,
        actor=actor,
        note=note,
        client_name=client_name,
        client_phone=client_phone,
        dedication=dedication,
        scheduled_for=_scheduled_for(scheduled_for),
    )
    db.session.add(order)
    db.session.commit()
    return order


def update_details(order_id: int, changes: dict) -> Order:
    """
    Edit client/schedule fields (keys of ORDER_DETAIL_FIELDS).

    Allowed until the order is delivered or the cart discarded.
    """
    unknown = set(changes) - ORDER_DETAIL_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    def _op():
        order = _load_order(order_id, lock=True)
        if order.status == DISCARDED or order.fulfillment_status == DELIVERED:
            raise InvalidState("order can no longer be edited", details={"order_id": order.id})
        for key, value in changes.items():
            setattr(order, key, _scheduled_for(value) if key == "scheduled_for" else value)
        db.session.commit()
        return order

    return run_with_retry(_op)


def get_order(order_id: int) -> Order:
    return _load_order(order_id)


def list_orders(*, status: str | None = None, limit: int = 50) -> list[Order]:
    q = db.session.query(Order)
    if status is not None:
        q = q.filter(Order.status == status)
    return q.order_by(Order.id.desc()).limit(limit).all()


def add_standard_item(order_id: int, product_id: int, quantity: int = 1) -> OrderLine:
    """Add a catalog product; an existing line for the same product is merged."""
    _positive_int(quantity, "quantity")

    def _op():
        order = _load_order(order_id, lock=True)
        _require_open(order)

        product = load_product(product_id)
        if not product.is_active:
            raise InvalidState("product is inactive", details={"product_id": product_id})

        line = next(
            (l for l in order.lines if l.kind == STANDARD and l.product_id == product_id),
            None,
        )
        if line is not None:
            line.quantity += quantity
        else:
            line = OrderLine(
                kind=STANDARD,
                position=_next_position(order),
                product_id=product.id,
                quantity=quantity,
                unit_price_cents=product.price_cents or 0,
            )
            order.lines.append(line)

        _refresh_total(order)
        db.session.commit()
        return line

    return run_with_retry(_op)


def add_custom_item(
    order_id: int,
    *,
    name: str,
    unit_price_cents: int,
    composition=None,
    quantity: int = 1,
) -> OrderLine:
    """
    Add an operator-priced arrangement composed of stems from several
    products and colors.

    Availability is only soft-checked here (no reservation); commit_order
    re-validates against live stock.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if isinstance(unit_price_cents, bool) or not isinstance(unit_price_cents, int) or unit_price_cents < 0:
        raise InvalidAmount("unit_price_cents must be a non-negative integer")
    _positive_int(quantity, "quantity")
    rows = _normalize_composition(composition)

    def _op():
        order = _load_order(order_id, lock=True)
        _require_open(order)

        required: dict[int, int] = defaultdict(int)
        for product_id, _color, stems in rows:
            required[product_id] += stems * quantity
        products = {pid: db.session.get(Product, pid) for pid in required}
        products = {pid: p for pid, p in products.items() if p is not None}
        short = _shortages(required, products)
        if short:
            raise InsufficientStock("not enough stock for this arrangement", details={"items": short})

        line = OrderLine(
            kind=CUSTOM,
            position=_next_position(order),
            name=name[:255],
            quantity=quantity,
            unit_price_cents=unit_price_cents,
        )
        for position, (product_id, color_id, stems) in enumerate(rows):
            line.allocations.append(OrderLineAllocation(
                position=position,
                product_id=product_id,
                color_id=color_id,
                quantity=stems,
            ))
        order.lines.append(line)

        _refresh_total(order)
        db.session.commit()
        return line

    return run_with_retry(_op)


def update_quantity(order_id: int, line_id: int, delta: int) -> OrderLine:
    """Change a line's quantity; never drops below 1 (use remove_item)."""
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise InvalidQuantity("delta must be an integer", details={"delta": delta})

    def _op():
        order = _load_order(order_id, lock=True)
        _require_building(order, "update")
        line = _find_line(order, line_id)
        line.quantity = max(1, line.quantity + delta)
        _refresh_total(order)
        db.session.commit()
        return line

    return run_with_retry(_op)


def remove_item(order_id: int, line_id: int) -> Order:
    def _op():
        order = _load_order(order_id, lock=True)
        _require_building(order, "remove lines from")
        order.lines.remove(_find_line(order, line_id))
        _refresh_total(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def clear_order(order_id: int) -> Order:
    """Drop every line and retire the cart (terminal)."""
    def _op():
        order = _load_order(order_id, lock=True)
        _require_building(order, "clear")
        order.lines.clear()
        order.total_cents = 0
        order.status = DISCARDED
        order.discarded_at = utcnow()
        db.session.commit()
        return order

    return run_with_retry(_op)


def _commit_locked(order: Order, actor: str | None) -> Order:
    required = required_stems(order.lines)
    product_ids = sorted(required)

    products: dict[int, Product] = {}
    if product_ids:
        query = (
            db.session.query(Product)
            .filter(Product.id.in_(product_ids))
            .order_by(Product.id.asc())
        )
        products = {p.id: p for p in lock_for_update(query).populate_existing().all()}

    short = _shortages(required, products)
    if short:
        raise InsufficientStock("insufficient stock to commit order", details={"items": short})

    now = utcnow()
    movements = [
        apply_adjustment_locked(
            products[product_id],
            -required[product_id],
            SALE,
            note=f"Order #{order.id}",
            actor=actor,
            occurred_at=now,
            order_id=order.id,
            pair_transaction=False,
        )
        for product_id in product_ids
    ]

    total = sum(line.line_total_cents for line in order.lines)
    if total > 0:
        tx = record_transaction(
            description=f"Order #{order.id} ({len(order.lines)} items)",
            amount_cents=total,
            type=INCOME,
            date=now,
            category=SALE,
            related_order_id=order.id,
            actor=actor,
            commit=False,
        )
        order.transaction_id = tx.id
        for movement in movements:
            movement.transaction_id = tx.id
    else:
        current_app.logger.warning("Order %s committed with zero total; no income entry posted", order.id)

    order.total_cents = total
    order.status = COMMITTED
    order.fulfillment_status = PENDING
    order.committed_at = now
    if actor:
        order.actor = actor
    return order


def commit_order(order_id: int, *, actor: str | None = None) -> Order:
    """
    Deduct every stem the cart needs and post one income entry.

    All-or-nothing: on InsufficientStock nothing is written and the cart
    stays BUILDING with its lines intact.
    """
    def _check(order: Order) -> None:
        if order.status == EMPTY:
            raise InvalidState("cannot commit an empty order", details={"order_id": order.id})
        _require_building(order, "commit")

    def _op():
        order = _load_order(order_id, lock=True)
        _check(order)

        with product_locks.hold(required_stems(order.lines)):
            # Re-read under the product locks: a concurrent commit of the
            # same cart may have finished while we waited.
            order = _load_order(order_id, lock=True)
            _check(order)
            _commit_locked(order, actor)
            db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s committed: total_cents=%s", order.id, order.total_cents)
    send_safely(order_committed, order=order)
    return order


def advance_fulfillment(order_id: int, status: str, *, now=None, actor: str | None = None) -> Order:
    """
    Move a committed order along pending -> preparing -> delivered.

    Skipping preparing is allowed; going backwards is not. Payment was
    already posted at commit, so delivery writes no transaction.
    """
    if status not in FULFILLMENT_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(FULFILLMENT_STATUSES)}")
    try:
        when = coerce_datetime(now)
    except ValueError as e:
        raise ValidationError(str(e))

    def _op():
        order = _load_order(order_id, lock=True)
        if order.status != COMMITTED:
            raise InvalidState(f"cannot fulfil a {order.status} order", details={"order_id": order.id})
        if status not in _NEXT_FULFILLMENT.get(order.fulfillment_status, set()):
            raise InvalidState(
                f"cannot move from {order.fulfillment_status} to {status}",
                details={"order_id": order.id, "fulfillment_status": order.fulfillment_status},
            )
        order.fulfillment_status = status
        if status == DELIVERED:
            order.delivered_at = when
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order %s fulfilment -> %s (actor=%s)", order.id, status, actor)
    if status == DELIVERED:
        send_safely(order_delivered, order=order)
    return order


def list_fulfillment_queue(*, delivered: bool = False, limit: int = 100) -> list[Order]:
    """
    Committed orders for the workshop screen.

    Open queue (pending/preparing): soonest scheduled first, unscheduled
    orders after them by commit time. delivered=True lists finished orders,
    most recently delivered first.
    """
    q = db.session.query(Order).filter(Order.status == COMMITTED)
    if delivered:
        q = q.filter(Order.fulfillment_status == DELIVERED)
        q = q.order_by(Order.delivered_at.desc(), Order.id.desc())
    else:
        q = q.filter(Order.fulfillment_status.in_((PENDING, PREPARING)))
        q = q.order_by(
            Order.scheduled_for.is_(None),
            Order.scheduled_for.asc(),
            Order.committed_at.asc(),
            Order.id.asc(),
        )
    return q.limit(limit).all()
