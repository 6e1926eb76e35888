from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Point-of-sale cart and, once committed, the sale record.

    Lifecycle: EMPTY -> BUILDING -> COMMITTED, or BUILDING -> DISCARDED.
    A cart only touches stock at commit; COMMITTED and DISCARDED are terminal
    and every line mutation is rejected once reached.

    A committed order then moves through the workshop queue on its own
    axis (fulfillment_status), optionally scheduled for a client.
    """
    __tablename__ = "orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(16), nullable=False, default="EMPTY", index=True)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    note = db.Column(db.String(255), nullable=True)
    actor = db.Column(db.String(128), nullable=True)

    # Aggregate income entry; plain id since transactions already reference orders
    transaction_id = db.Column(db.Integer, nullable=True)

    # Workshop queue, set once committed: pending -> preparing -> delivered
    fulfillment_status = db.Column(db.String(16), nullable=True, index=True)
    client_name = db.Column(db.String(128), nullable=True)
    client_phone = db.Column(db.String(32), nullable=True)
    dedication = db.Column(db.String(255), nullable=True)
    scheduled_for = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    committed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    discarded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "OrderLine",
        backref="order",
        order_by="OrderLine.position",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "total_cents": self.total_cents,
            "note": self.note,
            "actor": self.actor,
            "transaction_id": self.transaction_id,
            "fulfillment_status": self.fulfillment_status,
            "client_name": self.client_name,
            "client_phone": self.client_phone,
            "dedication": self.dedication,
            "scheduled_for": to_utc_z(self.scheduled_for),
            "created_at": to_utc_z(self.created_at),
            "committed_at": to_utc_z(self.committed_at),
            "discarded_at": to_utc_z(self.discarded_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class OrderLine(db.Model):
    """
    Cart line, a tagged variant keyed by `kind`.

    - standard: product_id + quantity; unit_price_cents snapshots the
      product price when the line is created.
    - custom: name + unit_price_cents set by the operator, plus an ordered
      list of stem allocations across products and colors.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    kind = db.Column(db.String(16), nullable=False)  # standard, custom
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")
    allocations = db.relationship(
        "OrderLineAllocation",
        backref="line",
        order_by="OrderLineAllocation.position",
        cascade="all, delete-orphan",
    )

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        body = {
            "id": self.id,
            "kind": self.kind,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
        if self.kind == "standard":
            body["product_id"] = self.product_id
            body["name"] = self.product.name if self.product else None
        else:
            body["name"] = self.name
            body["composition"] = _composition_dict(self.allocations)
        return body


class OrderLineAllocation(db.Model):
    """Stems of one product/color reserved by a custom line (per unit)."""
    __tablename__ = "order_line_allocations"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_line_allocations_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    line_id = db.Column(db.Integer, db.ForeignKey("order_lines.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    color_id = db.Column(db.String(64), nullable=False, default="default")
    quantity = db.Column(db.Integer, nullable=False)


def _composition_dict(allocations) -> list[dict]:
    composition: list[dict] = []
    by_product: dict[int, dict] = {}
    for alloc in allocations:
        entry = by_product.get(alloc.product_id)
        if entry is None:
            entry = {"product_id": alloc.product_id, "color_allocations": {}}
            by_product[alloc.product_id] = entry
            composition.append(entry)
        colors = entry["color_allocations"]
        colors[alloc.color_id] = colors.get(alloc.color_id, 0) + alloc.quantity
    return composition
