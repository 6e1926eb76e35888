from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Transaction(db.Model):
    """
    Financial movement (income or expense).

    IMMUTABLE: rows are inserted once and never updated or deleted.
    amount_cents is a positive magnitude; the direction lives in `type`.
    Corrections are recorded as new offsetting entries.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        db.Index("ix_transactions_type_date", "type", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False)  # income, expense
    category = db.Column(db.String(64), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    related_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    related_batch_id = db.Column(db.Integer, db.ForeignKey("batches.id"), nullable=True)
    actor = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "type": self.type,
            "category": self.category,
            "date": to_utc_z(self.date),
            "related_order_id": self.related_order_id,
            "related_batch_id": self.related_batch_id,
            "actor": self.actor,
        }
