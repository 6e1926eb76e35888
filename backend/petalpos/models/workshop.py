from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Batch(db.Model):
    """
    Bucket ("balde") of stems already withdrawn from stock and kept in water.

    Lifecycle: active -> discarded (terminal, operator decision only).
    Next water change / stem cut due times are derived, never stored; see
    services.batch_service.
    """
    __tablename__ = "batches"
    __table_args__ = (
        db.CheckConstraint("stem_count > 0", name="ck_batches_stem_count_positive"),
        db.Index("ix_batches_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    bucket_code = db.Column(db.String(32), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    stem_count = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active")
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_water_change_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_cut_at = db.Column(db.DateTime(timezone=True), nullable=False)
    discarded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))

    def __repr__(self) -> str:
        return f"<Batch id={self.id} product_id={self.product_id} status={self.status}>"

    def to_dict(self) -> dict:
        from ..services.batch_service import next_water_due, next_cut_due

        return {
            "id": self.id,
            "bucket_code": self.bucket_code,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "stem_count": self.stem_count,
            "status": self.status,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "last_water_change_at": to_utc_z(self.last_water_change_at),
            "last_cut_at": to_utc_z(self.last_cut_at),
            "discarded_at": to_utc_z(self.discarded_at),
            "next_water_due": to_utc_z(next_water_due(self)),
            "next_cut_due": to_utc_z(next_cut_due(self)),
        }
