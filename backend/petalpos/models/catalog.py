from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    STOCK: `stock` is the authoritative stem count. It is written only by
    the stock ledger (services.inventory_service) and never drops below
    zero. Every write is mirrored by an append-only StockMovement row.

    CARE INTERVALS: care_days_water / care_days_cut belong to the flower
    species and drive batch maintenance. NULL means "use the configured
    default" (DEFAULT_CARE_DAYS_WATER / DEFAULT_CARE_DAYS_CUT).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("units_per_package >= 1", name="ck_products_units_per_package"),
        db.Index("ix_products_type_active", "type", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    type = db.Column(db.String(16), nullable=False, default="flower")

    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=True)

    units_per_package = db.Column(db.Integer, nullable=False, default=1)
    stock = db.Column(db.Integer, nullable=False, default=0)

    care_days_water = db.Column(db.Integer, nullable=True)
    care_days_cut = db.Column(db.Integer, nullable=True)

    flower_color_name = db.Column(db.String(64), nullable=True)
    flower_color_hex = db.Column(db.String(16), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        from ..units import to_packages

        packages, loose = to_packages(self, self.stock or 0)
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "units_per_package": self.units_per_package,
            "stock": self.stock,
            "stock_packages": packages,
            "stock_loose_stems": loose,
            "care_days_water": self.care_days_water,
            "care_days_cut": self.care_days_cut,
            "flower_color_name": self.flower_color_name,
            "flower_color_hex": self.flower_color_hex,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
