# backend/petalpos/services/products_service.py
"""
Products Service

Catalog maintenance only. `stock` is deliberately not mutable here: it
moves exclusively through the stock ledger (inventory_service), so an
initial stock on create is posted as a restock movement.
"""
from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import InvalidQuantity
from ..extensions import db
from ..models import Product
from ..validation import ConflictError
from .concurrency import product_locks, run_with_retry
from .inventory_service import RESTOCK, apply_adjustment_locked, load_product

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "name",
    "description",
    "type",
    "price_cents",
    "cost_cents",
    "units_per_package",
    "care_days_water",
    "care_days_cut",
    "flower_color_name",
    "flower_color_hex",
    "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_unique_sku(sku: str | None, *, exclude_id: int | None = None) -> None:
    if not sku:
        return
    q = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"SKU {sku!r} already exists")


def create_product(patch: dict, *, initial_stock: int = 0, actor: str | None = None) -> Product:
    """
    Insert a product. A non-zero initial_stock is posted as a restock in the
    same DB transaction, so a rejected create leaves nothing behind.
    """
    if isinstance(initial_stock, bool) or not isinstance(initial_stock, int) or initial_stock < 0:
        raise InvalidQuantity(
            "initial_stock must be a non-negative integer",
            details={"initial_stock": initial_stock},
        )
    _ensure_unique_sku(patch.get("sku"))

    product = Product(stock=0)
    apply_product_patch(product, patch)
    if product.units_per_package is None:
        product.units_per_package = 1
    db.session.add(product)
    try:
        db.session.flush()
        with product_locks.hold([product.id]):
            if initial_stock:
                apply_adjustment_locked(product, initial_stock, RESTOCK, note="Initial stock", actor=actor)
            db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("product violates a uniqueness constraint")
    except Exception:
        db.session.rollback()
        raise
    return product


def update_product(product_id: int, patch: dict) -> Product:
    """
    Patch catalog fields. Care interval changes apply retroactively to every
    live batch of this product, since due times are always derived.
    """
    if "sku" in patch:
        _ensure_unique_sku(patch["sku"], exclude_id=product_id)

    # version_id conflicts with a concurrent stock adjustment are retried
    def _op():
        product = load_product(product_id)
        apply_product_patch(product, patch)
        db.session.commit()
        return product

    return run_with_retry(_op)


def get_product(product_id: int) -> Product:
    return load_product(product_id)


def list_products(*, type: str | None = None, active_only: bool = True) -> list[Product]:
    q = db.session.query(Product)
    if type is not None:
        q = q.filter(Product.type == type)
    if active_only:
        q = q.filter(Product.is_active.is_(True))
    return q.order_by(Product.name.asc(), Product.id.asc()).all()
