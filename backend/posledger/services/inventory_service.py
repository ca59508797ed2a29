# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Inventory Store Invariants (authoritative)

- available_quantity = stock_quantity - sold_quantity + restocked returns,
  and never goes negative (check constraint + sale-time validation).
- Restock raises stock_quantity and available_quantity together.
- Sales and returns adjust available_quantity / sold_quantity only through
  sales_service / return_service, inside their transaction.
- Editing buying_price_cents never alters sales already recorded; sales keep
  their own cost snapshot.
- Products are never deleted, only deactivated.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import Product
from ..time_utils import today as utc_today
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_product,
    require_positive_int,
    optional_money,
    validate_payload,
)
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)


PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "category",
        "buying_price_cents", "selling_price_cents", "stock_quantity",
        "minimum_quantity", "alert_before_days", "expiry_date",
    },
    required_on_create={"sku", "name", "selling_price_cents"},
)

# Quantities move only through restock, sales and returns
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "description", "category",
        "buying_price_cents", "selling_price_cents",
        "minimum_quantity", "alert_before_days", "expiry_date", "is_active",
    },
)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def lock_products(product_ids) -> dict[int, Product]:
    """
    Load and lock products in ascending id order (stable lock order avoids
    deadlocks between concurrent checkouts). Raises NotFoundError listing any
    missing ids.
    """
    ids = sorted(set(product_ids))
    rows = lock_for_update(
        db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id)
    ).all()
    found = {p.id: p for p in rows}
    missing = [pid for pid in ids if pid not in found]
    if missing:
        raise NotFoundError(
            "Product not found",
            details={"product_ids": missing},
        )
    return found


def create_product(payload: dict, actor_user_id: int | None = None) -> Product:
    patch = validate_payload(
        model=Product,
        payload=payload,
        policy=PRODUCT_CREATE_POLICY,
        partial=False,
    )
    enforce_rules_product(patch)

    stock = patch.get("stock_quantity") or 0
    product = Product(
        **patch,
        available_quantity=stock,
        sold_quantity=0,
        created_by=actor_user_id,
    )
    product.stock_quantity = stock

    with atomic():
        if db.session.query(Product.id).filter_by(sku=patch["sku"]).first():
            raise ConflictError(f"SKU {patch['sku']} already exists")
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"SKU {patch['sku']} already exists") from exc

    return product


def update_product(product_id: int, payload: dict) -> Product:
    patch = validate_payload(
        model=Product,
        payload=payload,
        policy=PRODUCT_UPDATE_POLICY,
        partial=True,
    )
    enforce_rules_product(patch)

    with atomic():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")

        new_sku = patch.get("sku")
        if new_sku and new_sku != product.sku:
            taken = db.session.query(Product.id).filter(Product.sku == new_sku, Product.id != product_id).first()
            if taken:
                raise ConflictError(f"SKU {new_sku} already exists")

        for key, value in patch.items():
            setattr(product, key, value)

    return product


def restock_product(
    product_id: int,
    quantity,
    actor_user_id: int | None = None,
    unit_cost_cents=None,
) -> Product:
    """
    Receive new stock. Optionally records a new buying price; past sales
    keep their snapshot.
    """
    qty = require_positive_int("quantity", quantity)
    unit_cost = optional_money("unit_cost_cents", unit_cost_cents)

    with atomic():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        if not product.is_active:
            raise StateError(f"Product {product.sku} is inactive")

        product.stock_quantity += qty
        product.available_quantity += qty
        if unit_cost is not None:
            product.buying_price_cents = unit_cost

    logger.info("Restocked product %s by %s (actor=%s)", product.sku, qty, actor_user_id)
    return product


def deactivate_product(product_id: int) -> Product:
    with atomic():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        product.is_active = False
    return product


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    include_inactive: bool = False,
    page: int = 1,
    limit: int = 50,
) -> dict:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == category)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.sku.ilike(like),
            Product.description.ilike(like),
        ))

    total = query.count()
    rows = query.order_by(Product.name).offset((page - 1) * limit).limit(limit).all()
    return {
        "products": [p.to_dict() for p in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit if limit else 0,
    }


def list_low_stock(threshold: int | None = None) -> list[Product]:
    """
    Active products at or below their minimum quantity. Products without a
    minimum use `threshold` (default LOW_STOCK_THRESHOLD).
    """
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
    if threshold < 0:
        raise ValidationError("threshold must be >= 0")

    query = db.session.query(Product).filter(
        Product.is_active.is_(True),
        or_(
            and_(Product.minimum_quantity.isnot(None), Product.available_quantity <= Product.minimum_quantity),
            and_(Product.minimum_quantity.is_(None), Product.available_quantity <= threshold),
        ),
    )
    return query.order_by(Product.available_quantity.asc(), Product.id).all()


def list_expiring(days: int = 30, today=None) -> list[Product]:
    """
    Active products whose expiry date falls inside their alert window.
    Products without alert_before_days use `days`.
    """
    if days < 0:
        raise ValidationError("days must be >= 0")
    today = today or utc_today()
    candidates = db.session.query(Product).filter(
        Product.is_active.is_(True),
        Product.expiry_date.isnot(None),
    ).all()

    expiring = []
    for product in candidates:
        alert_days = product.alert_before_days if product.alert_before_days is not None else days
        window = timedelta(days=alert_days)
        if product.expiry_date - window <= today:
            expiring.append(product)
    return sorted(expiring, key=lambda p: p.expiry_date)
