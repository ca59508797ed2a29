# Overview: Service-layer operations for purchase orders; encapsulates business logic and database work.

"""
Purchase Order Service

WHY: New stock arrives against an order placed with a supplier. Receiving
an order is the restock path: every received quantity goes through
inventory_service.restock_product in the same transaction, which also
records the order's unit cost as the product's buying price.

LIFECYCLE:
1. PENDING: created, nothing received; header may be edited
2. PARTIAL: some lines received
3. RECEIVED: every line fully received (immutable)
4. CANCELLED: cancelled before anything was received (immutable)

DESIGN:
- Order numbers share the receipt sequence table under their own prefix
- Product name/SKU are snapshotted on each line at order time
- A line never receives more than it ordered (ExceedsRemainingQuantity)
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import or_

from ..errors import ExceedsRemainingQuantity, NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem, Supplier
from ..models.purchasing import (
    PO_STATUS_CANCELLED,
    PO_STATUS_PARTIAL,
    PO_STATUS_PENDING,
    PO_STATUS_RECEIVED,
)
from ..time_utils import today
from ..validation import coerce_date, coerce_int, optional_text, require_money, require_positive_int
from . import inventory_service
from .concurrency import atomic, lock_for_update
from .sales_service import next_receipt_number

logger = logging.getLogger(__name__)

ORDER_PREFIX = "PO"
ORDER_PAD = 6

PO_STATUSES = (PO_STATUS_PENDING, PO_STATUS_PARTIAL, PO_STATUS_RECEIVED, PO_STATUS_CANCELLED)
EDITABLE_STATUSES = (PO_STATUS_PENDING, PO_STATUS_PARTIAL)


def _parse_lines(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    seen = set()
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        product_id = require_positive_int(f"items[{idx}].product_id", raw.get("product_id"), maximum=2**31 - 1)
        if product_id in seen:
            raise ValidationError(f"Product {product_id} appears more than once")
        seen.add(product_id)
        lines.append({
            "product_id": product_id,
            "quantity_ordered": require_positive_int(f"items[{idx}].quantity_ordered", raw.get("quantity_ordered")),
            "unit_cost_cents": require_money(f"items[{idx}].unit_cost_cents", raw.get("unit_cost_cents")),
        })
    return lines


def _parse_receipts(receipts) -> list[tuple[int, int]]:
    if not isinstance(receipts, list) or not receipts:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    seen = set()
    for idx, raw in enumerate(receipts):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        item_id = require_positive_int(f"items[{idx}].id", raw.get("id"), maximum=2**31 - 1)
        if item_id in seen:
            raise ValidationError(f"Item {item_id} appears more than once")
        seen.add(item_id)
        parsed.append((item_id, require_positive_int(f"items[{idx}].quantity_received", raw.get("quantity_received"))))
    return parsed


def _lock_order(order_id: int) -> PurchaseOrder:
    order = lock_for_update(db.session.query(PurchaseOrder).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError(f"Purchase order {order_id} not found")
    return order


# =============================================================================
# CREATE / EDIT
# =============================================================================

def create_purchase_order(payload: dict, actor_user_id: int | None = None) -> PurchaseOrder:
    """
    Place an order with a supplier.

    Request shape:
        {"supplier_id": 1, "order_date": "2026-10-01", "expected_delivery_date": null,
         "notes": null, "items": [{"product_id": 3, "quantity_ordered": 10, "unit_cost_cents": 250}]}

    Raises:
        ValidationError: malformed payload
        NotFoundError: unknown supplier or product
        StateError: inactive supplier or product
    """
    payload = payload or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    supplier_id = require_positive_int("supplier_id", payload.get("supplier_id"), maximum=2**31 - 1)
    lines = _parse_lines(payload.get("items"))
    order_date = coerce_date("order_date", payload.get("order_date")) or today()
    expected = coerce_date("expected_delivery_date", payload.get("expected_delivery_date"))
    if expected and expected < order_date:
        raise ValidationError("expected_delivery_date must not be before order_date")
    notes = optional_text("notes", payload.get("notes"), max_length=2000)

    with atomic():
        supplier = db.session.get(Supplier, supplier_id)
        if not supplier:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        if not supplier.is_active:
            raise StateError(f"Supplier {supplier.name} is inactive")

        product_ids = [line["product_id"] for line in lines]
        products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids))}
        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            raise NotFoundError("Product not found", details={"product_ids": missing})

        order = PurchaseOrder(
            order_number=next_receipt_number(prefix=ORDER_PREFIX, pad=ORDER_PAD),
            supplier_id=supplier_id,
            status=PO_STATUS_PENDING,
            order_date=order_date,
            expected_delivery_date=expected,
            notes=notes,
            created_by=actor_user_id,
        )

        total = 0
        for line in lines:
            product = products[line["product_id"]]
            if not product.is_active:
                raise StateError(
                    f"Product {product.name} is inactive",
                    details={"product_id": product.id},
                )
            line_total = line["quantity_ordered"] * line["unit_cost_cents"]
            order.items.append(PurchaseOrderItem(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                quantity_ordered=line["quantity_ordered"],
                quantity_received=0,
                unit_cost_cents=line["unit_cost_cents"],
                line_total_cents=line_total,
            ))
            total += line_total

        order.total_amount_cents = total
        db.session.add(order)
        db.session.flush()

    logger.info("Created purchase order %s for supplier %s (%s lines)", order.order_number, supplier_id, len(lines))
    return order


def update_purchase_order(order_id: int, payload: dict) -> PurchaseOrder:
    """Only expected_delivery_date and notes are editable, and only on open orders."""
    payload = payload or {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(payload) - {"expected_delivery_date", "notes"})
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    with atomic():
        order = _lock_order(order_id)
        if order.status not in EDITABLE_STATUSES:
            raise StateError(
                f"Cannot edit a {order.status} purchase order",
                details={"purchase_order_id": order_id, "status": order.status},
            )
        if "expected_delivery_date" in payload:
            expected = coerce_date("expected_delivery_date", payload["expected_delivery_date"])
            if expected and expected < order.order_date:
                raise ValidationError("expected_delivery_date must not be before order_date")
            order.expected_delivery_date = expected
        if "notes" in payload:
            order.notes = optional_text("notes", payload["notes"], max_length=2000)

    return order


# =============================================================================
# RECEIVE / CANCEL
# =============================================================================

def receive_purchase_order(
    order_id: int,
    receipts=None,
    actor_user_id: int | None = None,
    received_on: date | None = None,
) -> PurchaseOrder:
    """
    Receive stock against an order.

    `receipts` is [{"id": <item id>, "quantity_received": n}, ...]; when
    omitted, every line's remaining quantity is received. Each received
    quantity restocks the product at the line's unit cost. The order moves
    to received when every line is complete, otherwise to partial.

    Raises:
        NotFoundError: unknown order, or item not on this order
        StateError: order is received or cancelled
        ExceedsRemainingQuantity: more than the line's remaining quantity
    """
    parsed = _parse_receipts(receipts) if receipts is not None else None

    with atomic():
        order = _lock_order(order_id)
        if order.status not in EDITABLE_STATUSES:
            raise StateError(
                f"Cannot receive a {order.status} purchase order",
                details={"purchase_order_id": order_id, "status": order.status},
            )

        items = {item.id: item for item in order.items}
        if parsed is None:
            parsed = [(item.id, item.remaining_quantity) for item in order.items if item.remaining_quantity > 0]

        for item_id, quantity in parsed:
            item = items.get(item_id)
            if item is None:
                raise NotFoundError(
                    f"Purchase order item {item_id} not found",
                    details={"purchase_order_id": order_id, "item_id": item_id},
                )
            if quantity > item.remaining_quantity:
                raise ExceedsRemainingQuantity(
                    f"Cannot receive more than ordered for item {item_id}",
                    details={
                        "item_id": item_id,
                        "requested": quantity,
                        "remaining_quantity": item.remaining_quantity,
                    },
                )

            item.quantity_received += quantity
            inventory_service.restock_product(
                item.product_id,
                quantity,
                actor_user_id=actor_user_id,
                unit_cost_cents=item.unit_cost_cents,
            )

        complete = all(item.remaining_quantity == 0 for item in order.items)
        order.status = PO_STATUS_RECEIVED if complete else PO_STATUS_PARTIAL
        order.actual_delivery_date = received_on or today()

    logger.info("Received purchase order %s: now %s", order.order_number, order.status)
    return order


def cancel_purchase_order(order_id: int) -> PurchaseOrder:
    """pending -> cancelled. Orders with received stock cannot be cancelled."""
    with atomic():
        order = _lock_order(order_id)
        if order.status != PO_STATUS_PENDING:
            raise StateError(
                f"Cannot cancel a {order.status} purchase order",
                details={"purchase_order_id": order_id, "status": order.status},
            )
        order.status = PO_STATUS_CANCELLED

    return order


# =============================================================================
# QUERIES
# =============================================================================

def get_purchase_order(order_id: int) -> PurchaseOrder:
    order = db.session.get(PurchaseOrder, order_id)
    if not order:
        raise NotFoundError(f"Purchase order {order_id} not found")
    return order


def list_purchase_orders(
    *,
    search: str | None = None,
    status: str | None = None,
    supplier_id: int | None = None,
    from_date=None,
    to_date=None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be >= 1")

    query = db.session.query(PurchaseOrder).join(Supplier, Supplier.id == PurchaseOrder.supplier_id)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(PurchaseOrder.order_number.ilike(like), Supplier.name.ilike(like)))
    if status:
        if status not in PO_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(PO_STATUSES)}")
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == coerce_int("supplier_id", supplier_id))
    start = coerce_date("from_date", from_date)
    end = coerce_date("to_date", to_date)
    if start:
        query = query.filter(PurchaseOrder.order_date >= start)
    if end:
        query = query.filter(PurchaseOrder.order_date <= end)

    total = query.count()
    rows = (
        query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "purchase_orders": [o.to_dict() for o in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }
