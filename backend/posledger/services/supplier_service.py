# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

WHY: Purchase orders need a supplier on the header. Suppliers are kept
after removal (soft delete) so historical orders still resolve.

DESIGN:
- Supplier names are unique
- A supplier with pending or partial orders cannot be removed
- Inactive suppliers cannot receive new orders
"""

from __future__ import annotations

from sqlalchemy import case, func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, StateError
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem, Supplier
from ..models.purchasing import (
    PO_STATUS_CANCELLED,
    PO_STATUS_PARTIAL,
    PO_STATUS_PENDING,
    PO_STATUS_RECEIVED,
)
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import atomic, lock_for_update


SUPPLIER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_person", "email", "phone", "address", "payment_terms", "notes"},
    required_on_create={"name"},
)

SUPPLIER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_person", "email", "phone", "address", "payment_terms", "notes", "is_active"},
)

OPEN_ORDER_STATUSES = (PO_STATUS_PENDING, PO_STATUS_PARTIAL)


def _check_name_free(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Supplier.id).filter(Supplier.name == name)
    if exclude_id is not None:
        query = query.filter(Supplier.id != exclude_id)
    if query.first():
        raise ConflictError(f"Supplier {name} already exists")


def create_supplier(payload: dict, actor_user_id: int | None = None) -> Supplier:
    patch = validate_payload(
        model=Supplier,
        payload=payload,
        policy=SUPPLIER_CREATE_POLICY,
        partial=False,
    )
    patch["name"] = patch["name"].strip()

    with atomic():
        _check_name_free(patch["name"])
        supplier = Supplier(**patch, is_active=True, created_by=actor_user_id)
        db.session.add(supplier)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Supplier {patch['name']} already exists") from exc

    return supplier


def update_supplier(supplier_id: int, payload: dict) -> Supplier:
    patch = validate_payload(
        model=Supplier,
        payload=payload,
        policy=SUPPLIER_UPDATE_POLICY,
        partial=True,
    )

    with atomic():
        supplier = lock_for_update(db.session.query(Supplier).filter_by(id=supplier_id)).first()
        if not supplier:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        if patch.get("name"):
            patch["name"] = patch["name"].strip()
            _check_name_free(patch["name"], exclude_id=supplier_id)
        for key, value in patch.items():
            setattr(supplier, key, value)

    return supplier


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


def list_suppliers(
    *,
    search: str | None = None,
    include_inactive: bool = False,
    page: int = 1,
    limit: int = 50,
) -> dict:
    query = db.session.query(Supplier)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    if search:
        like = f"%{search}%"
        query = query.filter(or_(
            Supplier.name.ilike(like),
            Supplier.contact_person.ilike(like),
            Supplier.email.ilike(like),
            Supplier.phone.ilike(like),
        ))

    total = query.count()
    rows = query.order_by(Supplier.name).offset((page - 1) * limit).limit(limit).all()
    return {
        "suppliers": [s.to_dict() for s in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }


def deactivate_supplier(supplier_id: int) -> Supplier:
    """
    Soft delete.

    Raises:
        StateError: the supplier still has pending or partial orders
    """
    with atomic():
        supplier = lock_for_update(db.session.query(Supplier).filter_by(id=supplier_id)).first()
        if not supplier:
            raise NotFoundError(f"Supplier {supplier_id} not found")

        open_orders = db.session.query(func.count(PurchaseOrder.id)).filter(
            PurchaseOrder.supplier_id == supplier_id,
            PurchaseOrder.status.in_(OPEN_ORDER_STATUSES),
        ).scalar()
        if open_orders:
            raise StateError(
                "Cannot remove supplier with open purchase orders",
                details={"supplier_id": supplier_id, "open_orders": int(open_orders)},
            )
        supplier.is_active = False

    return supplier


def supplier_stats(supplier_id: int) -> dict:
    """Order counts by status, ordered value (cancelled excluded) and value received so far."""
    supplier = get_supplier(supplier_id)

    total, pending, partial, received, ordered, last_delivery = (
        db.session.query(
            func.count(PurchaseOrder.id),
            func.coalesce(func.sum(case((PurchaseOrder.status == PO_STATUS_PENDING, 1), else_=0)), 0),
            func.coalesce(func.sum(case((PurchaseOrder.status == PO_STATUS_PARTIAL, 1), else_=0)), 0),
            func.coalesce(func.sum(case((PurchaseOrder.status == PO_STATUS_RECEIVED, 1), else_=0)), 0),
            func.coalesce(func.sum(case(
                (PurchaseOrder.status != PO_STATUS_CANCELLED, PurchaseOrder.total_amount_cents),
                else_=0,
            )), 0),
            func.max(PurchaseOrder.actual_delivery_date),
        )
        .filter(PurchaseOrder.supplier_id == supplier_id)
        .one()
    )

    received_value = (
        db.session.query(
            func.coalesce(func.sum(PurchaseOrderItem.quantity_received * PurchaseOrderItem.unit_cost_cents), 0)
        )
        .select_from(PurchaseOrderItem)
        .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderItem.purchase_order_id)
        .filter(PurchaseOrder.supplier_id == supplier_id)
        .scalar()
    )

    return {
        "supplier": supplier.to_dict(),
        "total_orders": int(total),
        "pending_orders": int(pending),
        "partial_orders": int(partial),
        "received_orders": int(received),
        "total_ordered_cents": int(ordered),
        "total_received_cents": int(received_value or 0),
        "last_delivery_date": last_delivery.isoformat() if last_delivery else None,
    }
