# Overview: Service-layer operations for returns; encapsulates business logic and database work.

"""
Return Processor

WHY: A return reverses part of a recorded sale line. It must refund a fair
share of what the customer paid, correct the historical profit, put stock
back when the goods are sellable, and take back the loyalty points the
purchase earned, all in one transaction.

STATE MACHINE (per sale line):
    none -> partial -> full (terminal)
Driven by the cumulative quantity returned against the line.

REFUND RULE:
- refund = total_amount * quantity_returned / quantity, rounded half-up
- never more than what is still unrefunded on the line
- the return that completes the line gets the exact remainder, so the
  refunds of a fully returned line always sum to its total_amount
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func

from ..errors import (
    ExceedsRemainingQuantity,
    NoRemainingQuantity,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Product, ProductReturn, Sale
from ..models.sales import RETURN_STATUS_FULL, RETURN_STATUS_PARTIAL
from ..money import div_round_half_up, whole_units
from ..time_utils import utcnow
from ..validation import coerce_bool, optional_text, require_positive_int
from . import loyalty_service
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)


@dataclass
class Eligibility:
    sale: Sale
    remaining_quantity: int
    max_refund_cents: int
    already_returned: int

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale.id,
            "product_id": self.sale.product_id,
            "product_name": self.sale.product_name,
            "original_quantity": self.sale.quantity,
            "already_returned": self.already_returned,
            "remaining_quantity": self.remaining_quantity,
            "max_refund_cents": self.max_refund_cents,
            "unit_refund_cents": div_round_half_up(self.sale.total_amount_cents, self.sale.quantity),
            "return_status": self.sale.return_status,
        }


# =============================================================================
# ELIGIBILITY
# =============================================================================

def _returned_totals(sale_id: int, product_id: int) -> tuple[int, int]:
    """(quantity returned, cents refunded) so far for a sale line."""
    qty, refunded = (
        db.session.query(
            func.coalesce(func.sum(ProductReturn.quantity_returned), 0),
            func.coalesce(func.sum(ProductReturn.refund_amount_cents), 0),
        )
        .filter(
            ProductReturn.sale_id == sale_id,
            ProductReturn.product_id == product_id,
        )
        .one()
    )
    return int(qty), int(refunded)


def _evaluate(sale: Sale) -> tuple[Eligibility, int]:
    already, refunded = _returned_totals(sale.id, sale.product_id)
    remaining = sale.quantity - already
    if remaining <= 0:
        raise NoRemainingQuantity(
            "All items from this sale have already been returned",
            details={"sale_id": sale.id, "product_id": sale.product_id},
        )
    eligibility = Eligibility(
        sale=sale,
        remaining_quantity=remaining,
        max_refund_cents=sale.total_amount_cents - refunded,
        already_returned=already,
    )
    return eligibility, refunded


def check_eligibility(sale_id, product_id) -> Eligibility:
    """
    How much of a sale line can still be returned.

    Raises:
        NotFoundError: no sale line with this id and product
        NoRemainingQuantity: the line is fully returned
    """
    sale_id = require_positive_int("sale_id", sale_id, maximum=2**31 - 1)
    product_id = require_positive_int("product_id", product_id, maximum=2**31 - 1)

    sale = db.session.query(Sale).filter_by(id=sale_id, product_id=product_id).first()
    if not sale:
        raise NotFoundError(
            "Sale not found for this product",
            details={"sale_id": sale_id, "product_id": product_id},
        )
    eligibility, _ = _evaluate(sale)
    return eligibility


def refund_for(sale: Sale, quantity_returned: int, already_returned: int, refunded_cents: int) -> int:
    """Proportional refund for `quantity_returned` units of a sale line."""
    unrefunded = sale.total_amount_cents - refunded_cents
    if already_returned + quantity_returned >= sale.quantity:
        return unrefunded
    share = div_round_half_up(sale.total_amount_cents * quantity_returned, sale.quantity)
    return min(share, unrefunded)


# =============================================================================
# RETURN PROCESSING
# =============================================================================

def process_return(
    sale_id,
    product_id,
    quantity_returned,
    reason=None,
    restock=True,
    actor_user_id: int | None = None,
) -> ProductReturn:
    """
    Record a return against a sale line.

    Effects (one transaction):
    1. insert the return row with the proportional refund
    2. restock: available += q, sold = max(0, sold - q)
    3. sale.total_profit_cents -= profit_per_unit * q (floored at 0)
    4. sale.return_status from the cumulative returned quantity
    5. loyalty customer: deduct floor(refund) points, floored at a zero balance

    Raises:
        ValidationError: quantity_returned <= 0 or malformed input
        NotFoundError: no matching sale line
        NoRemainingQuantity: line already fully returned
        ExceedsRemainingQuantity: more than the remaining quantity requested
    """
    sale_id = require_positive_int("sale_id", sale_id, maximum=2**31 - 1)
    product_id = require_positive_int("product_id", product_id, maximum=2**31 - 1)
    if quantity_returned is None:
        raise ValidationError("quantity_returned is required")
    quantity = require_positive_int("quantity_returned", quantity_returned)
    reason = optional_text("return_reason", reason)
    restock = coerce_bool("restock", restock, default=True)
    if actor_user_id is None:
        raise ValidationError("actor_user_id is required")

    with atomic():
        sale = lock_for_update(
            db.session.query(Sale).filter_by(id=sale_id, product_id=product_id)
        ).first()
        if not sale:
            raise NotFoundError(
                "Sale not found for this product",
                details={"sale_id": sale_id, "product_id": product_id},
            )

        eligibility, refunded = _evaluate(sale)
        if quantity > eligibility.remaining_quantity:
            raise ExceedsRemainingQuantity(
                f"Cannot return {quantity} items. Only {eligibility.remaining_quantity} remaining.",
                details={
                    "requested": quantity,
                    "remaining_quantity": eligibility.remaining_quantity,
                },
            )

        refund_cents = refund_for(sale, quantity, eligibility.already_returned, refunded)

        product_return = ProductReturn(
            sale_id=sale.id,
            product_id=sale.product_id,
            product_name=sale.product_name,
            quantity_returned=quantity,
            original_quantity=sale.quantity,
            return_reason=reason,
            refund_amount_cents=refund_cents,
            restocked=restock,
            processed_by=actor_user_id,
            created_at=utcnow(),
        )
        db.session.add(product_return)

        if restock:
            product = lock_for_update(db.session.query(Product).filter_by(id=sale.product_id)).first()
            if not product:
                raise NotFoundError(f"Product {sale.product_id} not found")
            product.available_quantity += quantity
            product.sold_quantity = max(0, product.sold_quantity - quantity)

        sale.total_profit_cents = max(0, sale.total_profit_cents - sale.profit_per_unit_cents * quantity)

        returned_total = eligibility.already_returned + quantity
        sale.return_status = RETURN_STATUS_FULL if returned_total >= sale.quantity else RETURN_STATUS_PARTIAL

        db.session.flush()

        if sale.customer_id:
            loyalty_service.deduct_points_floored(
                sale.customer_id,
                whole_units(refund_cents),
                f"Points deducted for return on sale {sale.id}",
                sale_id=sale.id,
                actor_user_id=actor_user_id,
            )

    logger.info(
        "Return %s on sale %s: %s unit(s), refund %s cents, restocked=%s",
        product_return.id, sale.id, quantity, refund_cents, restock,
    )
    return product_return


# =============================================================================
# QUERIES
# =============================================================================

def get_return(return_id: int) -> ProductReturn:
    product_return = db.session.get(ProductReturn, return_id)
    if not product_return:
        raise NotFoundError(f"Return {return_id} not found")
    return product_return


def get_returns_for_sale(sale_id: int) -> list[ProductReturn]:
    return (
        db.session.query(ProductReturn)
        .filter_by(sale_id=sale_id)
        .order_by(ProductReturn.created_at, ProductReturn.id)
        .all()
    )


def list_returns(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be >= 1")

    query = db.session.query(ProductReturn)
    if start:
        query = query.filter(ProductReturn.created_at >= start)
    if end:
        query = query.filter(ProductReturn.created_at < end)

    total = query.count()
    rows = (
        query.order_by(ProductReturn.created_at.desc(), ProductReturn.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "returns": [r.to_dict() for r in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }


def return_stats(days: int = 30) -> dict:
    if days < 1:
        raise ValidationError("days must be >= 1")
    since = utcnow() - timedelta(days=days)

    count, items, refunds, sales = (
        db.session.query(
            func.count(ProductReturn.id),
            func.coalesce(func.sum(ProductReturn.quantity_returned), 0),
            func.coalesce(func.sum(ProductReturn.refund_amount_cents), 0),
            func.count(func.distinct(ProductReturn.sale_id)),
        )
        .filter(ProductReturn.created_at >= since)
        .one()
    )

    reasons = (
        db.session.query(ProductReturn.return_reason, func.count(ProductReturn.id).label("n"))
        .filter(
            ProductReturn.created_at >= since,
            ProductReturn.return_reason.isnot(None),
        )
        .group_by(ProductReturn.return_reason)
        .order_by(func.count(ProductReturn.id).desc(), ProductReturn.return_reason)
        .limit(5)
        .all()
    )

    return {
        "days": days,
        "total_returns": int(count),
        "total_items_returned": int(items),
        "total_refund_cents": int(refunds),
        "average_refund_cents": div_round_half_up(int(refunds), int(count)) if count else 0,
        "sales_with_returns": int(sales),
        "top_reasons": [{"reason": r, "count": int(n)} for r, n in reasons],
    }
