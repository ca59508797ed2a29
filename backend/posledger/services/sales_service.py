# Overview: Service-layer operations for sales; encapsulates business logic and database work.

"""
Sale Processor

WHY: A checkout is a batch of lines that must post all-or-nothing. Either
every line is recorded and every product decremented, or nothing changes.

DESIGN:
- Input is parsed into CheckoutInput / SaleLineInput and validated before
  any transaction starts (ValidationError).
- Products are locked in id order; requested quantities are aggregated per
  product so two lines of the same product cannot jointly oversell.
- The buying price is snapshotted onto each sale row; profit is computed
  from the snapshot and never from the live product price.
- Loyalty redemption and earning run inside the same transaction as the
  sale; a loyalty failure rolls the sale back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InsufficientStock, NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import Customer, ReceiptSequence, Sale
from ..models.sales import PAYMENT_CASH, PAYMENT_METHODS, RETURN_STATUS_NONE
from ..money import apply_bps, ratio_bps
from ..time_utils import utcnow
from ..validation import (
    coerce_int,
    optional_money,
    optional_positive_int,
    require_money,
    require_positive_int,
)
from . import loyalty_service
from .concurrency import atomic, lock_for_update
from .inventory_service import lock_products

logger = logging.getLogger(__name__)

RECEIPT_PREFIX = "RCP"
RECEIPT_PAD = 6
MAX_LINES_PER_SALE = 200


# =============================================================================
# INPUT STRUCTS
# =============================================================================

@dataclass
class SaleLineInput:
    product_id: int
    quantity: int
    unit_price_cents: int
    original_price_cents: int | None = None
    discount_amount_cents: int | None = None
    total_amount_cents: int | None = None

    @classmethod
    def from_dict(cls, raw) -> "SaleLineInput":
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object")
        return cls(
            product_id=raw.get("product_id"),
            quantity=raw.get("quantity"),
            unit_price_cents=raw.get("unit_price_cents"),
            original_price_cents=raw.get("original_price_cents"),
            discount_amount_cents=raw.get("discount_amount_cents"),
            total_amount_cents=raw.get("total_amount_cents"),
        )

    def validate(self) -> None:
        """Normalize in place; fills defaults for original price, discount and total."""
        self.product_id = require_positive_int("product_id", self.product_id, maximum=2**31 - 1)
        self.quantity = require_positive_int("quantity", self.quantity)
        self.unit_price_cents = require_money("unit_price_cents", self.unit_price_cents)

        original = optional_money("original_price_cents", self.original_price_cents)
        self.original_price_cents = self.unit_price_cents if original is None else original

        expected_total = self.unit_price_cents * self.quantity
        total = optional_money("total_amount_cents", self.total_amount_cents)
        if total is not None and total != expected_total:
            raise ValidationError(
                "total_amount_cents must equal unit_price_cents * quantity",
                details={"product_id": self.product_id, "expected": expected_total, "got": total},
            )
        self.total_amount_cents = expected_total

        discount = optional_money("discount_amount_cents", self.discount_amount_cents)
        if discount is None:
            discount = max(0, (self.original_price_cents - self.unit_price_cents) * self.quantity)
        self.discount_amount_cents = discount


@dataclass
class CheckoutInput:
    items: list[SaleLineInput]
    payment_method: str
    amount_paid_cents: int | None = None
    change_given_cents: int | None = None
    customer_id: int | None = None
    points_to_redeem: int = 0
    reward_discount_cents: int = 0
    tax_cents: int | None = None

    @classmethod
    def from_dict(cls, raw) -> "CheckoutInput":
        if not isinstance(raw, dict):
            raise ValidationError("Invalid JSON payload")
        items = raw.get("items")
        if not isinstance(items, list):
            raise ValidationError("items must be a list")
        return cls(
            items=[SaleLineInput.from_dict(item) for item in items],
            payment_method=raw.get("payment_method"),
            amount_paid_cents=raw.get("amount_paid_cents"),
            change_given_cents=raw.get("change_given_cents"),
            customer_id=raw.get("customer_id"),
            points_to_redeem=raw.get("points_to_redeem") or 0,
            reward_discount_cents=raw.get("reward_discount_cents") or 0,
            tax_cents=raw.get("tax_cents"),
        )

    def validate(self) -> None:
        if not self.items:
            raise ValidationError("items must not be empty")
        if len(self.items) > MAX_LINES_PER_SALE:
            raise ValidationError(f"A sale cannot have more than {MAX_LINES_PER_SALE} items")
        for line in self.items:
            line.validate()

        if self.payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            )

        self.amount_paid_cents = optional_money("amount_paid_cents", self.amount_paid_cents)
        if self.amount_paid_cents is None:
            raise ValidationError("amount_paid_cents is required")
        self.change_given_cents = optional_money("change_given_cents", self.change_given_cents)
        self.tax_cents = optional_money("tax_cents", self.tax_cents)

        self.customer_id = optional_positive_int("customer_id", self.customer_id)
        self.points_to_redeem = coerce_int("points_to_redeem", self.points_to_redeem)
        if self.points_to_redeem < 0:
            raise ValidationError("points_to_redeem must be >= 0")
        self.reward_discount_cents = require_money("reward_discount_cents", self.reward_discount_cents)

        if self.points_to_redeem and self.customer_id is None:
            raise ValidationError("customer_id is required to redeem points")
        if self.reward_discount_cents and not self.points_to_redeem:
            raise ValidationError("reward_discount_cents requires points_to_redeem")
        if self.reward_discount_cents > self.subtotal_cents:
            raise ValidationError("reward_discount_cents cannot exceed the subtotal")

    @property
    def subtotal_cents(self) -> int:
        return sum(line.total_amount_cents for line in self.items)

    @property
    def discount_cents(self) -> int:
        return sum(line.discount_amount_cents for line in self.items)

    def quantities_by_product(self) -> dict[int, int]:
        totals: dict[int, int] = {}
        for line in self.items:
            totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
        return totals


@dataclass
class SaleResult:
    sales: list[Sale]
    summary: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "sales": [s.to_dict() for s in self.sales],
            "summary": self.summary,
        }


# =============================================================================
# HELPERS
# =============================================================================

def _compute_tax(checkout: CheckoutInput) -> int:
    if checkout.tax_cents is not None:
        return checkout.tax_cents
    rate_bps = current_app.config.get("TAX_RATE_BPS", 0)
    return apply_bps(checkout.subtotal_cents - checkout.reward_discount_cents, rate_bps)


def _settle_payment(checkout: CheckoutInput, total_cents: int) -> int:
    """Check the tendered amount and return the change to record."""
    paid = checkout.amount_paid_cents
    if checkout.payment_method == PAYMENT_CASH:
        if paid < total_cents:
            raise ValidationError(
                "Amount paid is less than the total",
                details={"total_cents": total_cents, "amount_paid_cents": paid},
            )
        if checkout.change_given_cents is None:
            return paid - total_cents
        if checkout.change_given_cents > paid - total_cents:
            raise ValidationError("change_given_cents exceeds amount_paid_cents - total")
        return checkout.change_given_cents
    return checkout.change_given_cents or 0


def next_receipt_number(prefix: str = RECEIPT_PREFIX, pad: int = RECEIPT_PAD) -> str:
    """
    Allocate the next receipt number under a row lock.

    Must run inside the checkout transaction so that a rolled-back sale
    also releases its number.
    """
    seq = lock_for_update(db.session.query(ReceiptSequence).filter_by(prefix=prefix)).first()
    if seq is None:
        seq = ReceiptSequence(prefix=prefix, next_number=1)
        db.session.add(seq)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Receipt sequence was created concurrently; retry the sale") from exc

    number = seq.next_number
    seq.next_number = number + 1
    return f"{prefix}-{str(number).zfill(pad)}"


def _check_stock(checkout: CheckoutInput, products: dict) -> None:
    insufficient = []
    for product_id, qty in checkout.quantities_by_product().items():
        product = products[product_id]
        if not product.is_active:
            raise StateError(
                f"Product {product.name} is inactive",
                details={"product_id": product_id},
            )
        if product.available_quantity < qty:
            insufficient.append({
                "product_id": product_id,
                "product_name": product.name,
                "requested_quantity": qty,
                "available_quantity": product.available_quantity,
            })

    if insufficient:
        raise InsufficientStock(
            "Insufficient stock to complete sale",
            details={"items": insufficient},
        )


# =============================================================================
# SALE PROCESSING
# =============================================================================

def process_sale(checkout: CheckoutInput, actor_user_id: int) -> SaleResult:
    """
    Post a checkout.

    Args:
        checkout: parsed checkout; validated here if the caller has not
        actor_user_id: cashier recording the sale

    Returns:
        SaleResult with the created sale rows and a receipt summary

    Raises:
        ValidationError: malformed input or insufficient payment
        NotFoundError: unknown product or customer
        StateError: inactive product
        InsufficientStock: any product short (whole batch rejected)
        InsufficientPoints: redemption larger than the customer's balance
    """
    checkout.validate()

    tax_cents = _compute_tax(checkout)
    subtotal_cents = checkout.subtotal_cents
    total_cents = subtotal_cents - checkout.reward_discount_cents + tax_cents
    change_cents = _settle_payment(checkout, total_cents)

    with atomic():
        products = lock_products(checkout.quantities_by_product().keys())
        _check_stock(checkout, products)

        customer = None
        if checkout.customer_id is not None:
            customer = lock_for_update(db.session.query(Customer).filter_by(id=checkout.customer_id)).first()
            if not customer:
                raise NotFoundError(f"Customer {checkout.customer_id} not found")

        receipt_number = next_receipt_number()
        now = utcnow()

        sales: list[Sale] = []
        for line in checkout.items:
            product = products[line.product_id]
            cost = product.buying_price_cents
            profit_per_unit = line.unit_price_cents - cost

            sale = Sale(
                receipt_number=receipt_number,
                product_id=product.id,
                product_name=product.name,
                customer_id=checkout.customer_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                original_price_cents=line.original_price_cents,
                discount_amount_cents=line.discount_amount_cents,
                total_amount_cents=line.total_amount_cents,
                buying_price_at_sale_cents=cost,
                profit_per_unit_cents=profit_per_unit,
                total_profit_cents=profit_per_unit * line.quantity,
                profit_margin_bps=ratio_bps(profit_per_unit, line.unit_price_cents),
                payment_method=checkout.payment_method,
                amount_paid_cents=checkout.amount_paid_cents,
                change_given_cents=change_cents,
                return_status=RETURN_STATUS_NONE,
                created_by=actor_user_id,
                created_at=now,
            )
            db.session.add(sale)
            sales.append(sale)

            product.available_quantity -= line.quantity
            product.sold_quantity += line.quantity

        db.session.flush()

        points_redeemed = 0
        points_awarded = 0
        if customer is not None:
            if checkout.points_to_redeem:
                program = customer.loyalty_program
                threshold = program.min_redemption_threshold if program else 0
                if checkout.points_to_redeem < threshold:
                    raise ValidationError(
                        f"At least {threshold} points are required to redeem",
                        details={"points_to_redeem": checkout.points_to_redeem},
                    )
                loyalty_service.redeem_points(
                    customer.id,
                    checkout.points_to_redeem,
                    f"Redeemed on receipt {receipt_number}",
                    sale_id=sales[0].id,
                    actor_user_id=actor_user_id,
                )
                points_redeemed = checkout.points_to_redeem

            points_awarded = loyalty_service.points_for_purchase(
                customer.loyalty_program,
                total_cents - tax_cents,
            )
            if points_awarded > 0:
                loyalty_service.add_points(
                    customer.id,
                    points_awarded,
                    f"Purchase - Receipt {receipt_number}",
                    sale_id=sales[0].id,
                    actor_user_id=actor_user_id,
                )

    summary = {
        "receipt_number": receipt_number,
        "subtotal_cents": subtotal_cents,
        "discount_cents": checkout.discount_cents,
        "reward_discount_cents": checkout.reward_discount_cents,
        "tax_cents": tax_cents,
        "total_cents": total_cents,
        "amount_paid_cents": checkout.amount_paid_cents,
        "change_given_cents": change_cents,
        "payment_method": checkout.payment_method,
        "items_count": len(sales),
        "total_quantity": sum(s.quantity for s in sales),
        "total_profit_cents": sum(s.total_profit_cents for s in sales),
        "loyalty_points_awarded": points_awarded,
        "loyalty_points_redeemed": points_redeemed,
        "customer_id": checkout.customer_id,
    }
    logger.info(
        "Sale %s posted: %s line(s), total %s cents (cashier=%s)",
        receipt_number, len(sales), total_cents, actor_user_id,
    )
    return SaleResult(sales=sales, summary=summary)


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def get_receipt(receipt_number: str) -> dict:
    lines = (
        db.session.query(Sale)
        .filter_by(receipt_number=receipt_number)
        .order_by(Sale.id)
        .all()
    )
    if not lines:
        raise NotFoundError(f"Receipt {receipt_number} not found")

    first = lines[0]
    return {
        "receipt_number": receipt_number,
        "created_at": first.to_dict()["created_at"],
        "created_by": first.created_by,
        "customer_id": first.customer_id,
        "payment_method": first.payment_method,
        "amount_paid_cents": first.amount_paid_cents,
        "change_given_cents": first.change_given_cents,
        "lines_total_cents": sum(line.total_amount_cents for line in lines),
        "total_quantity": sum(line.quantity for line in lines),
        "lines": [line.to_dict() for line in lines],
    }


def list_sales(
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    product_id: int | None = None,
    customer_id: int | None = None,
    cashier_id: int | None = None,
    return_status: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> dict:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be >= 1")

    query = db.session.query(Sale)
    if start:
        query = query.filter(Sale.created_at >= start)
    if end:
        query = query.filter(Sale.created_at < end)
    if product_id:
        query = query.filter(Sale.product_id == product_id)
    if customer_id:
        query = query.filter(Sale.customer_id == customer_id)
    if cashier_id:
        query = query.filter(Sale.created_by == cashier_id)
    if return_status:
        query = query.filter(Sale.return_status == return_status)

    total = query.count()
    rows = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "sales": [s.to_dict() for s in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }
