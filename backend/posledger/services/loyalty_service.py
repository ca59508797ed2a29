# Overview: Service-layer operations for loyalty points; encapsulates business logic and database work.

"""
Loyalty Ledger

WHY: Customers earn points on purchases and spend them as a reward discount.
Every balance change is mirrored by an append-only LoyaltyTransaction row
written in the same transaction, so the ledger always explains the balance.

INVARIANTS:
- points_balance never goes negative
- redeem checks the balance under the customer row lock (no double spend)
- earn rows are positive, redeem rows negative, adjustment rows either sign
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import case, func

from ..errors import InsufficientPoints, NotFoundError, ConflictError, ValidationError
from ..extensions import db
from ..models import Customer, LoyaltyProgram, LoyaltyTransaction
from ..models.customers import LOYALTY_ADJUSTMENT, LOYALTY_EARN, LOYALTY_REDEEM
from ..money import BPS_SCALE
from ..time_utils import utcnow
from ..validation import (
    coerce_bool,
    coerce_int,
    optional_text,
    require_positive_int,
    require_text,
)
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)

# earn_rate_bps is per whole currency unit; base amounts are in cents
_CENTS_PER_UNIT = 100


def _lock_customer(customer_id: int) -> Customer:
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def _append(customer: Customer, points: int, txn_type: str, description, sale_id, actor_user_id) -> LoyaltyTransaction:
    now = utcnow()
    txn = LoyaltyTransaction(
        customer_id=customer.id,
        sale_id=sale_id,
        points=points,
        type=txn_type,
        description=description,
        created_by=actor_user_id,
        created_at=now,
    )
    customer.last_activity_at = now
    db.session.add(txn)
    return txn


# =============================================================================
# POINT MOVEMENTS
# =============================================================================

def add_points(
    customer_id: int,
    points,
    description: str | None = None,
    sale_id: int | None = None,
    actor_user_id: int | None = None,
    *,
    txn_type: str = LOYALTY_EARN,
) -> LoyaltyTransaction:
    """
    Credit points to a customer.

    Runs in the caller's transaction when one is open (sales award points
    inside the checkout transaction).
    """
    amount = require_positive_int("points", points)

    with atomic():
        customer = _lock_customer(customer_id)
        customer.points_balance += amount
        customer.total_points_earned += amount
        txn = _append(customer, amount, txn_type, description, sale_id, actor_user_id)
        db.session.flush()

    return txn


def redeem_points(
    customer_id: int,
    points,
    description: str | None = None,
    sale_id: int | None = None,
    actor_user_id: int | None = None,
    *,
    txn_type: str = LOYALTY_REDEEM,
) -> LoyaltyTransaction:
    """
    Spend points. Fails closed with InsufficientPoints, leaving the balance
    untouched.
    """
    amount = require_positive_int("points", points)

    with atomic():
        customer = _lock_customer(customer_id)
        if customer.points_balance < amount:
            raise InsufficientPoints(
                "Insufficient points",
                details={
                    "customer_id": customer_id,
                    "requested": amount,
                    "available": customer.points_balance,
                },
            )
        customer.points_balance -= amount
        customer.total_points_redeemed += amount
        txn = _append(customer, -amount, txn_type, description, sale_id, actor_user_id)
        db.session.flush()

    return txn


def adjust_points(customer_id: int, points, reason, actor_user_id: int | None = None) -> LoyaltyTransaction:
    """Manual correction: positive adds, negative redeems. Logged as adjustment."""
    delta = coerce_int("points", points)
    if delta == 0:
        raise ValidationError("points must not be 0")
    description = require_text("reason", reason)

    if delta > 0:
        return add_points(customer_id, delta, description, actor_user_id=actor_user_id, txn_type=LOYALTY_ADJUSTMENT)
    return redeem_points(customer_id, -delta, description, actor_user_id=actor_user_id, txn_type=LOYALTY_ADJUSTMENT)


def deduct_points_floored(
    customer_id: int,
    points: int,
    description: str,
    sale_id: int | None = None,
    actor_user_id: int | None = None,
) -> LoyaltyTransaction | None:
    """
    Remove up to `points` without going below zero (used by returns).

    The adjustment row records the amount actually removed; nothing is
    written when the customer has no points left to take.
    """
    if points <= 0:
        return None

    with atomic():
        customer = _lock_customer(customer_id)
        actual = min(points, customer.points_balance)
        if actual <= 0:
            return None
        customer.points_balance -= actual
        txn = _append(customer, -actual, LOYALTY_ADJUSTMENT, description, sale_id, actor_user_id)
        db.session.flush()

    if actual < points:
        logger.info(
            "Loyalty deduction for customer %s floored at zero (wanted %s, took %s)",
            customer_id, points, actual,
        )
    return txn


def points_for_purchase(program: LoyaltyProgram | None, base_cents: int) -> int:
    """floor(base_units * earn_rate); 0 for a missing or inactive program."""
    if program is None or not program.is_active or base_cents <= 0:
        return 0
    return (base_cents * program.earn_rate_bps) // (_CENTS_PER_UNIT * BPS_SCALE)


# =============================================================================
# PROGRAMS
# =============================================================================

def _program_fields(payload: dict, *, partial: bool) -> dict:
    fields = {}
    if "name" in payload or not partial:
        fields["name"] = require_text("name", payload.get("name"), max_length=128)
    if "description" in payload:
        fields["description"] = optional_text("description", payload.get("description"), max_length=2000)
    for key in ("earn_rate_bps", "signup_bonus", "min_redemption_threshold"):
        if key in payload and payload[key] is not None:
            value = coerce_int(key, payload[key])
            if value < 0:
                raise ValidationError(f"{key} must be >= 0")
            fields[key] = value
    if "is_active" in payload:
        fields["is_active"] = coerce_bool("is_active", payload.get("is_active"), default=True)
    return fields


def create_program(payload: dict) -> LoyaltyProgram:
    fields = _program_fields(payload or {}, partial=False)
    with atomic():
        if db.session.query(LoyaltyProgram.id).filter_by(name=fields["name"]).first():
            raise ConflictError(f"Loyalty program {fields['name']} already exists")
        program = LoyaltyProgram(**fields)
        db.session.add(program)
        db.session.flush()
    return program


def update_program(program_id: int, payload: dict) -> LoyaltyProgram:
    fields = _program_fields(payload or {}, partial=True)
    with atomic():
        program = db.session.get(LoyaltyProgram, program_id)
        if not program:
            raise NotFoundError(f"Loyalty program {program_id} not found")
        new_name = fields.get("name")
        if new_name and new_name != program.name:
            taken = db.session.query(LoyaltyProgram.id).filter(
                LoyaltyProgram.name == new_name,
                LoyaltyProgram.id != program_id,
            ).first()
            if taken:
                raise ConflictError(f"Loyalty program {new_name} already exists")
        for key, value in fields.items():
            setattr(program, key, value)
    return program


def get_program(program_id: int) -> LoyaltyProgram:
    program = db.session.get(LoyaltyProgram, program_id)
    if not program:
        raise NotFoundError(f"Loyalty program {program_id} not found")
    return program


def list_programs(active_only: bool = False) -> list[LoyaltyProgram]:
    query = db.session.query(LoyaltyProgram)
    if active_only:
        query = query.filter(LoyaltyProgram.is_active.is_(True))
    return query.order_by(LoyaltyProgram.name).all()


def program_stats(program_id: int, days: int = 30, now=None) -> dict:
    """Membership totals plus earn/redeem activity over the last `days` days."""
    if days < 1:
        raise ValidationError("days must be >= 1")
    program = get_program(program_id)
    since = (now or utcnow()) - timedelta(days=days)

    members, outstanding, earned, redeemed = (
        db.session.query(
            func.count(Customer.id),
            func.coalesce(func.sum(Customer.points_balance), 0),
            func.coalesce(func.sum(Customer.total_points_earned), 0),
            func.coalesce(func.sum(Customer.total_points_redeemed), 0),
        )
        .filter(Customer.loyalty_program_id == program_id)
        .one()
    )

    txn_count, recent_earned, recent_redeemed = (
        db.session.query(
            func.count(LoyaltyTransaction.id),
            func.coalesce(func.sum(case(
                (LoyaltyTransaction.type == LOYALTY_EARN, LoyaltyTransaction.points), else_=0,
            )), 0),
            func.coalesce(func.sum(case(
                (LoyaltyTransaction.type == LOYALTY_REDEEM, -LoyaltyTransaction.points), else_=0,
            )), 0),
        )
        .select_from(LoyaltyTransaction)
        .join(Customer, Customer.id == LoyaltyTransaction.customer_id)
        .filter(
            Customer.loyalty_program_id == program_id,
            LoyaltyTransaction.created_at >= since,
        )
        .one()
    )

    members = int(members)
    outstanding = int(outstanding)
    return {
        "program": program.to_dict(),
        "total_customers": members,
        "total_points_outstanding": outstanding,
        "total_points_earned": int(earned),
        "total_points_redeemed": int(redeemed),
        "average_points_per_customer": outstanding // members if members else 0,
        "days": days,
        "transaction_count": int(txn_count),
        "points_earned_recent": int(recent_earned),
        "points_redeemed_recent": int(recent_redeemed),
    }
