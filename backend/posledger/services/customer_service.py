# Overview: Service-layer operations for customers; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, LoyaltyProgram, LoyaltyTransaction
from ..validation import ModelValidationPolicy, validate_payload
from . import loyalty_service
from .concurrency import atomic, lock_for_update


CUSTOMER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"first_name", "last_name", "email", "phone", "loyalty_program_id"},
    required_on_create={"first_name"},
)

# Balances move only through the loyalty ledger
CUSTOMER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"first_name", "last_name", "email", "phone", "loyalty_program_id"},
)


def _check_program(program_id: int | None) -> LoyaltyProgram | None:
    if program_id is None:
        return None
    program = db.session.get(LoyaltyProgram, program_id)
    if not program:
        raise NotFoundError(f"Loyalty program {program_id} not found")
    return program


def _check_email_free(email: str | None, exclude_id: int | None = None) -> None:
    if not email:
        return
    query = db.session.query(Customer.id).filter(Customer.email == email)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError(f"Customer with email {email} already exists")


def create_customer(payload: dict, actor_user_id: int | None = None) -> Customer:
    """
    Register a customer. When enrolled in an active program with a signup
    bonus, the bonus is credited as an earn transaction in the same
    transaction.
    """
    patch = validate_payload(
        model=Customer,
        payload=payload,
        policy=CUSTOMER_CREATE_POLICY,
        partial=False,
    )
    if patch.get("email") == "":
        patch["email"] = None
    patch.setdefault("last_name", "")

    with atomic():
        program = _check_program(patch.get("loyalty_program_id"))
        _check_email_free(patch.get("email"))

        customer = Customer(**patch, points_balance=0, total_points_earned=0, total_points_redeemed=0)
        db.session.add(customer)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Customer already exists") from exc

        if program and program.is_active and program.signup_bonus > 0:
            loyalty_service.add_points(
                customer.id,
                program.signup_bonus,
                f"Signup bonus ({program.name})",
                actor_user_id=actor_user_id,
            )

    return customer


def update_customer(customer_id: int, payload: dict) -> Customer:
    patch = validate_payload(
        model=Customer,
        payload=payload,
        policy=CUSTOMER_UPDATE_POLICY,
        partial=True,
    )
    if patch.get("email") == "":
        patch["email"] = None

    with atomic():
        customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
        if not customer:
            raise NotFoundError(f"Customer {customer_id} not found")
        if "loyalty_program_id" in patch:
            _check_program(patch["loyalty_program_id"])
        if "email" in patch:
            _check_email_free(patch["email"], exclude_id=customer_id)
        for key, value in patch.items():
            setattr(customer, key, value)

    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def search_customers(term: str | None = None, limit: int = 50) -> list[Customer]:
    query = db.session.query(Customer)
    if term:
        like = f"%{term.strip()}%"
        query = query.filter(or_(
            Customer.first_name.ilike(like),
            Customer.last_name.ilike(like),
            Customer.email.ilike(like),
            Customer.phone.ilike(like),
        ))
    return query.order_by(Customer.last_name, Customer.first_name, Customer.id).limit(limit).all()


def list_transactions(customer_id: int, page: int = 1, limit: int = 50) -> dict:
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be >= 1")
    get_customer(customer_id)

    query = db.session.query(LoyaltyTransaction).filter_by(customer_id=customer_id)
    total = query.count()
    rows = (
        query.order_by(LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "transactions": [t.to_dict() for t in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }
