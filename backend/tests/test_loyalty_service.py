"""
Loyalty ledger and customer tests.
"""

from datetime import timedelta

import pytest

from posledger.errors import ConflictError, InsufficientPoints, NotFoundError, ValidationError
from posledger.extensions import db
from posledger.models import LoyaltyTransaction
from posledger.services import customer_service, loyalty_service
from posledger.time_utils import utcnow


pytestmark = pytest.mark.loyalty


def balance(customer_id: int) -> int:
    return customer_service.get_customer(customer_id).points_balance


class TestPointMovements:

    def test_add_points(self, customer):
        txn = loyalty_service.add_points(customer.id, 120, "Promo")
        assert txn.points == 120
        assert txn.type == "earn"

        refreshed = customer_service.get_customer(customer.id)
        assert refreshed.points_balance == 120
        assert refreshed.total_points_earned == 120
        assert refreshed.last_activity_at is not None

    def test_redeem_points(self, customer):
        loyalty_service.add_points(customer.id, 300)
        txn = loyalty_service.redeem_points(customer.id, 100, "Reward")
        assert txn.points == -100

        refreshed = customer_service.get_customer(customer.id)
        assert refreshed.points_balance == 200
        assert refreshed.total_points_redeemed == 100

    def test_insufficient_points_leaves_balance(self, customer):
        loyalty_service.add_points(customer.id, 50)
        with pytest.raises(InsufficientPoints) as exc:
            loyalty_service.redeem_points(customer.id, 51)
        assert exc.value.details["available"] == 50
        assert balance(customer.id) == 50
        assert db.session.query(LoyaltyTransaction).filter_by(customer_id=customer.id).count() == 1

    @pytest.mark.parametrize("points", [0, -5])
    def test_non_positive_points_rejected(self, customer, points):
        with pytest.raises(ValidationError):
            loyalty_service.add_points(customer.id, points)

    def test_adjustment_both_directions(self, customer):
        loyalty_service.adjust_points(customer.id, 40, "Goodwill")
        loyalty_service.adjust_points(customer.id, -15, "Correction")
        assert balance(customer.id) == 25

        types = {t.type for t in db.session.query(LoyaltyTransaction).filter_by(customer_id=customer.id)}
        assert types == {"adjustment"}

    def test_adjustment_cannot_go_negative(self, customer):
        with pytest.raises(InsufficientPoints):
            loyalty_service.adjust_points(customer.id, -1, "Correction")

    def test_zero_adjustment_rejected(self, customer):
        with pytest.raises(ValidationError):
            loyalty_service.adjust_points(customer.id, 0, "Nothing")

    def test_floored_deduction(self, customer):
        loyalty_service.add_points(customer.id, 30)
        txn = loyalty_service.deduct_points_floored(customer.id, 100, "Return")
        assert txn.points == -30
        assert balance(customer.id) == 0
        assert loyalty_service.deduct_points_floored(customer.id, 10, "Return") is None

    def test_balance_matches_ledger(self, customer):
        loyalty_service.add_points(customer.id, 500)
        loyalty_service.redeem_points(customer.id, 120)
        loyalty_service.adjust_points(customer.id, -30, "Fix")
        loyalty_service.deduct_points_floored(customer.id, 10, "Return")

        total = sum(t.points for t in db.session.query(LoyaltyTransaction).filter_by(customer_id=customer.id))
        assert total == balance(customer.id) == 340

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFoundError):
            loyalty_service.add_points(999999, 10)


class TestEarnRate:

    def test_points_for_purchase(self, program):
        assert loyalty_service.points_for_purchase(program, 15000) == 150
        assert loyalty_service.points_for_purchase(program, 199) == 1
        assert loyalty_service.points_for_purchase(None, 15000) == 0

    def test_inactive_program_earns_nothing(self, program):
        program = loyalty_service.update_program(program.id, {"is_active": False})
        assert loyalty_service.points_for_purchase(program, 15000) == 0


class TestCustomers:

    def test_signup_bonus(self, db_session):
        program = loyalty_service.create_program({"name": "Gold", "signup_bonus": 100})
        customer = customer_service.create_customer({"first_name": "Grace", "loyalty_program_id": program.id})

        assert balance(customer.id) == 100
        txn = db.session.query(LoyaltyTransaction).filter_by(customer_id=customer.id).one()
        assert txn.type == "earn"
        assert txn.description == "Signup bonus (Gold)"

    def test_duplicate_email(self, customer):
        with pytest.raises(ConflictError):
            customer_service.create_customer({"first_name": "Other", "email": "ada@example.com"})

    def test_balance_not_writable(self, customer):
        with pytest.raises(ValidationError):
            customer_service.update_customer(customer.id, {"points_balance": 1000})

    def test_search(self, customer):
        assert [c.id for c in customer_service.search_customers("love")] == [customer.id]
        assert customer_service.search_customers("nobody") == []

    def test_transactions_page(self, customer):
        loyalty_service.add_points(customer.id, 10)
        loyalty_service.add_points(customer.id, 20)
        page = customer_service.list_transactions(customer.id, page=1, limit=1)
        assert page["total"] == 2
        assert len(page["transactions"]) == 1

    def test_duplicate_program_name(self, program):
        with pytest.raises(ConflictError):
            loyalty_service.create_program({"name": "Standard"})


class TestProgramStats:

    def test_totals_and_recent_activity(self, program, customer):
        other = customer_service.create_customer({"first_name": "Bob", "loyalty_program_id": program.id})
        customer_service.create_customer({"first_name": "Walk-in"})

        loyalty_service.add_points(customer.id, 300, "Purchase")
        loyalty_service.redeem_points(customer.id, 100, "Reward")
        loyalty_service.adjust_points(customer.id, 20, "Goodwill")
        loyalty_service.add_points(other.id, 50, "Purchase")

        stats = loyalty_service.program_stats(program.id)
        assert stats["program"]["id"] == program.id
        assert stats["total_customers"] == 2
        assert stats["total_points_outstanding"] == 270
        assert stats["total_points_earned"] == 370
        assert stats["total_points_redeemed"] == 100
        assert stats["average_points_per_customer"] == 135
        assert stats["transaction_count"] == 4
        assert stats["points_earned_recent"] == 350
        assert stats["points_redeemed_recent"] == 100

    def test_activity_window(self, program, customer):
        loyalty_service.add_points(customer.id, 40)
        later = utcnow() + timedelta(days=45)

        stats = loyalty_service.program_stats(program.id, days=30, now=later)
        assert stats["transaction_count"] == 0
        assert stats["points_earned_recent"] == 0
        assert stats["total_points_outstanding"] == 40

    def test_empty_program(self, program):
        stats = loyalty_service.program_stats(program.id)
        assert stats["total_customers"] == 0
        assert stats["average_points_per_customer"] == 0

    def test_unknown_program(self, db_session):
        with pytest.raises(NotFoundError):
            loyalty_service.program_stats(999999)
