"""
Timekeeping and payroll aggregation tests.
"""

from datetime import datetime, timedelta

import pytest

from posledger.errors import NotFoundError, PayrollInfoMissing, StateError, ValidationError
from posledger.extensions import db
from posledger.models import PayrollSummary
from posledger.services import payroll_service, timekeeping_service


pytestmark = pytest.mark.payroll


def work(user_id: int, start: datetime, hours: float):
    timekeeping_service.start_session(user_id, at=start)
    return timekeeping_service.end_session(user_id, at=start + timedelta(hours=hours))


@pytest.fixture
def paid_cashier(cashier):
    payroll_service.upsert_payroll_info(cashier.id, 1000, "Cashier", overtime_rate_cents=1500)
    return cashier


# =============================================================================
# TIMEKEEPING
# =============================================================================

class TestWorkSessions:

    def test_start_and_end(self, cashier):
        start = datetime(2025, 3, 3, 9, 0)
        session = work(cashier.id, start, 8)
        assert session.duration_seconds == 8 * 3600
        assert session.notes == timekeeping_service.LOGOUT_NOTE
        assert timekeeping_service.get_current_session(cashier.id) is None

    def test_new_login_closes_stale_session(self, cashier):
        first_login = datetime(2025, 3, 3, 9, 0)
        second_login = first_login + timedelta(hours=5)

        timekeeping_service.start_session(cashier.id, at=first_login)
        current = timekeeping_service.start_session(cashier.id, at=second_login)

        stale = timekeeping_service.list_sessions(cashier.id)[-1]
        assert stale.logout_time == second_login
        assert stale.duration_seconds == 5 * 3600
        assert stale.notes == timekeeping_service.AUTO_END_NOTE

        active = timekeeping_service.get_current_session(cashier.id)
        assert active.id == current.id

    def test_end_without_active_session(self, cashier):
        assert timekeeping_service.end_session(cashier.id) is None

    def test_logout_before_login_rejected(self, cashier):
        login = datetime(2025, 3, 3, 9, 0)
        timekeeping_service.start_session(cashier.id, at=login)
        with pytest.raises(ValidationError):
            timekeeping_service.end_session(cashier.id, at=login - timedelta(minutes=1))

    def test_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            timekeeping_service.start_session(999999)


# =============================================================================
# PAYROLL
# =============================================================================

class TestPayrollCalculation:

    def test_overtime_split(self, paid_cashier):
        work(paid_cashier.id, datetime(2025, 3, 1, 0, 0), 100)
        work(paid_cashier.id, datetime(2025, 3, 10, 0, 0), 70)

        summary = payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)

        assert summary.total_seconds == 170 * 3600
        assert summary.regular_seconds == 160 * 3600
        assert summary.overtime_seconds == 10 * 3600
        assert summary.regular_pay_cents == 160000
        assert summary.overtime_pay_cents == 15000
        assert summary.total_pay_cents == 175000
        assert summary.status == "pending"

    def test_default_overtime_rate_from_multiplier(self, cashier):
        payroll_service.upsert_payroll_info(cashier.id, 1000, "Cashier")
        work(cashier.id, datetime(2025, 3, 1, 0, 0), 170)

        summary = payroll_service.calculate_monthly_payroll(cashier.id, 3, 2025)
        assert summary.overtime_rate_cents == 1500
        assert summary.total_pay_cents == 175000

    def test_only_sessions_in_month_count(self, paid_cashier):
        work(paid_cashier.id, datetime(2025, 2, 27, 8, 0), 8)
        work(paid_cashier.id, datetime(2025, 3, 2, 8, 0), 8)

        summary = payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)
        assert summary.total_seconds == 8 * 3600

    def test_open_sessions_are_ignored(self, paid_cashier):
        work(paid_cashier.id, datetime(2025, 3, 2, 8, 0), 8)
        timekeeping_service.start_session(paid_cashier.id, at=datetime(2025, 3, 3, 8, 0))

        summary = payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)
        assert summary.total_seconds == 8 * 3600

    def test_recalculation_overwrites(self, paid_cashier):
        work(paid_cashier.id, datetime(2025, 3, 2, 8, 0), 8)
        first = payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)
        again = payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)
        assert again.id == first.id
        assert again.total_pay_cents == 8000

        work(paid_cashier.id, datetime(2025, 3, 3, 8, 0), 2)
        updated = payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)
        assert updated.total_pay_cents == 10000
        assert db.session.query(PayrollSummary).count() == 1

    def test_missing_payroll_info(self, cashier):
        with pytest.raises(PayrollInfoMissing):
            payroll_service.calculate_monthly_payroll(cashier.id, 3, 2025)

    def test_invalid_month(self, paid_cashier):
        with pytest.raises(ValidationError):
            payroll_service.calculate_monthly_payroll(paid_cashier.id, 0, 2025)

    @pytest.mark.parametrize("user_id", ["abc", None, 0, -4, 1.5, True])
    def test_malformed_user_id(self, db_session, user_id):
        with pytest.raises(ValidationError):
            payroll_service.calculate_monthly_payroll(user_id, 3, 2025)


class TestPayrollApproval:

    def test_approve(self, paid_cashier, manager):
        work(paid_cashier.id, datetime(2025, 3, 2, 8, 0), 8)
        summary = payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)

        approved = payroll_service.approve_payroll(summary.id, manager.id)
        assert approved.status == "approved"
        assert approved.approved_by == manager.id
        assert approved.approved_at is not None

    def test_approved_month_is_frozen(self, paid_cashier, manager):
        work(paid_cashier.id, datetime(2025, 3, 2, 8, 0), 8)
        summary = payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)
        payroll_service.approve_payroll(summary.id, manager.id)

        with pytest.raises(StateError):
            payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)
        with pytest.raises(StateError):
            payroll_service.approve_payroll(summary.id, manager.id)

    def test_calculate_all_skips_approved(self, paid_cashier, make_user, manager):
        other = make_user("other", role="cashier")
        payroll_service.upsert_payroll_info(other.id, 1200, "Cashier")
        work(paid_cashier.id, datetime(2025, 3, 2, 8, 0), 8)
        work(other.id, datetime(2025, 3, 2, 8, 0), 4)

        first = payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)
        payroll_service.approve_payroll(first.id, manager.id)

        result = payroll_service.calculate_all_payroll(3, 2025)
        assert [s.user_id for s in result["summaries"]] == [other.id]
        assert result["summaries"][0].total_pay_cents == 4800
        assert result["skipped"] == [{"user_id": paid_cashier.id, "reason": "approved"}]

    def test_list_by_status(self, paid_cashier):
        work(paid_cashier.id, datetime(2025, 3, 2, 8, 0), 8)
        payroll_service.calculate_monthly_payroll(paid_cashier.id, 3, 2025)
        assert len(payroll_service.list_payroll_summaries(status="pending")) == 1
        assert payroll_service.list_payroll_summaries(status="approved") == []
