# Overview: Service-layer operations for payroll; encapsulates business logic and database work.

"""
Payroll Aggregator

WHY: Monthly pay is derived data. It is recomputed from closed work
sessions on demand and stored per (user, month, year) so managers can
review and approve it.

DESIGN:
- Hours are summed in seconds; only closed sessions whose login_time falls
  in the calendar month count.
- regular = min(total, threshold), overtime = max(0, total - threshold),
  threshold = OVERTIME_THRESHOLD_HOURS (160 by default).
- Each pay component is rounded half-up to the cent independently.
- Recalculation overwrites the summary row; it never accumulates.
- Approved summaries are frozen: recalculating one is a StateError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, PayrollInfoMissing, StateError, ValidationError
from ..extensions import db
from ..models import PayrollInfo, PayrollSummary, User, WorkSession
from ..models.auth import ROLE_CASHIER
from ..models.hr import PAYROLL_STATUS_APPROVED, PAYROLL_STATUS_PENDING
from ..money import SECONDS_PER_HOUR, apply_bps, pay_for_seconds, seconds_to_hours
from ..time_utils import month_bounds, start_of_day, utcnow
from ..validation import (
    coerce_bool,
    coerce_date,
    optional_money,
    require_money,
    require_month_year,
    require_positive_int,
    require_text,
)
from .concurrency import atomic, lock_for_update

logger = logging.getLogger(__name__)

PAYROLL_STATUSES = (PAYROLL_STATUS_PENDING, PAYROLL_STATUS_APPROVED)


# =============================================================================
# PAYROLL INFO
# =============================================================================

def upsert_payroll_info(
    user_id: int,
    hourly_rate_cents,
    position,
    hire_date=None,
    overtime_rate_cents=None,
    is_active=True,
) -> PayrollInfo:
    hourly = require_money("hourly_rate_cents", hourly_rate_cents)
    overtime = optional_money("overtime_rate_cents", overtime_rate_cents)
    position = require_text("position", position, max_length=100)
    hire = coerce_date("hire_date", hire_date)
    active = coerce_bool("is_active", is_active, default=True)

    with atomic():
        if not db.session.get(User, user_id):
            raise NotFoundError(f"User {user_id} not found")

        info = lock_for_update(db.session.query(PayrollInfo).filter_by(user_id=user_id)).first()
        if info is None:
            info = PayrollInfo(user_id=user_id)
            db.session.add(info)

        info.hourly_rate_cents = hourly
        info.overtime_rate_cents = overtime
        info.position = position
        info.hire_date = hire
        info.is_active = active

        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Payroll info was created concurrently") from exc

    return info


def get_payroll_info(user_id: int) -> PayrollInfo:
    info = db.session.query(PayrollInfo).filter_by(user_id=user_id).first()
    if not info:
        raise PayrollInfoMissing(
            f"Payroll information not found for user {user_id}",
            details={"user_id": user_id},
        )
    return info


def list_payroll_info(active_only: bool = True) -> list[PayrollInfo]:
    query = db.session.query(PayrollInfo)
    if active_only:
        query = query.filter(PayrollInfo.is_active.is_(True))
    return query.order_by(PayrollInfo.user_id).all()


def effective_overtime_rate(info: PayrollInfo) -> int:
    if info.overtime_rate_cents is not None:
        return info.overtime_rate_cents
    multiplier = current_app.config.get("OVERTIME_MULTIPLIER_BPS", 15000)
    return apply_bps(info.hourly_rate_cents, multiplier)


# =============================================================================
# CALCULATION
# =============================================================================

def worked_seconds(user_id: int, month: int, year: int) -> int:
    """Sum of closed session durations whose login_time falls in the month."""
    start, end = month_bounds(month, year)
    total = (
        db.session.query(func.coalesce(func.sum(WorkSession.duration_seconds), 0))
        .filter(
            WorkSession.user_id == user_id,
            WorkSession.logout_time.isnot(None),
            WorkSession.login_time >= start,
            WorkSession.login_time < end,
        )
        .scalar()
    )
    return int(total or 0)


def split_hours(total_seconds: int) -> tuple[int, int]:
    """(regular_seconds, overtime_seconds) around the monthly threshold."""
    threshold = current_app.config.get("OVERTIME_THRESHOLD_HOURS", 160) * SECONDS_PER_HOUR
    regular = min(total_seconds, threshold)
    return regular, max(0, total_seconds - threshold)


def calculate_monthly_payroll(user_id: int, month, year) -> PayrollSummary:
    """
    Recompute one employee's pay for a calendar month.

    Raises:
        ValidationError: bad user_id, or month/year out of range
        PayrollInfoMissing: no active payroll info for the user
        StateError: the month is already approved
    """
    user_id = require_positive_int("user_id", user_id, maximum=2**31 - 1)
    month, year = require_month_year(month, year)

    with atomic():
        info = db.session.query(PayrollInfo).filter_by(user_id=user_id, is_active=True).first()
        if not info:
            raise PayrollInfoMissing(
                f"Payroll information not found for user {user_id}",
                details={"user_id": user_id},
            )

        summary = lock_for_update(
            db.session.query(PayrollSummary).filter_by(user_id=user_id, month=month, year=year)
        ).first()
        if summary is not None and summary.status == PAYROLL_STATUS_APPROVED:
            raise StateError(
                "Payroll for this period is already approved",
                details={"summary_id": summary.id},
            )

        total_seconds = worked_seconds(user_id, month, year)
        regular_seconds, overtime_seconds = split_hours(total_seconds)
        hourly = info.hourly_rate_cents
        overtime_rate = effective_overtime_rate(info)
        regular_pay = pay_for_seconds(regular_seconds, hourly)
        overtime_pay = pay_for_seconds(overtime_seconds, overtime_rate)

        if summary is None:
            summary = PayrollSummary(user_id=user_id, month=month, year=year)
            db.session.add(summary)
        else:
            logger.info("Recalculating payroll for user %s %02d/%s", user_id, month, year)

        summary.total_seconds = total_seconds
        summary.regular_seconds = regular_seconds
        summary.overtime_seconds = overtime_seconds
        summary.hourly_rate_cents = hourly
        summary.overtime_rate_cents = overtime_rate
        summary.regular_pay_cents = regular_pay
        summary.overtime_pay_cents = overtime_pay
        summary.total_pay_cents = regular_pay + overtime_pay
        summary.status = PAYROLL_STATUS_PENDING
        summary.calculated_at = utcnow()

        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictError("Payroll summary was created concurrently") from exc

    return summary


def calculate_all_payroll(month, year) -> dict:
    """Recalculate every employee with active payroll info; approved months are skipped."""
    month, year = require_month_year(month, year)

    calculated: list[PayrollSummary] = []
    skipped: list[dict] = []
    with atomic():
        approved_users = {
            row.user_id
            for row in db.session.query(PayrollSummary.user_id).filter_by(
                month=month, year=year, status=PAYROLL_STATUS_APPROVED,
            )
        }
        for info in list_payroll_info(active_only=True):
            if info.user_id in approved_users:
                skipped.append({"user_id": info.user_id, "reason": "approved"})
                continue
            calculated.append(calculate_monthly_payroll(info.user_id, month, year))

    logger.info(
        "Payroll %02d/%s: %s calculated, %s skipped",
        month, year, len(calculated), len(skipped),
    )
    return {"summaries": calculated, "skipped": skipped}


# =============================================================================
# APPROVAL + QUERIES
# =============================================================================

def approve_payroll(summary_id: int, approver_id: int) -> PayrollSummary:
    """pending -> approved; stamps approver and time. No other transitions."""
    with atomic():
        summary = lock_for_update(db.session.query(PayrollSummary).filter_by(id=summary_id)).first()
        if not summary:
            raise NotFoundError(f"Payroll summary {summary_id} not found")
        if summary.status != PAYROLL_STATUS_PENDING:
            raise StateError(
                f"Cannot approve payroll in status {summary.status}",
                details={"summary_id": summary_id, "status": summary.status},
            )
        summary.status = PAYROLL_STATUS_APPROVED
        summary.approved_by = approver_id
        summary.approved_at = utcnow()

    return summary


def get_payroll_summary(summary_id: int) -> PayrollSummary:
    summary = db.session.get(PayrollSummary, summary_id)
    if not summary:
        raise NotFoundError(f"Payroll summary {summary_id} not found")
    return summary


def list_payroll_summaries(month=None, year=None, status: str | None = None) -> list[PayrollSummary]:
    query = db.session.query(PayrollSummary)
    if month is not None or year is not None:
        month, year = require_month_year(month, year)
        query = query.filter_by(month=month, year=year)
    if status:
        if status not in PAYROLL_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(PAYROLL_STATUSES)}")
        query = query.filter_by(status=status)
    return query.order_by(PayrollSummary.year.desc(), PayrollSummary.month.desc(), PayrollSummary.user_id).all()


def hr_dashboard_stats(now: datetime | None = None) -> dict:
    now = now or utcnow()
    day_start = start_of_day(now)

    total_cashiers = db.session.query(func.count(User.id)).filter(
        User.role == ROLE_CASHIER,
        User.is_active.is_(True),
    ).scalar()

    open_sessions = (
        db.session.query(WorkSession)
        .join(User, User.id == WorkSession.user_id)
        .filter(User.role == ROLE_CASHIER, WorkSession.logout_time.is_(None))
        .all()
    )

    closed_today = db.session.query(func.coalesce(func.sum(WorkSession.duration_seconds), 0)).filter(
        WorkSession.login_time >= day_start,
        WorkSession.login_time < day_start + timedelta(days=1),
        WorkSession.logout_time.isnot(None),
    ).scalar()
    open_today = sum(
        int((now - max(s.login_time, day_start)).total_seconds())
        for s in open_sessions
        if s.login_time < now
    )

    pending_count, pending_amount = (
        db.session.query(
            func.count(PayrollSummary.id),
            func.coalesce(func.sum(PayrollSummary.total_pay_cents), 0),
        )
        .filter(
            PayrollSummary.month == now.month,
            PayrollSummary.year == now.year,
            PayrollSummary.status == PAYROLL_STATUS_PENDING,
        )
        .one()
    )

    return {
        "active_cashiers": len({s.user_id for s in open_sessions}),
        "total_cashiers": int(total_cashiers or 0),
        "today_seconds": int(closed_today or 0) + open_today,
        "today_hours": seconds_to_hours(int(closed_today or 0) + open_today),
        "pending_payroll_count": int(pending_count),
        "pending_payroll_cents": int(pending_amount),
        "month": now.month,
        "year": now.year,
    }
