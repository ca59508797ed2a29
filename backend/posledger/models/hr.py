from __future__ import annotations

from ..extensions import db
from ..money import seconds_to_hours
from ..time_utils import to_utc_z

PAYROLL_STATUS_PENDING = "pending"
PAYROLL_STATUS_APPROVED = "approved"


class WorkSession(db.Model):
    """
    Login-to-logout span of a staff member.

    LIFECYCLE:
    - Active: logout_time IS NULL
    - Closed: logout_time set, duration_seconds computed (irreversible)

    At most one active session per user; starting a new one force-closes
    a stale one.
    """
    __tablename__ = "work_sessions"
    __table_args__ = (
        db.Index("ix_work_sessions_user_login", "user_id", "login_time"),
        db.Index("ix_work_sessions_user_active", "user_id", "logout_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    login_time = db.Column(db.DateTime(timezone=True), nullable=False)
    logout_time = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_seconds = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("work_sessions", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.logout_time is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "login_time": to_utc_z(self.login_time),
            "logout_time": to_utc_z(self.logout_time) if self.logout_time else None,
            "duration_seconds": self.duration_seconds,
            "hours_worked": seconds_to_hours(self.duration_seconds or 0),
            "is_active": self.is_active,
            "notes": self.notes,
        }


class PayrollInfo(db.Model):
    """Pay rates and position for one employee."""
    __tablename__ = "payroll_info"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    hourly_rate_cents = db.Column(db.Integer, nullable=False)
    # NULL means "derive from hourly rate and OVERTIME_MULTIPLIER_BPS"
    overtime_rate_cents = db.Column(db.Integer, nullable=True)
    position = db.Column(db.String(100), nullable=False)
    hire_date = db.Column(db.Date, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", backref=db.backref("payroll_info", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "hourly_rate_cents": self.hourly_rate_cents,
            "overtime_rate_cents": self.overtime_rate_cents,
            "position": self.position,
            "hire_date": self.hire_date.isoformat() if self.hire_date else None,
            "is_active": self.is_active,
        }


class PayrollSummary(db.Model):
    """
    Derived monthly pay for one employee, keyed by (user_id, month, year).

    Recalculation overwrites the row from current session data; it never
    accumulates. Rates are snapshotted at calculation time.
    """
    __tablename__ = "payroll_summaries"
    __table_args__ = (
        db.UniqueConstraint("user_id", "month", "year", name="uq_payroll_user_period"),
        db.CheckConstraint("month BETWEEN 1 AND 12", name="ck_payroll_month"),
        db.Index("ix_payroll_period_status", "year", "month", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)

    total_seconds = db.Column(db.Integer, nullable=False, default=0)
    regular_seconds = db.Column(db.Integer, nullable=False, default=0)
    overtime_seconds = db.Column(db.Integer, nullable=False, default=0)

    hourly_rate_cents = db.Column(db.Integer, nullable=False)
    overtime_rate_cents = db.Column(db.Integer, nullable=False)
    regular_pay_cents = db.Column(db.Integer, nullable=False, default=0)
    overtime_pay_cents = db.Column(db.Integer, nullable=False, default=0)
    total_pay_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=PAYROLL_STATUS_PENDING, index=True)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    calculated_at = db.Column(db.DateTime(timezone=True), nullable=False)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("payroll_summaries", lazy=True))
    approver = db.relationship("User", foreign_keys=[approved_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "month": self.month,
            "year": self.year,
            "total_seconds": self.total_seconds,
            "regular_seconds": self.regular_seconds,
            "overtime_seconds": self.overtime_seconds,
            "total_hours": seconds_to_hours(self.total_seconds),
            "regular_hours": seconds_to_hours(self.regular_seconds),
            "overtime_hours": seconds_to_hours(self.overtime_seconds),
            "hourly_rate_cents": self.hourly_rate_cents,
            "overtime_rate_cents": self.overtime_rate_cents,
            "regular_pay_cents": self.regular_pay_cents,
            "overtime_pay_cents": self.overtime_pay_cents,
            "total_pay_cents": self.total_pay_cents,
            "status": self.status,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "calculated_at": to_utc_z(self.calculated_at),
        }
