from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

LOYALTY_EARN = "earn"
LOYALTY_REDEEM = "redeem"
LOYALTY_ADJUSTMENT = "adjustment"


class LoyaltyProgram(db.Model):
    """
    Points earning rules.

    earn_rate_bps is points per whole currency unit spent, in basis points
    (10000 = 1 point per unit).
    """
    __tablename__ = "loyalty_programs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    earn_rate_bps = db.Column(db.Integer, nullable=False, default=10000)
    signup_bonus = db.Column(db.Integer, nullable=False, default=0)
    min_redemption_threshold = db.Column(db.Integer, nullable=False, default=100)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "earn_rate_bps": self.earn_rate_bps,
            "signup_bonus": self.signup_bonus,
            "min_redemption_threshold": self.min_redemption_threshold,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Customer(db.Model):
    """
    Customer with loyalty points balance.

    points_balance never goes negative; every change is mirrored by a
    LoyaltyTransaction row written in the same DB transaction.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("points_balance >= 0", name="ck_customers_points_nonneg"),
        db.Index("ix_customers_name", "last_name", "first_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False, default="")
    email = db.Column(db.String(255), nullable=True, unique=True)
    phone = db.Column(db.String(32), nullable=True, index=True)

    loyalty_program_id = db.Column(db.Integer, db.ForeignKey("loyalty_programs.id"), nullable=True, index=True)

    points_balance = db.Column(db.Integer, nullable=False, default=0)
    total_points_earned = db.Column(db.Integer, nullable=False, default=0)
    total_points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    loyalty_program = db.relationship("LoyaltyProgram", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "loyalty_program_id": self.loyalty_program_id,
            "points_balance": self.points_balance,
            "total_points_earned": self.total_points_earned,
            "total_points_redeemed": self.total_points_redeemed,
            "last_activity_at": to_utc_z(self.last_activity_at) if self.last_activity_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class LoyaltyTransaction(db.Model):
    """
    Append-only ledger of loyalty point events.

    TRANSACTION TYPES:
    - earn: points awarded (positive)
    - redeem: points spent (negative)
    - adjustment: manual or return-driven correction (either sign)
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.CheckConstraint("type IN ('earn', 'redeem', 'adjustment')", name="ck_loyalty_txn_type"),
        db.Index("ix_loyalty_txns_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    points = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    customer = db.relationship("Customer", backref=db.backref("loyalty_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "points": self.points,
            "type": self.type,
            "description": self.description,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
