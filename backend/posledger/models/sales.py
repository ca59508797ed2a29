from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

RETURN_STATUS_NONE = "none"
RETURN_STATUS_PARTIAL = "partial"
RETURN_STATUS_FULL = "full"

PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_MOBILE = "mobile"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_MOBILE)


class Sale(db.Model):
    """
    One sold line (append-only ledger row).

    Lines from the same checkout share a receipt_number. The buying price is
    snapshotted at sale time so later cost edits never rewrite historical
    profit. Only a return may touch the row afterwards, and only
    total_profit_cents / return_status.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sales_quantity_positive"),
        db.CheckConstraint("return_status IN ('none', 'partial', 'full')", name="ck_sales_return_status"),
        db.Index("ix_sales_created", "created_at"),
        db.Index("ix_sales_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(32), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    original_price_cents = db.Column(db.Integer, nullable=False)
    discount_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    # Profit bookkeeping (snapshot of cost at sale time)
    buying_price_at_sale_cents = db.Column(db.Integer, nullable=False)
    profit_per_unit_cents = db.Column(db.Integer, nullable=False)
    total_profit_cents = db.Column(db.Integer, nullable=False)
    profit_margin_bps = db.Column(db.Integer, nullable=False, default=0)

    # Payment (recorded per checkout, repeated on each line of the receipt)
    payment_method = db.Column(db.String(16), nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False)
    change_given_cents = db.Column(db.Integer, nullable=False, default=0)

    return_status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_NONE, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    cashier = db.relationship("User", foreign_keys=[created_by])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "customer_id": self.customer_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "original_price_cents": self.original_price_cents,
            "discount_amount_cents": self.discount_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "buying_price_at_sale_cents": self.buying_price_at_sale_cents,
            "profit_per_unit_cents": self.profit_per_unit_cents,
            "total_profit_cents": self.total_profit_cents,
            "profit_margin_bps": self.profit_margin_bps,
            "payment_method": self.payment_method,
            "amount_paid_cents": self.amount_paid_cents,
            "change_given_cents": self.change_given_cents,
            "return_status": self.return_status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class ProductReturn(db.Model):
    """
    Return event against one sale line. Immutable once created.

    refund_amount_cents is proportional to the sale line total:
    total_amount / quantity * quantity_returned.
    """
    __tablename__ = "product_returns"
    __table_args__ = (
        db.CheckConstraint("quantity_returned > 0", name="ck_returns_quantity_positive"),
        db.Index("ix_returns_sale_product", "sale_id", "product_id"),
        db.Index("ix_returns_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity_returned = db.Column(db.Integer, nullable=False)
    original_quantity = db.Column(db.Integer, nullable=False)
    return_reason = db.Column(db.String(255), nullable=True)
    refund_amount_cents = db.Column(db.Integer, nullable=False)
    restocked = db.Column(db.Boolean, nullable=False, default=True)

    processed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True))
    processor = db.relationship("User", foreign_keys=[processed_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity_returned": self.quantity_returned,
            "original_quantity": self.original_quantity,
            "return_reason": self.return_reason,
            "refund_amount_cents": self.refund_amount_cents,
            "restocked": self.restocked,
            "processed_by": self.processed_by,
            "created_at": to_utc_z(self.created_at),
        }


class ReceiptSequence(db.Model):
    """
    Atomic receipt number allocation.

    WHY: Lines of one checkout share a receipt number; numbers must be unique
    under concurrent checkouts.
    """
    __tablename__ = "receipt_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(8), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
