from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data and live stock levels.

    STOCK FIELDS:
    - stock_quantity: total units ever received
    - available_quantity: sellable now (received - sold + restocked returns)
    - sold_quantity: cumulative units sold, net of restocked returns

    Products referenced by sales are never deleted; they are deactivated.
    version_id guards against lost updates from concurrent sales/returns.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("available_quantity >= 0", name="ck_products_available_nonneg"),
        db.CheckConstraint("sold_quantity >= 0", name="ck_products_sold_nonneg"),
        db.Index("ix_products_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=True, index=True)

    # Current cost and price in cents; sales snapshot the cost at sale time
    buying_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    available_quantity = db.Column(db.Integer, nullable=False, default=0)
    sold_quantity = db.Column(db.Integer, nullable=False, default=0)

    # Restock / expiry alert thresholds
    minimum_quantity = db.Column(db.Integer, nullable=True)
    alert_before_days = db.Column(db.Integer, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} available={self.available_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "buying_price_cents": self.buying_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "stock_quantity": self.stock_quantity,
            "available_quantity": self.available_quantity,
            "sold_quantity": self.sold_quantity,
            "minimum_quantity": self.minimum_quantity,
            "alert_before_days": self.alert_before_days,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
