# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, ProductReturn, Sale
from ..money import div_round_half_up
from ..time_utils import parse_iso_datetime, start_of_day, utcnow, to_utc_z


def parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 datetimes")
    if start_dt and end_dt and end_dt < start_dt:
        raise ValidationError("end must not be before start")
    return start_dt, end_dt


def sales_summary(start: datetime | None = None, end: datetime | None = None) -> dict:
    """
    Totals over sale rows in [start, end). Profit is net of returns (returns
    reduce the stored total_profit_cents); revenue is gross, refunds are
    reported separately.
    """
    query = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_amount_cents), 0),
        func.coalesce(func.sum(Sale.total_profit_cents), 0),
        func.coalesce(func.sum(Sale.quantity), 0),
        func.count(func.distinct(Sale.receipt_number)),
    )
    if start:
        query = query.filter(Sale.created_at >= start)
    if end:
        query = query.filter(Sale.created_at < end)
    count, revenue, profit, items, receipts = query.one()

    refunds_query = db.session.query(func.coalesce(func.sum(ProductReturn.refund_amount_cents), 0))
    if start:
        refunds_query = refunds_query.filter(ProductReturn.created_at >= start)
    if end:
        refunds_query = refunds_query.filter(ProductReturn.created_at < end)
    refunds = int(refunds_query.scalar() or 0)

    revenue = int(revenue)
    return {
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "total_sales": int(count),
        "receipts": int(receipts),
        "total_revenue_cents": revenue,
        "total_profit_cents": int(profit),
        "total_items_sold": int(items),
        "average_sale_cents": div_round_half_up(revenue, int(count)) if count else 0,
        "total_refunds_cents": refunds,
        "net_revenue_cents": revenue - refunds,
    }


def daily_sales(days: int = 30, now: datetime | None = None) -> list[dict]:
    if days < 1 or days > 366:
        raise ValidationError("days must be between 1 and 366")
    now = now or utcnow()
    since = start_of_day(now - timedelta(days=days - 1))

    day = func.date(Sale.created_at)
    rows = (
        db.session.query(
            day.label("day"),
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount_cents), 0),
            func.coalesce(func.sum(Sale.total_profit_cents), 0),
            func.coalesce(func.sum(Sale.quantity), 0),
        )
        .filter(Sale.created_at >= since)
        .group_by(day)
        .order_by(day.desc())
        .all()
    )
    return [
        {
            "date": str(d),
            "sales_count": int(n),
            "revenue_cents": int(revenue),
            "profit_cents": int(profit),
            "items_sold": int(items),
        }
        for d, n, revenue, profit, items in rows
    ]


def top_selling_products(limit: int = 10, start: datetime | None = None, end: datetime | None = None) -> list[dict]:
    if limit < 1 or limit > 100:
        raise ValidationError("limit must be between 1 and 100")

    qty = func.sum(Sale.quantity)
    query = (
        db.session.query(
            Product.id,
            Product.name,
            Product.sku,
            Product.category,
            qty.label("qty"),
            func.sum(Sale.total_amount_cents),
            func.count(Sale.id),
        )
        .select_from(Sale)
        .join(Product, Product.id == Sale.product_id)
    )
    if start:
        query = query.filter(Sale.created_at >= start)
    if end:
        query = query.filter(Sale.created_at < end)

    rows = (
        query.group_by(Product.id, Product.name, Product.sku, Product.category)
        .order_by(qty.desc(), Product.id)
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": pid,
            "name": name,
            "sku": sku,
            "category": category,
            "total_quantity_sold": int(q or 0),
            "total_revenue_cents": int(revenue or 0),
            "sales_count": int(n),
        }
        for pid, name, sku, category, q, revenue, n in rows
    ]
