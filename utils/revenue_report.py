"""
Read-side revenue reports built on stored snapshots.
Amounts are never recomputed here; the requested currency just selects which
stored column is reported.
"""
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import logger
from models.catalog import ProductCategories
from models.orders import Order
from models.revenue import CategoryRevenue, OrderRevenue
from utils.currency import SettlementCurrency
from utils.revenue import as_utc, order_events


def _parse_bound(value: str, end: bool) -> datetime:
    text = (value or "").strip()
    if not text:
        raise ValueError("missing date")
    if len(text) == 10:
        day = date.fromisoformat(text)
        return datetime.combine(day, time.max if end else time.min, tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    return as_utc(parsed)


def parse_date_range(date_from: str, date_to: str) -> Tuple[datetime, datetime]:
    """Plain dates cover whole UTC days; full timestamps are used as given."""
    start = _parse_bound(date_from, end=False)
    stop = _parse_bound(date_to, end=True)
    if start > stop:
        raise ValueError("'from' must not be after 'to'")
    return start, stop


def days_between(start: datetime, stop: datetime) -> Iterable[str]:
    day = start.date()
    while day <= stop.date():
        yield day.isoformat()
        day += timedelta(days=1)


def paid_at(order: Order) -> Optional[datetime]:
    return as_utc(order.date_paid or order.date_created)


def paid_at_column():
    return func.coalesce(Order.date_paid, Order.date_created)


def first_coin(order_meta) -> str:
    for event in order_events(order_meta):
        detail = event.get("order")
        if isinstance(detail, dict) and detail.get("asset"):
            return str(detail["asset"])
    return ""


def _column(row, field: str, currency: SettlementCurrency) -> float:
    value = getattr(row, f"{currency.value.lower()}_{field}")
    return float(value) if value is not None else 0.0


def revenue_report(
    db: Session,
    organization_id: str,
    date_from: datetime,
    date_to: datetime,
    currency: SettlementCurrency = SettlementCurrency.USD,
) -> dict:
    column = paid_at_column()
    rows = (
        db.query(OrderRevenue, Order)
        .join(Order, Order.id == OrderRevenue.order_id)
        .filter(
            OrderRevenue.organization_id == organization_id,
            column >= date_from,
            column <= date_to,
        )
        .order_by(column.desc())
        .all()
    )

    orders = []
    per_day = defaultdict(lambda: {"total": 0.0, "revenue": 0.0})
    for revenue, order in rows:
        total = _column(revenue, "total", currency)
        discount = _column(revenue, "discount", currency)
        shipping = _column(revenue, "shipping", currency)
        cost = _column(revenue, "cost", currency)
        net = total - shipping - discount - cost
        when = paid_at(order)
        orders.append({
            "orderId": order.id,
            "orderKey": order.order_key,
            "clientId": order.client_id,
            "country": order.country,
            "status": order.status,
            "paidAt": when.isoformat() if when else None,
            "currency": currency.value,
            "total": round(total, 2),
            "discount": round(discount, 2),
            "shipping": round(shipping, 2),
            "cost": round(cost, 2),
            "netProfit": round(net, 2),
            "coin": first_coin(order.order_meta),
            "cancelled": bool(revenue.cancelled),
            "refunded": bool(revenue.refunded),
        })
        if revenue.cancelled or when is None:
            continue
        bucket = per_day[when.date().isoformat()]
        bucket["total"] += total
        bucket["revenue"] += net

    chart = [
        {"date": day, "total": round(per_day[day]["total"], 2), "revenue": round(per_day[day]["revenue"], 2)}
        for day in days_between(date_from, date_to)
    ]
    logger.info(f"[report] revenue for {organization_id}: {len(orders)} orders in {currency.value}")
    return {"orders": orders, "chartData": chart}


def category_revenue_report(
    db: Session,
    organization_id: str,
    date_from: datetime,
    date_to: datetime,
    currency: SettlementCurrency = SettlementCurrency.USD,
) -> dict:
    column = paid_at_column()
    rows = (
        db.query(CategoryRevenue, ProductCategories.name)
        .join(Order, Order.id == CategoryRevenue.order_id)
        .outerjoin(ProductCategories, ProductCategories.id == CategoryRevenue.category_id)
        .filter(
            CategoryRevenue.organization_id == organization_id,
            column >= date_from,
            column <= date_to,
        )
        .all()
    )

    grouped = defaultdict(lambda: {"total": 0.0, "cost": 0.0})
    for row, name in rows:
        label = name or row.category_id
        grouped[label]["total"] += _column(row, "total", currency)
        grouped[label]["cost"] += _column(row, "cost", currency)

    categories = [
        {
            "category": label,
            "currency": currency.value,
            "total": round(sums["total"], 2),
            "cost": round(sums["cost"], 2),
            "revenue": round(sums["total"] - sums["cost"], 2),
        }
        for label, sums in grouped.items()
    ]
    categories.sort(key=lambda c: c["total"], reverse=True)
    return {"categories": categories}
