"""
Dropshipping payables: what this organization owes each supplier whose
shared products it sold. Transfer costs are converted with the newest cached
quote, not the quote of the sale.
"""
from collections import defaultdict
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from core.config import logger
from models.catalog import Product
from models.orders import CartProduct, Order
from models.revenue import OrderRevenue
from utils.cost_resolver import CostResolver
from utils.currency import SettlementCurrency, convert_by_country
from utils.quote_cache import latest_rates
from utils.revenue_report import paid_at_column, days_between, paid_at

SUPPLIER_STATUSES = ("paid", "pending_payment", "partially_paid", "cancelled", "refunded", "open")

_STATUS_ALIASES = {
    "paid": "paid",
    "completed": "paid",
    "pending_payment": "pending_payment",
    "pending": "pending_payment",
    "partially_paid": "partially_paid",
    "underpaid": "partially_paid",
    "cancelled": "cancelled",
    "canceled": "cancelled",
    "failed": "cancelled",
    "refunded": "refunded",
}


def normalize_status(order_status: Optional[str], revenue: Optional[OrderRevenue] = None) -> str:
    if revenue is not None:
        if revenue.cancelled:
            return "cancelled"
        if revenue.refunded:
            return "refunded"
    key = (order_status or "").strip().lower().replace("-", "_").replace(" ", "_")
    return _STATUS_ALIASES.get(key, "open")


def supplier_report(
    db: Session,
    organization_id: str,
    date_from: datetime,
    date_to: datetime,
    currency: SettlementCurrency = SettlementCurrency.USD,
    supplier_org_id: Optional[str] = None,
    status: str = "all",
) -> dict:
    wanted_status = (status or "all").strip().lower()
    if wanted_status != "all" and wanted_status not in SUPPLIER_STATUSES:
        raise ValueError(f"unknown status filter: {status}")

    rates = latest_rates(db)
    column = paid_at_column()
    rows = (
        db.query(Order, OrderRevenue, CartProduct)
        .join(OrderRevenue, OrderRevenue.order_id == Order.id)
        .join(CartProduct, CartProduct.cart_id == Order.cart_id)
        .filter(
            Order.organization_id == organization_id,
            CartProduct.product_id.isnot(None),
            column >= date_from,
            column <= date_to,
        )
        .all()
    )

    resolver = CostResolver(db)
    suppliers: dict = {}
    groups: dict = {}
    seen_lines: set = set()
    in_house_lines = 0
    for order, revenue, line in rows:
        if line.id in seen_lines:
            continue
        seen_lines.add(line.id)
        mapping = resolver.mapping_for(line.product_id)
        if mapping is None:
            continue
        if mapping.source_product_id not in suppliers:
            source = db.get(Product, mapping.source_product_id)
            suppliers[mapping.source_product_id] = source.organization_id if source else None
        supplier = suppliers[mapping.source_product_id]
        if not supplier or supplier == organization_id:
            in_house_lines += 1
            continue
        if supplier_org_id and supplier != supplier_org_id:
            continue

        key = (order.id, supplier)
        group = groups.get(key)
        if group is None:
            when = paid_at(order)
            group = groups[key] = {
                "orderId": order.id,
                "orderKey": order.order_key,
                "supplierOrgId": supplier,
                "supplierLabel": supplier,
                "status": normalize_status(order.status, revenue),
                "paidAt": when.isoformat() if when else None,
                "day": when.date().isoformat() if when else None,
                "currency": currency.value,
                "quantity": 0,
                "owed": 0.0,
            }
        unit = resolver.shared_cost(mapping, line.variation_id, order.country)
        qty = line.quantity or 0
        group["quantity"] += qty
        group["owed"] += convert_by_country(unit * qty, order.country, currency, rates)

    items = []
    counts = {s: 0 for s in SUPPLIER_STATUSES}
    per_day = defaultdict(float)
    total_owed = 0.0
    paid_owed = 0.0
    for group in groups.values():
        if group["status"] == "cancelled":
            group["owed"] = 0.0
        elif group["status"] == "refunded":
            group["owed"] = -abs(group["owed"])
        group["owed"] = round(group["owed"], 2)
        if wanted_status != "all" and group["status"] != wanted_status:
            continue
        counts[group["status"]] += 1
        total_owed += group["owed"]
        if group["status"] == "paid":
            paid_owed += group["owed"]
            if group["day"]:
                per_day[group["day"]] += group["owed"]
        items.append({k: v for k, v in group.items() if k != "day"})

    items.sort(key=lambda i: i["paidAt"] or "", reverse=True)
    chart = [{"date": day, "owed": round(per_day[day], 2)} for day in days_between(date_from, date_to)]
    logger.info(f"[report] suppliers for {organization_id}: {len(items)} groups, {in_house_lines} in-house lines")
    return {
        "items": items,
        "chartData": chart,
        "counts": {**counts, "total": len(items), "inHouseLines": in_house_lines},
        "totals": {"owed": round(total_owed, 2), "paidOwed": round(paid_owed, 2)},
        "currency": currency.value,
    }
