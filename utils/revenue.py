"""Order revenue snapshots.

One OrderRevenue row per order, computed at most once, with every figure in
USD, GBP and EUR. Crypto-settled orders take their total from the settlement
event priced at the paid instant; everything else comes from the order's
native-currency fields.
"""
from __future__ import annotations

import asyncio
import json
import weakref
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import httpx
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import logger, PRICING_WINDOW_SEC
from core.errors import DataUnavailable, OrderNotFound, RevenueError
from models.catalog import Product, ProductCategory, ProductVariation
from models.orders import CartProduct, Order
from models.revenue import CategoryRevenue, OrderRevenue
from utils.coingecko import get_spot_price_usd
from utils.cost_resolver import CostResolver
from utils.country_map import amount_for_country
from utils.currency import CurrencyTriple, to_money, triple_from_native, triple_from_usd
from utils.quote_cache import get_rates

PAID_LIKE_STATUSES = frozenset({"paid", "pending_payment", "completed"})
CRYPTO_PAYMENT_METHOD = "niftipay"

_ORDER_LOCKS: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _order_lock(order_id: str) -> asyncio.Lock:
    lock = _ORDER_LOCKS.get(order_id)
    if lock is None:
        lock = asyncio.Lock()
        _ORDER_LOCKS[order_id] = lock
    return lock


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _num(value) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class Settlement:
    asset: str
    amount: float


@dataclass
class RevenueOutcome:
    revenue: Optional[OrderRevenue] = None
    error: Optional[Exception] = None
    created: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and self.revenue is not None


def paid_like_instant(order: Order, now: Optional[datetime] = None) -> datetime:
    if order.date_paid is not None:
        return as_utc(order.date_paid)
    if (order.status or "").lower() in PAID_LIKE_STATUSES and order.date_created is not None:
        return as_utc(order.date_created)
    return as_utc(now) if now is not None else datetime.now(timezone.utc)


def pricing_window(instant: datetime) -> Tuple[datetime, datetime]:
    return instant - timedelta(seconds=PRICING_WINDOW_SEC), instant


def order_events(order_meta) -> list:
    """Lifecycle log as a list of dicts; stored either as JSON or JSON text."""
    events = order_meta
    if isinstance(events, (bytes, bytearray)):
        events = events.decode("utf-8")
    if isinstance(events, str):
        try:
            events = json.loads(events) if events.strip() else []
        except ValueError:
            logger.warning("[revenue] unreadable order_meta")
            return []
    if not isinstance(events, list):
        return []
    return [e for e in events if isinstance(e, dict)]


def settlement_event(order_meta) -> Optional[Settlement]:
    """
    Pick the settlement recorded in the order's lifecycle log.
    The latest "paid" event wins, then the latest "pending_payment" one.
    A pending event counts what was actually received when that is positive.
    """
    events = order_events(order_meta)
    for wanted in ("paid", "pending_payment"):
        for entry in reversed(events):
            if entry.get("event") != wanted:
                continue
            detail = entry.get("order") or {}
            if not isinstance(detail, dict):
                continue
            asset = detail.get("asset")
            if not asset:
                continue
            amount = _num(detail.get("amount"))
            if wanted == "pending_payment":
                received = _num(detail.get("received"))
                if received > 0:
                    amount = received
            return Settlement(asset=str(asset), amount=amount)
    return None


def ensure_not_computed(db: Session, order_id: str) -> Optional[OrderRevenue]:
    return db.query(OrderRevenue).filter(OrderRevenue.order_id == order_id).first()


def _catalog_price(db: Session, line: CartProduct, country: str) -> float:
    if line.unit_price is not None:
        return _num(line.unit_price)
    if line.variation_id:
        variation = db.get(ProductVariation, line.variation_id)
        if variation is not None:
            price = amount_for_country(variation.regular_price, country)
            if price:
                return price
    product = db.get(Product, line.product_id) if line.product_id else None
    if product is not None:
        return amount_for_country(product.regular_price, country)
    return 0.0


def _category_totals(db: Session, order: Order, resolver: CostResolver) -> dict:
    rows = (
        db.query(CartProduct, ProductCategory.category_id)
        .join(ProductCategory, ProductCategory.product_id == CartProduct.product_id)
        .filter(CartProduct.cart_id == order.cart_id)
        .all()
    )
    totals = defaultdict(lambda: {"total": 0.0, "cost": 0.0})
    for line, category_id in rows:
        if not category_id:
            continue
        qty = line.quantity or 0
        price = _catalog_price(db, line, order.country)
        cost = resolver.resolve(line.product_id, line.variation_id, order.country)
        totals[category_id]["total"] += price * qty
        totals[category_id]["cost"] += cost * qty
    return totals


def _order_cost(db: Session, order: Order, resolver: CostResolver) -> float:
    lines = db.query(CartProduct).filter(CartProduct.cart_id == order.cart_id).all()
    cost = 0.0
    for line in lines:
        qty = line.quantity or 0
        if line.product_id:
            cost += resolver.resolve(line.product_id, line.variation_id, order.country) * qty
        elif line.affiliate_product_id:
            cost += resolver.affiliate_cost(line.affiliate_product_id, order.country) * qty
    return cost


async def _crypto_total_usd(
    order: Order,
    window_start: datetime,
    window_end: datetime,
    client: Optional[httpx.AsyncClient],
) -> float:
    settlement = settlement_event(order.order_meta)
    if settlement is None:
        raise DataUnavailable(f"order {order.id} has no settlement event")
    price = await get_spot_price_usd(settlement.asset, window_start, window_end, client=client)
    logger.info(f"[revenue] {order.id} settled {settlement.amount} {settlement.asset} @ {price} USD")
    return settlement.amount * price


async def _compute_revenue(
    db: Session,
    order_id: str,
    organization_id: str,
    fx_client: Optional[httpx.AsyncClient] = None,
    market_client: Optional[httpx.AsyncClient] = None,
) -> Tuple[OrderRevenue, bool]:
    async with _order_lock(order_id):
        existing = ensure_not_computed(db, order_id)
        if existing is not None:
            if existing.organization_id != organization_id:
                raise OrderNotFound(order_id, organization_id)
            return existing, False

        order = (
            db.query(Order)
            .filter(Order.id == order_id, Order.organization_id == organization_id)
            .first()
        )
        if order is None:
            raise OrderNotFound(order_id, organization_id)

        country = (order.country or "").upper()
        instant = paid_like_instant(order)
        window_start, window_end = pricing_window(instant)

        resolver = CostResolver(db)
        categories = _category_totals(db, order, resolver)
        cost_native = _order_cost(db, order, resolver)
        total_native = _num(order.total_amount)
        discount_native = _num(order.discount_total)
        shipping_native = _num(order.shipping_total)

        crypto_usd = None
        if (order.payment_method or "").lower() == CRYPTO_PAYMENT_METHOD:
            crypto_usd = await _crypto_total_usd(order, window_start, window_end, market_client)

        rates = await get_rates(db, window_start, window_end, instant, client=fx_client)

        if crypto_usd is not None:
            total = triple_from_usd(crypto_usd, rates)
        else:
            total = triple_from_native(total_native, country, rates)
        discount = triple_from_native(discount_native, country, rates)
        shipping = triple_from_native(shipping_native, country, rates)
        cost = triple_from_native(cost_native, country, rates)

        revenue = OrderRevenue(
            order_id=order_id,
            organization_id=organization_id,
            **_money_columns("total", total),
            **_money_columns("discount", discount),
            **_money_columns("shipping", shipping),
            **_money_columns("cost", cost),
            cancelled=False,
            refunded=False,
        )
        rows = [revenue]
        for category_id, sums in categories.items():
            cat_total = triple_from_native(sums["total"], country, rates)
            cat_cost = triple_from_native(sums["cost"], country, rates)
            rows.append(CategoryRevenue(
                order_id=order_id,
                category_id=category_id,
                organization_id=organization_id,
                **_money_columns("total", cat_total),
                **_money_columns("cost", cat_cost),
            ))

        db.add_all(rows)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            existing = ensure_not_computed(db, order_id)
            if existing is None:
                raise
            logger.info(f"[revenue] {order_id} already stored by a concurrent writer")
            return existing, False
        except Exception:
            db.rollback()
            raise
        db.refresh(revenue)
        logger.info(f"[revenue] stored {order_id}: USD {revenue.usd_total} GBP {revenue.gbp_total} EUR {revenue.eur_total}")
        return revenue, True


def _money_columns(field: str, triple: CurrencyTriple) -> dict:
    return {
        f"usd_{field}": to_money(triple.usd),
        f"gbp_{field}": to_money(triple.gbp),
        f"eur_{field}": to_money(triple.eur),
    }


async def compute_revenue(
    db: Session,
    order_id: str,
    organization_id: str,
    fx_client: Optional[httpx.AsyncClient] = None,
    market_client: Optional[httpx.AsyncClient] = None,
) -> OrderRevenue:
    """Compute and store the revenue snapshot, or return the stored one. Raises RevenueError."""
    revenue, _ = await _compute_revenue(db, order_id, organization_id, fx_client, market_client)
    return revenue


async def get_revenue(
    db: Session,
    order_id: str,
    organization_id: str,
    fx_client: Optional[httpx.AsyncClient] = None,
    market_client: Optional[httpx.AsyncClient] = None,
) -> RevenueOutcome:
    try:
        revenue, created = await _compute_revenue(db, order_id, organization_id, fx_client, market_client)
    except RevenueError as ex:
        logger.warning(f"[revenue] {order_id} failed: {ex.code}: {ex.message}")
        return RevenueOutcome(error=ex)
    except SQLAlchemyError as ex:
        db.rollback()
        logger.error(f"[revenue] {order_id} database error: {ex}")
        return RevenueOutcome(error=ex)
    return RevenueOutcome(revenue=revenue, created=created)


def mark_revenue_status(
    db: Session,
    order_id: str,
    organization_id: str,
    cancelled: Optional[bool] = None,
    refunded: Optional[bool] = None,
) -> OrderRevenue:
    revenue = (
        db.query(OrderRevenue)
        .filter(OrderRevenue.order_id == order_id, OrderRevenue.organization_id == organization_id)
        .first()
    )
    if revenue is None:
        raise OrderNotFound(order_id, organization_id)
    if cancelled is not None:
        revenue.cancelled = bool(cancelled)
    if refunded is not None:
        revenue.refunded = bool(refunded)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(revenue)
    logger.info(f"[revenue] {order_id} flags cancelled={revenue.cancelled} refunded={revenue.refunded}")
    return revenue
