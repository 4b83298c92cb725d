import asyncio
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from core.errors import DataUnavailable, OrderNotFound, ProviderHttpError, UnsupportedAsset
from models.exchange_rate import ExchangeRate
from models.revenue import CategoryRevenue, OrderRevenue
from utils.revenue import (
    compute_revenue,
    get_revenue,
    mark_revenue_status,
    paid_like_instant,
    pricing_window,
    settlement_event,
)

from conftest import ORG, PAID_AT, SUPPLIER_ORG


async def _compute(db, order, fx_provider, market_provider=None, organization_id=ORG):
    async with fx_provider.client() as fx:
        market = market_provider.client() if market_provider else None
        try:
            return await compute_revenue(db, order.id, organization_id, fx_client=fx, market_client=market)
        finally:
            if market is not None:
                await market.aclose()


# ---- helpers ----

def test_paid_like_instant_prefers_date_paid(seed):
    order = seed.order(status="open", date_paid=PAID_AT, date_created=PAID_AT - timedelta(days=1))
    assert paid_like_instant(order) == PAID_AT


def test_paid_like_instant_uses_created_for_paid_statuses(seed):
    created = PAID_AT - timedelta(days=1)
    order = seed.order(status="completed", date_paid=None, date_created=created)
    assert paid_like_instant(order) == created


def test_paid_like_instant_falls_back_to_now(seed):
    order = seed.order(status="open", date_paid=None, date_created=PAID_AT)
    now = datetime(2026, 4, 1, tzinfo=timezone.utc)
    assert paid_like_instant(order, now=now) == now


def test_pricing_window_is_one_hour():
    start, end = pricing_window(PAID_AT)
    assert end == PAID_AT
    assert end - start == timedelta(hours=1)


def test_settlement_event_prefers_latest_paid():
    meta = [
        {"event": "pending_payment", "order": {"asset": "ETH", "amount": 1, "received": 0}},
        {"event": "paid", "order": {"asset": "BTC", "amount": 0.01}},
        {"event": "paid", "order": {"asset": "BTC", "amount": 0.02}},
    ]
    event = settlement_event(meta)
    assert (event.asset, event.amount) == ("BTC", 0.02)


def test_settlement_event_pending_uses_received_when_positive():
    meta = json.dumps([
        {"event": "pending_payment", "order": {"asset": "LTC", "amount": 2, "received": 1.5}},
    ])
    event = settlement_event(meta)
    assert (event.asset, event.amount) == ("LTC", 1.5)

    meta = [{"event": "pending_payment", "order": {"asset": "LTC", "amount": 2, "received": 0}}]
    assert settlement_event(meta).amount == 2.0


def test_settlement_event_missing():
    assert settlement_event([]) is None
    assert settlement_event("not json") is None
    assert settlement_event([{"event": "created", "order": {}}]) is None


# ---- computation ----

@pytest.mark.asyncio
async def test_us_order_end_to_end(db, seed, fx_provider):
    product = seed.product(cost={"US": 20})
    order = seed.order(country="US", total=100, discount=10, shipping=5)
    seed.line(order, product, quantity=2, unit_price=50)

    revenue = await _compute(db, order, fx_provider)

    assert (revenue.usd_total, revenue.eur_total, revenue.gbp_total) == (
        Decimal("100.00"), Decimal("92.00"), Decimal("79.00"),
    )
    assert (revenue.usd_discount, revenue.eur_discount, revenue.gbp_discount) == (
        Decimal("10.00"), Decimal("9.20"), Decimal("7.90"),
    )
    assert (revenue.usd_shipping, revenue.eur_shipping, revenue.gbp_shipping) == (
        Decimal("5.00"), Decimal("4.60"), Decimal("3.95"),
    )
    assert (revenue.usd_cost, revenue.eur_cost, revenue.gbp_cost) == (
        Decimal("40.00"), Decimal("36.80"), Decimal("31.60"),
    )
    assert revenue.cancelled is False and revenue.refunded is False
    assert db.query(ExchangeRate).count() == 1


@pytest.mark.asyncio
async def test_failed_insert_rolls_back_and_order_stays_retryable(db, seed, fx_provider, monkeypatch):
    order = seed.order(total=100)
    broken = {None: {"total": 10.0, "cost": 1.0}}

    monkeypatch.setattr("utils.revenue._category_totals", lambda *args: broken)
    with pytest.raises(IntegrityError):
        await _compute(db, order, fx_provider)
    assert db.query(OrderRevenue).count() == 0
    assert db.query(CategoryRevenue).count() == 0

    monkeypatch.undo()
    revenue = await _compute(db, order, fx_provider)
    assert revenue.usd_total == Decimal("100.00")
    assert db.query(OrderRevenue).count() == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("country, total", [("GB", 79), ("DE", 92), ("US", 100)])
async def test_native_totals_round_trip(db, seed, fx_provider, country, total):
    order = seed.order(country=country, total=total, discount=10, shipping=5)

    revenue = await _compute(db, order, fx_provider)

    assert revenue.usd_total == Decimal("100.00")
    assert revenue.eur_total == Decimal("92.00")
    assert revenue.gbp_total == Decimal("79.00")
    native = {"GB": revenue.gbp_discount, "DE": revenue.eur_discount, "US": revenue.usd_discount}[country]
    assert native == Decimal("10.00")


@pytest.mark.asyncio
async def test_compute_is_idempotent(db, seed, fx_provider):
    order = seed.order(total=100)

    first = await _compute(db, order, fx_provider)
    second = await _compute(db, order, fx_provider)

    assert first.id == second.id
    assert db.query(OrderRevenue).count() == 1
    assert fx_provider.calls == 1


@pytest.mark.asyncio
async def test_concurrent_computations_store_one_row(db, seed, fx_provider):
    order = seed.order(total=100)

    async with fx_provider.client() as fx:
        first, second = await asyncio.gather(
            compute_revenue(db, order.id, ORG, fx_client=fx),
            compute_revenue(db, order.id, ORG, fx_client=fx),
        )

    assert first.id == second.id
    assert db.query(OrderRevenue).count() == 1


@pytest.mark.asyncio
async def test_crypto_total_priced_from_settlement(db, seed, fx_provider, market_provider):
    order = seed.order(
        country="GB",
        total=300,
        discount=4,
        payment_method="niftipay",
        order_meta=[
            {"event": "pending_payment", "order": {"asset": "BTC", "amount": 0.01, "received": 0}},
            {"event": "paid", "order": {"asset": "BTC", "amount": 0.01, "expected": 0.01}},
        ],
    )

    revenue = await _compute(db, order, fx_provider, market_provider)

    assert revenue.usd_total == Decimal("500.00")
    assert revenue.eur_total == Decimal("460.00")
    assert revenue.gbp_total == Decimal("395.00")
    # non-total figures stay on the order's native fields
    assert revenue.gbp_discount == Decimal("4.00")
    assert market_provider.calls == 1


@pytest.mark.asyncio
async def test_unsupported_asset_stores_nothing(db, seed, fx_provider, market_provider):
    category = seed.category("Hats")
    product = seed.product(cost={"US": 1})
    seed.categorize(product, category)
    order = seed.order(
        total=10,
        payment_method="NiftiPay",
        order_meta=[{"event": "paid", "order": {"asset": "FAKE", "amount": 3}}],
    )
    seed.line(order, product, quantity=1, unit_price=10)

    with pytest.raises(UnsupportedAsset):
        await _compute(db, order, fx_provider, market_provider)

    assert db.query(OrderRevenue).count() == 0
    assert db.query(CategoryRevenue).count() == 0
    assert market_provider.calls == 0


@pytest.mark.asyncio
async def test_crypto_without_settlement_event(db, seed, fx_provider, market_provider):
    order = seed.order(total=10, payment_method="niftipay", order_meta=[])
    with pytest.raises(DataUnavailable):
        await _compute(db, order, fx_provider, market_provider)
    assert db.query(OrderRevenue).count() == 0


@pytest.mark.asyncio
async def test_category_totals_aggregate_lines(db, seed, fx_provider):
    apparel = seed.category("Apparel")
    shirt = seed.product(cost={"US": 4}, regular_price={"US": 99})
    cap = seed.product(cost={"US": 2}, regular_price={"US": 12})
    loose = seed.product(cost={"US": 1}, regular_price={"US": 7})
    seed.categorize(shirt, apparel)
    seed.categorize(cap, apparel)
    order = seed.order(total=56)
    seed.line(order, shirt, quantity=2, unit_price=10)
    seed.line(order, cap, quantity=3)
    seed.line(order, loose, quantity=1)

    revenue = await _compute(db, order, fx_provider)

    rows = db.query(CategoryRevenue).all()
    assert len(rows) == 1
    assert rows[0].category_id == apparel.id
    assert rows[0].usd_total == Decimal("56.00")
    assert rows[0].usd_cost == Decimal("14.00")
    # order cost covers every first-party line
    assert revenue.usd_cost == Decimal("15.00")


@pytest.mark.asyncio
async def test_variation_price_used_when_line_has_no_unit_price(db, seed, fx_provider):
    category = seed.category("Shoes")
    product = seed.product(regular_price={"US": 30})
    variation = seed.variation(product, regular_price={"US": 45})
    seed.categorize(product, category)
    order = seed.order(total=45)
    seed.line(order, product, quantity=1, variation=variation)

    await _compute(db, order, fx_provider)

    assert db.query(CategoryRevenue).one().usd_total == Decimal("45.00")


@pytest.mark.asyncio
async def test_order_cost_uses_shared_and_affiliate_costs(db, seed, fx_provider):
    source = seed.product(cost={"US": 3}, organization_id=SUPPLIER_ORG)
    clone = seed.product(cost={"US": 20})
    seed.share(source, clone, cost={"US": 5})
    points = seed.affiliate_product(cost={"US": 1.5})
    order = seed.order(total=60)
    seed.line(order, clone, quantity=2, unit_price=25)
    seed.line(order, affiliate=points, quantity=2)

    revenue = await _compute(db, order, fx_provider)

    assert revenue.usd_cost == Decimal("13.00")


@pytest.mark.asyncio
async def test_cached_quote_is_reused(db, seed, fx_provider):
    db.add(ExchangeRate(eur=0.9, gbp=0.8, date=PAID_AT - timedelta(minutes=5)))
    db.commit()
    order = seed.order(total=100)

    revenue = await _compute(db, order, fx_provider)

    assert revenue.eur_total == Decimal("90.00")
    assert revenue.gbp_total == Decimal("80.00")
    assert fx_provider.calls == 0


@pytest.mark.asyncio
async def test_unknown_order_or_foreign_org(db, seed, fx_provider):
    order = seed.order(total=10)
    async with fx_provider.client() as fx:
        with pytest.raises(OrderNotFound):
            await compute_revenue(db, "missing", ORG, fx_client=fx)
        with pytest.raises(OrderNotFound):
            await compute_revenue(db, order.id, "someone-else", fx_client=fx)
    assert fx_provider.calls == 0


# ---- result wrapper ----

@pytest.mark.asyncio
async def test_get_revenue_reports_created_flag(db, seed, fx_provider):
    order = seed.order(total=100)
    async with fx_provider.client() as fx:
        first = await get_revenue(db, order.id, ORG, fx_client=fx)
        second = await get_revenue(db, order.id, ORG, fx_client=fx)

    assert first.ok and first.created
    assert second.ok and not second.created
    assert first.revenue.id == second.revenue.id


@pytest.mark.asyncio
async def test_get_revenue_wraps_provider_errors(db, seed, fx_provider):
    fx_provider.status_code = 500
    order = seed.order(total=100)
    async with fx_provider.client() as fx:
        outcome = await get_revenue(db, order.id, ORG, fx_client=fx)

    assert not outcome.ok
    assert outcome.revenue is None
    assert isinstance(outcome.error, ProviderHttpError)
    assert db.query(OrderRevenue).count() == 0


@pytest.mark.asyncio
async def test_get_revenue_wraps_database_errors(db, seed, fx_provider, monkeypatch):
    order = seed.order(total=100)

    def _broken(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("db down"))

    monkeypatch.setattr("utils.revenue.ensure_not_computed", _broken)
    async with fx_provider.client() as fx:
        outcome = await get_revenue(db, order.id, ORG, fx_client=fx)

    assert not outcome.ok
    assert isinstance(outcome.error, OperationalError)


# ---- status flags ----

@pytest.mark.asyncio
async def test_mark_revenue_status(db, seed, fx_provider):
    order = seed.order(total=100)
    await _compute(db, order, fx_provider)

    revenue = mark_revenue_status(db, order.id, ORG, cancelled=True)
    assert revenue.cancelled is True
    assert revenue.refunded is False

    revenue = mark_revenue_status(db, order.id, ORG, refunded=True)
    assert revenue.cancelled is True
    assert revenue.refunded is True

    with pytest.raises(OrderNotFound):
        mark_revenue_status(db, order.id, "someone-else", cancelled=False)
