# tests/conftest.py
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

# In-memory database and fixed settings before any project module is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REVENUE_API_KEY"] = ""
os.environ["PRICING_WINDOW_SEC"] = "3600"

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import httpx  # noqa: E402
import pytest  # noqa: E402

from core.database import Base, SessionLocal, engine, init_db  # noqa: E402
from models.catalog import (  # noqa: E402
    AffiliateProduct,
    Product,
    ProductCategories,
    ProductCategory,
    ProductVariation,
)
from models.orders import CartProduct, Order  # noqa: E402
from models.sharing import SharedProduct, SharedProductMapping, SharedVariationMapping  # noqa: E402

ORG = "org-1"
SUPPLIER_ORG = "supplier-1"
PAID_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
USD_EUR = 0.92
USD_GBP = 0.79


@pytest.fixture
def db():
    init_db()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class Seeder:
    """Small factory for catalog, sharing and order rows."""

    def __init__(self, db):
        self.db = db

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        return row

    def product(self, cost=None, regular_price=None, organization_id=ORG, **kw):
        return self._save(Product(
            organization_id=organization_id,
            title=kw.pop("title", "Product"),
            cost=cost,
            regular_price=regular_price,
            **kw,
        ))

    def variation(self, product, cost=None, regular_price=None, **kw):
        return self._save(ProductVariation(product_id=product.id, cost=cost, regular_price=regular_price, **kw))

    def affiliate_product(self, cost=None, organization_id=ORG):
        return self._save(AffiliateProduct(organization_id=organization_id, title="Points item", cost=cost))

    def category(self, name, organization_id=ORG):
        return self._save(ProductCategories(organization_id=organization_id, name=name))

    def categorize(self, product, category):
        return self._save(ProductCategory(product_id=product.id, category_id=category.id))

    def share(self, source, target, cost=None, share_link_id="link-1"):
        self._save(SharedProduct(share_link_id=share_link_id, product_id=source.id, cost=cost))
        return self._save(SharedProductMapping(
            share_link_id=share_link_id,
            source_product_id=source.id,
            target_product_id=target.id,
        ))

    def share_variation(self, source, target, source_variation, target_variation, share_link_id="link-1"):
        return self._save(SharedVariationMapping(
            share_link_id=share_link_id,
            source_product_id=source.id,
            target_product_id=target.id,
            source_variation_id=source_variation.id,
            target_variation_id=target_variation.id,
        ))

    def order(self, country="US", total=0, discount=0, shipping=0, organization_id=ORG, **kw):
        kw.setdefault("cart_id", f"cart-{country}-{total}-{self.db.query(Order).count()}")
        kw.setdefault("status", "paid")
        kw.setdefault("date_paid", PAID_AT)
        kw.setdefault("date_created", PAID_AT)
        kw.setdefault("order_meta", [])
        return self._save(Order(
            organization_id=organization_id,
            country=country,
            total_amount=total,
            discount_total=discount,
            shipping_total=shipping,
            **kw,
        ))

    def line(self, order, product=None, quantity=1, unit_price=None, variation=None, affiliate=None):
        return self._save(CartProduct(
            cart_id=order.cart_id,
            product_id=product.id if product else None,
            variation_id=variation.id if variation else None,
            affiliate_product_id=affiliate.id if affiliate else None,
            quantity=quantity,
            unit_price=unit_price,
        ))


@pytest.fixture
def seed(db):
    return Seeder(db)


class FakeProvider:
    """httpx.MockTransport-backed client that records every request."""

    def __init__(self, payload=None, status_code=200, error=None):
        self.payload = payload if payload is not None else {}
        self.status_code = status_code
        self.error = error
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, json=self.payload)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def fx_provider():
    return FakeProvider({"success": True, "quotes": {"USDEUR": USD_EUR, "USDGBP": USD_GBP}})


@pytest.fixture
def market_provider():
    return FakeProvider({"prices": [[1772362800000, 50000.0], [1772363100000, 51000.0]]})
