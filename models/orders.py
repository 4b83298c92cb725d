"""
Order models
- orders: one row per checkout, amounts in the order's native currency
- cart_products: cart lines (first-party products and affiliate/points items)
"""
import uuid
from sqlalchemy import Column, String, DateTime, Integer, Numeric, JSON
from sqlalchemy.sql import func
from core.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True, default=_uuid)
    organization_id = Column(String(128), nullable=False, index=True)
    client_id = Column(String(128), nullable=True, index=True)
    cart_id = Column(String(64), nullable=False, index=True)
    order_key = Column(String(64), nullable=True)

    country = Column(String(2), nullable=False)  # ISO-2, decides the native currency
    payment_method = Column(String(64), nullable=True)  # "niftipay" = crypto settled
    status = Column(String(50), nullable=False, default="open")

    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_total = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_total = Column(Numeric(12, 2), nullable=False, default=0)

    date_paid = Column(DateTime(timezone=True), nullable=True)
    date_created = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Append-only lifecycle log: [{"event": "paid", "order": {"asset", "amount", "received", "expected"}}]
    order_meta = Column(JSON, nullable=False, default=list)


class CartProduct(Base):
    __tablename__ = "cart_products"

    id = Column(String(64), primary_key=True, default=_uuid)
    cart_id = Column(String(64), nullable=False, index=True)
    product_id = Column(String(64), nullable=True, index=True)
    affiliate_product_id = Column(String(64), nullable=True, index=True)
    variation_id = Column(String(64), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=True)  # price charged at checkout

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
