"""
Revenue snapshots
- order_revenue: one immutable row per order (unique order_id)
- category_revenue: one row per category touched by the order
"""
import uuid
from sqlalchemy import Column, String, DateTime, Numeric, Boolean
from sqlalchemy.sql import func
from core.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _money(value) -> float:
    return float(value) if value is not None else 0.0


class OrderRevenue(Base):
    __tablename__ = "order_revenue"

    id = Column(String(64), primary_key=True, default=_uuid)
    order_id = Column(String(64), unique=True, index=True, nullable=False)
    organization_id = Column(String(128), nullable=False, index=True)

    usd_total = Column(Numeric(12, 2), nullable=False, default=0)
    usd_discount = Column(Numeric(12, 2), nullable=False, default=0)
    usd_shipping = Column(Numeric(12, 2), nullable=False, default=0)
    usd_cost = Column(Numeric(12, 2), nullable=False, default=0)

    gbp_total = Column(Numeric(12, 2), nullable=False, default=0)
    gbp_discount = Column(Numeric(12, 2), nullable=False, default=0)
    gbp_shipping = Column(Numeric(12, 2), nullable=False, default=0)
    gbp_cost = Column(Numeric(12, 2), nullable=False, default=0)

    eur_total = Column(Numeric(12, 2), nullable=False, default=0)
    eur_discount = Column(Numeric(12, 2), nullable=False, default=0)
    eur_shipping = Column(Numeric(12, 2), nullable=False, default=0)
    eur_cost = Column(Numeric(12, 2), nullable=False, default=0)

    cancelled = Column(Boolean, nullable=False, default=False)
    refunded = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def to_dict(self):
        """Convert to dict for API responses"""
        out = {
            "id": self.id,
            "orderId": self.order_id,
            "organizationId": self.organization_id,
            "cancelled": bool(self.cancelled),
            "refunded": bool(self.refunded),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        for ccy in ("usd", "gbp", "eur"):
            for field in ("total", "discount", "shipping", "cost"):
                out[f"{ccy.upper()}{field}"] = _money(getattr(self, f"{ccy}_{field}"))
        return out


class CategoryRevenue(Base):
    __tablename__ = "category_revenue"

    id = Column(String(64), primary_key=True, default=_uuid)
    order_id = Column(String(64), nullable=False, index=True)
    category_id = Column(String(64), nullable=False, index=True)
    organization_id = Column(String(128), nullable=False, index=True)

    usd_total = Column(Numeric(12, 2), nullable=False, default=0)
    usd_cost = Column(Numeric(12, 2), nullable=False, default=0)
    gbp_total = Column(Numeric(12, 2), nullable=False, default=0)
    gbp_cost = Column(Numeric(12, 2), nullable=False, default=0)
    eur_total = Column(Numeric(12, 2), nullable=False, default=0)
    eur_cost = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
