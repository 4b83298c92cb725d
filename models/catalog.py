"""
Catalog models
Prices and costs are country-keyed maps ({"US": 10.0, "GB": 8.5}); older
write paths stored them as JSON text, so readers go through
utils.country_map.parse_country_map.
"""
import uuid
from sqlalchemy import Column, String, DateTime, JSON, Text
from sqlalchemy.sql import func
from core.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Product(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True, default=_uuid)
    organization_id = Column(String(128), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    product_type = Column(String(20), nullable=False, default="simple")  # simple, variable
    regular_price = Column(JSON, nullable=True)
    cost = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ProductVariation(Base):
    __tablename__ = "product_variations"

    id = Column(String(64), primary_key=True, default=_uuid)
    product_id = Column(String(64), nullable=False, index=True)
    sku = Column(String(128), nullable=True)
    regular_price = Column(JSON, nullable=True)
    cost = Column(JSON, nullable=True)


class ProductCategories(Base):
    """Category names"""
    __tablename__ = "product_categories"

    id = Column(String(64), primary_key=True, default=_uuid)
    organization_id = Column(String(128), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(Text, nullable=True)


class ProductCategory(Base):
    """Product <-> category join table"""
    __tablename__ = "product_category"

    product_id = Column(String(64), primary_key=True)
    category_id = Column(String(64), primary_key=True, index=True)


class AffiliateProduct(Base):
    """Points products; never shared, so their cost is always their own"""
    __tablename__ = "affiliate_products"

    id = Column(String(64), primary_key=True, default=_uuid)
    organization_id = Column(String(128), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    cost = Column(JSON, nullable=True)
