"""
Cross-organization product sharing (dropshipping)
A target product is a clone of a supplier's source product created through a
share link. The supplier's transfer cost lives on shared_products.
"""
import uuid
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from core.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class SharedProduct(Base):
    __tablename__ = "shared_products"

    id = Column(String(64), primary_key=True, default=_uuid)
    share_link_id = Column(String(64), nullable=False, index=True)
    product_id = Column(String(64), nullable=False, index=True)  # source product
    variation_id = Column(String(64), nullable=True)
    cost = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class SharedProductMapping(Base):
    __tablename__ = "shared_product_mappings"

    id = Column(String(64), primary_key=True, default=_uuid)
    share_link_id = Column(String(64), nullable=False, index=True)
    source_product_id = Column(String(64), nullable=False, index=True)
    target_product_id = Column(String(64), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class SharedVariationMapping(Base):
    __tablename__ = "shared_variation_mappings"

    id = Column(String(64), primary_key=True, default=_uuid)
    share_link_id = Column(String(64), nullable=False, index=True)
    source_product_id = Column(String(64), nullable=False)
    target_product_id = Column(String(64), nullable=False, index=True)
    source_variation_id = Column(String(64), nullable=False)
    target_variation_id = Column(String(64), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
