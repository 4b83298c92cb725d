"""Effective unit cost of a cart line.

A dropshipper's own ``cost`` on a shared clone is its resale price, not what
it pays. For clones the supplier's cost is reached by following the sharing
mapping one hop back to the source product (and source variation). Missing
cost data always resolves to 0.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from core.config import logger
from models.catalog import AffiliateProduct, Product, ProductVariation
from models.sharing import SharedProduct, SharedProductMapping, SharedVariationMapping
from utils.country_map import amount_for_country

_MISSING = object()


class CostResolver:
    """Per-computation resolver. Memo tables live as long as the instance."""

    def __init__(self, db: Session):
        self.db = db
        self._costs: dict[tuple, float] = {}
        self._mappings: dict[str, Optional[SharedProductMapping]] = {}

    def mapping_for(self, product_id: str) -> Optional[SharedProductMapping]:
        cached = self._mappings.get(product_id, _MISSING)
        if cached is not _MISSING:
            return cached
        mapping = (
            self.db.query(SharedProductMapping)
            .filter(SharedProductMapping.target_product_id == product_id)
            .first()
        )
        self._mappings[product_id] = mapping
        return mapping

    def resolve(self, product_id: Optional[str], variation_id: Optional[str], country: Optional[str]) -> float:
        if not product_id:
            return 0.0
        key = (product_id, variation_id or None, (country or "").upper())
        if key in self._costs:
            return self._costs[key]

        mapping = self.mapping_for(product_id)
        if mapping is not None:
            cost = self.shared_cost(mapping, variation_id, country)
        else:
            cost = self._own_cost(product_id, variation_id, country)
        self._costs[key] = cost
        return cost

    def shared_cost(self, mapping: SharedProductMapping, variation_id: Optional[str], country: Optional[str]) -> float:
        if variation_id:
            vmap = (
                self.db.query(SharedVariationMapping)
                .filter(
                    SharedVariationMapping.share_link_id == mapping.share_link_id,
                    SharedVariationMapping.source_product_id == mapping.source_product_id,
                    SharedVariationMapping.target_product_id == mapping.target_product_id,
                    SharedVariationMapping.target_variation_id == variation_id,
                )
                .first()
            )
            if vmap is not None:
                source_variation = self.db.get(ProductVariation, vmap.source_variation_id)
                if source_variation is not None:
                    cost = amount_for_country(source_variation.cost, country)
                    if cost:
                        return cost

        # Only the product-level row; variation rows never stand in for it
        shared = (
            self.db.query(SharedProduct)
            .filter(
                SharedProduct.share_link_id == mapping.share_link_id,
                SharedProduct.product_id == mapping.source_product_id,
                SharedProduct.variation_id.is_(None),
            )
            .first()
        )
        if shared is None:
            logger.info(f"[cost] no shared cost for {mapping.target_product_id} via link {mapping.share_link_id}")
            return 0.0
        return amount_for_country(shared.cost, country)

    def _own_cost(self, product_id: str, variation_id: Optional[str], country: Optional[str]) -> float:
        if variation_id:
            variation = self.db.get(ProductVariation, variation_id)
            if variation is not None:
                cost = amount_for_country(variation.cost, country)
                if cost:
                    return cost
        product = self.db.get(Product, product_id)
        if product is None:
            return 0.0
        return amount_for_country(product.cost, country)

    def affiliate_cost(self, affiliate_product_id: Optional[str], country: Optional[str]) -> float:
        if not affiliate_product_id:
            return 0.0
        key = ("affiliate", affiliate_product_id, (country or "").upper())
        if key in self._costs:
            return self._costs[key]
        product = self.db.get(AffiliateProduct, affiliate_product_id)
        cost = amount_for_country(product.cost, country) if product is not None else 0.0
        self._costs[key] = cost
        return cost


def resolve_effective_cost(db: Session, product_id: str, variation_id: Optional[str], country: str) -> float:
    return CostResolver(db).resolve(product_id, variation_id, country)
