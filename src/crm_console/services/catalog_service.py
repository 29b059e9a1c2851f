"""
Catalog Service - CRUD operations for products.
"""
import logging
from dataclasses import dataclass, asdict, field
from typing import Optional

from ..storage.document_store import DocumentStore
from ..reports.profitability import margin, margin_percent, margin_bucket
from .base import (
    RecordNotFound, ValidationFailed, ValidationResult,
    clean_str, clean_tags, search, sort_docs, now_iso,
)

logger = logging.getLogger(__name__)

PRODUCT_TYPES = ('product', 'service', 'bundle')


@dataclass
class Product:
    """A sellable catalog entry."""
    name: str
    id: str = ''
    sku: Optional[str] = None
    description: Optional[str] = None
    type: str = 'product'
    base_price: float = 0.0
    currency: str = 'USD'
    cost: Optional[float] = None
    tax_rate: Optional[float] = None
    is_active: bool = True
    category: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def margin(self) -> Optional[float]:
        if not self.cost:
            return None
        return margin(self.base_price, self.cost)

    @property
    def margin_percent(self) -> Optional[float]:
        if not self.cost:
            return None
        return margin_percent(self.base_price, self.cost)

    def to_record(self) -> dict:
        return asdict(self)

    def to_view(self) -> dict:
        """Record plus derived margin fields."""
        view = self.to_record()
        view['margin'] = self.margin
        view['margin_percent'] = self.margin_percent
        view['margin_bucket'] = margin_bucket(self.margin_percent) if self.margin_percent is not None else None
        return view

    @classmethod
    def from_record(cls, doc: dict) -> 'Product':
        return cls(
            id=doc.get('id', ''),
            name=doc.get('name', ''),
            sku=doc.get('sku'),
            description=doc.get('description'),
            type=doc.get('type') or 'product',
            base_price=float(doc.get('base_price') or 0),
            currency=doc.get('currency') or 'USD',
            cost=float(doc['cost']) if doc.get('cost') is not None else None,
            tax_rate=float(doc['tax_rate']) if doc.get('tax_rate') is not None else None,
            is_active=bool(doc.get('is_active', True)),
            category=doc.get('category'),
            tags=list(doc.get('tags') or []),
            metadata=dict(doc.get('metadata') or {}),
            created_at=doc.get('created_at'),
            updated_at=doc.get('updated_at'),
        )


class CatalogService:
    """Service for managing catalog products."""

    COLLECTION = 'products'
    SEARCH_FIELDS = ('name', 'sku', 'description')
    SORT_FIELDS = {'name', 'sku', 'base_price', 'created_at', 'updated_at'}

    def __init__(self, store: DocumentStore, list_limit: int = 500, default_currency: str = 'USD'):
        self.store = store
        self.list_limit = list_limit
        self.default_currency = default_currency

    def list_products(
        self,
        q: Optional[str] = None,
        type: Optional[str] = None,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
        sort: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> list[Product]:
        """List products with search, filters and sorting."""
        docs = search(self.store.list(self.COLLECTION), q, self.SEARCH_FIELDS)
        if type:
            docs = [d for d in docs if d.get('type') == type]
        if category:
            docs = [d for d in docs if d.get('category') == category]
        if is_active is not None:
            docs = [d for d in docs if bool(d.get('is_active', True)) == is_active]
        docs = sort_docs(docs, sort, direction, self.SORT_FIELDS, 'updated_at')
        return [Product.from_record(d) for d in docs[:self.list_limit]]

    def all_products(self) -> list[Product]:
        return [Product.from_record(d) for d in self.store.list(self.COLLECTION)]

    def get_product(self, product_id: str) -> Product:
        doc = self.store.get(self.COLLECTION, product_id)
        if not doc:
            raise RecordNotFound(f"Product '{product_id}' not found")
        return Product.from_record(doc)

    def find_product(self, product_id: str) -> Optional[Product]:
        doc = self.store.get(self.COLLECTION, product_id)
        return Product.from_record(doc) if doc else None

    def create_product(self, data: dict) -> Product:
        """Create a product from a raw payload."""
        fields = self._normalize(data, partial=False)
        result = self.validate_product(fields)
        if not result.valid:
            raise ValidationFailed(result.errors)

        now = now_iso()
        product = Product(**{k: v for k, v in fields.items() if k in Product.__dataclass_fields__})
        product.created_at = now
        product.updated_at = now
        product.id = self.store.insert(self.COLLECTION, product.to_record())["id"]
        logger.info("Created product %s (%s)", product.id, product.name)
        return product

    def update_product(self, product_id: str, updates: dict) -> Product:
        """Apply a partial update; only keys present in updates change."""
        current = self.get_product(product_id)
        fields = self._normalize(updates, partial=True)

        merged = current.to_record()
        merged.update(fields)
        result = self.validate_product(merged)
        if not result.valid:
            raise ValidationFailed(result.errors)

        fields['updated_at'] = now_iso()
        doc = self.store.update(self.COLLECTION, product_id, fields)
        return Product.from_record(doc)

    def delete_product(self, product_id: str) -> bool:
        if not self.store.delete(self.COLLECTION, product_id):
            raise RecordNotFound(f"Product '{product_id}' not found")
        logger.info("Deleted product %s", product_id)
        return True

    def validate_product(self, fields: dict) -> ValidationResult:
        """Validate a normalized product payload."""
        result = ValidationResult(valid=True)

        if not fields.get('name'):
            result.add_error("Name is required")

        if fields.get('type', 'product') not in PRODUCT_TYPES:
            result.add_error(f"Type must be one of: {', '.join(PRODUCT_TYPES)}")

        for key in ('base_price', 'cost', 'tax_rate'):
            value = fields.get(key)
            if value is not None and value < 0:
                result.add_error(f"{key} must not be negative")

        cost = fields.get('cost')
        if cost and cost > (fields.get('base_price') or 0):
            result.warnings.append("Cost exceeds base price (negative margin)")

        return result

    def _normalize(self, raw: dict, partial: bool) -> dict:
        """Coerce a raw payload into stored field values."""
        out = {}

        def present(key):
            return key in raw if partial else True

        if present('name'):
            out['name'] = (clean_str(raw.get('name')) or '')
        if present('sku'):
            out['sku'] = clean_str(raw.get('sku'))
        if present('description'):
            out['description'] = clean_str(raw.get('description'))
        if present('type'):
            out['type'] = raw.get('type') or 'product'
        if present('base_price'):
            out['base_price'] = float(raw.get('base_price') or 0)
        if present('currency'):
            out['currency'] = (clean_str(raw.get('currency')) or self.default_currency).upper()
        if present('cost'):
            out['cost'] = float(raw['cost']) if raw.get('cost') is not None else None
        if present('tax_rate'):
            out['tax_rate'] = float(raw['tax_rate']) if raw.get('tax_rate') is not None else None
        if present('is_active'):
            out['is_active'] = bool(raw['is_active']) if raw.get('is_active') is not None else True
        if present('category'):
            out['category'] = clean_str(raw.get('category'))
        if present('tags'):
            out['tags'] = clean_tags(raw.get('tags'))
        if present('metadata'):
            metadata = raw.get('metadata')
            out['metadata'] = metadata if isinstance(metadata, dict) else {}

        return out
