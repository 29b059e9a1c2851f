"""
Bundle Service - CRUD operations for product bundles and their price breakdown.
"""
import logging
from dataclasses import dataclass, asdict, field
from typing import Optional

from ..storage.document_store import DocumentStore
from ..reports.profitability import margin, margin_percent
from .base import (
    RecordNotFound, ValidationFailed, ValidationResult,
    clean_str, clean_tags, search, sort_docs, now_iso,
)
from .catalog_service import CatalogService

logger = logging.getLogger(__name__)


@dataclass
class BundleItem:
    """A product reference inside a bundle."""
    product_id: str
    quantity: int = 1
    price_override: Optional[float] = None

    @classmethod
    def from_record(cls, doc: dict) -> 'BundleItem':
        return cls(
            product_id=str(doc.get('product_id', '')),
            quantity=int(doc['quantity']) if doc.get('quantity') is not None else 1,
            price_override=float(doc['price_override']) if doc.get('price_override') is not None else None,
        )


@dataclass
class Bundle:
    """A named set of products sold as one line item."""
    name: str
    id: str = ''
    sku: Optional[str] = None
    description: Optional[str] = None
    items: list[BundleItem] = field(default_factory=list)
    bundle_price: float = 0.0
    currency: str = 'USD'
    is_active: bool = True
    category: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_record(self) -> dict:
        return asdict(self)

    @classmethod
    def from_record(cls, doc: dict) -> 'Bundle':
        return cls(
            id=doc.get('id', ''),
            name=doc.get('name', ''),
            sku=doc.get('sku'),
            description=doc.get('description'),
            items=[BundleItem.from_record(i) for i in doc.get('items') or []],
            bundle_price=float(doc.get('bundle_price') or 0),
            currency=doc.get('currency') or 'USD',
            is_active=bool(doc.get('is_active', True)),
            category=doc.get('category'),
            tags=list(doc.get('tags') or []),
            created_at=doc.get('created_at'),
            updated_at=doc.get('updated_at'),
        )


@dataclass
class BundleBreakdown:
    """Component value, savings and margin for a bundle."""
    bundle_id: str
    list_value: float
    component_cost: float
    bundle_price: float
    savings: float
    savings_percent: float
    margin: float
    margin_percent: float
    warnings: list[str] = field(default_factory=list)


class BundleService:
    """Service for managing bundles."""

    COLLECTION = 'bundles'
    SEARCH_FIELDS = ('name', 'sku', 'description')
    SORT_FIELDS = {'name', 'sku', 'bundle_price', 'created_at', 'updated_at'}

    def __init__(self, store: DocumentStore, catalog: CatalogService, list_limit: int = 500, default_currency: str = 'USD'):
        self.store = store
        self.catalog = catalog
        self.list_limit = list_limit
        self.default_currency = default_currency

    def list_bundles(
        self,
        q: Optional[str] = None,
        is_active: Optional[bool] = None,
        sort: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> list[Bundle]:
        docs = search(self.store.list(self.COLLECTION), q, self.SEARCH_FIELDS)
        if is_active is not None:
            docs = [d for d in docs if bool(d.get('is_active', True)) == is_active]
        docs = sort_docs(docs, sort, direction, self.SORT_FIELDS, 'updated_at')
        return [Bundle.from_record(d) for d in docs[:self.list_limit]]

    def get_bundle(self, bundle_id: str) -> Bundle:
        doc = self.store.get(self.COLLECTION, bundle_id)
        if not doc:
            raise RecordNotFound(f"Bundle '{bundle_id}' not found")
        return Bundle.from_record(doc)

    def find_bundle(self, bundle_id: str) -> Optional[Bundle]:
        doc = self.store.get(self.COLLECTION, bundle_id)
        return Bundle.from_record(doc) if doc else None

    def create_bundle(self, data: dict) -> Bundle:
        fields = self._normalize(data, partial=False)
        result = self.validate_bundle(fields)
        if not result.valid:
            raise ValidationFailed(result.errors)

        now = now_iso()
        bundle = Bundle(**fields)
        bundle.created_at = now
        bundle.updated_at = now
        bundle.id = self.store.insert(self.COLLECTION, bundle.to_record())["id"]
        logger.info("Created bundle %s (%s) with %d items", bundle.id, bundle.name, len(bundle.items))
        return bundle

    def update_bundle(self, bundle_id: str, updates: dict) -> Bundle:
        current = self.get_bundle(bundle_id)
        fields = self._normalize(updates, partial=True)

        merged = {
            'name': current.name,
            'items': current.items,
            'bundle_price': current.bundle_price,
        }
        merged.update(fields)
        result = self.validate_bundle(merged)
        if not result.valid:
            raise ValidationFailed(result.errors)

        record = {k: v for k, v in fields.items()}
        if 'items' in record:
            record['items'] = [asdict(i) for i in record['items']]
        record['updated_at'] = now_iso()
        doc = self.store.update(self.COLLECTION, bundle_id, record)
        return Bundle.from_record(doc)

    def delete_bundle(self, bundle_id: str) -> bool:
        if not self.store.delete(self.COLLECTION, bundle_id):
            raise RecordNotFound(f"Bundle '{bundle_id}' not found")
        logger.info("Deleted bundle %s", bundle_id)
        return True

    def validate_bundle(self, fields: dict) -> ValidationResult:
        result = ValidationResult(valid=True)

        if not fields.get('name'):
            result.add_error("Name is required")

        items = fields.get('items') or []
        if not items:
            result.add_error("At least one item is required")

        for item in items:
            if not item.product_id:
                result.add_error("Every item needs a product_id")
            if item.quantity < 1:
                result.add_error(f"Quantity for product '{item.product_id}' must be at least 1")
            if item.price_override is not None and item.price_override < 0:
                result.add_error(f"Price override for product '{item.product_id}' must not be negative")

        if (fields.get('bundle_price') or 0) < 0:
            result.add_error("Bundle price must not be negative")

        return result

    def breakdown(self, bundle: Bundle) -> BundleBreakdown:
        """
        Compare the bundle price against the value of its components.

        Component value uses each item's price override when set, otherwise
        the product's base price.
        """
        list_value = 0.0
        component_cost = 0.0
        warnings = []

        for item in bundle.items:
            product = self.catalog.find_product(item.product_id)
            if product is None:
                warnings.append(f"Product '{item.product_id}' not found")
                if item.price_override is not None:
                    list_value += item.price_override * item.quantity
                continue
            if not product.is_active:
                warnings.append(f"Product '{product.name}' is inactive")

            unit = item.price_override if item.price_override is not None else product.base_price
            list_value += unit * item.quantity
            component_cost += (product.cost or 0) * item.quantity

        savings = list_value - bundle.bundle_price
        return BundleBreakdown(
            bundle_id=bundle.id,
            list_value=list_value,
            component_cost=component_cost,
            bundle_price=bundle.bundle_price,
            savings=savings,
            savings_percent=(savings / list_value * 100) if list_value > 0 else 0.0,
            margin=margin(bundle.bundle_price, component_cost),
            margin_percent=margin_percent(bundle.bundle_price, component_cost),
            warnings=warnings,
        )

    def _normalize(self, raw: dict, partial: bool) -> dict:
        out = {}

        def present(key):
            return key in raw if partial else True

        if present('name'):
            out['name'] = clean_str(raw.get('name')) or ''
        if present('sku'):
            out['sku'] = clean_str(raw.get('sku'))
        if present('description'):
            out['description'] = clean_str(raw.get('description'))
        if present('items'):
            items = raw.get('items')
            out['items'] = [BundleItem.from_record(dict(i)) for i in items] if isinstance(items, list) else []
        if present('bundle_price'):
            out['bundle_price'] = float(raw.get('bundle_price') or 0)
        if present('currency'):
            out['currency'] = (clean_str(raw.get('currency')) or self.default_currency).upper()
        if present('is_active'):
            out['is_active'] = bool(raw['is_active']) if raw.get('is_active') is not None else True
        if present('category'):
            out['category'] = clean_str(raw.get('category'))
        if present('tags'):
            out['tags'] = clean_tags(raw.get('tags'))

        return out
