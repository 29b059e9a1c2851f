"""
Discount Service - CRUD, validation and redemption for discounts.
"""
import logging
from datetime import date
from typing import Optional

from ..engine.models import Discount, DiscountTier, DISCOUNT_TYPES, DISCOUNT_SCOPES, parse_date
from ..storage.document_store import DocumentStore
from .base import (
    RecordNotFound, ValidationFailed, ValidationResult,
    clean_str, search, sort_docs, now_iso,
)

logger = logging.getLogger(__name__)


class DiscountService:
    """Service for managing discounts."""

    COLLECTION = 'discounts'
    SEARCH_FIELDS = ('name', 'code', 'description')
    SORT_FIELDS = {'name', 'code', 'value', 'start_date', 'end_date', 'created_at', 'updated_at'}

    def __init__(self, store: DocumentStore, list_limit: int = 500):
        self.store = store
        self.list_limit = list_limit

    def list_discounts(
        self,
        q: Optional[str] = None,
        type: Optional[str] = None,
        scope: Optional[str] = None,
        is_active: Optional[bool] = None,
        sort: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> list[Discount]:
        docs = search(self.store.list(self.COLLECTION), q, self.SEARCH_FIELDS)
        if type:
            docs = [d for d in docs if d.get('type') == type]
        if scope:
            docs = [d for d in docs if d.get('scope') == scope]
        if is_active is not None:
            docs = [d for d in docs if bool(d.get('is_active', True)) == is_active]
        docs = sort_docs(docs, sort, direction, self.SORT_FIELDS, 'updated_at')
        return [Discount.from_record(d) for d in docs[:self.list_limit]]

    def all_discounts(self) -> list[Discount]:
        return [Discount.from_record(d) for d in self.store.list(self.COLLECTION)]

    def get_discount(self, discount_id: str) -> Discount:
        doc = self.store.get(self.COLLECTION, discount_id)
        if not doc:
            raise RecordNotFound(f"Discount '{discount_id}' not found")
        return Discount.from_record(doc)

    def find_by_code(self, code: str) -> Optional[Discount]:
        code = (code or '').strip().upper()
        if not code:
            return None
        doc = self.store.find_one(self.COLLECTION, code=code)
        return Discount.from_record(doc) if doc else None

    def create_discount(self, data: dict) -> Discount:
        """Create a new discount. usage_count always starts at zero."""
        fields = self.normalize(data, partial=False)
        discount = Discount(**fields)

        result = self.validate_discount(discount)
        if not result.valid:
            raise ValidationFailed(result.errors)
        for warning in result.warnings:
            logger.warning("Discount '%s': %s", discount.name, warning)

        now = now_iso()
        discount.usage_count = 0
        discount.created_at = now
        discount.updated_at = now
        discount.id = self.store.insert(self.COLLECTION, discount.to_record())["id"]
        logger.info("Created discount %s (%s)", discount.id, discount.code or discount.name)
        return discount

    def update_discount(self, discount_id: str, updates: dict) -> Discount:
        """Update an existing discount."""
        discount = self.get_discount(discount_id)
        fields = self.normalize(updates, partial=True)

        for key, value in fields.items():
            setattr(discount, key, value)

        result = self.validate_discount(discount)
        if not result.valid:
            raise ValidationFailed(result.errors)

        discount.updated_at = now_iso()
        self.store.replace(self.COLLECTION, discount.to_record())
        return discount

    def delete_discount(self, discount_id: str) -> bool:
        if not self.store.delete(self.COLLECTION, discount_id):
            raise RecordNotFound(f"Discount '{discount_id}' not found")
        logger.info("Deleted discount %s", discount_id)
        return True

    def redeem(self, discount_id: str) -> Discount:
        """Record one use of a discount."""
        discount = self.get_discount(discount_id)
        if not discount.is_active:
            raise ValidationFailed([f"Discount '{discount.name}' is inactive"])
        if discount.exhausted:
            raise ValidationFailed([f"Discount '{discount.name}' has reached its usage limit"])

        discount.usage_count += 1
        discount.updated_at = now_iso()
        self.store.update(self.COLLECTION, discount_id, {
            'usage_count': discount.usage_count,
            'updated_at': discount.updated_at,
        })
        logger.info("Redeemed discount %s (%d/%s)", discount_id, discount.usage_count, discount.usage_limit)
        return discount

    def validate_discount(self, discount: Discount) -> ValidationResult:
        """Validate a discount before saving."""
        result = ValidationResult(valid=True)

        if not discount.name:
            result.add_error("Name is required")

        if discount.type not in DISCOUNT_TYPES:
            result.add_error(f"Type must be one of: {', '.join(DISCOUNT_TYPES)}")

        if discount.scope not in DISCOUNT_SCOPES:
            result.add_error(f"Scope must be one of: {', '.join(DISCOUNT_SCOPES)}")

        if discount.value < 0:
            result.add_error("Value must not be negative")
        elif discount.type == 'percentage' and discount.value > 100:
            result.add_error("Percentage value must be between 0 and 100")

        if discount.type == 'tiered':
            if not discount.tiers and not discount.value:
                result.add_error("Tiered discounts need at least one tier")
            for tier in discount.tiers:
                if tier.min_amount < 0 or not 0 <= tier.value <= 100:
                    result.add_error(
                        f"Tier at {tier.min_amount:.2f} must have a non-negative threshold and a 0-100 value"
                    )

        for key in ('min_quantity', 'min_amount', 'max_discount', 'usage_limit'):
            value = getattr(discount, key)
            if value is not None and value < 0:
                result.add_error(f"{key} must not be negative")

        # Validate dates
        dates = {}
        for key in ('start_date', 'end_date'):
            value = getattr(discount, key)
            if value:
                try:
                    dates[key] = parse_date(value)
                except ValueError:
                    result.add_error(f"{key} must be YYYY-MM-DD format")

        if 'start_date' in dates and 'end_date' in dates:
            if dates['start_date'] > dates['end_date']:
                result.add_error("Start date must be before end date")

        # Scope targets
        targets = {
            'product': discount.product_ids,
            'bundle': discount.bundle_ids,
            'account': discount.account_ids,
        }
        if discount.scope in targets and not targets[discount.scope]:
            result.add_error(f"Scope '{discount.scope}' needs at least one {discount.scope} id")

        # Warnings
        if 'end_date' in dates and dates['end_date'] < date.today():
            result.warnings.append("Discount has expired (end date is in the past)")

        if discount.exhausted:
            result.warnings.append("Usage limit has already been reached")

        for product_id in discount.product_ids:
            if not self.store.get('products', product_id):
                result.warnings.append(f"Product '{product_id}' not found in catalog")
        for bundle_id in discount.bundle_ids:
            if not self.store.get('bundles', bundle_id):
                result.warnings.append(f"Bundle '{bundle_id}' not found")

        if discount.code:
            for other in self.store.list(self.COLLECTION):
                if other.get('code') == discount.code and other.get('id') != discount.id:
                    result.warnings.append(f"Code '{discount.code}' is also used by '{other.get('name')}'")

        return result

    def normalize(self, raw: dict, partial: bool) -> dict:
        """Coerce a raw payload into Discount field values."""
        out = {}

        def present(key):
            return key in raw if partial else True

        def opt_num(key, cast):
            return cast(raw[key]) if raw.get(key) is not None else None

        if present('name'):
            out['name'] = clean_str(raw.get('name')) or ''
        if present('code'):
            code = clean_str(raw.get('code'))
            out['code'] = code.upper() if code else None
        if present('description'):
            out['description'] = clean_str(raw.get('description'))
        if present('type'):
            out['type'] = raw.get('type') or 'percentage'
        if present('value'):
            out['value'] = float(raw.get('value') or 0)
        if present('scope'):
            out['scope'] = raw.get('scope') or 'global'
        for key in ('product_ids', 'bundle_ids', 'account_ids'):
            if present(key):
                ids = raw.get(key)
                out[key] = [str(i).strip() for i in ids if str(i).strip()] if isinstance(ids, list) else []
        if present('min_quantity'):
            out['min_quantity'] = opt_num('min_quantity', int)
        for key in ('min_amount', 'max_discount'):
            if present(key):
                out[key] = opt_num(key, float)
        for key in ('start_date', 'end_date'):
            if present(key):
                value = clean_str(raw.get(key))
                out[key] = value[:10] if value else None
        if present('is_active'):
            out['is_active'] = bool(raw['is_active']) if raw.get('is_active') is not None else True
        if present('usage_limit'):
            out['usage_limit'] = opt_num('usage_limit', int)
        if present('tiers'):
            tiers = raw.get('tiers') or []
            out['tiers'] = sorted(
                (DiscountTier(min_amount=float(t.get('min_amount') or 0), value=float(t.get('value') or 0))
                 for t in tiers),
                key=lambda t: t.min_amount,
            )

        return out
