"""
Discount Matcher - Decides which discounts apply and how much they take off.

Used by the quote engine to apply discounts on top of catalog pricing.
"""
from datetime import date
from typing import Iterable, Optional, Union

from .models import Discount, MatchedDiscount, parse_date


class DiscountMatcher:
    """
    Matches discounts against a pricing context and computes amounts.

    A discount applies when it is active, the date falls inside its window
    (inclusive), its usage limit is not reached, quantity and amount meet the
    minimums, and its scope targets the line (global always matches).
    """

    def __init__(self, discounts: Optional[Iterable[Discount]] = None):
        self.discounts = list(discounts or [])

    def find_applicable(
        self,
        amount: float,
        quantity: int = 1,
        account_id: Optional[str] = None,
        product_id: Optional[str] = None,
        bundle_id: Optional[str] = None,
        request_date: Union[str, date, None] = None,
        scopes: Optional[Iterable[str]] = None,
        code: Optional[str] = None,
    ) -> list[MatchedDiscount]:
        """
        Find all discounts that apply to the given context.

        Returns matches sorted by discount amount (largest first). Raises
        ValueError when request_date is not a YYYY-MM-DD date.
        """
        today = parse_date(request_date) if request_date else date.today()
        scopes = set(scopes) if scopes else None
        code = code.strip().upper() if code else None

        matched = []
        for discount in self.discounts:
            if scopes is not None and discount.scope not in scopes:
                continue
            if code is not None and discount.code != code:
                continue

            reasons = self.match_reasons(
                discount, amount=amount, quantity=quantity, account_id=account_id,
                product_id=product_id, bundle_id=bundle_id, today=today,
            )
            if reasons is None:
                continue

            matched.append(MatchedDiscount(
                discount=discount,
                amount=self.discount_amount(discount, amount),
                match_reason=", ".join(reasons) if reasons else "default",
            ))

        matched.sort(key=lambda m: m.amount, reverse=True)
        return matched

    def best(self, **context) -> Optional[MatchedDiscount]:
        matches = [m for m in self.find_applicable(**context) if m.amount > 0]
        return matches[0] if matches else None

    def match_reasons(
        self,
        discount: Discount,
        amount: float,
        quantity: int,
        account_id: Optional[str],
        product_id: Optional[str],
        bundle_id: Optional[str],
        today: date,
    ) -> Optional[list[str]]:
        """Reasons the discount matched, or None when it does not apply."""
        reasons = []

        if not discount.is_active:
            return None

        # Date window
        if discount.start_date:
            start = parse_date(discount.start_date)
            if today < start:
                return None
            reasons.append(f"after {start.isoformat()}")

        if discount.end_date:
            end = parse_date(discount.end_date)
            if today > end:
                return None
            reasons.append(f"before {end.isoformat()}")

        # Usage limit
        if discount.exhausted:
            return None

        # Thresholds
        if discount.min_quantity:
            if quantity < discount.min_quantity:
                return None
            reasons.append(f"qty>={discount.min_quantity}")

        if discount.min_amount:
            if amount < discount.min_amount:
                return None
            reasons.append(f"amount>={discount.min_amount:.2f}")

        # Scope target
        if discount.scope == 'product':
            if not product_id or product_id not in discount.product_ids:
                return None
            reasons.append(f"product={product_id}")
        elif discount.scope == 'bundle':
            if not bundle_id or bundle_id not in discount.bundle_ids:
                return None
            reasons.append(f"bundle={bundle_id}")
        elif discount.scope == 'account':
            if not account_id or account_id not in discount.account_ids:
                return None
            reasons.append(f"account={account_id}")

        return reasons

    @staticmethod
    def discount_amount(discount: Discount, amount: float) -> float:
        """
        Amount taken off by a discount.

        percentage: amount × value%, capped by max_discount
        fixed: value, never more than the amount
        tiered: value% of the highest tier reached, capped by max_discount;
            with no tiers defined it behaves like percentage
        """
        amount = max(0.0, float(amount or 0))

        if discount.type == 'fixed':
            off = float(discount.value)
        else:
            pct = float(discount.value)
            if discount.type == 'tiered' and discount.tiers:
                reached = [t for t in discount.tiers if amount >= t.min_amount]
                pct = max(reached, key=lambda t: t.min_amount).value if reached else 0.0
            off = amount * pct / 100.0
            if discount.max_discount is not None:
                off = min(off, discount.max_discount)

        return round(min(max(off, 0.0), amount), 2)
