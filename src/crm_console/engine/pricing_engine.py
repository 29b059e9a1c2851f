"""
Quote Engine - Prices products and bundles with discounts and tax, with traceability.

- Structured QuoteResult/QuoteLine dataclass output
- Execution trace for every resolution step
- Warning collection for skipped items and rejected codes
"""
import logging
from datetime import date
from typing import Optional

from .discount_matcher import DiscountMatcher
from .models import QuoteRequest, QuoteLine, QuoteResult, parse_date

logger = logging.getLogger(__name__)

LINE_SCOPES = ('product', 'bundle', 'account')
ORDER_SCOPES = ('global',)


class QuoteEngine:
    """
    Core quote engine.

    Resolution order:
    1. Price each product at base_price and each bundle at bundle_price
    2. Apply the single best product/bundle/account discount to each line
    3. Tax each line at its product's tax rate on the discounted amount
    4. Apply the single best global discount to the net subtotal
       (restricted to discount_code when one is given)
    """

    def __init__(self, catalog, bundles, discounts, currency: str = 'USD'):
        """
        Args:
            catalog: object with find_product(id)
            bundles: object with find_bundle(id)
            discounts: object with all_discounts()
        """
        self.catalog = catalog
        self.bundles = bundles
        self.discounts = discounts
        self.currency = currency

    def calculate(self, request: QuoteRequest) -> QuoteResult:
        """
        Calculate a quote with full traceability.

        Args:
            request: QuoteRequest with account, items, bundles and optional code

        Returns:
            QuoteResult with lines, totals, trace, and warnings

        Raises:
            ValueError: request_date is not a YYYY-MM-DD date
        """
        pricing_date = parse_date(request.request_date) if request.request_date else date.today()
        today = pricing_date.isoformat()
        matcher = DiscountMatcher(self.discounts.all_discounts())

        result = QuoteResult(account_id=request.account_id, currency=self.currency)
        result.add_trace("Context", "Pricing date", today)
        if request.account_id:
            result.add_trace("Context", "Account", request.account_id)

        for product_id, qty in request.items.items():
            line = self._price_product(product_id, qty, request.account_id, today, matcher)
            self._add_line(result, line, product_id, "Product")

        for bundle_id, qty in request.bundles.items():
            line = self._price_bundle(bundle_id, qty, request.account_id, today, matcher)
            self._add_line(result, line, bundle_id, "Bundle")

        result.subtotal = round(result.subtotal, 2)
        result.line_discount_total = round(result.line_discount_total, 2)
        result.tax_total = round(result.tax_total, 2)
        net_subtotal = round(result.subtotal - result.line_discount_total, 2)
        result.add_trace("Subtotal", "Net of line discounts", f"${net_subtotal:.2f}")

        self._apply_order_discount(result, request, net_subtotal, today, matcher)

        result.total = round(net_subtotal - result.order_discount + result.tax_total, 2)
        result.add_trace("Total", "Net subtotal − order discount + tax", f"${result.total:.2f}")
        return result

    def _add_line(self, result: QuoteResult, line: Optional[QuoteLine], item_id: str, label: str):
        if line is None:
            result.add_warning(f"{label} '{item_id}' not found or inactive, skipped")
            return
        result.lines.append(line)
        result.subtotal += line.extended_price
        result.line_discount_total += line.discount_amount
        result.tax_total += line.tax_amount
        for warning in line.warnings:
            result.add_warning(warning)

    def _price_product(self, product_id: str, qty: int, account_id, today: str, matcher: DiscountMatcher) -> Optional[QuoteLine]:
        product = self.catalog.find_product(product_id)
        if product is None or not product.is_active:
            return None

        line = QuoteLine(
            item_id=product.id,
            kind='product',
            name=product.name,
            sku=product.sku,
            quantity=qty,
            unit_price=product.base_price,
            extended_price=product.base_price * qty,
            tax_rate=product.tax_rate or 0.0,
        )
        line.add_trace("Price Resolution", "Using catalog base price", f"${line.unit_price:.2f}")
        if product.currency != self.currency:
            line.add_warning(f"Product '{product.name}' is priced in {product.currency}, quote is in {self.currency}")

        self._apply_line_discount(line, matcher, account_id, today, product_id=product.id)
        self._apply_tax(line)
        return line

    def _price_bundle(self, bundle_id: str, qty: int, account_id, today: str, matcher: DiscountMatcher) -> Optional[QuoteLine]:
        bundle = self.bundles.find_bundle(bundle_id)
        if bundle is None or not bundle.is_active:
            return None

        line = QuoteLine(
            item_id=bundle.id,
            kind='bundle',
            name=bundle.name,
            sku=bundle.sku,
            quantity=qty,
            unit_price=bundle.bundle_price,
            extended_price=bundle.bundle_price * qty,
        )
        line.add_trace("Price Resolution", "Using bundle price", f"${line.unit_price:.2f}")

        self._apply_line_discount(line, matcher, account_id, today, bundle_id=bundle.id)
        self._apply_tax(line)
        return line

    def _apply_line_discount(self, line: QuoteLine, matcher: DiscountMatcher, account_id, today: str, **target):
        best = matcher.best(
            amount=line.extended_price,
            quantity=line.quantity,
            account_id=account_id,
            request_date=today,
            scopes=LINE_SCOPES,
            **target,
        )
        if best is None:
            line.net_price = line.extended_price
            return

        line.discount_amount = best.amount
        line.net_price = round(line.extended_price - best.amount, 2)
        line.discounts_applied.append(best.discount_id)
        line.add_trace(
            "Discount Applied",
            f"{best.discount.name} ({best.match_reason})",
            f"-${best.amount:.2f}",
        )

    def _apply_tax(self, line: QuoteLine):
        line.extended_price = round(line.extended_price, 2)
        if line.tax_rate:
            line.tax_amount = round(line.net_price * line.tax_rate / 100.0, 2)
            line.add_trace("Tax", f"{line.tax_rate:g}% of ${line.net_price:.2f}", f"${line.tax_amount:.2f}")

    def _apply_order_discount(self, result: QuoteResult, request: QuoteRequest, net_subtotal: float, today: str, matcher: DiscountMatcher):
        quantity = sum(line.quantity for line in result.lines)
        best = matcher.best(
            amount=net_subtotal,
            quantity=quantity,
            account_id=request.account_id,
            request_date=today,
            scopes=ORDER_SCOPES,
            code=request.discount_code,
        )

        if best is None:
            if request.discount_code:
                result.add_warning(f"Discount code '{request.discount_code}' is not applicable")
                logger.info("Rejected discount code %s", request.discount_code)
            return

        result.order_discount = best.amount
        result.order_discount_id = best.discount_id
        result.add_trace(
            "Order Discount",
            f"{best.discount.name} ({best.match_reason})",
            f"-${best.amount:.2f}",
        )
