"""Engine subpackage - discount matching and quote pricing."""
from .pricing_engine import QuoteEngine
from .discount_matcher import DiscountMatcher
from .models import Discount, DiscountTier, QuoteRequest, QuoteLine, QuoteResult, parse_date

__all__ = [
    'QuoteEngine', 'DiscountMatcher', 'Discount', 'DiscountTier',
    'QuoteRequest', 'QuoteLine', 'QuoteResult', 'parse_date',
]
