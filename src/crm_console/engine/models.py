"""
Data models for discounts and quote pricing.

Uses dataclasses for structured, type-safe data representation.
"""
import re
from dataclasses import dataclass, asdict, field
from datetime import date
from typing import Optional, Union

DISCOUNT_TYPES = ('percentage', 'fixed', 'tiered')
DISCOUNT_SCOPES = ('global', 'product', 'bundle', 'account')

ISO_DATE = re.compile(r'\d{4}-\d{2}-\d{2}')


def parse_date(value: Union[str, date]) -> date:
    """
    Parse a YYYY-MM-DD date; a trailing time part is ignored.

    Raises ValueError for anything else, including compact forms like 20260101.
    """
    if isinstance(value, date):
        return value
    text = str(value).strip()[:10]
    if not ISO_DATE.fullmatch(text):
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")
    return date.fromisoformat(text)


@dataclass
class TraceStep:
    """A single step in the pricing resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class DiscountTier:
    """Threshold for tiered discounts: orders at or above min_amount get value %."""
    min_amount: float
    value: float


@dataclass
class Discount:
    """A percentage, fixed or tiered discount rule."""
    name: str
    id: str = ''
    code: Optional[str] = None
    description: Optional[str] = None
    type: str = 'percentage'
    value: float = 0.0
    scope: str = 'global'
    product_ids: list[str] = field(default_factory=list)
    bundle_ids: list[str] = field(default_factory=list)
    account_ids: list[str] = field(default_factory=list)
    min_quantity: Optional[int] = None
    min_amount: Optional[float] = None
    max_discount: Optional[float] = None
    start_date: Optional[str] = None  # ISO date
    end_date: Optional[str] = None  # ISO date
    is_active: bool = True
    usage_limit: Optional[int] = None
    usage_count: int = 0
    tiers: list[DiscountTier] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        return self.usage_limit is not None and self.usage_count >= self.usage_limit

    def to_record(self) -> dict:
        return asdict(self)

    @classmethod
    def from_record(cls, doc: dict) -> 'Discount':
        def opt_int(key):
            return int(doc[key]) if doc.get(key) is not None else None

        def opt_float(key):
            return float(doc[key]) if doc.get(key) is not None else None

        return cls(
            id=doc.get('id', ''),
            name=doc.get('name', ''),
            code=doc.get('code'),
            description=doc.get('description'),
            type=doc.get('type') or 'percentage',
            value=float(doc.get('value') or 0),
            scope=doc.get('scope') or 'global',
            product_ids=[str(i) for i in doc.get('product_ids') or []],
            bundle_ids=[str(i) for i in doc.get('bundle_ids') or []],
            account_ids=[str(i) for i in doc.get('account_ids') or []],
            min_quantity=opt_int('min_quantity'),
            min_amount=opt_float('min_amount'),
            max_discount=opt_float('max_discount'),
            start_date=doc.get('start_date'),
            end_date=doc.get('end_date'),
            is_active=bool(doc.get('is_active', True)),
            usage_limit=opt_int('usage_limit'),
            usage_count=int(doc.get('usage_count') or 0),
            tiers=[
                DiscountTier(min_amount=float(t.get('min_amount') or 0), value=float(t.get('value') or 0))
                for t in doc.get('tiers') or []
            ],
            created_at=doc.get('created_at'),
            updated_at=doc.get('updated_at'),
        )


@dataclass
class MatchedDiscount:
    """A discount that matched with context."""
    discount: Discount
    amount: float
    match_reason: str

    @property
    def discount_id(self) -> str:
        return self.discount.id


@dataclass
class QuoteRequest:
    """A pricing request: account context plus products and bundles."""
    items: dict[str, int] = field(default_factory=dict)  # product id → quantity
    bundles: dict[str, int] = field(default_factory=dict)  # bundle id → quantity
    account_id: Optional[str] = None
    discount_code: Optional[str] = None
    request_date: Optional[str] = None  # ISO date string


@dataclass
class QuoteLine:
    """A single line in a quote result."""
    item_id: str
    kind: str  # "product" or "bundle"
    name: str
    quantity: int
    unit_price: float
    extended_price: float
    discount_amount: float = 0.0
    net_price: float = 0.0
    tax_rate: float = 0.0
    tax_amount: float = 0.0
    sku: Optional[str] = None
    discounts_applied: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the trace for this line."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        self.warnings.append(warning)


@dataclass
class QuoteResult:
    """Complete result of a quote calculation."""
    account_id: Optional[str]
    currency: str
    lines: list[QuoteLine] = field(default_factory=list)
    subtotal: float = 0.0
    line_discount_total: float = 0.0
    order_discount: float = 0.0
    order_discount_id: Optional[str] = None
    tax_total: float = 0.0
    total: float = 0.0
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    @property
    def discount_total(self) -> float:
        return self.line_discount_total + self.order_discount

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the result-level trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        """Add a result-level warning."""
        if warning not in self.warnings:
            self.warnings.append(warning)

    def get_trace_text(self) -> str:
        """Get human-readable result trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)
