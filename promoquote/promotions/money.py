"""Cart value objects and money rounding for the promotion engine."""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

CENT = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100')


def to_decimal(value) -> Decimal:
    """Coerce ints, floats and strings to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return Decimal('0')
    return Decimal(str(value))


def round_money(value) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartLine:
    """
    One cart/quote line as seen by the engine.

    category_id is resolved by the caller from the product catalog and is
    only used to match category-scoped promotions.
    """
    product_id: int
    quantity: Decimal
    unit_price_ht: Decimal
    tax_rate: Decimal = ZERO
    category_id: Optional[int] = None

    @property
    def line_total_ht(self) -> Decimal:
        return self.quantity * self.unit_price_ht

    @property
    def line_tax(self) -> Decimal:
        return self.line_total_ht * self.tax_rate / HUNDRED

    @property
    def line_total_ttc(self) -> Decimal:
        return self.line_total_ht + self.line_tax


@dataclass(frozen=True)
class CartSnapshot:
    """Ordered cart lines plus the request context; line index is the allocation key."""
    lines: Tuple[CartLine, ...] = field(default_factory=tuple)
    client_id: Optional[int] = None
    currency_code: str = 'EUR'
    promo_code: Optional[str] = None

    def subtotal(self) -> Decimal:
        return sum((l.line_total_ht for l in self.lines), ZERO)

    def tax_total(self) -> Decimal:
        return sum((l.line_tax for l in self.lines), ZERO)

    def grand_total(self) -> Decimal:
        return self.subtotal() + self.tax_total()

    def quantity(self) -> Decimal:
        return sum((l.quantity for l in self.lines), Decimal('0'))
