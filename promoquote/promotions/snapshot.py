"""Result types of an evaluation and the snapshot builder."""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from promoquote.promotions.money import CartSnapshot, ZERO, round_money


@dataclass(frozen=True)
class LineAllocation:
    index: int
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {'index': self.index, 'amount': float(self.amount)}


@dataclass(frozen=True)
class PromotionHint:
    """Nominal rate or amount of a promotion's first action, for display only."""
    type: str
    value: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'value': float(self.value)}


@dataclass(frozen=True)
class AppliedPromotion:
    promotion_id: int
    name: str
    amount: Decimal
    lines_breakdown: Tuple[LineAllocation, ...] = field(default_factory=tuple)
    promotion_code_id: Optional[int] = None
    hint: Optional[PromotionHint] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'promotion_id': self.promotion_id,
            'promotion_code_id': self.promotion_code_id,
            'name': self.name,
            'amount': float(self.amount),
            'lines_breakdown': [a.to_dict() for a in self.lines_breakdown],
            'hint': self.hint.to_dict() if self.hint else None,
        }


@dataclass(frozen=True)
class DiscountResult:
    subtotal: Decimal = ZERO
    tax_total: Decimal = ZERO
    grand_total: Decimal = ZERO
    discount_total: Decimal = ZERO
    grand_total_after: Decimal = ZERO
    applied_promotions: Tuple[AppliedPromotion, ...] = field(default_factory=tuple)
    lines_total_discounts: Tuple[Decimal, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> 'DiscountResult':
        """All-zero result returned when a transient preview degrades."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subtotal': float(self.subtotal),
            'tax_total': float(self.tax_total),
            'grand_total': float(self.grand_total),
            'discount_total': float(self.discount_total),
            'grand_total_after': float(self.grand_total_after),
            'applied_promotions': [p.to_dict() for p in self.applied_promotions],
            'lines_total_discounts': [float(v) for v in self.lines_total_discounts],
        }


def build(cart: CartSnapshot, applied: Sequence[AppliedPromotion]) -> DiscountResult:
    """Totals of the undiscounted cart plus the discount summary of the applied promotions."""
    per_line: List[Decimal] = [ZERO] * len(cart.lines)
    for promotion in applied:
        for allocation in promotion.lines_breakdown:
            per_line[allocation.index] += allocation.amount

    subtotal = round_money(cart.subtotal())
    tax_total = round_money(cart.tax_total())
    grand_total = round_money(cart.grand_total())
    discount_total = round_money(sum((p.amount for p in applied), ZERO))

    return DiscountResult(
        subtotal=subtotal,
        tax_total=tax_total,
        grand_total=grand_total,
        discount_total=discount_total,
        grand_total_after=max(ZERO, grand_total - discount_total),
        applied_promotions=tuple(applied),
        lines_total_discounts=tuple(round_money(v) for v in per_line),
    )
