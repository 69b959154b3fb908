"""
Read-only view of the promotion catalog consumed by the engine.

These dataclasses are built once per evaluation from the persisted
promotions (see services.promotion_catalog_service) and never written
back. Keeping them free of ORM state makes the engine a pure function
of (rules, cart, code, now, ledger).
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import FrozenSet, Optional, Tuple


class PromotionType(enum.Enum):
    """What a promotion targets."""
    ORDER = "order"
    CATEGORY = "category"
    PRODUCT = "product"
    BOGO = "bogo"


class ApplyScope(enum.Enum):
    """Which cart lines a promotion's discount is computed against."""
    ORDER = "order"
    CATEGORY = "category"
    PRODUCT = "product"


class ActionKind(enum.Enum):
    """Kind of discount an action produces."""
    PERCENT = "percent"
    FIXED = "fixed"
    BOGO_FREE = "bogo_free"
    BOGO_PERCENT = "bogo_percent"

    @property
    def is_bogo(self) -> bool:
        return self in (ActionKind.BOGO_FREE, ActionKind.BOGO_PERCENT)


# type -> scopes it may be applied with; bogo works on any line set
COMPATIBLE_SCOPES = {
    PromotionType.ORDER: frozenset({ApplyScope.ORDER}),
    PromotionType.CATEGORY: frozenset({ApplyScope.CATEGORY}),
    PromotionType.PRODUCT: frozenset({ApplyScope.PRODUCT}),
    PromotionType.BOGO: frozenset({ApplyScope.ORDER, ApplyScope.CATEGORY, ApplyScope.PRODUCT}),
}


def normalize_promo_code(code: Optional[str]) -> Optional[str]:
    """Codes are stored and matched trimmed and upper-cased; blank means no code."""
    if code is None:
        return None
    normalized = code.strip().upper()
    return normalized or None


@dataclass(frozen=True)
class ActionRule:
    id: int
    kind: ActionKind
    value: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    buy_qty: Optional[int] = None
    get_qty: Optional[int] = None
    bogo_discount_value: Optional[Decimal] = None

    @property
    def bogo_group_size(self) -> Optional[int]:
        """Units per buy-N-get-M group, or None when the pattern is not fully specified."""
        if not self.kind.is_bogo:
            return None
        if not self.buy_qty or not self.get_qty or self.buy_qty < 1 or self.get_qty < 1:
            return None
        return self.buy_qty + self.get_qty


@dataclass(frozen=True)
class CodeRule:
    id: int
    code: str
    is_active: bool = True
    max_redemptions: Optional[int] = None
    max_per_user: Optional[int] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


@dataclass(frozen=True)
class PromotionRule:
    id: int
    name: str
    type: PromotionType = PromotionType.ORDER
    apply_scope: ApplyScope = ApplyScope.ORDER
    priority: int = 100
    is_exclusive: bool = False
    is_active: bool = True
    stop_further_processing: bool = False
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    days_of_week: int = 0
    min_subtotal: Optional[Decimal] = None
    min_quantity: Optional[int] = None
    actions: Tuple[ActionRule, ...] = field(default_factory=tuple)
    codes: Tuple[CodeRule, ...] = field(default_factory=tuple)
    category_ids: FrozenSet[int] = field(default_factory=frozenset)
    product_ids: FrozenSet[int] = field(default_factory=frozenset)
    description: Optional[str] = None

    @property
    def first_action(self) -> Optional[ActionRule]:
        return self.actions[0] if self.actions else None

    @property
    def is_code_gated(self) -> bool:
        return bool(self.codes)

    @property
    def max_discount_amount(self) -> Optional[Decimal]:
        """Smallest cap declared across the actions; bounds the promotion total."""
        caps = [a.max_discount_amount for a in self.actions if a.max_discount_amount is not None]
        return min(caps) if caps else None
