"""
Eligibility filter: which promotions may apply to a cart right now.

A promotion is a candidate when it is active, inside its validity window
and weekday mask, its scope matches at least one line, its minimum
subtotal/quantity hold on the matched lines, its BOGO threshold (if any)
is met, and its code gate (if any) is satisfied by a usable code.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from promoquote.promotions.ledger import InMemoryRedemptionLedger, RedemptionLedger
from promoquote.promotions.money import CartSnapshot, ZERO
from promoquote.promotions.rules import (
    COMPATIBLE_SCOPES, ApplyScope, CodeRule, PromotionRule, PromotionType, normalize_promo_code
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """An eligible promotion with the cart lines it matched and the code that unlocked it."""
    promotion: PromotionRule
    line_indices: Tuple[int, ...]
    code_id: Optional[int] = None


def as_naive(moment: Optional[datetime]) -> Optional[datetime]:
    """Drop tzinfo after converting to local time so naive and aware datetimes compare."""
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


def in_window(starts_at: Optional[datetime], ends_at: Optional[datetime], now: datetime) -> bool:
    """Inclusive on both ends; a missing bound is unbounded."""
    starts_at, ends_at = as_naive(starts_at), as_naive(ends_at)
    if starts_at is not None and now < starts_at:
        return False
    if ends_at is not None and now > ends_at:
        return False
    return True


def weekday_bit(moment: datetime) -> int:
    """Bit index in the days_of_week mask: Sunday = 0 ... Saturday = 6."""
    return (moment.weekday() + 1) % 7


def allowed_today(days_of_week: Optional[int], now: datetime) -> bool:
    if not days_of_week:
        return True
    return bool(days_of_week & (1 << weekday_bit(now)))


def match_lines(promotion: PromotionRule, cart: CartSnapshot) -> Tuple[int, ...]:
    """Indices of the cart lines the promotion's scope covers."""
    if promotion.apply_scope == ApplyScope.ORDER:
        return tuple(range(len(cart.lines)))
    if promotion.apply_scope == ApplyScope.CATEGORY:
        return tuple(
            i for i, line in enumerate(cart.lines)
            if line.category_id is not None and line.category_id in promotion.category_ids
        )
    if promotion.apply_scope == ApplyScope.PRODUCT:
        return tuple(i for i, line in enumerate(cart.lines) if line.product_id in promotion.product_ids)
    return ()


def whole_units(cart: CartSnapshot, indices: Iterable[int]) -> int:
    return sum(int(cart.lines[i].quantity) for i in indices)


def find_usable_code(promotion: PromotionRule, code: Optional[str], client_id: Optional[int],
                     now: datetime, ledger: RedemptionLedger) -> Optional[CodeRule]:
    """The promotion's code matching the request, if active, in its window and not exhausted."""
    if code is None:
        return None
    for code_rule in promotion.codes:
        if normalize_promo_code(code_rule.code) != code:
            continue
        if not code_rule.is_active or not in_window(code_rule.starts_at, code_rule.ends_at, now):
            continue
        if ledger.is_exhausted(code_rule, client_id):
            logger.info(f"[PROMO] Code {code_rule.code} exhausted for client {client_id}")
            continue
        return code_rule
    return None


def _rejection(promotion: PromotionRule, cart: CartSnapshot, indices: Tuple[int, ...]) -> Optional[str]:
    """Reason the promotion cannot apply to the matched lines, or None."""
    if promotion.apply_scope not in COMPATIBLE_SCOPES.get(promotion.type, ()):
        return f'type {promotion.type.value} incompatible with scope {promotion.apply_scope.value}'
    if not promotion.actions:
        return 'no action'
    if not indices:
        return 'no matching line'

    matched_subtotal = sum((cart.lines[i].line_total_ht for i in indices), ZERO)
    matched_quantity = sum((cart.lines[i].quantity for i in indices), Decimal('0'))

    if promotion.min_subtotal is not None and matched_subtotal < promotion.min_subtotal:
        return f'subtotal {matched_subtotal} below {promotion.min_subtotal}'
    if promotion.min_quantity is not None and matched_quantity < promotion.min_quantity:
        return f'quantity {matched_quantity} below {promotion.min_quantity}'

    if promotion.type == PromotionType.BOGO:
        bogo_action = next((a for a in promotion.actions if a.kind.is_bogo), None)
        group_size = bogo_action.bogo_group_size if bogo_action else None
        if group_size is None:
            return 'bogo pattern not specified'
        if whole_units(cart, indices) < group_size:
            return f'bogo needs {group_size} units'
    return None


def candidates(promotions: Iterable[PromotionRule], cart: CartSnapshot, code: Optional[str] = None,
               now: Optional[datetime] = None, ledger: Optional[RedemptionLedger] = None) -> List[Candidate]:
    """
    Filter the catalog down to promotions that may apply to this cart.

    A code that matches nothing is not an error: code-gated promotions
    simply drop out and code-free promotions still qualify.
    """
    now = as_naive(now) or datetime.now()
    ledger = ledger or InMemoryRedemptionLedger()
    code = normalize_promo_code(code)

    eligible = []
    for promotion in promotions:
        if not promotion.is_active:
            continue
        if not in_window(promotion.starts_at, promotion.ends_at, now):
            continue
        if not allowed_today(promotion.days_of_week, now):
            continue

        try:
            indices = match_lines(promotion, cart)
            reason = _rejection(promotion, cart, indices)
        except (ArithmeticError, ValueError, TypeError) as e:
            logger.warning(f"[PROMO] Promotion {promotion.id} skipped, eligibility check failed: {e}")
            continue

        if reason:
            logger.debug(f"[PROMO] Promotion {promotion.id} not eligible: {reason}")
            continue

        code_id = None
        if promotion.is_code_gated:
            code_rule = find_usable_code(promotion, code, cart.client_id, now, ledger)
            if code_rule is None:
                logger.debug(f"[PROMO] Promotion {promotion.id} requires a valid code")
                continue
            code_id = code_rule.id

        eligible.append(Candidate(promotion=promotion, line_indices=indices, code_id=code_id))

    return eligible
