"""
Discount calculator.

Promotions are processed in resolver order and stack sequentially: each
one is computed against what is left of its matched lines after every
earlier promotion (and every earlier action of the same promotion), so
the total discount can never exceed the cart's HT amount.
"""
import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from promoquote.promotions.eligibility import Candidate
from promoquote.promotions.money import CartSnapshot, HUNDRED, ZERO, round_money
from promoquote.promotions.rules import ActionKind, ActionRule
from promoquote.promotions.snapshot import AppliedPromotion, LineAllocation, PromotionHint

logger = logging.getLogger(__name__)


def build_hint(action: Optional[ActionRule]) -> Optional[PromotionHint]:
    """Display hint from a promotion's first action, normalized to percent|fixed."""
    if action is None:
        return None
    if action.kind == ActionKind.FIXED:
        return PromotionHint('fixed', action.value or ZERO)
    if action.kind == ActionKind.BOGO_FREE:
        return PromotionHint('percent', HUNDRED)
    if action.kind == ActionKind.BOGO_PERCENT:
        value = action.bogo_discount_value if action.bogo_discount_value is not None else action.value
        return PromotionHint('percent', value or ZERO)
    return PromotionHint('percent', action.value or ZERO)


def bogo_amount(action: ActionRule, cart: CartSnapshot, indices: Sequence[int],
                remaining: Sequence[Decimal]) -> Decimal:
    """
    Discount for the designated units of a buy-N-get-M action.

    Each complete group of buy_qty + get_qty units designates get_qty
    units; the cheapest remaining units are designated first.
    """
    group_size = action.bogo_group_size
    if group_size is None:
        return ZERO

    if action.kind == ActionKind.BOGO_FREE:
        rate = HUNDRED
    else:
        rate = action.bogo_discount_value if action.bogo_discount_value is not None else action.value
        if rate is None or rate <= 0:
            return ZERO

    units = []  # (unit price still undiscounted, line index, whole units)
    for i in indices:
        line = cart.lines[i]
        count = int(line.quantity)
        if count <= 0 or remaining[i] <= 0:
            continue
        units.append((remaining[i] / line.quantity, i, count))

    total_units = sum(count for _, _, count in units)
    to_designate = (total_units // group_size) * action.get_qty
    if to_designate <= 0:
        return ZERO

    designated_value = ZERO
    for unit_price, _, count in sorted(units):
        take = min(count, to_designate)
        designated_value += unit_price * take
        to_designate -= take
        if to_designate == 0:
            break

    return round_money(designated_value * min(rate, HUNDRED) / HUNDRED)


def action_amount(action: ActionRule, cart: CartSnapshot, indices: Sequence[int],
                  remaining: Sequence[Decimal]) -> Decimal:
    """Clamped discount of one action against the remaining amount of its matched lines."""
    base = sum((remaining[i] for i in indices), ZERO)
    if base <= 0:
        return ZERO

    value = action.value if action.value is not None else ZERO
    if action.kind == ActionKind.PERCENT:
        raw = round_money(base * value / HUNDRED) if value > 0 else ZERO
    elif action.kind == ActionKind.FIXED:
        raw = round_money(min(value, base)) if value > 0 else ZERO
    else:
        raw = bogo_amount(action, cart, indices, remaining)

    if action.max_discount_amount is not None:
        raw = min(raw, round_money(action.max_discount_amount))
    return max(ZERO, min(raw, base))


def allocate(total: Decimal, indices: Sequence[int], remaining: Sequence[Decimal]) -> Dict[int, Decimal]:
    """
    Split total across the matched lines proportionally to their remaining amount.

    Shares are rounded to cents and the rounding remainder lands on the
    last matched line; if that would push a share outside
    [0, remaining], the excess walks back onto earlier lines. The shares
    always sum exactly to total, which must not exceed the remaining base.
    """
    lines = [i for i in indices if remaining[i] > 0]
    if total <= 0 or not lines:
        return {}

    base = sum((remaining[i] for i in lines), ZERO)
    shares = {i: min(round_money(total * remaining[i] / base), remaining[i]) for i in lines}

    diff = total - sum(shares.values(), ZERO)
    for i in reversed(lines):
        if diff == 0:
            break
        if diff > 0:
            step = min(diff, remaining[i] - shares[i])
        else:
            step = -min(-diff, shares[i])
        shares[i] += step
        diff -= step

    return shares


def _promotion_allocations(candidate: Candidate, cart: CartSnapshot,
                           remaining: Sequence[Decimal]) -> Dict[int, Decimal]:
    work = list(remaining)
    per_line = {i: ZERO for i in candidate.line_indices}
    cap = candidate.promotion.max_discount_amount
    budget = round_money(cap) if cap is not None else None

    for action in candidate.promotion.actions:
        amount = action_amount(action, cart, candidate.line_indices, work)
        if budget is not None:
            amount = min(amount, budget)
            budget -= amount
        for i, share in allocate(amount, candidate.line_indices, work).items():
            per_line[i] += share
            work[i] -= share

    return per_line


def apply(selected: Sequence[Candidate], cart: CartSnapshot) -> List[AppliedPromotion]:
    """Compute and allocate the discount of every selected promotion, in order."""
    remaining = [round_money(line.line_total_ht) for line in cart.lines]
    applied = []

    for candidate in selected:
        promotion = candidate.promotion
        try:
            per_line = _promotion_allocations(candidate, cart, remaining)
        except (ArithmeticError, ValueError, TypeError) as e:
            logger.warning(f"[PROMO] Promotion {promotion.id} contributes no discount, computation failed: {e}")
            per_line = {}

        breakdown = []
        for i in sorted(per_line):
            amount = per_line[i]
            if amount > 0:
                remaining[i] -= amount
                breakdown.append(LineAllocation(index=i, amount=amount))

        amount = sum((a.amount for a in breakdown), ZERO)
        logger.debug(f"[PROMO] Promotion {promotion.id} applied for {amount}")

        applied.append(AppliedPromotion(
            promotion_id=promotion.id,
            promotion_code_id=candidate.code_id,
            name=promotion.name,
            amount=amount,
            lines_breakdown=tuple(breakdown),
            hint=build_hint(promotion.first_action),
        ))

    return applied
