"""
Unit tests for the promotion engine (eligibility -> resolution -> calculation -> snapshot).
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from promoquote.promotions import (
    ActionKind, ActionRule, ApplyScope, CartLine, CartSnapshot, CodeRule,
    InMemoryRedemptionLedger, PromotionEngine, PromotionRule, PromotionType
)

# A Wednesday
NOW = datetime(2024, 6, 12, 10, 0)


def D(value):
    return Decimal(str(value))


def line(product_id, qty, price, tax='20', category_id=None):
    return CartLine(product_id=product_id, quantity=D(qty), unit_price_ht=D(price),
                    tax_rate=D(tax), category_id=category_id)


def percent(value, cap=None, action_id=1):
    return ActionRule(id=action_id, kind=ActionKind.PERCENT, value=D(value),
                      max_discount_amount=D(cap) if cap is not None else None)


def fixed(value, action_id=1):
    return ActionRule(id=action_id, kind=ActionKind.FIXED, value=D(value))


def promo(promotion_id, *actions, **fields):
    return PromotionRule(id=promotion_id, name=fields.pop('name', f'Promo {promotion_id}'),
                         actions=tuple(actions), **fields)


def evaluate(promotions, cart, code=None, ledger=None):
    return PromotionEngine(ledger=ledger).evaluate(promotions, cart, code=code, now=NOW)


@pytest.fixture
def cart_200():
    """One line: qty 2 at 100 HT, 20% tax."""
    return CartSnapshot(lines=(line(1, 2, 100),))


class TestReferenceScenarios:
    """Worked examples of the engine's contract."""

    def test_single_order_percent(self, cart_200):
        result = evaluate([promo(1, percent(10), priority=1)], cart_200)

        assert result.subtotal == D('200.00')
        assert result.tax_total == D('40.00')
        assert result.grand_total == D('240.00')
        assert result.discount_total == D('20.00')
        assert result.lines_total_discounts == (D('20.00'),)
        assert result.grand_total_after == D('220.00')

    def test_stop_further_processing_hides_lower_priority(self, cart_200):
        promo_a = promo(1, percent(10), priority=10, stop_further_processing=True)
        promo_b = promo(2, fixed(50), priority=5)

        result = evaluate([promo_b, promo_a], cart_200)

        assert result.discount_total == D('20.00')
        assert [p.promotion_id for p in result.applied_promotions] == [1]

    def test_category_scope_only_touches_matched_line(self):
        cart = CartSnapshot(lines=(line(1, 1, 100), line(2, 1, 50, category_id=7)))
        category_promo = promo(1, percent(20), type=PromotionType.CATEGORY,
                               apply_scope=ApplyScope.CATEGORY, category_ids=frozenset({7}))

        result = evaluate([category_promo], cart)

        assert result.lines_total_discounts == (D('0.00'), D('10.00'))
        assert result.to_dict()['lines_total_discounts'] == [0.0, 10.0]

    def test_unknown_code_keeps_code_free_promotions(self, cart_200):
        gated = promo(1, percent(50), codes=(CodeRule(id=1, code='WINTER5'),))
        open_promo = promo(2, percent(10))

        result = evaluate([gated, open_promo], cart_200, code='SUMMER10')

        assert result.discount_total == D('20.00')
        assert [p.promotion_id for p in result.applied_promotions] == [2]

    def test_max_discount_amount_caps_action(self):
        cart = CartSnapshot(lines=(line(1, 5, 100),))

        result = evaluate([promo(1, percent(10, cap=15))], cart)

        assert result.applied_promotions[0].amount == D('15.00')
        assert result.discount_total == D('15.00')

    def test_cap_bounds_the_promotion_total_across_actions(self):
        cart = CartSnapshot(lines=(line(1, 5, 100),))
        two_actions = promo(1, percent(10, cap=15, action_id=1), percent(10, cap=15, action_id=2))

        result = evaluate([two_actions], cart)

        assert result.applied_promotions[0].amount == D('15.00')
        assert result.lines_total_discounts == (D('15.00'),)

    def test_uncapped_actions_still_add_up_under_the_smallest_cap(self):
        cart = CartSnapshot(lines=(line(1, 5, 100),))
        mixed = promo(1, fixed(5, action_id=1), percent(10, cap=20, action_id=2))

        result = evaluate([mixed], cart)

        assert result.applied_promotions[0].amount == D('20.00')


class TestProperties:
    """Invariants that hold for every evaluation."""

    def test_idempotent(self):
        cart = CartSnapshot(lines=(line(1, 3, '19.99'), line(2, 1, '5.01', category_id=3)), client_id=4)
        promotions = [
            promo(1, percent(15), priority=20),
            promo(2, fixed('7.50'), priority=10),
        ]

        first = evaluate(promotions, cart)
        second = evaluate(promotions, cart)

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_conservation_with_rounding_remainder(self):
        cart = CartSnapshot(lines=(line(1, 1, '33.33'), line(2, 1, '33.33'), line(3, 1, '33.34')))

        result = evaluate([promo(1, fixed(10))], cart)

        assert sum(result.lines_total_discounts) == result.discount_total == D('10.00')
        assert result.lines_total_discounts == (D('3.33'), D('3.33'), D('3.34'))

    def test_discount_never_exceeds_cart(self):
        cart = CartSnapshot(lines=(line(1, 1, 100, tax='0'),))

        result = evaluate([promo(1, fixed(1000)), promo(2, percent(50))], cart)

        assert result.discount_total == D('100.00')
        assert result.grand_total_after == D('0.00')
        assert all(d >= 0 for d in result.lines_total_discounts)

    def test_exclusive_promotion_is_applied_alone(self, cart_200):
        promotions = [
            promo(1, percent(5), priority=30),
            promo(2, percent(10), priority=20, is_exclusive=True),
            promo(3, fixed(5), priority=10),
        ]

        result = evaluate(promotions, cart_200)

        assert len(result.applied_promotions) == 1
        assert result.applied_promotions[0].promotion_id == 2
        assert result.discount_total == D('20.00')

    def test_sequential_stacking_uses_remaining_amount(self, cart_200):
        promotions = [promo(1, percent(10), priority=20), promo(2, percent(10), priority=10)]

        result = evaluate(promotions, cart_200)

        assert [p.amount for p in result.applied_promotions] == [D('20.00'), D('18.00')]
        assert result.discount_total == D('38.00')

    def test_zero_amount_promotion_is_listed(self):
        cart = CartSnapshot(lines=(line(1, 1, 30),))

        result = evaluate([promo(1, fixed(30), priority=20), promo(2, percent(10), priority=10)], cart)

        second = result.applied_promotions[1]
        assert second.promotion_id == 2
        assert second.amount == D('0.00')
        assert second.lines_breakdown == ()


class TestBogo:
    """Buy-N-get-M promotions."""

    def _bogo(self, kind=ActionKind.BOGO_FREE, buy=2, get=1, discount=None, **fields):
        action = ActionRule(id=1, kind=kind, buy_qty=buy, get_qty=get,
                            bogo_discount_value=D(discount) if discount is not None else None)
        return promo(1, action, type=PromotionType.BOGO, **fields)

    def test_buy_two_get_one_free(self):
        cart = CartSnapshot(lines=(line(1, 3, 10),))

        result = evaluate([self._bogo()], cart)

        assert result.discount_total == D('10.00')
        assert result.applied_promotions[0].hint.to_dict() == {'type': 'percent', 'value': 100.0}

    def test_below_threshold_is_not_eligible(self):
        cart = CartSnapshot(lines=(line(1, 2, 10),))

        result = evaluate([self._bogo()], cart)

        assert result.applied_promotions == ()

    def test_missing_pattern_fails_closed(self):
        cart = CartSnapshot(lines=(line(1, 10, 10),))

        result = evaluate([self._bogo(get=None)], cart)

        assert result.applied_promotions == ()

    def test_cheapest_units_are_designated(self):
        cart = CartSnapshot(lines=(line(1, 2, 30), line(2, 1, 10)))

        result = evaluate([self._bogo()], cart)

        assert result.discount_total == D('10.00')

    def test_bogo_percent(self):
        cart = CartSnapshot(lines=(line(1, 2, 20),))

        result = evaluate([self._bogo(kind=ActionKind.BOGO_PERCENT, buy=1, get=1, discount=50)], cart)

        assert result.discount_total == D('10.00')
        assert result.applied_promotions[0].hint.to_dict() == {'type': 'percent', 'value': 50.0}


class TestCodes:
    """Code-gated promotions and redemption limits."""

    def _gated(self, **code_fields):
        code = CodeRule(id=9, code='SUMMER10', **code_fields)
        return promo(1, percent(10), codes=(code,))

    def test_code_is_case_insensitive_and_trimmed(self, cart_200):
        result = evaluate([self._gated()], cart_200, code='  summer10 ')

        assert result.discount_total == D('20.00')
        assert result.applied_promotions[0].promotion_code_id == 9

    def test_gated_promotion_needs_code(self, cart_200):
        assert evaluate([self._gated()], cart_200).applied_promotions == ()

    def test_code_falls_back_to_cart_promo_code(self):
        cart = CartSnapshot(lines=(line(1, 2, 100),), promo_code='summer10')

        result = evaluate([self._gated()], cart)

        assert result.discount_total == D('20.00')

    def test_inactive_code_does_not_match(self, cart_200):
        result = evaluate([self._gated(is_active=False)], cart_200, code='SUMMER10')

        assert result.applied_promotions == ()

    def test_code_outside_its_window(self, cart_200):
        result = evaluate([self._gated(ends_at=NOW - timedelta(days=1))], cart_200, code='SUMMER10')

        assert result.applied_promotions == ()

    def test_global_cap_reached(self, cart_200):
        ledger = InMemoryRedemptionLedger(totals={9: 3})

        result = evaluate([self._gated(max_redemptions=3)], cart_200, code='SUMMER10', ledger=ledger)

        assert result.applied_promotions == ()

    def test_per_user_cap_only_for_that_client(self):
        ledger = InMemoryRedemptionLedger(per_client={(9, 5): 1})
        gated = self._gated(max_per_user=1)

        exhausted = CartSnapshot(lines=(line(1, 2, 100),), client_id=5)
        other_client = CartSnapshot(lines=(line(1, 2, 100),), client_id=6)
        anonymous = CartSnapshot(lines=(line(1, 2, 100),))

        assert evaluate([gated], exhausted, 'SUMMER10', ledger).applied_promotions == ()
        assert evaluate([gated], other_client, 'SUMMER10', ledger).discount_total == D('20.00')
        assert evaluate([gated], anonymous, 'SUMMER10', ledger).discount_total == D('20.00')
