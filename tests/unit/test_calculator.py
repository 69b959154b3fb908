"""
Unit tests for discount computation, allocation and the redemption ledger.
"""

from decimal import Decimal

from promoquote.promotions.calculator import allocate, build_hint
from promoquote.promotions.ledger import InMemoryRedemptionLedger
from promoquote.promotions.money import CartLine, round_money, to_decimal
from promoquote.promotions.rules import ActionKind, ActionRule, CodeRule

D = Decimal


class TestMoney:
    """Rounding and line totals."""

    def test_round_half_up(self):
        assert round_money('0.005') == D('0.01')
        assert round_money('2.345') == D('2.35')
        assert round_money(D('-0.005')) == D('-0.01')

    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == D('0.1')

    def test_line_totals(self):
        line = CartLine(product_id=1, quantity=D('3'), unit_price_ht=D('9.99'), tax_rate=D('5.5'))

        assert line.line_total_ht == D('29.97')
        assert round_money(line.line_tax) == D('1.65')
        assert round_money(line.line_total_ttc) == D('31.62')


class TestAllocate:
    """Proportional allocation with rounding remainder."""

    def test_proportional_split(self):
        shares = allocate(D('30.00'), (0, 1), [D('100.00'), D('200.00')])

        assert shares == {0: D('10.00'), 1: D('20.00')}

    def test_remainder_lands_on_last_line(self):
        shares = allocate(D('0.01'), (0, 1, 2), [D('0.01'), D('0.01'), D('0.01')])

        assert shares == {0: D('0.00'), 1: D('0.00'), 2: D('0.01')}

    def test_overshoot_walks_back(self):
        shares = allocate(D('0.02'), (0, 1, 2), [D('0.01'), D('0.01'), D('0.01')])

        assert sum(shares.values()) == D('0.02')
        assert all(D('0') <= shares[i] <= D('0.01') for i in shares)

    def test_exhausted_lines_get_nothing(self):
        shares = allocate(D('5.00'), (0, 1), [D('0.00'), D('10.00')])

        assert shares == {1: D('5.00')}

    def test_nothing_to_allocate(self):
        assert allocate(D('0'), (0,), [D('10.00')]) == {}


class TestHint:
    """Display hint of the first action."""

    def test_fixed(self):
        hint = build_hint(ActionRule(id=1, kind=ActionKind.FIXED, value=D('12.5')))
        assert hint.to_dict() == {'type': 'fixed', 'value': 12.5}

    def test_percent(self):
        hint = build_hint(ActionRule(id=1, kind=ActionKind.PERCENT, value=D('15')))
        assert hint.to_dict() == {'type': 'percent', 'value': 15.0}

    def test_bogo_percent_falls_back_to_value(self):
        hint = build_hint(ActionRule(id=1, kind=ActionKind.BOGO_PERCENT, value=D('30'), buy_qty=1, get_qty=1))
        assert hint.to_dict() == {'type': 'percent', 'value': 30.0}

    def test_no_action(self):
        assert build_hint(None) is None


class TestRedemptionLedger:
    """Remaining uses of a code."""

    def test_unlimited_code(self):
        ledger = InMemoryRedemptionLedger(totals={1: 50})

        assert ledger.remaining(CodeRule(id=1, code='X'), client_id=3) is None
        assert not ledger.is_exhausted(CodeRule(id=1, code='X'), client_id=3)

    def test_smallest_allowance_wins(self):
        ledger = InMemoryRedemptionLedger(totals={1: 2}, per_client={(1, 3): 1})
        code = CodeRule(id=1, code='X', max_redemptions=10, max_per_user=2)

        assert ledger.remaining(code, client_id=3) == 1
        assert ledger.remaining(code, client_id=4) == 2

    def test_per_user_cap_ignored_without_client(self):
        ledger = InMemoryRedemptionLedger(per_client={(1, 3): 5})
        code = CodeRule(id=1, code='X', max_per_user=1)

        assert ledger.remaining(code, client_id=None) is None

    def test_over_redeemed_code_clamps_to_zero(self):
        ledger = InMemoryRedemptionLedger(totals={1: 7})
        code = CodeRule(id=1, code='X', max_redemptions=5)

        assert ledger.remaining(code, client_id=None) == 0
        assert ledger.is_exhausted(code, client_id=None)
