"""Promotion engine facade: eligibility -> resolution -> calculation -> snapshot."""
import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from promoquote.promotions import calculator, eligibility, resolver, snapshot
from promoquote.promotions.ledger import InMemoryRedemptionLedger, RedemptionLedger
from promoquote.promotions.money import CartSnapshot
from promoquote.promotions.rules import PromotionRule
from promoquote.promotions.snapshot import DiscountResult

logger = logging.getLogger(__name__)


class PromotionEngine:
    """
    Pure, synchronous evaluation of a promotion catalog against a cart.

    The same instance and inputs always yield the same DiscountResult; the
    preview and apply paths both go through evaluate().
    """

    def __init__(self, ledger: Optional[RedemptionLedger] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.ledger = ledger or InMemoryRedemptionLedger()
        self.clock = clock

    def evaluate(self, promotions: Iterable[PromotionRule], cart: CartSnapshot,
                 code: Optional[str] = None, now: Optional[datetime] = None) -> DiscountResult:
        """Evaluate the catalog; code defaults to the cart's promo_code."""
        if code is None:
            code = cart.promo_code
        now = now or self.clock()

        found = eligibility.candidates(promotions, cart, code=code, now=now, ledger=self.ledger)
        selected = resolver.resolve(found)
        applied = calculator.apply(selected, cart)
        result = snapshot.build(cart, applied)

        logger.debug(
            f"[PROMO] Evaluated {len(found)} candidate(s), {len(selected)} selected, "
            f"discount_total={result.discount_total}"
        )
        return result
