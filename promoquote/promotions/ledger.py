"""Redemption counters queried by the eligibility filter."""
from typing import Dict, Optional, Tuple

from promoquote.promotions.rules import CodeRule


class RedemptionLedger:
    """
    Read-only capability over persisted redemption counters.

    Subclasses implement the two counts; remaining() derives what is left
    of a code's global and per-client allowances. The engine never
    increments counters itself.
    """

    def count_redemptions(self, code_id: int) -> int:
        raise NotImplementedError

    def count_client_redemptions(self, code_id: int, client_id: int) -> int:
        raise NotImplementedError

    def remaining(self, code: CodeRule, client_id: Optional[int]) -> Optional[int]:
        """
        Uses left for this code and client, or None when the code is unlimited.

        The per-client cap is only checked when a client id is known.
        """
        limits = []
        if code.max_redemptions is not None:
            limits.append(code.max_redemptions - self.count_redemptions(code.id))
        if code.max_per_user is not None and client_id is not None:
            limits.append(code.max_per_user - self.count_client_redemptions(code.id, client_id))
        if not limits:
            return None
        return max(0, min(limits))

    def is_exhausted(self, code: CodeRule, client_id: Optional[int]) -> bool:
        remaining = self.remaining(code, client_id)
        return remaining is not None and remaining <= 0


class InMemoryRedemptionLedger(RedemptionLedger):
    """Ledger backed by plain dicts; the default when no persistence is wired in."""

    def __init__(self, totals: Optional[Dict[int, int]] = None,
                 per_client: Optional[Dict[Tuple[int, int], int]] = None):
        self.totals = dict(totals or {})
        self.per_client = dict(per_client or {})

    def count_redemptions(self, code_id: int) -> int:
        return self.totals.get(code_id, 0)

    def count_client_redemptions(self, code_id: int, client_id: int) -> int:
        return self.per_client.get((code_id, client_id), 0)
