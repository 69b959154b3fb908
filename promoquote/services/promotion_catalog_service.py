"""
Promotion catalog accessor.

Loads the persisted promotions once per evaluation and turns them into
the engine's read-only rule objects, and exposes the redemption journal
as the engine's RedemptionLedger.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from promoquote.exceptions import CatalogUnavailableError
from promoquote.models import Promotion, PromotionRedemption
from promoquote.promotions.ledger import RedemptionLedger
from promoquote.promotions.rules import (
    ActionKind, ActionRule, ApplyScope, CodeRule, PromotionRule, PromotionType
)

logger = logging.getLogger(__name__)


def _decimal_or_none(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def to_rule(promotion: Promotion) -> PromotionRule:
    """Snapshot one Promotion row (with actions, codes and targets) as a PromotionRule."""
    actions = tuple(
        ActionRule(
            id=a.id,
            kind=ActionKind(a.action_type),
            value=_decimal_or_none(a.value),
            max_discount_amount=_decimal_or_none(a.max_discount_amount),
            buy_qty=a.buy_qty,
            get_qty=a.get_qty,
            bogo_discount_value=_decimal_or_none(a.bogo_discount_value),
        )
        for a in sorted(promotion.actions, key=lambda a: a.id)
    )
    codes = tuple(
        CodeRule(
            id=c.id,
            code=c.code,
            is_active=bool(c.is_active),
            max_redemptions=c.max_redemptions,
            max_per_user=c.max_per_user,
            starts_at=c.starts_at,
            ends_at=c.ends_at,
        )
        for c in promotion.codes
    )
    return PromotionRule(
        id=promotion.id,
        name=promotion.name,
        description=promotion.description,
        type=PromotionType(promotion.type),
        apply_scope=ApplyScope(promotion.apply_scope or ApplyScope.ORDER.value),
        priority=promotion.priority or 0,
        is_exclusive=bool(promotion.is_exclusive),
        is_active=bool(promotion.is_active),
        stop_further_processing=bool(promotion.stop_further_processing),
        starts_at=promotion.starts_at,
        ends_at=promotion.ends_at,
        days_of_week=promotion.days_of_week or 0,
        min_subtotal=_decimal_or_none(promotion.min_subtotal),
        min_quantity=promotion.min_quantity,
        actions=actions,
        codes=codes,
        category_ids=frozenset(c.id for c in promotion.categories),
        product_ids=frozenset(p.id for p in promotion.products),
    )


def load_promotion_rules(session: Session) -> List[PromotionRule]:
    """
    Active, non-deleted promotions as engine rules.

    Time window, weekday and code checks are left to the engine so that
    they are evaluated against the same clock as everything else.

    Raises:
        CatalogUnavailableError: if the catalog cannot be read.
    """
    try:
        promotions = (
            session.query(Promotion)
            .options(
                selectinload(Promotion.actions),
                selectinload(Promotion.codes),
                selectinload(Promotion.categories),
                selectinload(Promotion.products),
            )
            .filter(Promotion.is_active.is_(True), Promotion.deleted_at.is_(None))
            .order_by(Promotion.priority.desc(), Promotion.id)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"[PROMO] Failed to load promotion catalog: {e}")
        raise CatalogUnavailableError('Promotion catalog unavailable') from e

    rules = []
    for promotion in promotions:
        try:
            rules.append(to_rule(promotion))
        except ValueError as e:
            # Unknown enum value in the row: the promotion cannot be evaluated
            logger.warning(f"[PROMO] Promotion {promotion.id} ignored, invalid definition: {e}")
    return rules


class SqlRedemptionLedger(RedemptionLedger):
    """
    Redemption counters read from promotion_redemption.

    exclude_quote_id leaves out the journal rows of the quote being
    re-evaluated, so re-applying a quote does not count against itself.
    """

    def __init__(self, session: Session, exclude_quote_id: Optional[int] = None):
        self.session = session
        self.exclude_quote_id = exclude_quote_id

    def _count(self, *criteria) -> int:
        query = self.session.query(func.count(PromotionRedemption.id)).filter(*criteria)
        if self.exclude_quote_id is not None:
            query = query.filter(
                (PromotionRedemption.quote_id.is_(None)) | (PromotionRedemption.quote_id != self.exclude_quote_id)
            )
        try:
            return query.scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"[PROMO] Failed to read redemption counters: {e}")
            raise CatalogUnavailableError('Redemption counters unavailable') from e

    def count_redemptions(self, code_id: int) -> int:
        return self._count(PromotionRedemption.promotion_code_id == code_id)

    def count_client_redemptions(self, code_id: int, client_id: int) -> int:
        return self._count(
            PromotionRedemption.promotion_code_id == code_id,
            PromotionRedemption.client_id == client_id,
        )
