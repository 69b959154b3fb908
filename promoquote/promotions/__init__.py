"""Promotion evaluation engine (pure, no database access)."""
from promoquote.promotions.money import CartLine, CartSnapshot, round_money, to_decimal
from promoquote.promotions.rules import (
    ActionKind, ActionRule, ApplyScope, CodeRule, PromotionRule, PromotionType
)
from promoquote.promotions.ledger import InMemoryRedemptionLedger, RedemptionLedger
from promoquote.promotions.snapshot import AppliedPromotion, DiscountResult, LineAllocation, PromotionHint
from promoquote.promotions.engine import PromotionEngine

__all__ = [
    'CartLine', 'CartSnapshot', 'round_money', 'to_decimal',
    'ActionKind', 'ActionRule', 'ApplyScope', 'CodeRule', 'PromotionRule', 'PromotionType',
    'InMemoryRedemptionLedger', 'RedemptionLedger',
    'AppliedPromotion', 'DiscountResult', 'LineAllocation', 'PromotionHint',
    'PromotionEngine',
]
