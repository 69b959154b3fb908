"""
Promotion preview/apply orchestration.

Both preview and apply build a CartSnapshot, load the catalog once and
run the same PromotionEngine.evaluate(); apply additionally writes the
result onto the quote and its redemption journal in one transaction.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.orm import Session

from promoquote.exceptions import BusinessLogicError, NotFoundError, QuoteLockedError
from promoquote.models import Product, PromotionRedemption, Quote, normalize_promo_code
from promoquote.promotions import CartLine, CartSnapshot, DiscountResult, PromotionEngine
from promoquote.services.promotion_catalog_service import SqlRedemptionLedger, load_promotion_rules
from promoquote.utils.number_format import parse_decimal, parse_int, parse_optional_decimal

logger = logging.getLogger(__name__)


def normalize_code(code: Any, max_length: Optional[int] = None) -> Optional[str]:
    """Trim and upper-case an input code; empty means no code."""
    if code is None:
        return None
    if max_length is None:
        max_length = current_app.config['PROMO_CODE_MAX_LENGTH']
    if not isinstance(code, str):
        raise BusinessLogicError('code must be a string')
    if len(code.strip()) > max_length:
        raise BusinessLogicError(f'code must be at most {max_length} characters')
    return normalize_promo_code(code)


def normalize_items(items: Any, require_price: bool = True) -> List[Dict[str, Any]]:
    """
    Validate raw payload items and coerce their numbers to Decimal.

    When require_price is False, unit_price_ht and tax_rate may be omitted
    (None) and are filled from the product later.

    Raises:
        BusinessLogicError: on any malformed line.
    """
    if not isinstance(items, list) or not items:
        raise BusinessLogicError('items must be a non-empty list')

    normalized = []
    for position, item in enumerate(items):
        if not isinstance(item, dict):
            raise BusinessLogicError(f'items[{position}] must be an object')
        try:
            product_id = parse_int(item.get('product_id'), f'items[{position}].product_id', minimum=1)
            quantity = parse_decimal(item.get('quantity'), f'items[{position}].quantity',
                                     minimum=Decimal('0'), allow_zero=False)
            if require_price:
                unit_price = parse_decimal(item.get('unit_price_ht'), f'items[{position}].unit_price_ht',
                                           minimum=Decimal('0'))
                tax_rate = parse_optional_decimal(item.get('tax_rate'), f'items[{position}].tax_rate',
                                                  minimum=Decimal('0'), maximum=Decimal('100'))
                if tax_rate is None:
                    tax_rate = Decimal('0')
            else:
                unit_price = parse_optional_decimal(item.get('unit_price_ht'), f'items[{position}].unit_price_ht',
                                                    minimum=Decimal('0'))
                tax_rate = parse_optional_decimal(item.get('tax_rate'), f'items[{position}].tax_rate',
                                                  minimum=Decimal('0'), maximum=Decimal('100'))
        except ValueError as e:
            raise BusinessLogicError(str(e))

        normalized.append({
            'product_id': product_id,
            'quantity': quantity,
            'unit_price_ht': unit_price,
            'tax_rate': tax_rate,
        })
    return normalized


def load_products(session: Session, product_ids) -> Dict[int, Product]:
    """Products by id; any unknown id is an input error."""
    wanted = set(product_ids)
    products = {p.id: p for p in session.query(Product).filter(Product.id.in_(wanted)).all()}
    missing = sorted(wanted - set(products))
    if missing:
        raise BusinessLogicError(f"Unknown product id(s): {', '.join(str(pid) for pid in missing)}")
    return products


def cart_from_items(session: Session, items: List[Dict[str, Any]], client_id: Optional[int] = None,
                    currency_code: str = 'EUR', code: Optional[str] = None) -> CartSnapshot:
    """Build a CartSnapshot from normalized items, resolving each product's category."""
    products = load_products(session, [item['product_id'] for item in items])
    lines = tuple(
        CartLine(
            product_id=item['product_id'],
            quantity=item['quantity'],
            unit_price_ht=item['unit_price_ht'],
            tax_rate=item['tax_rate'],
            category_id=products[item['product_id']].category_id,
        )
        for item in items
    )
    return CartSnapshot(lines=lines, client_id=client_id, currency_code=currency_code, promo_code=code)


def cart_from_quote(quote: Quote, code: Optional[str] = None) -> CartSnapshot:
    """Cart view of a persisted quote; line order follows sort_order."""
    lines = tuple(
        CartLine(
            product_id=line.product_id,
            quantity=Decimal(line.quantity),
            unit_price_ht=Decimal(line.unit_price_ht),
            tax_rate=Decimal(line.tax_rate or 0),
            category_id=line.product.category_id if line.product else None,
        )
        for line in quote.lines
    )
    return CartSnapshot(lines=lines, client_id=quote.client_id, currency_code=quote.currency_code, promo_code=code)


def evaluate_cart(session: Session, cart: CartSnapshot, code: Optional[str] = None,
                  exclude_quote_id: Optional[int] = None) -> DiscountResult:
    """Load the catalog once and evaluate it against the cart."""
    rules = load_promotion_rules(session)
    engine = PromotionEngine(ledger=SqlRedemptionLedger(session, exclude_quote_id=exclude_quote_id))
    return engine.evaluate(rules, cart, code=code)


def preview_from_payload(session: Session, items: List[Dict[str, Any]], code: Optional[str] = None,
                         client_id: Optional[int] = None, currency_code: str = 'EUR') -> DiscountResult:
    """Transient preview of a cart that is not (yet) a quote. Writes nothing."""
    cart = cart_from_items(session, items, client_id=client_id, currency_code=currency_code, code=code)
    return evaluate_cart(session, cart, code=code)


# Nothing is persisted for a transient cart: apply is the same computation.
apply_from_payload = preview_from_payload


def _get_quote(session: Session, quote_id: int) -> Quote:
    quote = session.get(Quote, quote_id)
    if quote is None:
        raise NotFoundError(f'Quote {quote_id} not found')
    return quote


def preview_quote(session: Session, quote_id: int, code: Optional[str] = None) -> DiscountResult:
    """Preview against a persisted quote, ignoring that quote's own past redemptions."""
    quote = _get_quote(session, quote_id)
    return evaluate_cart(session, cart_from_quote(quote, code), code=code, exclude_quote_id=quote.id)


def persist_evaluation(session: Session, quote: Quote, result: DiscountResult) -> None:
    """
    Write a DiscountResult onto a quote inside the caller's transaction.

    Ventilates lines_total_discounts onto the lines, recalculates totals
    net of discount and replaces the quote's redemption journal rows.
    """
    quote.discount_total = result.discount_total
    quote.applied_promotions = [p.to_dict() for p in result.applied_promotions]

    lines = list(quote.lines)
    if len(lines) != len(result.lines_total_discounts):
        raise BusinessLogicError('Quote lines changed during evaluation')
    for line, discount in zip(lines, result.lines_total_discounts):
        line.discount_amount = discount

    quote.calculate_totals_with_discount()

    session.query(PromotionRedemption).filter(
        PromotionRedemption.quote_id == quote.id
    ).delete(synchronize_session=False)

    used_at = datetime.now()
    for applied in result.applied_promotions:
        if applied.amount <= 0:
            continue
        session.add(PromotionRedemption(
            promotion_id=applied.promotion_id,
            promotion_code_id=applied.promotion_code_id,
            client_id=quote.client_id,
            quote_id=quote.id,
            used_at=used_at,
            amount_discounted=applied.amount,
        ))


def apply_quote(session: Session, quote_id: int, code: Optional[str] = None) -> DiscountResult:
    """
    Re-run the evaluation for a persisted quote and store it atomically.

    Returns the same DiscountResult a preview would have returned for the
    catalog state at apply time.
    """
    try:
        quote = _get_quote(session, quote_id)
        if not quote.is_editable:
            raise QuoteLockedError(quote)

        result = evaluate_cart(session, cart_from_quote(quote, code), code=code, exclude_quote_id=quote.id)
        persist_evaluation(session, quote, result)

        session.commit()
        logger.info(
            f"[PROMO] Applied {len(result.applied_promotions)} promotion(s) to quote {quote.quote_number}, "
            f"discount_total={result.discount_total}"
        )
        return result
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise
