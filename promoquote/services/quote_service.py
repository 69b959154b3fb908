"""Quote service: create, update and read quotes with promotions applied."""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from promoquote.exceptions import BusinessLogicError, NotFoundError, QuoteLockedError
from promoquote.models import Client, Quote, QuoteLine, QuoteStatus
from promoquote.services.promotion_quote_service import (
    cart_from_quote, evaluate_cart, load_products, persist_evaluation
)

logger = logging.getLogger(__name__)


def generate_quote_number(session: Session) -> str:
    """Generate a unique quote number."""
    timestamp = datetime.now().strftime('%Y%m%d-%H%M%S')
    count = session.query(func.count(Quote.id)).scalar() or 0
    return f"DEV-{timestamp}-{str(count + 1).zfill(5)}"


def get_quote(quote_id: int, session: Session) -> Quote:
    quote = session.get(Quote, quote_id)
    if quote is None:
        raise NotFoundError(f'Quote {quote_id} not found')
    return quote


def _check_client(session: Session, client_id: Optional[int]) -> None:
    if client_id is None:
        return
    client = session.get(Client, client_id)
    if client is None or not client.active:
        raise BusinessLogicError(f'Client {client_id} is not valid or inactive')


def _build_lines(session: Session, items: List[Dict[str, Any]]) -> List[QuoteLine]:
    """QuoteLines for normalized items; price and tax default to the product's."""
    products = load_products(session, [item['product_id'] for item in items])

    lines = []
    for position, item in enumerate(items):
        product = products[item['product_id']]
        if not product.active:
            raise BusinessLogicError(f'Product {product.id} is inactive')

        unit_price = item['unit_price_ht'] if item['unit_price_ht'] is not None else Decimal(product.sale_price)
        tax_rate = item['tax_rate'] if item['tax_rate'] is not None else Decimal(product.tax_rate or 0)

        line = QuoteLine(
            sort_order=position,
            product_id=product.id,
            product=product,
            product_name_snapshot=product.name,
            quantity=item['quantity'],
            unit_price_ht=unit_price,
            tax_rate=tax_rate,
            discount_amount=Decimal('0.00'),
        )
        line.compute_amounts()
        lines.append(line)
    return lines


def _evaluate_and_store(session: Session, quote: Quote, code: Optional[str]) -> None:
    result = evaluate_cart(session, cart_from_quote(quote, code), code=code, exclude_quote_id=quote.id)
    persist_evaluation(session, quote, result)


def create_quote(items: List[Dict[str, Any]], session: Session, client_id: Optional[int] = None,
                 promo_code: Optional[str] = None, **kwargs) -> int:
    """
    Create a quote from normalized items and apply promotions to it.

    Promotion evaluation, line ventilation, totals and redemption rows are
    committed in the same transaction as the quote itself.
    """
    if not items:
        raise BusinessLogicError('A quote needs at least one line')

    try:
        _check_client(session, client_id)

        quote = Quote(
            quote_number=generate_quote_number(session),
            client_id=client_id,
            status=QuoteStatus.DRAFT.value,
            currency_code=kwargs.get('currency_code') or 'EUR',
            valid_until=kwargs.get('valid_until') or date.today() + timedelta(days=kwargs.get('valid_days', 30)),
            notes=(kwargs.get('notes') or '').strip() or None,
            discount_total=Decimal('0.00'),
        )
        for line in _build_lines(session, items):
            quote.lines.append(line)
        session.add(quote)
        session.flush()

        _evaluate_and_store(session, quote, promo_code)

        session.commit()
        logger.info(f"[QUOTE] Created quote {quote.quote_number} (discount_total={quote.discount_total})")
        return quote.id
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def update_quote(quote_id: int, session: Session, items: Optional[List[Dict[str, Any]]] = None,
                 promo_code: Optional[str] = None, **kwargs) -> None:
    """
    Update an editable quote and re-run the promotion evaluation.

    When items is given the lines are replaced; the stored discount
    snapshot is always overwritten by the new evaluation.
    """
    try:
        quote = get_quote(quote_id, session)
        if not quote.is_editable:
            raise QuoteLockedError(quote)

        if 'client_id' in kwargs:
            _check_client(session, kwargs['client_id'])
            quote.client_id = kwargs['client_id']
        if kwargs.get('currency_code'):
            quote.currency_code = kwargs['currency_code']
        if 'valid_until' in kwargs:
            quote.valid_until = kwargs['valid_until']
        if 'notes' in kwargs:
            quote.notes = kwargs['notes'].strip() if kwargs['notes'] else None

        if items is not None:
            if not items:
                raise BusinessLogicError('A quote needs at least one line')
            new_lines = _build_lines(session, items)
            quote.lines.clear()
            session.flush()
            for line in new_lines:
                quote.lines.append(line)
            session.flush()

        _evaluate_and_store(session, quote, promo_code)

        session.commit()
        logger.info(f"[QUOTE] Updated quote {quote.quote_number} (discount_total={quote.discount_total})")
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise
