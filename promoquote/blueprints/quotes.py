"""Quotes blueprint: quote CRUD and promotion preview/apply (JSON)."""
from datetime import date
from flask import Blueprint, request, jsonify, current_app
from promoquote.database import get_session
from promoquote.exceptions import BusinessLogicError
from promoquote.promotions import DiscountResult
from promoquote.services import promotion_quote_service
from promoquote.services.quote_service import create_quote, update_quote, get_quote
from promoquote.blueprints.metrics import record_evaluation

quotes_bp = Blueprint('quotes', __name__, url_prefix='/quotes')


def _json_body():
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise BusinessLogicError('Invalid JSON body')
    return payload


def _read_code(payload, key='code'):
    return promotion_quote_service.normalize_code(
        payload.get(key), current_app.config['PROMO_CODE_MAX_LENGTH']
    )


def _read_client_id(payload):
    client_id = payload.get('client_id')
    if client_id is None:
        return None
    if isinstance(client_id, bool) or not isinstance(client_id, int) or client_id < 1:
        raise BusinessLogicError('client_id: must be a positive integer')
    return client_id


def _read_currency(payload):
    currency = payload.get('currency_code') or current_app.config.get('DEFAULT_CURRENCY', 'EUR')
    if not isinstance(currency, str) or len(currency.strip()) != 3:
        raise BusinessLogicError('currency_code: must be a 3-letter code')
    return currency.strip().upper()


def _read_valid_until(payload):
    value = payload.get('valid_until')
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise BusinessLogicError(f'valid_until: invalid date {value!r}')


def _transient(mode):
    """
    Shared body of the transient preview/apply endpoints.

    Validation errors are still 400; any evaluation or catalog failure
    degrades to 200 with an all-zero result so the quote form keeps working.
    """
    payload = _json_body()
    code = _read_code(payload)
    client_id = _read_client_id(payload)
    currency_code = _read_currency(payload)
    items = promotion_quote_service.normalize_items(payload.get('items'))

    db_session = get_session()
    try:
        result = promotion_quote_service.preview_from_payload(
            db_session, items, code=code, client_id=client_id, currency_code=currency_code
        )
    except BusinessLogicError:
        raise
    except Exception as e:
        current_app.logger.error(f"[PROMO] Transient {mode} failed, returning empty result: {e}")
        db_session.rollback()
        record_evaluation(mode, 'degraded')
        body = DiscountResult.empty().to_dict()
        body.update({'error': 'promotion_evaluation_failed', 'message': str(e)})
        return jsonify(body), 200

    record_evaluation(mode, 'ok', result.discount_total)
    return jsonify(result.to_dict())


@quotes_bp.route('/promotions/preview', methods=['POST'])
def preview_transient():
    """Preview promotions for a cart that is not a quote yet."""
    return _transient('preview')


@quotes_bp.route('/promotions/apply', methods=['POST'])
def apply_transient():
    """Same computation as preview: nothing is persisted for a transient cart."""
    return _transient('apply')


@quotes_bp.route('/<int:quote_id>/promotions/preview', methods=['POST'])
def preview_quote(quote_id):
    """Preview promotions against a persisted quote (read-only)."""
    code = _read_code(_json_body())
    try:
        result = promotion_quote_service.preview_quote(get_session(), quote_id, code)
    except Exception:
        record_evaluation('preview', 'error')
        raise
    record_evaluation('preview', 'ok', result.discount_total)
    return jsonify(result.to_dict())


@quotes_bp.route('/<int:quote_id>/promotions/apply', methods=['POST'])
def apply_quote(quote_id):
    """Apply promotions to a persisted quote and store the snapshot."""
    code = _read_code(_json_body())
    try:
        result = promotion_quote_service.apply_quote(get_session(), quote_id, code)
    except Exception:
        record_evaluation('apply', 'error')
        raise
    record_evaluation('apply', 'ok', result.discount_total)
    current_app.logger.info(f"[PROMO] Quote {quote_id} applied, discount_total={result.discount_total}")
    return jsonify(result.to_dict())


@quotes_bp.route('', methods=['POST'])
def create():
    """Create a quote; promotions are evaluated in the same transaction."""
    payload = _json_body()
    items = promotion_quote_service.normalize_items(payload.get('items'), require_price=False)
    db_session = get_session()

    quote_id = create_quote(
        items,
        db_session,
        client_id=_read_client_id(payload),
        promo_code=_read_code(payload, 'promo_code'),
        currency_code=_read_currency(payload),
        valid_until=_read_valid_until(payload),
        valid_days=current_app.config.get('QUOTE_VALID_DAYS', 30),
        notes=payload.get('notes'),
    )
    return jsonify(get_quote(quote_id, db_session).to_dict()), 201


@quotes_bp.route('/<int:quote_id>', methods=['PUT'])
def update(quote_id):
    """Update a quote and re-run promotions; 'items', when sent, replaces every line."""
    payload = _json_body()
    fields = {}
    if 'client_id' in payload:
        fields['client_id'] = _read_client_id(payload)
    if 'currency_code' in payload:
        fields['currency_code'] = _read_currency(payload)
    if 'valid_until' in payload:
        fields['valid_until'] = _read_valid_until(payload)
    if 'notes' in payload:
        fields['notes'] = payload.get('notes')

    items = None
    if 'items' in payload:
        items = promotion_quote_service.normalize_items(payload.get('items'), require_price=False)

    db_session = get_session()
    update_quote(quote_id, db_session, items=items, promo_code=_read_code(payload, 'promo_code'), **fields)
    return jsonify(get_quote(quote_id, db_session).to_dict())


@quotes_bp.route('/<int:quote_id>', methods=['GET'])
def detail(quote_id):
    """Quote with its lines and last applied promotions."""
    return jsonify(get_quote(quote_id, get_session()).to_dict())
