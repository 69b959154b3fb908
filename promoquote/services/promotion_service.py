"""Promotion administration: create, update, toggle, soft delete and list."""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.orm import Session

from promoquote.exceptions import BusinessLogicError, NotFoundError
from promoquote.models import (
    Category, Product, Promotion, PromotionAction, PromotionCode, PromotionRedemption, normalize_promo_code
)
from promoquote.promotions.rules import COMPATIBLE_SCOPES, ActionKind, ApplyScope, PromotionType
from promoquote.utils.number_format import parse_int, parse_optional_decimal, parse_optional_int

logger = logging.getLogger(__name__)

BOOLEAN_FIELDS = ('is_exclusive', 'is_active', 'stop_further_processing')


def _parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if value in (0, 1, '0', '1', 'true', 'false'):
        return value in (1, '1', 'true')
    raise BusinessLogicError(f'{field}: must be a boolean')


def _parse_datetime(value, field: str) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if not isinstance(value, str):
        raise BusinessLogicError(f'{field}: must be an ISO 8601 date')
    try:
        parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        raise BusinessLogicError(f'{field}: invalid date {value!r}')
    # Windows are compared as naive local datetimes
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _parse_action(data: Any, position: int) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise BusinessLogicError(f'actions[{position}] must be an object')
    field = f'actions[{position}]'
    try:
        kind = ActionKind(data.get('action_type'))
    except ValueError:
        raise BusinessLogicError(f"{field}.action_type: must be one of {', '.join(k.value for k in ActionKind)}")

    try:
        action = {
            'action_type': kind.value,
            'value': parse_optional_decimal(data.get('value'), f'{field}.value', minimum=Decimal('0')),
            'max_discount_amount': parse_optional_decimal(data.get('max_discount_amount'),
                                                          f'{field}.max_discount_amount', minimum=Decimal('0')),
            'buy_qty': parse_optional_int(data.get('buy_qty'), f'{field}.buy_qty', minimum=1),
            'get_qty': parse_optional_int(data.get('get_qty'), f'{field}.get_qty', minimum=1),
            'bogo_discount_value': parse_optional_decimal(data.get('bogo_discount_value'),
                                                          f'{field}.bogo_discount_value',
                                                          minimum=Decimal('0'), maximum=Decimal('100')),
        }
    except ValueError as e:
        raise BusinessLogicError(str(e))

    if kind in (ActionKind.PERCENT, ActionKind.FIXED) and action['value'] == 0:
        raise BusinessLogicError(f'{field}.value: must be greater than 0')
    if kind == ActionKind.PERCENT and action['value'] is not None and action['value'] > 100:
        raise BusinessLogicError(f'{field}.value: a percentage must be at most 100')
    return action


def _parse_code(data: Any) -> Optional[Dict[str, Any]]:
    """A code is either a plain string or an object with its limits and window."""
    if data is None or data == '':
        return None
    if isinstance(data, str):
        data = {'code': data}
    if not isinstance(data, dict) or not isinstance(data.get('code'), str):
        raise BusinessLogicError('code: must be a string or an object with a "code" string')
    max_length = current_app.config['PROMO_CODE_MAX_LENGTH']
    if len(data['code'].strip()) > max_length:
        raise BusinessLogicError(f'code: must be at most {max_length} characters')

    code = normalize_promo_code(data['code'])
    if code is None:
        return None
    try:
        parsed = {
            'code': code,
            'max_redemptions': parse_optional_int(data.get('max_redemptions'), 'code.max_redemptions', minimum=0),
            'max_per_user': parse_optional_int(data.get('max_per_user'), 'code.max_per_user', minimum=0),
        }
    except ValueError as e:
        raise BusinessLogicError(str(e))
    parsed['starts_at'] = _parse_datetime(data.get('starts_at'), 'code.starts_at')
    parsed['ends_at'] = _parse_datetime(data.get('ends_at'), 'code.ends_at')
    parsed['is_active'] = _parse_bool(data.get('is_active', True), 'code.is_active')
    if parsed['starts_at'] and parsed['ends_at'] and parsed['ends_at'] < parsed['starts_at']:
        raise BusinessLogicError('code.ends_at: must be after or equal to starts_at')
    return parsed


def _parse_id_list(value: Any, field: str) -> List[int]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise BusinessLogicError(f'{field}: must be a list of ids')
    try:
        return sorted({parse_int(v, field, minimum=1) for v in value})
    except ValueError as e:
        raise BusinessLogicError(str(e))


def parse_promotion_payload(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Validate a create (or, with partial=True, update) payload.

    Only keys present in data end up in the result when partial is set.

    Raises:
        BusinessLogicError: on any invalid field.
    """
    if not isinstance(data, dict):
        raise BusinessLogicError('Invalid JSON body')

    parsed: Dict[str, Any] = {}

    def present(key):
        return key in data or not partial

    if present('name'):
        name = data.get('name')
        if not isinstance(name, str) or not name.strip():
            raise BusinessLogicError('name: is required')
        if len(name.strip()) > 255:
            raise BusinessLogicError('name: must be at most 255 characters')
        parsed['name'] = name.strip()
    if 'description' in data:
        description = data.get('description')
        if description is not None and not isinstance(description, str):
            raise BusinessLogicError('description: must be a string')
        parsed['description'] = description.strip() if description else None

    if present('type'):
        try:
            parsed['type'] = PromotionType(data.get('type')).value
        except ValueError:
            raise BusinessLogicError(f"type: must be one of {', '.join(t.value for t in PromotionType)}")
    if present('apply_scope'):
        try:
            parsed['apply_scope'] = ApplyScope(data.get('apply_scope')).value
        except ValueError:
            raise BusinessLogicError(f"apply_scope: must be one of {', '.join(s.value for s in ApplyScope)}")

    try:
        if 'priority' in data:
            parsed['priority'] = parse_int(data['priority'], 'priority', minimum=0)
        if 'days_of_week' in data:
            parsed['days_of_week'] = parse_optional_int(data['days_of_week'], 'days_of_week', minimum=0, maximum=127)
        if 'min_subtotal' in data:
            parsed['min_subtotal'] = parse_optional_decimal(data['min_subtotal'], 'min_subtotal', minimum=Decimal('0'))
        if 'min_quantity' in data:
            parsed['min_quantity'] = parse_optional_int(data['min_quantity'], 'min_quantity', minimum=0)
    except ValueError as e:
        raise BusinessLogicError(str(e))

    for field in BOOLEAN_FIELDS:
        if field in data:
            parsed[field] = _parse_bool(data[field], field)
    for field in ('starts_at', 'ends_at'):
        if field in data:
            parsed[field] = _parse_datetime(data[field], field)

    if present('actions'):
        actions = data.get('actions')
        if not isinstance(actions, list) or not actions:
            raise BusinessLogicError('actions: at least one action is required')
        parsed['actions'] = [_parse_action(a, i) for i, a in enumerate(actions)]

    if 'code' in data:
        parsed['code'] = _parse_code(data['code'])
    for field in ('category_ids', 'product_ids'):
        if field in data:
            parsed[field] = _parse_id_list(data[field], field)

    return parsed


def _check_consistency(promotion: Promotion) -> None:
    """Rules that span several fields, checked on the merged promotion."""
    promotion_type = PromotionType(promotion.type)
    scope = ApplyScope(promotion.apply_scope)
    if scope not in COMPATIBLE_SCOPES[promotion_type]:
        raise BusinessLogicError(f'apply_scope {scope.value} is not compatible with type {promotion_type.value}')
    if promotion.starts_at and promotion.ends_at and promotion.ends_at < promotion.starts_at:
        raise BusinessLogicError('ends_at: must be after or equal to starts_at')

    for action in promotion.actions:
        kind = ActionKind(action.action_type)
        if kind.is_bogo and (not action.buy_qty or not action.get_qty):
            raise BusinessLogicError(f'{kind.value} actions need buy_qty and get_qty')
        if kind in (ActionKind.PERCENT, ActionKind.FIXED) and action.value is None:
            raise BusinessLogicError(f'{kind.value} actions need a value')
    if promotion_type == PromotionType.BOGO and not any(ActionKind(a.action_type).is_bogo for a in promotion.actions):
        raise BusinessLogicError('bogo promotions need a bogo_free or bogo_percent action')


def _set_code(session: Session, promotion: Promotion, code_data: Optional[Dict[str, Any]]) -> None:
    """Replace the promotion's code; codes already redeemed are deactivated, not deleted."""
    if code_data is not None:
        clash = session.query(PromotionCode).filter(PromotionCode.code == code_data['code']).first()
        if clash is not None and clash.promotion_id != promotion.id:
            raise BusinessLogicError(f"code: {code_data['code']} is already used by another promotion")

    for existing in list(promotion.codes):
        if code_data is not None and existing.code == code_data['code']:
            for key, value in code_data.items():
                setattr(existing, key, value)
            code_data = None
            continue
        redeemed = session.query(PromotionRedemption.id).filter(
            PromotionRedemption.promotion_code_id == existing.id
        ).first()
        if redeemed:
            existing.is_active = False
        else:
            promotion.codes.remove(existing)

    if code_data is not None:
        promotion.codes.append(PromotionCode(**code_data))


def _set_targets(session: Session, promotion: Promotion, category_ids: List[int], product_ids: List[int]) -> None:
    """Only the target list matching the scope is kept; the other is cleared."""
    scope = ApplyScope(promotion.apply_scope)
    categories, products = [], []
    if scope == ApplyScope.CATEGORY and category_ids:
        categories = session.query(Category).filter(Category.id.in_(category_ids)).all()
        if len(categories) != len(category_ids):
            raise BusinessLogicError('category_ids: one or more categories do not exist')
    elif scope == ApplyScope.PRODUCT and product_ids:
        products = session.query(Product).filter(Product.id.in_(product_ids)).all()
        if len(products) != len(product_ids):
            raise BusinessLogicError('product_ids: one or more products do not exist')
    promotion.categories = categories
    promotion.products = products


def get_promotion(promotion_id: int, session: Session) -> Promotion:
    promotion = session.get(Promotion, promotion_id)
    if promotion is None or promotion.deleted_at is not None:
        raise NotFoundError(f'Promotion {promotion_id} not found')
    return promotion


def create_promotion(data: Dict[str, Any], session: Session) -> int:
    """Create a promotion with its actions, optional code and targets."""
    parsed = parse_promotion_payload(data)
    try:
        promotion = Promotion(
            name=parsed['name'],
            description=parsed.get('description'),
            type=parsed['type'],
            apply_scope=parsed['apply_scope'],
            priority=parsed.get('priority', 100),
            is_exclusive=parsed.get('is_exclusive', False),
            is_active=parsed.get('is_active', True),
            stop_further_processing=parsed.get('stop_further_processing', False),
            starts_at=parsed.get('starts_at'),
            ends_at=parsed.get('ends_at'),
            days_of_week=parsed.get('days_of_week'),
            min_subtotal=parsed.get('min_subtotal'),
            min_quantity=parsed.get('min_quantity'),
        )
        promotion.actions = [PromotionAction(**a) for a in parsed['actions']]
        _check_consistency(promotion)

        session.add(promotion)
        _set_targets(session, promotion, parsed.get('category_ids', []), parsed.get('product_ids', []))
        session.flush()
        _set_code(session, promotion, parsed.get('code'))

        session.commit()
        logger.info(f"[PROMO] Created promotion {promotion.id} '{promotion.name}'")
        return promotion.id
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def update_promotion(promotion_id: int, data: Dict[str, Any], session: Session) -> None:
    """Partial update; actions, code and targets are replaced only when sent."""
    parsed = parse_promotion_payload(data, partial=True)
    try:
        promotion = get_promotion(promotion_id, session)

        for key, value in parsed.items():
            if key not in ('actions', 'code', 'category_ids', 'product_ids'):
                setattr(promotion, key, value)

        if 'actions' in parsed:
            promotion.actions = [PromotionAction(**a) for a in parsed['actions']]
        _check_consistency(promotion)

        if 'code' in parsed:
            _set_code(session, promotion, parsed['code'])

        if {'apply_scope', 'category_ids', 'product_ids'} & set(parsed):
            _set_targets(session, promotion, parsed.get('category_ids', []), parsed.get('product_ids', []))

        session.commit()
        logger.info(f"[PROMO] Updated promotion {promotion.id}")
    except (BusinessLogicError, NotFoundError) as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def toggle_promotion(promotion_id: int, session: Session) -> bool:
    """Flip is_active and return the new value."""
    try:
        promotion = get_promotion(promotion_id, session)
        promotion.is_active = not promotion.is_active
        session.commit()
        logger.info(f"[PROMO] Promotion {promotion.id} is_active={promotion.is_active}")
        return promotion.is_active
    except NotFoundError as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def delete_promotion(promotion_id: int, session: Session) -> None:
    """Soft delete: the row and its redemption history stay, the engine no longer sees it."""
    try:
        promotion = get_promotion(promotion_id, session)
        promotion.deleted_at = datetime.now()
        promotion.is_active = False
        session.commit()
        logger.info(f"[PROMO] Deleted promotion {promotion.id}")
    except NotFoundError as e:
        session.rollback()
        raise e
    except Exception:
        session.rollback()
        raise


def list_promotions(session: Session, search: Optional[str] = None, promotion_type: Optional[str] = None,
                    active: Optional[str] = None) -> List[Promotion]:
    """
    Non-deleted promotions, newest first.

    search matches name, description or any code; active is '1' or '0'.
    """
    query = session.query(Promotion).filter(Promotion.deleted_at.is_(None))

    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(or_(
            Promotion.name.ilike(pattern),
            Promotion.description.ilike(pattern),
            Promotion.codes.any(PromotionCode.code.ilike(pattern)),
        ))
    if promotion_type:
        query = query.filter(Promotion.type == promotion_type)
    if active == '1':
        query = query.filter(Promotion.is_active.is_(True))
    elif active == '0':
        query = query.filter(Promotion.is_active.is_(False))

    return query.order_by(Promotion.created_at.desc(), Promotion.id.desc()).all()
