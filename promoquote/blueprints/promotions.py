"""Promotions blueprint: administration of the promotion catalog (JSON)."""
from flask import Blueprint, request, jsonify
from promoquote.database import get_session
from promoquote.exceptions import BusinessLogicError
from promoquote.services import promotion_service

promotions_bp = Blueprint('promotions', __name__, url_prefix='/promotions')


def _json_body():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise BusinessLogicError('Invalid JSON body')
    return payload


@promotions_bp.route('', methods=['GET'])
def list_promotions():
    """List promotions, filtered by ?search=, ?type= and ?active=1|0."""
    promotions = promotion_service.list_promotions(
        get_session(),
        search=request.args.get('search', '').strip() or None,
        promotion_type=request.args.get('type', '').strip() or None,
        active=request.args.get('active', '').strip() or None,
    )
    return jsonify({'promotions': [p.to_dict() for p in promotions]})


@promotions_bp.route('', methods=['POST'])
def create():
    db_session = get_session()
    promotion_id = promotion_service.create_promotion(_json_body(), db_session)
    return jsonify(promotion_service.get_promotion(promotion_id, db_session).to_dict()), 201


@promotions_bp.route('/<int:promotion_id>', methods=['GET'])
def detail(promotion_id):
    return jsonify(promotion_service.get_promotion(promotion_id, get_session()).to_dict())


@promotions_bp.route('/<int:promotion_id>', methods=['PUT'])
def update(promotion_id):
    db_session = get_session()
    promotion_service.update_promotion(promotion_id, _json_body(), db_session)
    return jsonify(promotion_service.get_promotion(promotion_id, db_session).to_dict())


@promotions_bp.route('/<int:promotion_id>/toggle', methods=['POST'])
def toggle(promotion_id):
    """Activate or deactivate a promotion."""
    is_active = promotion_service.toggle_promotion(promotion_id, get_session())
    return jsonify({'id': promotion_id, 'is_active': is_active})


@promotions_bp.route('/<int:promotion_id>', methods=['DELETE'])
def delete(promotion_id):
    """Soft delete; redemption history is kept."""
    promotion_service.delete_promotion(promotion_id, get_session())
    return jsonify({'status': 'deleted', 'id': promotion_id})
