"""
Coupons blueprint - coupon validation against the current order value.
"""
from flask import Blueprint, request, jsonify, g
from app.database import get_session
from app.middleware import require_salon
from app.exceptions import BusinessLogicError
from app.services.coupon_service import validate_coupon

coupons_bp = Blueprint('coupons', __name__, url_prefix='/coupons')


@coupons_bp.route('/validate', methods=['POST'])
@require_salon
def validate():
    """
    Validate a coupon code.

    Body: {"code": "WELCOME10", "order_value": 150000}  (order value in paise)

    A rejected code is a normal 200 response with valid=false and the reason.
    """
    payload = request.get_json(silent=True) or {}
    code = payload.get('code')
    order_value = payload.get('order_value')

    if not code:
        raise BusinessLogicError('Coupon code is required')
    if not isinstance(order_value, int) or isinstance(order_value, bool) or order_value < 0:
        raise BusinessLogicError('order_value must be a non-negative amount in paise')

    result = validate_coupon(get_session(), g.salon_id, code, order_value)
    data = result.to_dict()
    data['status'] = 'ok'
    return jsonify(data), 200
