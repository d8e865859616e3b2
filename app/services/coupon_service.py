"""
Coupon service - validates coupon codes against an order value.

Validation is read-only; usage counters are only incremented by the checkout
commit (see increment_usage).
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from app.models import Coupon, CouponDiscountType
from app.services.pricing_service import AppliedCoupon, percent_of
from app.utils.formatters import money_inr

logger = logging.getLogger(__name__)

MSG_INVALID = 'Invalid coupon code'
MSG_NOT_YET_VALID = 'Coupon not yet valid'
MSG_EXPIRED = 'Coupon has expired'
MSG_LIMIT_REACHED = 'Coupon usage limit reached'
MSG_APPLIED = 'Coupon applied!'


class CouponResult:
    """Outcome of validating a coupon code. A rejection is a result, not an error."""

    def __init__(self, code, valid, discount_amount=0, message='', coupon_id=None,
                 discount_type=None, discount_value=None):
        self.code = code
        self.valid = valid
        self.discount_amount = discount_amount
        self.message = message
        self.coupon_id = coupon_id
        self.discount_type = discount_type
        self.discount_value = discount_value

    @classmethod
    def rejected(cls, code, message):
        return cls(code=code, valid=False, discount_amount=0, message=message)

    def to_applied(self) -> AppliedCoupon:
        return AppliedCoupon(code=self.code, discount_amount=self.discount_amount, coupon_id=self.coupon_id)

    def to_dict(self):
        data = {
            'code': self.code,
            'valid': self.valid,
            'discount_amount': self.discount_amount,
            'message': self.message,
        }
        if self.valid:
            data['discount_type'] = self.discount_type
            data['discount_value'] = str(self.discount_value)
        return data

    def __repr__(self):
        return f"<CouponResult(code='{self.code}', valid={self.valid}, discount={self.discount_amount})>"


def normalize_code(code) -> str:
    return (code or '').strip().upper()


def compute_coupon_discount(coupon: Coupon, order_value: int) -> int:
    """
    Discount a coupon grants against an order value.

    Percentage coupons round half-up and respect max_discount; fixed coupons
    never exceed the order value.
    """
    if order_value <= 0:
        return 0
    if coupon.discount_type == CouponDiscountType.PERCENTAGE:
        amount = percent_of(order_value, Decimal(coupon.discount_value))
        if coupon.max_discount is not None:
            amount = min(amount, int(coupon.max_discount))
    else:
        amount = int(Decimal(coupon.discount_value))
    return max(0, min(amount, order_value))


def evaluate_coupon(coupon: Optional[Coupon], code: str, order_value: int, today: date) -> CouponResult:
    """Apply the coupon rules in order; the first failing rule decides the message."""
    code = normalize_code(code)
    if coupon is None or not coupon.is_active:
        return CouponResult.rejected(code, MSG_INVALID)

    if coupon.valid_from and today < coupon.valid_from:
        return CouponResult.rejected(code, MSG_NOT_YET_VALID)

    if coupon.valid_until and today > coupon.valid_until:
        return CouponResult.rejected(code, MSG_EXPIRED)

    if coupon.max_uses is not None and (coupon.used_count or 0) >= coupon.max_uses:
        return CouponResult.rejected(code, MSG_LIMIT_REACHED)

    min_order = int(coupon.min_order_value or 0)
    if order_value < min_order:
        return CouponResult.rejected(code, f'Minimum order {money_inr(min_order)}')

    return CouponResult(
        code=coupon.code,
        valid=True,
        discount_amount=compute_coupon_discount(coupon, order_value),
        message=MSG_APPLIED,
        coupon_id=coupon.id,
        discount_type=coupon.discount_type.value,
        discount_value=coupon.discount_value,
    )


def lookup_coupon(session: Session, salon_id: int, code: str) -> Optional[Coupon]:
    """Find a coupon of the salon by code, case-insensitively."""
    code = normalize_code(code)
    if not code:
        return None
    return session.query(Coupon).filter(
        Coupon.salon_id == salon_id,
        func.upper(Coupon.code) == code
    ).first()


def validate_coupon(session: Session, salon_id: int, code: str, order_value: int,
                    today: Optional[date] = None) -> CouponResult:
    """Validate a code against the current order value. Never increments usage."""
    if not isinstance(order_value, int) or isinstance(order_value, bool) or order_value < 0:
        return CouponResult.rejected(normalize_code(code), 'Invalid order value')

    coupon = lookup_coupon(session, salon_id, code)
    result = evaluate_coupon(coupon, code, order_value, today or date.today())
    logger.debug(f"Coupon {result.code} for salon {salon_id}: valid={result.valid} ({result.message})")
    return result


def increment_usage(session: Session, coupon_id: int) -> bool:
    """
    Consume one use of a coupon inside the caller's transaction.

    The conditional UPDATE keeps used_count within max_uses under concurrent
    checkouts. Returns False when no use was left. Does not commit.
    """
    result = session.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id)
        .where((Coupon.max_uses.is_(None)) | (Coupon.used_count < Coupon.max_uses))
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
