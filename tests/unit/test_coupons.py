"""
Unit tests for coupon validation.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from app.models import Coupon, CouponDiscountType
from app.services.coupon_service import (
    compute_coupon_discount, evaluate_coupon, increment_usage, lookup_coupon, validate_coupon
)

TODAY = date(2026, 10, 19)


def coupon(**overrides):
    values = dict(
        id=1,
        salon_id=1,
        code='WELCOME10',
        discount_type=CouponDiscountType.PERCENTAGE,
        discount_value=Decimal('10'),
        min_order_value=0,
        max_discount=None,
        max_uses=None,
        used_count=0,
        valid_from=None,
        valid_until=None,
        is_active=True,
    )
    values.update(overrides)
    return Coupon(**values)


class TestComputeDiscount:
    """Percent/fixed semantics."""

    def test_percentage(self):
        assert compute_coupon_discount(coupon(), 70000) == 7000

    def test_percentage_rounds_half_up(self):
        # 10% of 1005 paise = 100.5 -> 101
        assert compute_coupon_discount(coupon(), 1005) == 101

    def test_percentage_capped_by_max_discount(self):
        assert compute_coupon_discount(coupon(max_discount=5000), 100000) == 5000

    def test_fixed_never_exceeds_order(self):
        fixed = coupon(discount_type=CouponDiscountType.FIXED, discount_value=Decimal('10000'))
        assert compute_coupon_discount(fixed, 25000) == 10000
        assert compute_coupon_discount(fixed, 4000) == 4000

    def test_zero_order(self):
        assert compute_coupon_discount(coupon(), 0) == 0


class TestEvaluateCoupon:
    """Rules are checked in order; the first failure decides the message."""

    def test_unknown_code(self):
        result = evaluate_coupon(None, 'nope', 50000, TODAY)
        assert result.valid is False
        assert result.message == 'Invalid coupon code'
        assert result.code == 'NOPE'
        assert result.discount_amount == 0

    def test_inactive(self):
        result = evaluate_coupon(coupon(is_active=False), 'welcome10', 50000, TODAY)
        assert result.message == 'Invalid coupon code'

    def test_not_yet_valid(self):
        result = evaluate_coupon(coupon(valid_from=TODAY + timedelta(days=1)), 'WELCOME10', 50000, TODAY)
        assert result.message == 'Coupon not yet valid'

    def test_expired(self):
        result = evaluate_coupon(coupon(valid_until=TODAY - timedelta(days=1)), 'WELCOME10', 50000, TODAY)
        assert result.message == 'Coupon has expired'

    def test_valid_on_last_day(self):
        result = evaluate_coupon(coupon(valid_until=TODAY), 'WELCOME10', 50000, TODAY)
        assert result.valid is True

    def test_usage_limit(self):
        result = evaluate_coupon(coupon(max_uses=5, used_count=5), 'WELCOME10', 50000, TODAY)
        assert result.message == 'Coupon usage limit reached'

    def test_minimum_order(self):
        result = evaluate_coupon(coupon(min_order_value=100000), 'WELCOME10', 50000, TODAY)
        assert result.valid is False
        assert result.message == 'Minimum order ₹1,000.00'

    def test_expiry_checked_before_minimum(self):
        result = evaluate_coupon(
            coupon(valid_until=TODAY - timedelta(days=3), min_order_value=100000), 'WELCOME10', 100, TODAY
        )
        assert result.message == 'Coupon has expired'

    def test_applied(self):
        result = evaluate_coupon(coupon(), 'welcome10', 70000, TODAY)
        assert result.valid is True
        assert result.message == 'Coupon applied!'
        assert result.discount_amount == 7000
        applied = result.to_applied()
        assert applied.code == 'WELCOME10'
        assert applied.discount_amount == 7000
        assert applied.coupon_id == 1

    def test_to_dict(self):
        data = evaluate_coupon(coupon(), 'WELCOME10', 70000, TODAY).to_dict()
        assert data['valid'] is True
        assert data['discount_type'] == 'percentage'
        assert data['discount_value'] == '10'


class TestCouponStore:
    """Lookups and usage counters against the database."""

    def test_lookup_is_case_insensitive(self, session, salon, welcome_coupon):
        found = lookup_coupon(session, salon.id, ' welcome10 ')
        assert found is not None
        assert found.id == welcome_coupon.id

    def test_lookup_is_salon_scoped(self, session, other_salon, welcome_coupon):
        assert lookup_coupon(session, other_salon.id, 'WELCOME10') is None

    def test_validate_never_increments_usage(self, session, salon, welcome_coupon):
        result = validate_coupon(session, salon.id, 'WELCOME10', 70000)
        assert result.valid is True
        assert session.get(Coupon, welcome_coupon.id).used_count == 0

    def test_validate_expired(self, session, salon, expired_coupon):
        result = validate_coupon(session, salon.id, 'old20', 70000)
        assert result.valid is False
        assert result.message == 'Coupon has expired'

    def test_increment_usage_respects_max_uses(self, session, make_coupon):
        limited = make_coupon('ONCE', max_uses=1)
        assert increment_usage(session, limited.id) is True
        session.commit()
        assert increment_usage(session, limited.id) is False
        session.commit()
        assert session.get(Coupon, limited.id).used_count == 1

    def test_increment_usage_unlimited(self, session, flat_coupon):
        for _ in range(3):
            assert increment_usage(session, flat_coupon.id) is True
        session.commit()
        assert session.get(Coupon, flat_coupon.id).used_count == 3
