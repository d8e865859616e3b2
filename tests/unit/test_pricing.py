"""
Unit tests for the pricing engine and the Cart value object.
"""

import pytest
from decimal import Decimal

from app.exceptions import BusinessLogicError, InvalidDiscountError, InvalidLineItemError
from app.services.pricing_service import (
    AppliedCoupon, Cart, DiscountMode, DiscountScope, DiscountSpec, ItemKind, LineItem,
    parse_discount, percent_of, price, round_half_up
)


def service(ref_id=1, unit_price=50000, staff_id=7, name='Haircut', quantity=1):
    return LineItem(ItemKind.SERVICE, ref_id, name, unit_price, quantity, staff_id)


def product(ref_id=2, unit_price=10000, quantity=1, name='Shampoo'):
    return LineItem(ItemKind.PRODUCT, ref_id, name, unit_price, quantity)


class TestRounding:
    """Round-half-up on minor units."""

    def test_half_rounds_up(self):
        assert round_half_up(Decimal('2.5')) == 3
        assert round_half_up(Decimal('3.5')) == 4

    def test_below_half_rounds_down(self):
        assert round_half_up(Decimal('2.49')) == 2

    def test_percent_of(self):
        """18% of 650.00 is exactly 117.00; 18% of 0.05 rounds to 0.01."""
        assert percent_of(65000, Decimal('18')) == 11700
        assert percent_of(5, Decimal('18')) == 1


class TestLineItem:
    """LineItem validation."""

    def test_line_total(self):
        assert product(quantity=3).line_total == 30000

    def test_zero_price_and_quantity_are_valid(self):
        assert product(unit_price=0).line_total == 0
        assert product(quantity=0).line_total == 0

    def test_negative_price_rejected(self):
        with pytest.raises(InvalidLineItemError):
            product(unit_price=-1)

    def test_negative_quantity_rejected(self):
        with pytest.raises(InvalidLineItemError) as exc:
            product(quantity=-2)
        assert exc.value.status_code == 400
        assert exc.value.payload['error'] == 'INVALID_LINE_ITEM'

    def test_fractional_price_rejected(self):
        with pytest.raises(InvalidLineItemError):
            LineItem(ItemKind.PRODUCT, 1, 'Oil', 100.5, 1)

    def test_product_cannot_carry_staff(self):
        with pytest.raises(InvalidLineItemError):
            LineItem(ItemKind.PRODUCT, 1, 'Oil', 100, 1, performing_staff_id=3)

    def test_kind_accepts_string(self):
        item = LineItem('service', 1, 'Haircut', 100, 1, 3)
        assert item.kind is ItemKind.SERVICE


class TestDiscountSpec:
    """Manual discount ranges."""

    def test_percent_above_100_rejected(self):
        with pytest.raises(InvalidDiscountError):
            DiscountSpec(DiscountScope.SERVICES, DiscountMode.PERCENT, 101)

    def test_negative_rejected(self):
        with pytest.raises(InvalidDiscountError):
            DiscountSpec(DiscountScope.PRODUCTS, DiscountMode.FIXED, -100)

    def test_fixed_clamped_to_subtotal(self):
        spec = DiscountSpec(DiscountScope.SERVICES, DiscountMode.FIXED, 100000)
        assert spec.amount_for(60000) == 60000

    def test_percent_rounds_half_up(self):
        spec = DiscountSpec(DiscountScope.SERVICES, DiscountMode.PERCENT, '12.5')
        # 12.5% of 100 paise = 12.5 -> 13
        assert spec.amount_for(100) == 13
        # 12.5% of 0.20 = 2.5 paise -> 3
        assert spec.amount_for(20) == 3

    def test_parse_discount(self):
        spec = parse_discount(DiscountScope.SERVICES, {'mode': 'PERCENT', 'value': 10})
        assert spec.mode is DiscountMode.PERCENT
        assert spec.value == Decimal('10')
        assert parse_discount(DiscountScope.SERVICES, None) is None

    def test_parse_discount_bad_mode(self):
        with pytest.raises(InvalidDiscountError):
            parse_discount(DiscountScope.PRODUCTS, {'mode': 'bogus', 'value': 10})


class TestPrice:
    """price() totals and invariants."""

    def test_reference_scenario(self):
        """₹500 service + 2 x ₹100 product, 10% service discount, 18% tax -> ₹767."""
        priced = price(
            [service(), product(quantity=2)],
            service_discount=DiscountSpec(DiscountScope.SERVICES, DiscountMode.PERCENT, 10),
            tax_percent=18
        )
        assert priced.services_subtotal == 50000
        assert priced.service_discount_amount == 5000
        assert priced.products_subtotal == 20000
        assert priced.product_discount_amount == 0
        assert priced.taxable_amount == 65000
        assert priced.tax_amount == 11700
        assert priced.final_amount == 76700

    def test_fixed_discount_clamps(self):
        """Fixed ₹1000 off a ₹600 service subtotal clamps to ₹600."""
        priced = price(
            [service(unit_price=60000)],
            service_discount=DiscountSpec(DiscountScope.SERVICES, DiscountMode.FIXED, 100000),
            tax_percent=18
        )
        assert priced.service_discount_amount == 60000
        assert priced.taxable_amount == 0
        assert priced.tax_amount == 0
        assert priced.final_amount == 0

    def test_empty_cart(self):
        priced = price([])
        assert priced.final_amount == 0
        assert priced.taxable_amount == 0
        assert priced.line_items == ()

    def test_discounts_are_scoped(self):
        priced = price(
            [service(), product(quantity=2)],
            service_discount=DiscountSpec(DiscountScope.SERVICES, DiscountMode.FIXED, 1000),
            product_discount=DiscountSpec(DiscountScope.PRODUCTS, DiscountMode.PERCENT, 50),
        )
        assert priced.service_discount_amount == 1000
        assert priced.product_discount_amount == 10000
        assert priced.taxable_amount == 49000 + 10000

    def test_scope_mismatch_rejected(self):
        with pytest.raises(InvalidDiscountError):
            price([service()], service_discount=DiscountSpec(DiscountScope.PRODUCTS, DiscountMode.FIXED, 10))

    def test_coupon_supersedes_manual_discounts(self):
        priced = price(
            [service(), product(quantity=2)],
            service_discount=DiscountSpec(DiscountScope.SERVICES, DiscountMode.PERCENT, 50),
            coupon=AppliedCoupon('FLAT100', 7000),
        )
        assert priced.coupon_code == 'FLAT100'
        assert priced.coupon_discount_amount == 7000
        # 7000 split 500:200 across scopes
        assert priced.service_discount_amount == 5000
        assert priced.product_discount_amount == 2000
        assert priced.taxable_amount == 70000 - 7000

    def test_coupon_larger_than_order_is_clamped(self):
        priced = price([product(unit_price=3000)], coupon=AppliedCoupon('BIG', 10000))
        assert priced.product_discount_amount == 3000
        assert priced.final_amount == 0

    def test_tax_applied_once_after_discounts(self):
        priced = price(
            [service(unit_price=33333), product(unit_price=33333)],
            product_discount=DiscountSpec(DiscountScope.PRODUCTS, DiscountMode.FIXED, 333),
            tax_percent='18'
        )
        assert priced.tax_amount == percent_of(priced.taxable_amount, 18)
        assert priced.final_amount == priced.taxable_amount + priced.tax_amount

    def test_negative_tax_rejected(self):
        with pytest.raises(BusinessLogicError):
            price([service()], tax_percent=-1)

    def test_deterministic(self):
        items = [service(), product(quantity=3)]
        assert price(items, tax_percent=5) == price(items, tax_percent=5)

    def test_to_dict(self):
        data = price([service()], tax_percent=18).to_dict()
        assert data['final_amount'] == 59000
        assert data['tax_percent'] == '18'
        assert data['line_items'][0]['kind'] == 'service'

    @pytest.mark.parametrize('svc_price,prod_price,mode,value', [
        (50000, 20000, DiscountMode.PERCENT, 100),
        (999, 1, DiscountMode.FIXED, 5000),
        (12345, 0, DiscountMode.PERCENT, '33.33'),
        (0, 777, DiscountMode.FIXED, 1),
    ])
    def test_invariants(self, svc_price, prod_price, mode, value):
        priced = price(
            [service(unit_price=svc_price), product(unit_price=prod_price)],
            service_discount=DiscountSpec(DiscountScope.SERVICES, mode, value),
            product_discount=DiscountSpec(DiscountScope.PRODUCTS, mode, value),
            tax_percent='12.5'
        )
        assert 0 <= priced.service_discount_amount <= priced.services_subtotal
        assert 0 <= priced.product_discount_amount <= priced.products_subtotal
        assert priced.taxable_amount == (
            priced.services_subtotal - priced.service_discount_amount
            + priced.products_subtotal - priced.product_discount_amount
        )
        assert priced.final_amount == priced.taxable_amount + priced.tax_amount


class TestCart:
    """Cart transitions return new snapshots."""

    def test_add_item_returns_new_cart(self):
        cart = Cart()
        updated = cart.add_item(service())
        assert cart.is_empty
        assert len(updated.items) == 1

    def test_add_same_product_merges_quantity(self):
        cart = Cart().add_item(product(quantity=1)).add_item(product(quantity=2))
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 3

    def test_item_change_clears_coupon(self):
        cart = Cart().add_item(service()).apply_coupon(AppliedCoupon('FLAT100', 10000))
        assert cart.coupon is not None
        assert cart.add_item(product()).coupon is None
        assert cart.remove_item(ItemKind.SERVICE, 1).coupon is None
        assert cart.update_quantity(ItemKind.SERVICE, 1, 2).coupon is None

    def test_coupon_zeroes_manual_discounts(self):
        cart = (
            Cart()
            .add_item(service())
            .set_service_discount(DiscountMode.PERCENT, 10)
            .set_product_discount(DiscountMode.FIXED, 500)
            .apply_coupon(AppliedCoupon('FLAT100', 10000))
        )
        assert cart.service_discount is None
        assert cart.product_discount is None
        assert cart.price().service_discount_amount == 10000

    def test_manual_discount_removes_coupon(self):
        cart = Cart().add_item(service()).apply_coupon(AppliedCoupon('FLAT100', 10000))
        cart = cart.set_service_discount(DiscountMode.FIXED, 2000)
        assert cart.coupon is None
        assert cart.price().service_discount_amount == 2000

    def test_update_quantity_validates(self):
        cart = Cart().add_item(product())
        with pytest.raises(InvalidLineItemError):
            cart.update_quantity(ItemKind.PRODUCT, 2, -1)

    def test_price_matches_function(self):
        cart = (
            Cart()
            .add_item(service())
            .add_item(product(quantity=2))
            .set_service_discount(DiscountMode.PERCENT, 10)
        )
        assert cart.subtotal == 70000
        assert cart.price(tax_percent=18).final_amount == 76700

    def test_remove_coupon(self):
        cart = Cart().add_item(service()).apply_coupon(AppliedCoupon('FLAT100', 10000)).remove_coupon()
        assert cart.coupon is None
        assert cart.price().final_amount == 50000
