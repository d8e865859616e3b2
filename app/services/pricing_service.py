"""
Pricing engine for salon checkouts.

Pure functions and immutable value objects: a cart of line items plus the
discount/coupon/tax selection goes in, a fully itemized PricedInvoice comes
out. No database access, no clock.

All money is integer minor currency units (paise). Rounding is round-half-up
to the minor unit everywhere.
"""
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Optional, Tuple

from app.exceptions import BusinessLogicError, InvalidDiscountError, InvalidLineItemError


class ItemKind(str, Enum):
    SERVICE = 'service'
    PRODUCT = 'product'


class DiscountScope(str, Enum):
    SERVICES = 'services'
    PRODUCTS = 'products'


class DiscountMode(str, Enum):
    PERCENT = 'percent'
    FIXED = 'fixed'


HUNDRED = Decimal('100')


def round_half_up(value) -> int:
    """Round a Decimal (or int) to the nearest minor unit, halves away from zero."""
    return int(Decimal(value).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent) -> int:
    """round_half_up(amount * percent / 100)."""
    return round_half_up(Decimal(amount) * Decimal(percent) / HUNDRED)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class LineItem:
    """One cart line. Services carry the performing staff member; products carry none."""

    kind: ItemKind
    ref_id: int
    name: str
    unit_price: int
    quantity: int = 1
    performing_staff_id: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.kind, ItemKind):
            try:
                object.__setattr__(self, 'kind', ItemKind(self.kind))
            except ValueError:
                raise InvalidLineItemError(f'Unknown item kind: {self.kind}', ref_id=self.ref_id)
        if not _is_int(self.unit_price) or self.unit_price < 0:
            raise InvalidLineItemError(
                f'Invalid price for {self.name}: must be a non-negative amount', ref_id=self.ref_id
            )
        if not _is_int(self.quantity) or self.quantity < 0:
            raise InvalidLineItemError(
                f'Invalid quantity for {self.name}: must be a non-negative integer', ref_id=self.ref_id
            )
        if self.kind == ItemKind.PRODUCT and self.performing_staff_id is not None:
            raise InvalidLineItemError(
                f'Product {self.name} cannot carry a performing staff member', ref_id=self.ref_id
            )

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> 'LineItem':
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'ref_id': self.ref_id,
            'name': self.name,
            'unit_price': self.unit_price,
            'quantity': self.quantity,
            'performing_staff_id': self.performing_staff_id,
            'line_total': self.line_total,
        }


@dataclass(frozen=True)
class DiscountSpec:
    """Manual discount for one scope. Percent in [0, 100]; fixed is an amount in minor units."""

    scope: DiscountScope
    mode: DiscountMode
    value: Decimal

    def __post_init__(self):
        try:
            object.__setattr__(self, 'scope', DiscountScope(self.scope))
            object.__setattr__(self, 'mode', DiscountMode(self.mode))
        except ValueError:
            raise InvalidDiscountError(f'Invalid discount: {self.scope!r}/{self.mode!r}')
        try:
            value = Decimal(str(self.value))
        except (InvalidOperation, ValueError):
            raise InvalidDiscountError(f'Invalid discount value: {self.value!r}')
        if not value.is_finite() or value < 0:
            raise InvalidDiscountError('Discount cannot be negative')
        if self.mode == DiscountMode.PERCENT and value > HUNDRED:
            raise InvalidDiscountError('Percentage discount cannot exceed 100%')
        if self.mode == DiscountMode.FIXED and value != value.to_integral_value():
            raise InvalidDiscountError('Fixed discount must be a whole number of minor units')
        object.__setattr__(self, 'value', value)

    def amount_for(self, subtotal: int) -> int:
        """Discount amount against a scope subtotal. Fixed values larger than the subtotal are clamped."""
        if self.mode == DiscountMode.PERCENT:
            return min(percent_of(subtotal, self.value), subtotal)
        return min(int(self.value), subtotal)

    def to_dict(self) -> dict:
        return {'scope': self.scope.value, 'mode': self.mode.value, 'value': str(self.value)}


@dataclass(frozen=True)
class AppliedCoupon:
    """A coupon accepted by the coupon validator, with its discount against the order value."""

    code: str
    discount_amount: int
    coupon_id: Optional[int] = None

    def __post_init__(self):
        if not _is_int(self.discount_amount) or self.discount_amount < 0:
            raise InvalidDiscountError('Coupon discount cannot be negative')


@dataclass(frozen=True)
class PricedInvoice:
    services_subtotal: int
    products_subtotal: int
    service_discount_amount: int
    product_discount_amount: int
    taxable_amount: int
    tax_percent: Decimal
    tax_amount: int
    final_amount: int
    line_items: Tuple[LineItem, ...] = ()
    coupon_code: Optional[str] = None
    coupon_discount_amount: int = 0

    @property
    def subtotal(self) -> int:
        return self.services_subtotal + self.products_subtotal

    @property
    def product_lines(self) -> Tuple[LineItem, ...]:
        return tuple(item for item in self.line_items if item.kind == ItemKind.PRODUCT)

    def to_dict(self) -> dict:
        return {
            'services_subtotal': self.services_subtotal,
            'products_subtotal': self.products_subtotal,
            'service_discount_amount': self.service_discount_amount,
            'product_discount_amount': self.product_discount_amount,
            'coupon_code': self.coupon_code,
            'coupon_discount_amount': self.coupon_discount_amount,
            'taxable_amount': self.taxable_amount,
            'tax_percent': str(self.tax_percent),
            'tax_amount': self.tax_amount,
            'final_amount': self.final_amount,
            'line_items': [item.to_dict() for item in self.line_items],
        }


def _check_scope(spec: Optional[DiscountSpec], scope: DiscountScope) -> None:
    if spec is not None and spec.scope != scope:
        raise InvalidDiscountError(f'Discount for {spec.scope.value} given where {scope.value} was expected')


def _split_coupon(amount: int, services_subtotal: int, products_subtotal: int) -> Tuple[int, int]:
    """Allocate a coupon discount across both scopes in proportion to their subtotals."""
    total = services_subtotal + products_subtotal
    amount = min(amount, total)
    if total == 0:
        return 0, 0
    service_share = min(
        round_half_up(Decimal(amount) * Decimal(services_subtotal) / Decimal(total)),
        services_subtotal
    )
    product_share = min(amount - service_share, products_subtotal)
    return service_share, product_share


def price(
    line_items: Iterable[LineItem],
    service_discount: Optional[DiscountSpec] = None,
    product_discount: Optional[DiscountSpec] = None,
    coupon: Optional[AppliedCoupon] = None,
    tax_percent=0
) -> PricedInvoice:
    """
    Price a cart.

    An applied coupon supersedes both manual discounts. Tax is applied once,
    after discounts, to the combined taxable amount.
    """
    items = tuple(line_items)
    _check_scope(service_discount, DiscountScope.SERVICES)
    _check_scope(product_discount, DiscountScope.PRODUCTS)

    try:
        tax_percent = Decimal(str(tax_percent))
    except (InvalidOperation, ValueError):
        raise BusinessLogicError(f'Invalid tax percent: {tax_percent!r}')
    if not tax_percent.is_finite() or tax_percent < 0:
        raise BusinessLogicError('Tax percent cannot be negative')

    services_subtotal = sum(i.line_total for i in items if i.kind == ItemKind.SERVICE)
    products_subtotal = sum(i.line_total for i in items if i.kind == ItemKind.PRODUCT)

    coupon_code = None
    coupon_amount = 0
    if coupon is not None:
        service_discount_amount, product_discount_amount = _split_coupon(
            coupon.discount_amount, services_subtotal, products_subtotal
        )
        coupon_code = coupon.code
        coupon_amount = service_discount_amount + product_discount_amount
    else:
        service_discount_amount = service_discount.amount_for(services_subtotal) if service_discount else 0
        product_discount_amount = product_discount.amount_for(products_subtotal) if product_discount else 0

    taxable_amount = (
        (services_subtotal - service_discount_amount)
        + (products_subtotal - product_discount_amount)
    )
    tax_amount = percent_of(taxable_amount, tax_percent)

    return PricedInvoice(
        services_subtotal=services_subtotal,
        products_subtotal=products_subtotal,
        service_discount_amount=service_discount_amount,
        product_discount_amount=product_discount_amount,
        taxable_amount=taxable_amount,
        tax_percent=tax_percent,
        tax_amount=tax_amount,
        final_amount=taxable_amount + tax_amount,
        line_items=items,
        coupon_code=coupon_code,
        coupon_discount_amount=coupon_amount,
    )


def parse_discount(scope: DiscountScope, payload) -> Optional[DiscountSpec]:
    """Build a DiscountSpec from a request payload like {"mode": "percent", "value": 10}."""
    if not payload:
        return None
    if not isinstance(payload, dict):
        raise InvalidDiscountError(f'Invalid {scope.value} discount')
    try:
        mode = DiscountMode(str(payload.get('mode', '')).lower())
    except ValueError:
        raise InvalidDiscountError(f'Invalid discount mode: {payload.get("mode")!r}')
    value = payload.get('value')
    if value is None or value == '':
        return None
    return DiscountSpec(scope, mode, value)


@dataclass(frozen=True)
class Cart:
    """
    Immutable cart snapshot.

    Every transition returns a new Cart. Item changes drop an applied coupon,
    so a coupon discount is never reused against a different order value.
    """

    items: Tuple[LineItem, ...] = ()
    service_discount: Optional[DiscountSpec] = None
    product_discount: Optional[DiscountSpec] = None
    coupon: Optional[AppliedCoupon] = None

    @property
    def services_subtotal(self) -> int:
        return sum(i.line_total for i in self.items if i.kind == ItemKind.SERVICE)

    @property
    def products_subtotal(self) -> int:
        return sum(i.line_total for i in self.items if i.kind == ItemKind.PRODUCT)

    @property
    def subtotal(self) -> int:
        """Order value a coupon is validated against."""
        return self.services_subtotal + self.products_subtotal

    @property
    def is_empty(self) -> bool:
        return not self.items

    def add_item(self, item: LineItem) -> 'Cart':
        key = (item.kind, item.ref_id, item.performing_staff_id)
        items = list(self.items)
        for index, existing in enumerate(items):
            if (existing.kind, existing.ref_id, existing.performing_staff_id) == key:
                items[index] = existing.with_quantity(existing.quantity + item.quantity)
                break
        else:
            items.append(item)
        return replace(self, items=tuple(items), coupon=None)

    def remove_item(self, kind: ItemKind, ref_id: int) -> 'Cart':
        items = tuple(i for i in self.items if not (i.kind == kind and i.ref_id == ref_id))
        return replace(self, items=items, coupon=None)

    def update_quantity(self, kind: ItemKind, ref_id: int, quantity: int) -> 'Cart':
        items = tuple(
            i.with_quantity(quantity) if (i.kind == kind and i.ref_id == ref_id) else i
            for i in self.items
        )
        return replace(self, items=items, coupon=None)

    def set_service_discount(self, mode: Optional[DiscountMode], value=0) -> 'Cart':
        spec = DiscountSpec(DiscountScope.SERVICES, mode, value) if mode else None
        return replace(self, service_discount=spec, coupon=None)

    def set_product_discount(self, mode: Optional[DiscountMode], value=0) -> 'Cart':
        spec = DiscountSpec(DiscountScope.PRODUCTS, mode, value) if mode else None
        return replace(self, product_discount=spec, coupon=None)

    def apply_coupon(self, coupon: AppliedCoupon) -> 'Cart':
        return replace(self, coupon=coupon, service_discount=None, product_discount=None)

    def remove_coupon(self) -> 'Cart':
        return replace(self, coupon=None)

    def price(self, tax_percent=0) -> PricedInvoice:
        return price(
            self.items,
            service_discount=self.service_discount,
            product_discount=self.product_discount,
            coupon=self.coupon,
            tax_percent=tax_percent,
        )
