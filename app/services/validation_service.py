"""
Invariant validator - rules that must hold before a sale is committed.

Every rule reports problems instead of raising, and validate_cart collects
all of them so the cashier sees the full list at once. Stock checks here are
advisory; the atomic decrement in inventory_service is what prevents
overselling under concurrency.
"""
from enum import Enum
from typing import Dict, Iterable, List, Optional

from app.exceptions import ValidationFailedError
from app.services.pricing_service import LineItem, ItemKind


class ProblemCode(str, Enum):
    EMPTY_CART = 'EMPTY_CART'
    BILLER_REQUIRED = 'BILLER_REQUIRED'
    STAFF_ATTRIBUTION_REQUIRED = 'STAFF_ATTRIBUTION_REQUIRED'
    INSUFFICIENT_STOCK = 'INSUFFICIENT_STOCK'
    PAYMENT_METHOD_INVALID = 'PAYMENT_METHOD_INVALID'
    COUPON_REJECTED = 'COUPON_REJECTED'
    CUSTOMER_NOT_FOUND = 'CUSTOMER_NOT_FOUND'


class ValidationProblem:
    """One failed rule."""

    def __init__(self, code: ProblemCode, message: str, ref_id=None, available=None):
        self.code = code
        self.message = message
        self.ref_id = ref_id
        self.available = available

    def to_dict(self):
        data = {'code': self.code.value, 'message': self.message}
        if self.ref_id is not None:
            data['ref_id'] = self.ref_id
        if self.available is not None:
            data['available'] = self.available
        return data

    def __repr__(self):
        return f"<ValidationProblem({self.code.value}: {self.message})>"


def check_biller(biller_id: Optional[int], active_staff_ids: Iterable[int]) -> List[ValidationProblem]:
    if not biller_id:
        return [ValidationProblem(ProblemCode.BILLER_REQUIRED, 'Please select who is billing')]
    if biller_id not in set(active_staff_ids):
        return [ValidationProblem(
            ProblemCode.BILLER_REQUIRED, 'Billing staff member is not active', ref_id=biller_id
        )]
    return []


def check_staff_attribution(line_items: Iterable[LineItem], active_staff_ids: Iterable[int]) -> List[ValidationProblem]:
    """Every service line needs a performing staff member drawn from active staff."""
    active = set(active_staff_ids)
    problems = []
    for item in line_items:
        if item.kind != ItemKind.SERVICE:
            continue
        if not item.performing_staff_id:
            problems.append(ValidationProblem(
                ProblemCode.STAFF_ATTRIBUTION_REQUIRED,
                f'Please select staff for {item.name}',
                ref_id=item.ref_id
            ))
        elif item.performing_staff_id not in active:
            problems.append(ValidationProblem(
                ProblemCode.STAFF_ATTRIBUTION_REQUIRED,
                f'Selected staff for {item.name} is not active',
                ref_id=item.ref_id
            ))
    return problems


def check_stock(line_items: Iterable[LineItem], stock_levels: Dict[int, int]) -> List[ValidationProblem]:
    """Requested product quantities (summed per product) must not exceed current stock."""
    requested = {}
    names = {}
    for item in line_items:
        if item.kind != ItemKind.PRODUCT:
            continue
        requested[item.ref_id] = requested.get(item.ref_id, 0) + item.quantity
        names[item.ref_id] = item.name

    problems = []
    for product_id, qty in requested.items():
        available = stock_levels.get(product_id, 0)
        if qty > available:
            problems.append(ValidationProblem(
                ProblemCode.INSUFFICIENT_STOCK,
                f'Insufficient stock for {names[product_id]}. Available: {available}, Requested: {qty}',
                ref_id=product_id,
                available=available
            ))
    return problems


def validate_cart(
    line_items: Iterable[LineItem],
    biller_id: Optional[int],
    active_staff_ids: Iterable[int],
    stock_levels: Dict[int, int]
) -> List[ValidationProblem]:
    """Run every rule and return all problems found (empty list when the cart is valid)."""
    items = list(line_items)
    active = set(active_staff_ids)
    problems = []
    if not items:
        problems.append(ValidationProblem(ProblemCode.EMPTY_CART, 'Cart is empty'))
    problems.extend(check_biller(biller_id, active))
    problems.extend(check_staff_attribution(items, active))
    problems.extend(check_stock(items, stock_levels))
    return problems


def ensure_valid(problems: List[ValidationProblem]) -> None:
    if problems:
        raise ValidationFailedError(problems)
