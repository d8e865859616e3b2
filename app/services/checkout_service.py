"""
Checkout orchestrator - two-phase commit-then-deduct flow.

Phase 1 persists exactly one Bill per (salon, idempotency key): a unique
constraint decides the winner, and a retry or a lost race returns the
existing Bill. Phase 2 hands the product lines to the inventory coordinator;
whatever happens there, the committed sale stands and the response reports
"completed with warnings" instead of a failure.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Bill, BillLine, BillInventoryState, BillItemType, InventoryStatus, Customer, Salon
from app.exceptions import (
    SalonError, BusinessLogicError, NotFoundError, ValidationFailedError, CommitFailedError
)
from app.blueprints.metrics import checkout_total
from app.services.pricing_service import (
    PricedInvoice, DiscountSpec, DiscountScope, AppliedCoupon, ItemKind, price, parse_discount
)
from app.services.catalog_service import build_line_items, get_active_staff, get_stock_levels, optional_int
from app.services.coupon_service import validate_coupon, increment_usage, MSG_LIMIT_REACHED
from app.services.validation_service import ValidationProblem, ProblemCode, validate_cart, ensure_valid
from app.services.inventory_service import DeductionResult, apply_deduction, list_pending_bills
from app.services.invoice_service import next_invoice_number, find_bill_by_key

logger = logging.getLogger(__name__)

MAX_IDEMPOTENCY_KEY_LENGTH = 128


class CheckoutOutcome(str, Enum):
    COMPLETED = 'completed'
    COMPLETED_WITH_WARNINGS = 'completed_with_warnings'


class CheckoutResult:
    """Committed bill plus the state of its inventory deduction."""

    def __init__(self, bill: Bill, created: bool, deduction: Optional[DeductionResult] = None,
                 incomplete_products: Iterable[str] = ()):
        self.bill = bill
        self.created = created
        self.deduction = deduction
        self.incomplete_products = list(incomplete_products)

    @property
    def outcome(self) -> CheckoutOutcome:
        if self.incomplete_products:
            return CheckoutOutcome.COMPLETED_WITH_WARNINGS
        return CheckoutOutcome.COMPLETED

    @property
    def warning(self) -> Optional[str]:
        if not self.incomplete_products:
            return None
        return f"Sale recorded; inventory update incomplete for {', '.join(self.incomplete_products)}"

    def to_dict(self):
        return {
            'status': 'ok',
            'outcome': self.outcome.value,
            'created': self.created,
            'warning': self.warning,
            'bill': self.bill.to_dict(),
            'inventory': self.deduction.to_dict() if self.deduction else None,
        }


def _discount_snapshot(spec: Optional[DiscountSpec]):
    if spec is None:
        return None, None
    return spec.mode.value, spec.value


def commit_bill(
    session: Session,
    salon_id: int,
    priced: PricedInvoice,
    billed_by_staff_id: int,
    idempotency_key: str,
    payment_method: str,
    customer_id: Optional[int] = None,
    notes: Optional[str] = None,
    coupon: Optional[AppliedCoupon] = None,
    service_discount: Optional[DiscountSpec] = None,
    product_discount: Optional[DiscountSpec] = None,
    invoice_prefix: str = 'SALX',
    now: Optional[datetime] = None
) -> Tuple[Bill, bool]:
    """
    Persist a priced invoice as a Bill, exactly once per idempotency key.

    Returns:
        (bill, created) - created is False when the key already had a bill.

    Raises:
        ValidationFailedError: the coupon ran out of uses in the meantime
        CommitFailedError: nothing was written; safe to retry
    """
    existing = find_bill_by_key(session, salon_id, idempotency_key)
    if existing:
        return existing, False

    now = now or datetime.now()
    try:
        seq, invoice_number = next_invoice_number(session, salon_id, invoice_prefix, now)

        service_mode, service_value = _discount_snapshot(service_discount)
        product_mode, product_value = _discount_snapshot(product_discount)
        bill = Bill(
            salon_id=salon_id,
            invoice_number=invoice_number,
            invoice_seq=seq,
            idempotency_key=idempotency_key,
            billed_by_staff_id=billed_by_staff_id,
            customer_id=customer_id,
            payment_method=payment_method,
            notes=notes,
            services_subtotal=priced.services_subtotal,
            products_subtotal=priced.products_subtotal,
            service_discount_amount=priced.service_discount_amount,
            product_discount_amount=priced.product_discount_amount,
            taxable_amount=priced.taxable_amount,
            tax_percent=priced.tax_percent,
            tax_amount=priced.tax_amount,
            final_amount=priced.final_amount,
            service_discount_mode=None if coupon else service_mode,
            service_discount_value=None if coupon else service_value,
            product_discount_mode=None if coupon else product_mode,
            product_discount_value=None if coupon else product_value,
            coupon_id=coupon.coupon_id if coupon else None,
            coupon_code=priced.coupon_code,
            coupon_discount_amount=priced.coupon_discount_amount,
            created_at=now
        )
        for item in priced.line_items:
            bill.lines.append(BillLine(
                item_type=BillItemType(item.kind.value),
                item_id=item.ref_id,
                item_name=item.name,
                staff_id=item.performing_staff_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=item.line_total
            ))
        if any(item.quantity > 0 for item in priced.product_lines):
            bill.inventory_state = BillInventoryState(status=InventoryStatus.PENDING, attempts=0)
        session.add(bill)

        if coupon is not None and coupon.coupon_id is not None:
            if not increment_usage(session, coupon.coupon_id):
                session.rollback()
                raise ValidationFailedError([
                    ValidationProblem(ProblemCode.COUPON_REJECTED, MSG_LIMIT_REACHED)
                ])

        session.commit()

    except IntegrityError:
        session.rollback()
        existing = find_bill_by_key(session, salon_id, idempotency_key)
        if existing:
            logger.info(f"Checkout race on key {idempotency_key}: returning bill {existing.id}")
            return existing, False
        logger.exception(f"Bill commit failed for salon {salon_id}")
        raise CommitFailedError()

    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Bill commit failed for salon {salon_id}")
        raise CommitFailedError()

    logger.info(
        f"Checkout committed: bill {bill.id} ({invoice_number}) salon {salon_id} "
        f"final_amount={priced.final_amount}"
    )
    return bill, True


def _run_deduction(session: Session, salon_id: int, bill_id: int) -> Tuple[Optional[DeductionResult], list]:
    """Phase 2. Returns the deduction result and the names of products left undeducted."""
    try:
        deduction = apply_deduction(session, salon_id, bill_id)
    except (SalonError, SQLAlchemyError):
        session.rollback()
        logger.exception(f"Inventory deduction for bill {bill_id} did not complete")
        pending = list_pending_bills(session, salon_id=salon_id, bill_id=bill_id)
        names = [line['product_name'] for entry in pending for line in entry['missing_lines']]
        return None, names or ['all products']
    return deduction, [line.product_name for line in deduction.failed_lines]


def _replay(session: Session, salon_id: int, bill: Bill) -> CheckoutResult:
    """Answer a repeated submission with the bill it already created."""
    checkout_total.labels(outcome='replayed').inc()
    logger.info(f"Idempotent replay of bill {bill.id} ({bill.invoice_number})")

    status = bill.inventory_status
    if status == InventoryStatus.PENDING:
        # The first attempt stopped between commit and deduction
        deduction, incomplete = _run_deduction(session, salon_id, bill.id)
        return CheckoutResult(bill, created=False, deduction=deduction, incomplete_products=incomplete)
    if status == InventoryStatus.PARTIALLY_DEDUCTED:
        pending = list_pending_bills(session, salon_id=salon_id, bill_id=bill.id)
        names = [line['product_name'] for entry in pending for line in entry['missing_lines']]
        return CheckoutResult(bill, created=False, incomplete_products=names)
    return CheckoutResult(bill, created=False)


def checkout(
    session: Session,
    salon_id: int,
    payload: dict,
    idempotency_key: Optional[str],
    payment_methods: Iterable[str] = ('cash', 'upi', 'card'),
    invoice_prefix: str = 'SALX',
    default_tax_percent='0',
    now: Optional[datetime] = None
) -> CheckoutResult:
    """
    Price, validate, commit and deduct a cart.

    payload keys:
        services: [{"service_id", "staff_id"}], products: [{"product_id", "quantity"}],
        billed_by_staff_id, payment_method, customer_id, notes,
        service_discount / product_discount: {"mode": "percent"|"fixed", "value"},
        coupon_code

    Raises:
        ValidationFailedError: every failed rule, nothing written
        CommitFailedError: persistence failed, nothing written, retryable
    """
    key = (idempotency_key or '').strip()
    if not key:
        raise BusinessLogicError('Idempotency key is required', payload={'error': 'IDEMPOTENCY_KEY_REQUIRED'})
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise BusinessLogicError('Idempotency key is too long', payload={'error': 'IDEMPOTENCY_KEY_INVALID'})

    existing = find_bill_by_key(session, salon_id, key)
    if existing:
        return _replay(session, salon_id, existing)

    salon = session.get(Salon, salon_id)
    if not salon or not salon.active:
        raise NotFoundError('Salon not found')

    payload = payload or {}
    line_items = build_line_items(session, salon_id, payload.get('services'), payload.get('products'))
    service_discount = parse_discount(DiscountScope.SERVICES, payload.get('service_discount'))
    product_discount = parse_discount(DiscountScope.PRODUCTS, payload.get('product_discount'))

    biller_id = optional_int(payload.get('billed_by_staff_id'), 'billed_by_staff_id')
    customer_id = optional_int(payload.get('customer_id'), 'customer_id')
    payment_method = str(payload.get('payment_method') or '').strip().lower()
    notes = (payload.get('notes') or '').strip() or None

    # Invariants, all reported together
    active_staff_ids = [s.id for s in get_active_staff(session, salon_id)]
    stock_levels = get_stock_levels(
        session, salon_id, [i.ref_id for i in line_items if i.kind == ItemKind.PRODUCT]
    )
    problems = validate_cart(line_items, biller_id, active_staff_ids, stock_levels)

    if payment_method not in payment_methods:
        problems.append(ValidationProblem(
            ProblemCode.PAYMENT_METHOD_INVALID,
            f"Payment method must be one of: {', '.join(payment_methods)}"
        ))

    if customer_id is not None:
        customer = session.query(Customer).filter_by(id=customer_id, salon_id=salon_id).first()
        if not customer:
            problems.append(ValidationProblem(
                ProblemCode.CUSTOMER_NOT_FOUND, 'Customer not found', ref_id=customer_id
            ))

    coupon = None
    coupon_code = (payload.get('coupon_code') or '').strip()
    if coupon_code:
        order_value = sum(item.line_total for item in line_items)
        result = validate_coupon(session, salon_id, coupon_code, order_value, today=(now or datetime.now()).date())
        if result.valid:
            coupon = result.to_applied()
        else:
            problems.append(ValidationProblem(ProblemCode.COUPON_REJECTED, result.message))

    try:
        ensure_valid(problems)
    except ValidationFailedError as e:
        session.rollback()
        checkout_total.labels(outcome='validation_failed').inc()
        logger.info(f"Checkout rejected for salon {salon_id}: {e.message}")
        raise

    tax_percent = salon.gst_percentage if salon.gst_percentage is not None else default_tax_percent
    priced = price(
        line_items,
        service_discount=service_discount,
        product_discount=product_discount,
        coupon=coupon,
        tax_percent=tax_percent
    )

    try:
        bill, created = commit_bill(
            session, salon_id, priced,
            billed_by_staff_id=biller_id,
            idempotency_key=key,
            payment_method=payment_method,
            customer_id=customer_id,
            notes=notes,
            coupon=coupon,
            service_discount=service_discount,
            product_discount=product_discount,
            invoice_prefix=invoice_prefix,
            now=now
        )
    except ValidationFailedError:
        checkout_total.labels(outcome='validation_failed').inc()
        raise
    except CommitFailedError:
        checkout_total.labels(outcome='commit_failed').inc()
        raise

    if not created:
        return _replay(session, salon_id, bill)

    deduction, incomplete = None, []
    if bill.inventory_status == InventoryStatus.PENDING:
        deduction, incomplete = _run_deduction(session, salon_id, bill.id)

    result = CheckoutResult(bill, created=True, deduction=deduction, incomplete_products=incomplete)
    checkout_total.labels(outcome=result.outcome.value).inc()
    if incomplete:
        logger.warning(f"Bill {bill.id}: {result.warning}")
    return result
