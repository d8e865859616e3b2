"""
Inventory deduction coordinator.

Applies the stock decrements of a committed bill. Each product line runs in
its own transaction: lock the stock row, conditionally decrement it and write
one StockMovement. The (billing_id, product_id) uniqueness makes a re-run a
no-op, and an underflowing line is reported as failed with stock untouched.
A failed line never affects the bill or the other lines.
"""
import logging
from enum import Enum
from typing import Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import (
    Bill, BillInventoryState, BillItemType, InventoryStatus,
    ProductStock, StockMovement, MovementType
)
from app.exceptions import NotFoundError, InvalidLineItemError
from app.blueprints.metrics import inventory_deduction_lines_total

logger = logging.getLogger(__name__)


class LineOutcome(str, Enum):
    DEDUCTED = 'deducted'
    ALREADY_DEDUCTED = 'already_deducted'
    FAILED = 'failed'


class LineDeduction:
    """Outcome of one product line."""

    def __init__(self, product_id, product_name, quantity, outcome, movement=None, available=None, error=None):
        self.product_id = product_id
        self.product_name = product_name
        self.quantity = quantity
        self.outcome = outcome
        self.movement = movement
        self.available = available
        self.error = error

    @property
    def ok(self):
        return self.outcome != LineOutcome.FAILED

    def to_dict(self):
        data = {
            'product_id': self.product_id,
            'product_name': self.product_name,
            'quantity': self.quantity,
            'outcome': self.outcome.value,
        }
        if self.movement is not None:
            data['movement'] = self.movement
        if self.available is not None:
            data['available'] = self.available
        if self.error:
            data['error'] = self.error
        return data


class DeductionResult:
    """Per-line outcomes of one apply run plus the bill's resulting inventory status."""

    def __init__(self, bill_id: int, lines: List[LineDeduction], status: InventoryStatus):
        self.bill_id = bill_id
        self.lines = lines
        self.status = status

    @property
    def failed_lines(self) -> List[LineDeduction]:
        return [line for line in self.lines if not line.ok]

    @property
    def complete(self) -> bool:
        return not self.failed_lines

    def to_dict(self):
        return {
            'bill_id': self.bill_id,
            'inventory_status': self.status.value,
            'complete': self.complete,
            'lines': [line.to_dict() for line in self.lines],
        }


def product_lines_for_bill(bill: Bill) -> Dict[int, Tuple[str, int]]:
    """product_id -> (name, total quantity) for the bill's product lines. Zero quantities are skipped."""
    lines = {}
    for line in bill.lines:
        if line.item_type != BillItemType.PRODUCT or line.quantity <= 0:
            continue
        name, qty = lines.get(line.item_id, (line.item_name, 0))
        lines[line.item_id] = (name, qty + line.quantity)
    return lines


def _normalize_requested(product_lines) -> Dict[int, int]:
    requested = {}
    for entry in product_lines:
        if isinstance(entry, dict):
            product_id, qty = entry.get('product_id'), entry.get('quantity')
        else:
            product_id, qty = entry
        try:
            product_id, qty = int(product_id), int(qty)
        except (TypeError, ValueError):
            raise InvalidLineItemError(f'Invalid product line: {entry!r}')
        if qty < 0:
            raise InvalidLineItemError('Quantity cannot be negative', ref_id=product_id)
        if qty == 0:
            continue
        requested[product_id] = requested.get(product_id, 0) + qty
    return requested


def _existing_movement(session: Session, bill_id: int, product_id: int) -> Optional[StockMovement]:
    return session.query(StockMovement).filter_by(billing_id=bill_id, product_id=product_id).first()


def _deduct_line(session: Session, salon_id: int, bill_id: int, product_id: int,
                 name: str, quantity: int) -> LineDeduction:
    """Deduct one product line in its own transaction."""
    try:
        existing = _existing_movement(session, bill_id, product_id)
        if existing:
            movement_id = existing.id
            session.rollback()
            return LineDeduction(product_id, name, quantity, LineOutcome.ALREADY_DEDUCTED, movement=movement_id)

        stock = session.query(ProductStock).filter(
            ProductStock.product_id == product_id
        ).with_for_update().first()
        before = int(stock.on_hand_qty) if stock else 0

        if before < quantity:
            session.rollback()
            return LineDeduction(
                product_id, name, quantity, LineOutcome.FAILED,
                available=before, error=f'Insufficient stock for {name}. Available: {before}, Requested: {quantity}'
            )

        result = session.execute(
            update(ProductStock)
            .where(ProductStock.product_id == product_id)
            .where(ProductStock.on_hand_qty >= quantity)
            .values(on_hand_qty=ProductStock.on_hand_qty - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            return LineDeduction(
                product_id, name, quantity, LineOutcome.FAILED,
                available=before, error=f'Insufficient stock for {name}'
            )

        movement = StockMovement(
            salon_id=salon_id,
            product_id=product_id,
            billing_id=bill_id,
            quantity_change=-quantity,
            quantity_before=before,
            quantity_after=before - quantity,
            movement_type=MovementType.BILLING_DEDUCTION
        )
        session.add(movement)
        session.flush()
        movement_id = movement.id
        session.commit()
        return LineDeduction(product_id, name, quantity, LineOutcome.DEDUCTED, movement=movement_id)

    except IntegrityError as e:
        session.rollback()
        # Lost a race with another run of the same bill
        existing = _existing_movement(session, bill_id, product_id)
        movement_id = existing.id if existing else None
        session.rollback()
        if movement_id is not None:
            return LineDeduction(product_id, name, quantity, LineOutcome.ALREADY_DEDUCTED, movement=movement_id)
        return LineDeduction(product_id, name, quantity, LineOutcome.FAILED, error=str(e.orig))

    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"Stock update failed for bill {bill_id}, product {product_id}")
        return LineDeduction(product_id, name, quantity, LineOutcome.FAILED, error=str(e))


def _record_status(session: Session, bill_id: int, result_lines: List[LineDeduction],
                   expected: Dict[int, Tuple[str, int]]) -> InventoryStatus:
    if not expected:
        return InventoryStatus.NOT_REQUIRED

    failed = [line for line in result_lines if not line.ok]
    status = InventoryStatus.PARTIALLY_DEDUCTED if failed else InventoryStatus.DEDUCTED

    state = session.query(BillInventoryState).filter_by(bill_id=bill_id).first()
    if state is None:
        state = BillInventoryState(bill_id=bill_id, attempts=0)
        session.add(state)
    state.status = status
    state.attempts = (state.attempts or 0) + 1
    state.last_error = '; '.join(line.error or line.product_name for line in failed) or None
    session.commit()
    return status


def apply_deduction(
    session: Session,
    salon_id: int,
    bill_id: int,
    product_lines=None
) -> DeductionResult:
    """
    Apply the stock deduction of a committed bill. Safe to repeat.

    product_lines, when given, must match the bill's own product lines
    (iterable of {"product_id", "quantity"} or (product_id, quantity)).

    Returns:
        DeductionResult with one outcome per product line. Oversold lines are
        reported as FAILED, never raised.
    """
    bill = session.query(Bill).filter_by(id=bill_id, salon_id=salon_id).first()
    if not bill:
        raise NotFoundError(f'Bill {bill_id} not found')

    expected = product_lines_for_bill(bill)
    if product_lines is not None:
        requested = _normalize_requested(product_lines)
        if requested != {pid: qty for pid, (_, qty) in expected.items()}:
            session.rollback()
            raise InvalidLineItemError(f'Product lines do not match bill {bill_id}')
    session.rollback()

    lines = []
    for product_id, (name, quantity) in expected.items():
        line = _deduct_line(session, salon_id, bill_id, product_id, name, quantity)
        inventory_deduction_lines_total.labels(result=line.outcome.value).inc()
        if not line.ok:
            logger.warning(f"Bill {bill_id}: deduction failed for product {product_id} ({name}): {line.error}")
        lines.append(line)

    try:
        status = _record_status(session, bill_id, lines, expected)
    except SQLAlchemyError:
        session.rollback()
        logger.exception(f"Could not record inventory status for bill {bill_id}")
        raise

    if status == InventoryStatus.PARTIALLY_DEDUCTED:
        failed_count = len([line for line in lines if not line.ok])
        logger.warning(f"Bill {bill_id} partially deducted: {failed_count} line(s) failed")
    return DeductionResult(bill_id, lines, status)


def list_pending_bills(session: Session, salon_id: Optional[int] = None, bill_id: Optional[int] = None) -> List[dict]:
    """Bills whose inventory is PENDING or PARTIALLY_DEDUCTED, with the product lines still lacking a movement."""
    query = session.query(Bill).join(BillInventoryState, BillInventoryState.bill_id == Bill.id).filter(
        BillInventoryState.status.in_([InventoryStatus.PENDING, InventoryStatus.PARTIALLY_DEDUCTED])
    )
    if salon_id is not None:
        query = query.filter(Bill.salon_id == salon_id)
    if bill_id is not None:
        query = query.filter(Bill.id == bill_id)

    pending = []
    for bill in query.order_by(Bill.id).all():
        done = {
            row.product_id
            for row in session.query(StockMovement.product_id).filter(StockMovement.billing_id == bill.id)
        }
        missing = [
            {'product_id': pid, 'product_name': name, 'quantity': qty}
            for pid, (name, qty) in product_lines_for_bill(bill).items()
            if pid not in done
        ]
        state = bill.inventory_state
        pending.append({
            'bill_id': bill.id,
            'salon_id': bill.salon_id,
            'invoice_number': bill.invoice_number,
            'inventory_status': state.status.value,
            'attempts': state.attempts,
            'last_error': state.last_error,
            'missing_lines': missing,
        })
    return pending
