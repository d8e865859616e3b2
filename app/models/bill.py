"""Bill model."""
from sqlalchemy import (
    Column, String, Integer, Numeric, Text, DateTime, Enum, ForeignKey, UniqueConstraint, event
)
from sqlalchemy.orm import relationship, object_session
from sqlalchemy.sql import func
from app.database import Base, BigInt
from app.exceptions import BusinessLogicError
import enum


class BillItemType(str, enum.Enum):
    """Bill line item type enum."""
    SERVICE = 'service'
    PRODUCT = 'product'


class InventoryStatus(enum.Enum):
    """Inventory deduction status of a bill."""
    NOT_REQUIRED = "NOT_REQUIRED"
    PENDING = "PENDING"
    DEDUCTED = "DEDUCTED"
    PARTIALLY_DEDUCTED = "PARTIALLY_DEDUCTED"


class Bill(Base):
    """Bill (committed sale). Append-only: every pricing field is frozen at commit."""

    __tablename__ = 'bill'
    __table_args__ = (
        UniqueConstraint('salon_id', 'idempotency_key', name='uq_bill_salon_idempotency_key'),
        UniqueConstraint('salon_id', 'invoice_number', name='uq_bill_salon_invoice_number'),
    )

    id = Column(BigInt, primary_key=True, autoincrement=True)
    salon_id = Column(BigInt, ForeignKey('salon.id'), nullable=False, index=True)
    invoice_number = Column(String(40), nullable=False)
    invoice_seq = Column(BigInt, nullable=False)
    idempotency_key = Column(String(128), nullable=False)

    billed_by_staff_id = Column(BigInt, ForeignKey('staff.id'), nullable=False)
    customer_id = Column(BigInt, ForeignKey('customer.id'), nullable=True)
    payment_method = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)

    # Pricing snapshot (minor units)
    services_subtotal = Column(BigInt, nullable=False, default=0)
    products_subtotal = Column(BigInt, nullable=False, default=0)
    service_discount_amount = Column(BigInt, nullable=False, default=0)
    product_discount_amount = Column(BigInt, nullable=False, default=0)
    taxable_amount = Column(BigInt, nullable=False, default=0)
    tax_percent = Column(Numeric(5, 2), nullable=False, default=0)
    tax_amount = Column(BigInt, nullable=False, default=0)
    final_amount = Column(BigInt, nullable=False, default=0)

    # Discount selection as submitted
    service_discount_mode = Column(String(10), nullable=True)
    service_discount_value = Column(Numeric(12, 2), nullable=True)
    product_discount_mode = Column(String(10), nullable=True)
    product_discount_value = Column(Numeric(12, 2), nullable=True)
    coupon_id = Column(BigInt, ForeignKey('coupon.id'), nullable=True)
    coupon_code = Column(String(50), nullable=True)
    coupon_discount_amount = Column(BigInt, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    salon = relationship('Salon')
    biller = relationship('Staff', foreign_keys=[billed_by_staff_id])
    customer = relationship('Customer', back_populates='bills')
    coupon = relationship('Coupon')
    lines = relationship('BillLine', back_populates='bill', cascade='all, delete-orphan', order_by='BillLine.id')
    inventory_state = relationship('BillInventoryState', uselist=False, back_populates='bill')

    @property
    def product_lines(self):
        return [line for line in self.lines if line.item_type == BillItemType.PRODUCT]

    @property
    def inventory_status(self):
        if self.inventory_state is None:
            return InventoryStatus.NOT_REQUIRED
        return self.inventory_state.status

    def pricing_dict(self):
        """Frozen pricing snapshot."""
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
        }

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_number': self.invoice_number,
            'billed_by_staff_id': self.billed_by_staff_id,
            'customer_id': self.customer_id,
            'payment_method': self.payment_method,
            'notes': self.notes,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'pricing': self.pricing_dict(),
            'lines': [line.to_dict() for line in self.lines],
            'inventory_status': self.inventory_status.value,
        }

    def __repr__(self):
        return f"<Bill(id={self.id}, invoice_number='{self.invoice_number}', final_amount={self.final_amount})>"


class BillLine(Base):
    """Bill line - one priced line item, frozen at commit."""

    __tablename__ = 'bill_line'

    id = Column(BigInt, primary_key=True, autoincrement=True)
    bill_id = Column(BigInt, ForeignKey('bill.id'), nullable=False, index=True)
    item_type = Column(Enum(BillItemType, name='bill_item_type'), nullable=False)
    item_id = Column(BigInt, nullable=False)
    item_name = Column(String(200), nullable=False)
    staff_id = Column(BigInt, ForeignKey('staff.id'), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(BigInt, nullable=False)
    line_total = Column(BigInt, nullable=False)

    # Relationships
    bill = relationship('Bill', back_populates='lines')
    staff = relationship('Staff')

    def to_dict(self):
        return {
            'item_type': self.item_type.value,
            'item_id': self.item_id,
            'item_name': self.item_name,
            'staff_id': self.staff_id,
            'quantity': self.quantity,
            'unit_price': self.unit_price,
            'line_total': self.line_total,
        }

    def __repr__(self):
        return f"<BillLine(id={self.id}, item='{self.item_name}', qty={self.quantity})>"


class BillInventoryState(Base):
    """Inventory deduction status of a product-carrying bill.

    Kept apart from Bill so the bill row itself never changes after commit.
    """

    __tablename__ = 'bill_inventory_state'

    bill_id = Column(BigInt, ForeignKey('bill.id'), primary_key=True)
    status = Column(Enum(InventoryStatus, name='inventory_status'), nullable=False, default=InventoryStatus.PENDING)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    bill = relationship('Bill', back_populates='inventory_state')

    def __repr__(self):
        return f"<BillInventoryState(bill_id={self.bill_id}, status={self.status.value})>"


@event.listens_for(Bill, 'before_update')
def _reject_bill_update(mapper, connection, target):
    """Bills are immutable once written."""
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise BusinessLogicError(f'Bill {target.id} is immutable')


@event.listens_for(BillLine, 'before_update')
def _reject_bill_line_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise BusinessLogicError(f'Bill line {target.id} is immutable')
