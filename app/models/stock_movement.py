"""Stock Movement model."""
from sqlalchemy import Column, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigInt
import enum


class MovementType(enum.Enum):
    """Stock movement type enum."""
    BILLING_DEDUCTION = "BILLING_DEDUCTION"


class StockMovement(Base):
    """Stock Movement - append-only ledger, one row per product per bill."""

    __tablename__ = 'stock_movement'
    __table_args__ = (
        UniqueConstraint('billing_id', 'product_id', name='uq_stock_movement_bill_product'),
    )

    id = Column(BigInt, primary_key=True, autoincrement=True)
    salon_id = Column(BigInt, ForeignKey('salon.id'), nullable=False, index=True)
    product_id = Column(BigInt, ForeignKey('product.id'), nullable=False, index=True)
    billing_id = Column(BigInt, ForeignKey('bill.id'), nullable=False, index=True)
    quantity_change = Column(BigInt, nullable=False)
    quantity_before = Column(BigInt, nullable=False)
    quantity_after = Column(BigInt, nullable=False)
    movement_type = Column(
        Enum(MovementType, name='stock_movement_type'),
        nullable=False,
        default=MovementType.BILLING_DEDUCTION
    )
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    product = relationship('Product')
    bill = relationship('Bill')

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'billing_id': self.billing_id,
            'quantity_change': self.quantity_change,
            'quantity_before': self.quantity_before,
            'quantity_after': self.quantity_after,
            'movement_type': self.movement_type.value,
        }

    def __repr__(self):
        return (
            f"<StockMovement(id={self.id}, bill={self.billing_id}, product={self.product_id}, "
            f"change={self.quantity_change})>"
        )
