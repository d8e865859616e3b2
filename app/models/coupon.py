"""Coupon model."""
from sqlalchemy import Column, String, Boolean, Integer, Numeric, Date, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import validates
from sqlalchemy.sql import func
from app.database import Base, BigInt
import enum


class CouponDiscountType(str, enum.Enum):
    """Coupon discount type enum."""
    PERCENTAGE = 'percentage'
    FIXED = 'fixed'


class Coupon(Base):
    """Coupon code of a salon.

    ``discount_value`` is a percent for PERCENTAGE coupons and an amount in
    minor units for FIXED ones. ``max_discount`` caps percentage coupons.
    ``max_uses`` NULL means unlimited.
    """

    __tablename__ = 'coupon'
    __table_args__ = (
        UniqueConstraint('salon_id', 'code', name='uq_coupon_salon_code'),
    )

    id = Column(BigInt, primary_key=True, autoincrement=True)
    salon_id = Column(BigInt, ForeignKey('salon.id'), nullable=False, index=True)
    # Stored upper-case; lookups are case-insensitive
    code = Column(String(50), nullable=False)
    description = Column(String(255), nullable=True)
    discount_type = Column(Enum(CouponDiscountType, name='coupon_discount_type'), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    min_order_value = Column(BigInt, nullable=False, default=0)
    max_discount = Column(BigInt, nullable=True)
    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    valid_from = Column(Date, nullable=True)
    valid_until = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    @validates('code')
    def _normalize_code(self, key, value):
        return (value or '').strip().upper()

    @property
    def uses_left(self):
        """Remaining uses, or None when unlimited."""
        if self.max_uses is None:
            return None
        return max(self.max_uses - (self.used_count or 0), 0)

    def __repr__(self):
        return f"<Coupon(id={self.id}, code='{self.code}', type={self.discount_type.value})>"
