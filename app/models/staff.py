"""Staff model (read by the billing engine as the staff directory)."""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigInt


class Staff(Base):
    """Staff member of a salon. May bill checkouts and/or perform services."""

    __tablename__ = 'staff'

    id = Column(BigInt, primary_key=True, autoincrement=True)
    salon_id = Column(BigInt, ForeignKey('salon.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    role = Column(String(50), nullable=False, default='stylist')
    is_active = Column(Boolean, nullable=False, default=True)
    is_cashier = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    salon = relationship('Salon', back_populates='staff')

    def __repr__(self):
        return f"<Staff(id={self.id}, name='{self.name}', role='{self.role}')>"
