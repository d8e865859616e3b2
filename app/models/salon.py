"""Salon model - each salon is an isolated tenant of the billing engine."""
from sqlalchemy import Column, String, Boolean, Numeric, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigInt


class Salon(Base):
    """Salon (tenant)."""

    __tablename__ = 'salon'

    id = Column(BigInt, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    address = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    gst_number = Column(String(50), nullable=True)
    # Applied once to the taxable amount of every bill
    gst_percentage = Column(Numeric(5, 2), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    staff = relationship('Staff', back_populates='salon')

    def header_info(self) -> dict:
        """Salon header printed on invoices."""
        return {
            'name': self.name,
            'address': self.address or '',
            'phone': self.phone or '',
            'email': self.email or '',
            'gst_number': self.gst_number or '',
        }

    def __repr__(self):
        return f"<Salon(id={self.id}, name='{self.name}')>"
