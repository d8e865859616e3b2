"""Customer model."""
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigInt


class Customer(Base):
    """Customer of a salon."""

    __tablename__ = 'customer'

    id = Column(BigInt, primary_key=True, autoincrement=True)
    salon_id = Column(BigInt, ForeignKey('salon.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    salon = relationship('Salon')
    bills = relationship('Bill', back_populates='customer')

    def __repr__(self):
        return f"<Customer(id={self.id}, name='{self.name}')>"
