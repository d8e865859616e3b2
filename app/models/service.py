"""Service model (salon catalog)."""
from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base, BigInt


class Service(Base):
    """Service offered by a salon. Price in minor currency units."""

    __tablename__ = 'service'

    id = Column(BigInt, primary_key=True, autoincrement=True)
    salon_id = Column(BigInt, ForeignKey('salon.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(BigInt, nullable=False, default=0)
    duration_minutes = Column(Integer, nullable=False, default=30)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<Service(id={self.id}, name='{self.name}', price={self.price})>"
