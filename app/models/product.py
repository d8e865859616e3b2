"""Product model."""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigInt


class Product(Base):
    """Retail product. Selling price in minor currency units."""

    __tablename__ = 'product'

    id = Column(BigInt, primary_key=True, autoincrement=True)
    salon_id = Column(BigInt, ForeignKey('salon.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    unit = Column(String(20), nullable=False, default='pcs')
    selling_price = Column(BigInt, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    # Cascade delete-orphan: deleting the product removes its stock row
    stock = relationship('ProductStock', uselist=False, back_populates='product', cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}')>"

    @property
    def on_hand_qty(self):
        """Get on hand quantity from stock."""
        if self.stock:
            return self.stock.on_hand_qty
        return 0
