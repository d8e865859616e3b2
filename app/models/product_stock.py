"""Product Stock model."""
from sqlalchemy import Column, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigInt


class ProductStock(Base):
    """Product Stock - 1:1 with Product. Mutated only by inventory deduction and restocks."""

    __tablename__ = 'product_stock'
    __table_args__ = (
        CheckConstraint('on_hand_qty >= 0', name='ck_product_stock_non_negative'),
    )

    product_id = Column(BigInt, ForeignKey('product.id'), primary_key=True)
    on_hand_qty = Column(BigInt, nullable=False, default=0)
    reorder_level = Column(BigInt, nullable=False, default=10)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationship
    product = relationship('Product', back_populates='stock')

    def __repr__(self):
        return f"<ProductStock(product_id={self.product_id}, on_hand_qty={self.on_hand_qty})>"
