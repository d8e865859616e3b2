"""Invoice Sequence model."""
from sqlalchemy import Column, ForeignKey
from app.database import Base, BigInt


class InvoiceSequence(Base):
    """Per-salon invoice counter. Incremented inside the bill commit transaction."""

    __tablename__ = 'invoice_sequence'

    salon_id = Column(BigInt, ForeignKey('salon.id'), primary_key=True)
    last_value = Column(BigInt, nullable=False, default=0)

    def __repr__(self):
        return f"<InvoiceSequence(salon_id={self.salon_id}, last_value={self.last_value})>"
