"""Models package - exports all SQLAlchemy models."""
# Salon and directory models
from app.models.salon import Salon
from app.models.staff import Staff
from app.models.customer import Customer

# Catalog models
from app.models.service import Service
from app.models.product import Product
from app.models.product_stock import ProductStock

# Billing models
from app.models.coupon import Coupon, CouponDiscountType
from app.models.invoice_sequence import InvoiceSequence
from app.models.bill import Bill, BillLine, BillItemType, BillInventoryState, InventoryStatus
from app.models.stock_movement import StockMovement, MovementType

__all__ = [
    'Salon', 'Staff', 'Customer',
    'Service', 'Product', 'ProductStock',
    'Coupon', 'CouponDiscountType', 'InvoiceSequence',
    'Bill', 'BillLine', 'BillItemType', 'BillInventoryState', 'InventoryStatus',
    'StockMovement', 'MovementType',
]
