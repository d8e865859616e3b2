"""
Catalog reader - current prices, durations and stock for a salon.

Read-only for the billing engine. Also turns a checkout payload into priced
LineItems using catalog prices (client-sent prices are ignored).
"""
from typing import Dict, List, Iterable, Optional, Tuple

from sqlalchemy.orm import Session

from app.models import Service, Product, ProductStock, Staff
from app.exceptions import NotFoundError, InvalidLineItemError
from app.services.pricing_service import LineItem, ItemKind


class ServiceInfo:
    """Snapshot of a catalog service."""

    def __init__(self, id, name, price, duration_minutes, active):
        self.id = id
        self.name = name
        self.price = price
        self.duration_minutes = duration_minutes
        self.active = active


class ProductInfo:
    """Snapshot of a catalog product with its current stock."""

    def __init__(self, id, name, price, stock, active):
        self.id = id
        self.name = name
        self.price = price
        self.stock = stock
        self.active = active


class StaffInfo:
    def __init__(self, id, name, role):
        self.id = id
        self.name = name
        self.role = role

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'role': self.role}


def get_service(session: Session, salon_id: int, service_id: int) -> Optional[ServiceInfo]:
    service = session.query(Service).filter(
        Service.id == service_id,
        Service.salon_id == salon_id
    ).first()
    if not service:
        return None
    return ServiceInfo(service.id, service.name, int(service.price), service.duration_minutes, service.active)


def get_product(session: Session, salon_id: int, product_id: int) -> Optional[ProductInfo]:
    product = session.query(Product).filter(
        Product.id == product_id,
        Product.salon_id == salon_id
    ).first()
    if not product:
        return None
    return ProductInfo(product.id, product.name, int(product.selling_price), int(product.on_hand_qty), product.active)


def get_active_staff(session: Session, salon_id: int) -> List[StaffInfo]:
    staff = session.query(Staff).filter(
        Staff.salon_id == salon_id,
        Staff.is_active.is_(True)
    ).order_by(Staff.name).all()
    return [StaffInfo(s.id, s.name, s.role) for s in staff]


def get_stock_levels(session: Session, salon_id: int, product_ids: Iterable[int]) -> Dict[int, int]:
    """Current on-hand quantity per product (0 when the product has no stock row)."""
    product_ids = list(set(product_ids))
    if not product_ids:
        return {}
    rows = session.query(ProductStock.product_id, ProductStock.on_hand_qty).join(
        Product, Product.id == ProductStock.product_id
    ).filter(
        Product.salon_id == salon_id,
        ProductStock.product_id.in_(product_ids)
    ).all()
    levels = {pid: 0 for pid in product_ids}
    levels.update({row.product_id: int(row.on_hand_qty) for row in rows})
    return levels


def _to_int(value, field: str, ref_id=None) -> int:
    if isinstance(value, bool):
        raise InvalidLineItemError(f'Invalid {field}: {value!r}', ref_id=ref_id)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidLineItemError(f'Invalid {field}: {value!r}', ref_id=ref_id)
    if isinstance(value, float) and value != number:
        raise InvalidLineItemError(f'Invalid {field}: {value!r}', ref_id=ref_id)
    return number


def optional_int(value, field: str, ref_id=None) -> Optional[int]:
    if value is None or value == '':
        return None
    return _to_int(value, field, ref_id)


def build_line_items(
    session: Session,
    salon_id: int,
    services_payload: Optional[List[dict]],
    products_payload: Optional[List[dict]]
) -> Tuple[LineItem, ...]:
    """
    Resolve cart payload entries against the catalog.

    services_payload: [{"service_id": 1, "staff_id": 3}, ...]
    products_payload: [{"product_id": 7, "quantity": 2}, ...]
    """
    items = []

    for entry in services_payload or []:
        if not isinstance(entry, dict):
            raise InvalidLineItemError('Invalid service entry')
        service_id = _to_int(entry.get('service_id'), 'service_id')
        service = get_service(session, salon_id, service_id)
        if not service or not service.active:
            raise NotFoundError(f'Service {service_id} not found', payload={'error': 'NOT_FOUND', 'ref_id': service_id})
        items.append(LineItem(
            kind=ItemKind.SERVICE,
            ref_id=service.id,
            name=service.name,
            unit_price=service.price,
            quantity=_to_int(entry.get('quantity', 1), 'quantity', service_id),
            performing_staff_id=optional_int(entry.get('staff_id'), 'staff_id', service_id),
        ))

    for entry in products_payload or []:
        if not isinstance(entry, dict):
            raise InvalidLineItemError('Invalid product entry')
        product_id = _to_int(entry.get('product_id'), 'product_id')
        product = get_product(session, salon_id, product_id)
        if not product or not product.active:
            raise NotFoundError(f'Product {product_id} not found', payload={'error': 'NOT_FOUND', 'ref_id': product_id})
        items.append(LineItem(
            kind=ItemKind.PRODUCT,
            ref_id=product.id,
            name=product.name,
            unit_price=product.price,
            quantity=_to_int(entry.get('quantity', 1), 'quantity', product_id),
        ))

    return tuple(items)
