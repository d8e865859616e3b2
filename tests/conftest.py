import pytest
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
import os
import shutil
import tempfile

# Test database: a throwaway SQLite file unless TEST_DATABASE_URL is set
_tmp_dir = tempfile.mkdtemp(prefix='salon-tests-')
os.environ.setdefault('TEST_DATABASE_URL', f"sqlite:///{os.path.join(_tmp_dir, 'salon_test.db')}")

from app import create_app
from app.database import Base, db_session, get_session, get_engine
from app.models import (
    Salon, Staff, Customer, Service, Product, ProductStock, Coupon, CouponDiscountType
)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestingConfig')
    yield app
    db_session.remove()
    Base.metadata.drop_all(bind=get_engine())
    get_engine().dispose()
    shutil.rmtree(_tmp_dir, ignore_errors=True)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session; every table is emptied after the test."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.remove()


def _record(obj, *fields):
    """Plain snapshot of a committed row, safe to use after the session is closed."""
    return SimpleNamespace(**{field: getattr(obj, field) for field in ('id',) + fields})


def _make_product(session, salon_id, name, price, stock):
    product = Product(salon_id=salon_id, name=name, selling_price=price, active=True)
    session.add(product)
    session.flush()
    session.add(ProductStock(product_id=product.id, on_hand_qty=stock))
    session.commit()
    return _record(product, 'name', 'selling_price')


@pytest.fixture(scope='function')
def salon(session):
    """Salon charging 18% GST."""
    salon = Salon(
        name='Glow Studio',
        address='12 MG Road, Bengaluru',
        phone='+91 98450 00000',
        gst_number='29ABCDE1234F1Z5',
        gst_percentage=Decimal('18.00'),
        active=True
    )
    session.add(salon)
    session.commit()
    return _record(salon, 'name')


@pytest.fixture(scope='function')
def other_salon(session):
    """Second salon for isolation tests."""
    salon = Salon(name='Other Salon', gst_percentage=Decimal('0'), active=True)
    session.add(salon)
    session.commit()
    return _record(salon, 'name')


@pytest.fixture(scope='function')
def biller(session, salon):
    staff = Staff(salon_id=salon.id, name='Asha Reception', role='receptionist', is_cashier=True, is_active=True)
    session.add(staff)
    session.commit()
    return _record(staff, 'name')


@pytest.fixture(scope='function')
def stylist(session, salon):
    staff = Staff(salon_id=salon.id, name='Ravi Stylist', role='stylist', is_active=True)
    session.add(staff)
    session.commit()
    return _record(staff, 'name')


@pytest.fixture(scope='function')
def inactive_stylist(session, salon):
    staff = Staff(salon_id=salon.id, name='Former Stylist', role='stylist', is_active=False)
    session.add(staff)
    session.commit()
    return _record(staff, 'name')


@pytest.fixture(scope='function')
def customer(session, salon):
    customer = Customer(salon_id=salon.id, name='Meera Iyer', phone='+91 90000 11111')
    session.add(customer)
    session.commit()
    return _record(customer, 'name')


@pytest.fixture(scope='function')
def haircut(session, salon):
    """Haircut service at ₹500."""
    service = Service(salon_id=salon.id, name='Haircut', price=50000, duration_minutes=45, active=True)
    session.add(service)
    session.commit()
    return _record(service, 'name', 'price')


@pytest.fixture(scope='function')
def facial(session, salon):
    """Facial service at ₹1,200."""
    service = Service(salon_id=salon.id, name='Facial', price=120000, duration_minutes=60, active=True)
    session.add(service)
    session.commit()
    return _record(service, 'name', 'price')


@pytest.fixture(scope='function')
def shampoo(session, salon):
    """Shampoo at ₹100, 10 in stock."""
    return _make_product(session, salon.id, 'Shampoo', 10000, 10)


@pytest.fixture(scope='function')
def serum(session, salon):
    """Hair serum at ₹250, 3 in stock."""
    return _make_product(session, salon.id, 'Hair Serum', 25000, 3)


@pytest.fixture(scope='function')
def make_coupon(session, salon):
    """Factory for coupons of the test salon."""
    def _make(code, discount_type=CouponDiscountType.PERCENTAGE, discount_value=10, **kwargs):
        coupon = Coupon(
            salon_id=kwargs.pop('salon_id', salon.id),
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(str(discount_value)),
            min_order_value=kwargs.pop('min_order_value', 0),
            is_active=kwargs.pop('is_active', True),
            used_count=kwargs.pop('used_count', 0),
            **kwargs
        )
        session.add(coupon)
        session.commit()
        return _record(coupon, 'code')
    return _make


@pytest.fixture(scope='function')
def welcome_coupon(make_coupon):
    """10% off, capped at ₹200, minimum order ₹500."""
    return make_coupon('WELCOME10', discount_value=10, max_discount=20000, min_order_value=50000)


@pytest.fixture(scope='function')
def flat_coupon(make_coupon):
    """₹100 off."""
    return make_coupon('FLAT100', discount_type=CouponDiscountType.FIXED, discount_value=10000)


@pytest.fixture(scope='function')
def expired_coupon(make_coupon):
    return make_coupon('OLD20', discount_value=20, valid_until=date.today() - timedelta(days=1))


@pytest.fixture(scope='function')
def authenticated_client(client, salon, biller):
    """Client with a salon (and billing staff) context in its session."""
    with client.session_transaction() as sess:
        sess['salon_id'] = salon.id
        sess['staff_id'] = biller.id
    return client
