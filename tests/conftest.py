"""Shared fixtures: in-memory SQLite per test, eager Celery, fake gateway."""

import os

# przed importem storefront - settings czytaja env przy imporcie
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import storefront.data.models  # noqa: F401
from storefront.celery_worker import celery_app
from storefront.data.database import Base
from storefront.data.models import ProductModel
from storefront.services.cart_service import CartService
from storefront.services.coupon_service import CouponService
from storefront.services.notification_service import NotificationService
from storefront.services.order_service import OrderService
from storefront.services.payment_gateway import (
    GatewayCapture,
    GatewayPayment,
    GatewayRefund,
    PaymentGatewayClient,
)
from storefront.services.payment_service import PaymentService

celery_app.conf.task_always_eager = True

ADDRESS = {
    "name": "Jan Kowalski",
    "line1": "ul. Dluga 1",
    "city": "Krakow",
    "postal_code": "31-001",
    "country": "PL",
}


class RecordingNotifier(NotificationService):
    """Zapisuje wyslane zdarzenia zamiast kolejkowac je w Celery."""

    def __init__(self):
        self.events = []

    def dispatch(self, event, payload):
        self.events.append((event, payload))

    @property
    def names(self):
        return [name for name, _ in self.events]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def gateway():
    gw = MagicMock(spec=PaymentGatewayClient)
    counter = {"n": 0}

    def create_payment(reference, amount, currency):
        counter["n"] += 1
        return GatewayPayment(transaction_id=f"PAY-{counter['n']}", status="CREATED", approval_url="https://pay/approve")

    gw.create_payment.side_effect = create_payment
    gw.capture_payment.side_effect = lambda transaction_id, payer_id: GatewayCapture(
        capture_id=f"CAP-{transaction_id}", status="COMPLETED"
    )
    gw.refund_capture.side_effect = lambda capture_id, amount, currency, refund_id: GatewayRefund(
        refund_id=f"RF-{refund_id}", status="PENDING"
    )
    return gw


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(name="Widget", price="50.00", stock=5, status="active", low_stock_threshold=None):
        counter["n"] += 1
        product = ProductModel(
            name=name,
            sku=f"SKU-{counter['n']}",
            price=Decimal(price),
            stock=stock,
            status=status,
            low_stock_threshold=low_stock_threshold,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", type="percentage", value="10", **extra):
        data = {"code": code, "type": type, "value": Decimal(value)}
        data.update(extra)
        return CouponService(db).create_coupon(data)

    return _make


@pytest.fixture
def cart_service(db):
    return CartService(db)


@pytest.fixture
def order_service(db, notifier):
    return OrderService(db, notifier=notifier)


@pytest.fixture
def payment_service(db, gateway, notifier):
    return PaymentService(db, gateway=gateway, notifier=notifier)


@pytest.fixture
def place_order(cart_service, order_service):
    """Koszyk sesji z podanymi pozycjami -> zamowienie (wysylka pickup, bez kosztow)."""

    def _place(lines, session_id="sess-1", user_id=None, coupon=None, shipping_method="pickup"):
        for product, quantity in lines:
            cart_service.add_item(session_id, user_id, product.id, quantity)
        if coupon:
            cart = cart_service.get_or_create_cart(session_id, user_id)
            cart_service.apply_coupon(cart.id, coupon)
        return order_service.create_order(
            session_id,
            user_id,
            billing_address=ADDRESS,
            shipping_address=ADDRESS,
            shipping_method=shipping_method,
        )

    return _place


@pytest.fixture
def paid_order(place_order, payment_service):
    """Zamowienie oplacone przez bramke: zwraca (order, payment)."""

    def _paid(lines, session_id="sess-paid", **kwargs):
        order = place_order(lines, session_id=session_id, **kwargs)
        created = payment_service.create_payment(order.id, order.total_amount, "USD")
        payment = payment_service.execute_payment(created.payment.transaction_id, order.id, "PAYER-1")
        return order, payment

    return _paid
