from __future__ import annotations
from datetime import date, time
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app import create_app
from extensions import db
from models import DeliverySlot, Order, OrderItem, User, UserRole

PASSWORD = "pass"
DAY = date(2026, 10, 20)


def _user(email: str, name: str, role: UserRole, active: bool = True) -> User:
    u = User(email=email, name=name, role=role.value, is_active=active, phone="+70000000000")
    u.set_password(PASSWORD)
    db.session.add(u)
    return u

def _order(number: str, total: str, items: list[int], address='{"street": "Lenina 1", "city": "Pune"}') -> Order:
    o = Order(
        order_number=number, customer_name=f"Customer {number}", customer_phone="+79990000000",
        delivery_address=address, delivery_date=DAY, delivery_time="10:00-12:00",
        total_amount=Decimal(total),
    )
    o.items = [OrderItem(product_name=f"item-{i}", quantity=q, price=Decimal("10")) for i, q in enumerate(items)]
    db.session.add(o)
    return o


@pytest.fixture()
def app():
    app = create_app("test")
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        # общий StaticPool: сначала отпускаем соединение, потом DROP
        db.session.remove()
        db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture()
def seed(app):
    with app.app_context():
        admin = _user("admin@example.com", "Admin", UserRole.ADMIN)
        alice = _user("alice@example.com", "Alice", UserRole.COURIER)
        bob = _user("bob@example.com", "Bob", UserRole.COURIER)
        ghost = _user("ghost@example.com", "Ghost", UserRole.COURIER, active=False)
        morning = DeliverySlot(name="Morning", start_time=time(9), end_time=time(12),
                               default_max_orders=50, display_order_limit=10, display_order=1)
        evening = DeliverySlot(name="Evening", start_time=time(18), end_time=time(21),
                               default_max_orders=20, display_order_limit=5, display_order=2)
        night = DeliverySlot(name="Night", start_time=time(22), end_time=time(23),
                             default_max_orders=5, display_order_limit=5, is_active=False)
        db.session.add_all([morning, evening, night])
        o1 = _order("A-1", "500.00", [2, 1])
        o2 = _order("A-2", "250.00", [1])
        o3 = _order("A-3", "1000.00", [4], address="Plain street 5")
        db.session.commit()
        return SimpleNamespace(
            admin=admin.id, alice=alice.id, bob=bob.id, ghost=ghost.id,
            morning=morning.id, evening=evening.id, night=night.id,
            o1=o1.id, o2=o2.id, o3=o3.id, day=DAY,
        )

@pytest.fixture()
def ctx(app, seed):
    # сервисные тесты работают прямо в контексте приложения, без HTTP
    with app.app_context():
        yield seed


def login(client, email: str, password: str = PASSWORD):
    r = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.get_json()
    return r.get_json()["user"]

@pytest.fixture()
def as_admin(client, seed):
    login(client, "admin@example.com")
    return client

@pytest.fixture()
def as_alice(client, seed):
    login(client, "alice@example.com")
    return client
