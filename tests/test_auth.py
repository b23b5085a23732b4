from __future__ import annotations
import pytest

from app import create_app
from extensions import db
from models import User
from blueprints.auth.routes import _login_attempts

@pytest.fixture()
def client_app():
    app = create_app("test", AUTH_RL_MAX=3, AUTH_RL_WINDOW=60)  # агрессивный лимит для теста
    # счётчик попыток живёт на уровне модуля, другие тесты тоже логинятся
    _login_attempts.clear()
    with app.app_context():
        db.create_all()
        admin = User(email="admin@example.com", name="Admin", role="ADMIN", is_active=True)
        admin.set_password("adminpass")
        courier = User(email="courier@example.com", name="Courier", role="COURIER", is_active=True)
        courier.set_password("courpass")
        sleepy = User(email="sleepy@example.com", name="Sleepy", role="COURIER", is_active=False)
        sleepy.set_password("sleeppass")
        db.session.add_all([admin, courier, sleepy])
        db.session.commit()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()

@pytest.fixture()
def client(client_app):
    return client_app.test_client()

def test_unauthorized_401(client):
    r = client.get("/api/v1/delivery/workload")
    assert r.status_code == 401
    js = r.get_json()
    assert js["ok"] is False and js["errors"][0]["code"] == "UNAUTHORIZED"

def test_forbidden_403(client):
    r = client.post("/api/v1/auth/login", json={"email": "courier@example.com", "password": "courpass"})
    assert r.status_code == 200
    # курьеру админские эндпоинты недоступны
    r2 = client.get("/api/v1/delivery/available-couriers")
    assert r2.status_code == 403
    assert r2.get_json()["errors"][0]["code"] == "FORBIDDEN"

def test_login_success_and_admin_access(client):
    r = client.post("/api/v1/auth/login", json={"email": "ADMIN@example.com ", "password": "adminpass"})
    assert r.status_code == 200
    js = r.get_json()
    assert js["ok"] is True and js["user"]["role"] == "ADMIN" and js["user"]["name"] == "Admin"

    r2 = client.get("/api/v1/delivery/available-couriers")
    assert r2.status_code == 200
    assert [c["email"] for c in r2.get_json()["data"]] == ["courier@example.com"]

def test_login_errors(client):
    assert client.post("/api/v1/auth/login", json={"email": "admin@example.com"}).status_code == 400
    assert client.post("/api/v1/auth/login", json={"email": "admin@example.com", "password": "nope"}).status_code == 401
    r = client.post("/api/v1/auth/login", json={"email": "sleepy@example.com", "password": "sleeppass"})
    assert r.status_code == 403

def test_rate_limit_login(client):
    for _ in range(3):  # AUTH_RL_MAX
        client.post("/api/v1/auth/login", json={"email": "x-rl@example.com", "password": "wrong"})
    r = client.post("/api/v1/auth/login", json={"email": "x-rl@example.com", "password": "wrong"})
    assert r.status_code == 429

def test_logout(client):
    r = client.post("/api/v1/auth/login", json={"email": "courier@example.com", "password": "courpass"})
    assert r.status_code == 200
    assert client.get("/api/v1/delivery/wallet/summary").status_code == 200
    r = client.post("/api/v1/auth/logout")
    assert r.status_code == 200 and r.get_json()["ok"] is True
    assert client.get("/api/v1/delivery/wallet/summary").status_code == 401
