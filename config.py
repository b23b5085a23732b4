from __future__ import annotations
import os
from pathlib import Path

class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    BASE_DIR = Path(__file__).resolve().parent
    # SQLite file in project directory
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'app.db'}")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JSON_SORT_KEYS = False
    # схему накатываем миграциями один раз при старте, а не по запросу
    AUTO_MIGRATE = False

    # ---- доставка: все «магические» числа здесь
    DELIVERY_BASE_FEE = os.getenv("DELIVERY_BASE_FEE", "30.00")        # фикс за заказ
    DELIVERY_PERCENT_FEE = os.getenv("DELIVERY_PERCENT_FEE", "0.02")   # доля от суммы заказа
    DELIVERY_DEFAULT_MAX_ORDERS = 50
    DELIVERY_DEFAULT_DISPLAY_LIMIT = 10
    DELIVERY_THRESHOLD_HIGH = 60
    DELIVERY_THRESHOLD_MEDIUM = 85
    DELIVERY_DEFAULT_PRIORITY = "medium"
    DELIVERY_DEFAULT_TIME = "12:00"  # если у заказа нет времени доставки
    DELIVERY_TIMEZONE = os.getenv("DELIVERY_TIMEZONE", "Asia/Kolkata")
    DELIVERY_MAX_RANGE_DAYS = 62

class DevConfig(BaseConfig):
    DEBUG = True
    SEED_TEST_DATA = True
    DEFAULT_USERS = [
        {"email": "admin@example.com", "password": "pass", "role": "ADMIN", "name": "Admin"},
        {"email": "courier@example.com", "password": "pass", "role": "COURIER", "name": "Demo Courier"},
    ]

class TestConfig(BaseConfig):
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"check_same_thread": False}}
    # свой CSRF не нужен в тестах API
    WTF_CSRF_ENABLED = False
    # логинимся в каждом тесте заново: лимит попыток не должен мешать
    AUTH_RL_MAX = 10_000
    SEED_TEST_DATA = False
    DEFAULT_USERS = []

class ProdConfig(BaseConfig):
    DEBUG = False
    SEED_TEST_DATA = False
    AUTO_MIGRATE = os.getenv("AUTO_MIGRATE", "1") == "1"
    DEFAULT_USERS = []

config_map = {
    "dev": DevConfig,
    "test": TestConfig,
    "prod": ProdConfig,
    "default": DevConfig,
}
