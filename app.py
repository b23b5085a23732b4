from __future__ import annotations
import os
from importlib import import_module
from flask import Flask
from config import config_map
from extensions import db, migrate, login_manager, csrf
from werkzeug.security import generate_password_hash
from sqlalchemy import event, inspect

def _seed_from_config(app):
    if not app.config.get("SEED_TEST_DATA"):
        return
    with app.app_context():
        # таблица users может ещё не быть создана (alembic upgrade и т.п.)
        if not inspect(db.engine).has_table("users"):
            return

        from models import User  # локальный импорт, чтобы избежать циклов
        created = 0
        for u in app.config.get("DEFAULT_USERS", []):
            if User.query.filter_by(email=u["email"]).first():
                continue
            db.session.add(User(
                email=u["email"],
                name=u.get("name") or u["email"],
                password_hash=generate_password_hash(u["password"]),
                role=u["role"],
                is_active=True,
            ))
            created += 1
        if created:
            db.session.commit()

def _auto_migrate(app):
    # один раз на старте процесса, не на каждый запрос
    if not app.config.get("AUTO_MIGRATE"):
        return
    from flask_migrate import upgrade
    with app.app_context():
        upgrade()

def _configure_sqlite(app):
    with app.app_context():
        engine = db.engine
    if engine.dialect.name != "sqlite":
        return

    # pysqlite сам не открывает транзакцию на SELECT/SAVEPOINT: открываем явно,
    # BEGIN IMMEDIATE сразу берёт блокировку записи, SAVEPOINT становится вложенным
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

def register_blueprints(app: Flask) -> None:
    # Жёстко импортируем модуль с маршрутами core перед взятием bp
    import_module("blueprints.core.routes")
    from blueprints.core import bp as core_bp, api_bp as core_api_bp
    from blueprints.auth.routes import api_bp as auth_api_bp
    from blueprints.slots import api_bp as slots_api_bp
    from blueprints.delivery import api_bp as delivery_api_bp

    # core без префикса → '/health' в корне
    app.register_blueprint(core_bp)
    app.register_blueprint(core_api_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_api_bp, url_prefix="/api/v1")
    app.register_blueprint(slots_api_bp, url_prefix="/api/v1/slots")
    app.register_blueprint(delivery_api_bp, url_prefix="/api/v1/delivery")

def create_app(config_name: str | None = None, **overrides) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.setdefault("SECRET_KEY", "change-me-in-prod")
    cfg_name = config_name or os.getenv("FLASK_CONFIG", "default")
    app.config.from_object(config_map[cfg_name])
    # точечные переопределения (файловая БД в тестах и т.п.): строго до init_app
    app.config.update(overrides)
    app.config.setdefault("WTF_CSRF_TIME_LIMIT", None)
    app.config.setdefault("WTF_CSRF_HEADERS", ["X-CSRF-Token", "X-CSRFToken"])

    try:
        os.makedirs(app.instance_path, exist_ok=True)
    except OSError:
        pass
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    _configure_sqlite(app)
    register_blueprints(app)
    _auto_migrate(app)
    _seed_from_config(app)
    return app
