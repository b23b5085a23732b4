from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_wtf import CSRFProtect

db = SQLAlchemy()
csrf = CSRFProtect()
# схема только через migrations/, render_as_batch нужен для ALTER в SQLite
migrate = Migrate(render_as_batch=True, compare_type=True)
# HTML-логина нет: неавторизованным отдаём JSON 401 (см. blueprints/auth/routes.py)
login_manager = LoginManager()
login_manager.session_protection = "basic"
