from flask import Blueprint

api_bp = Blueprint("delivery_api", __name__)
# Критично: импортируем функции, чтобы регистрировались маршруты
from . import routes  # noqa: E402,F401
