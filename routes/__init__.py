from .admin import admin_bp
from .client import client_bp
from .health import health_bp
from .payments import payments_bp
