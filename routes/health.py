import time

from flask import Blueprint
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from models import db
from utils.responses import ok

health_bp = Blueprint("health", __name__, url_prefix="/api")

_STARTED = time.time()


@health_bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        db.session.rollback()
        db_ok = False
    return ok({"status": "ok" if db_ok else "degraded", "db_ok": db_ok, "uptime_seconds": int(time.time() - _STARTED)})
