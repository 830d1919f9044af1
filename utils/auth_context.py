from functools import wraps
from flask import current_app, g, request
from scheduling.errors import Unauthorized
from security.telegram_auth import validate_init_data

AUTH_SCHEME = "tma "

def load_current_user():
    g.user = None
    g.is_admin = False

    header = request.headers.get("Authorization", "")
    if not header.startswith(AUTH_SCHEME):
        return
    user = validate_init_data(
        header[len(AUTH_SCHEME):],
        current_app.config.get("BOT_TOKEN", ""),
        current_app.config.get("AUTH_MAX_AGE_SECONDS", 86400),
    )
    if user is None:
        return
    g.user = user
    g.is_admin = user.id == current_app.config.get("ADMIN_TG_ID")

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            raise Unauthorized("Missing or invalid Telegram launch parameters")
        return fn(*args, **kwargs)
    return wrapper
