from functools import wraps
from flask import g

from scheduling.errors import Forbidden, Unauthorized

def is_provider() -> bool:
    return bool(getattr(g, "is_admin", False))

def require_admin(fn):
    """
    Usage: @require_admin
    Only the configured provider account passes.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            raise Unauthorized()
        if not is_provider():
            raise Forbidden("Provider access only")
        return fn(*args, **kwargs)
    return wrapper
