from datetime import timedelta
from functools import wraps
from flask import request, current_app, jsonify

from models import db
from models.ip_rate_limit import IpRateLimit
from utils.clock import utcnow

def _client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    return forwarded.split(",")[0].strip() or request.remote_addr or "unknown"

def check_and_increment(tier: str) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    Simple fixed window per IP and tier.
    """
    ip = _client_ip()
    now = utcnow()

    prefix = tier.upper()
    window_seconds = current_app.config.get(f"{prefix}_RATE_WINDOW_SECONDS", 60)
    max_requests = current_app.config.get(f"{prefix}_RATE_MAX_REQUESTS", 10)

    row = IpRateLimit.query.filter_by(ip=ip, tier=tier).first()
    if not row:
        row = IpRateLimit(ip=ip, tier=tier, window_start=now, count=0)
        db.session.add(row)

    window_end = row.window_start + timedelta(seconds=window_seconds)

    # Reset window if expired
    if now >= window_end:
        row.window_start = now
        row.count = 0
        window_end = row.window_start + timedelta(seconds=window_seconds)

    row.count += 1
    db.session.commit()

    if row.count > max_requests:
        retry_after = int((window_end - now).total_seconds())
        return False, max(retry_after, 1)

    return True, 0

def rate_limited(tier: str):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            allowed, retry_after = check_and_increment(tier)
            if not allowed:
                resp = jsonify(ok=False, error="rate_limited", message="Too many requests, slow down")
                resp.headers["Retry-After"] = str(retry_after)
                return resp, 429
            return fn(*args, **kwargs)
        return wrapper
    return decorator
