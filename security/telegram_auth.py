import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl

logger = logging.getLogger(__name__)


@dataclass
class TelegramUser:
    id: int
    first_name: str
    username: Optional[str] = None
    last_name: Optional[str] = None


def _secret_key(bot_token: str) -> bytes:
    # secret_key = HMAC-SHA256(key="WebAppData", msg=bot_token)
    return hmac.new(b"WebAppData", bot_token.encode("utf-8"), hashlib.sha256).digest()


def data_check_string(params: dict) -> str:
    return "\n".join(f"{k}={v}" for k, v in sorted(params.items()) if k != "hash")


def sign(params: dict, bot_token: str) -> str:
    return hmac.new(_secret_key(bot_token), data_check_string(params).encode("utf-8"), hashlib.sha256).hexdigest()


def validate_init_data(init_data: str, bot_token: str, max_age_seconds: int = 86400, now: float = None) -> Optional[TelegramUser]:
    """
    Verify Mini App launch params and return the user they were issued for.
    Returns None on any failure (bad hash, stale auth_date, malformed user).
    """
    if not init_data or not bot_token:
        return None

    params = dict(parse_qsl(init_data, keep_blank_values=True))
    received = params.get("hash")
    if not received:
        return None

    try:
        auth_date = int(params.get("auth_date", ""))
    except ValueError:
        return None
    age = (now if now is not None else time.time()) - auth_date
    if age > max_age_seconds:
        logger.info("Launch params expired (age=%ss)", int(age))
        return None

    if not hmac.compare_digest(sign(params, bot_token), received):
        logger.warning("Launch params hash mismatch")
        return None

    try:
        raw = json.loads(params.get("user", ""))
        return TelegramUser(
            id=int(raw["id"]),
            first_name=str(raw.get("first_name") or ""),
            username=raw.get("username"),
            last_name=raw.get("last_name"),
        )
    except (ValueError, KeyError, TypeError):
        return None
