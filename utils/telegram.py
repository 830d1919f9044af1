import logging

import httpx
from flask import current_app

logger = logging.getLogger(__name__)

API_URL = "https://api.telegram.org/bot{token}/sendMessage"


class TelegramNotifier:
    """Sends chat messages through the Bot API. Delivery is best-effort."""

    def __init__(self, bot_token: str, timeout: float = 10.0):
        self.bot_token = bot_token
        self.timeout = timeout

    def send(self, chat_id: int, text: str):
        if not self.bot_token or not chat_id:
            return False, "Telegram not configured"

        try:
            resp = httpx.post(
                API_URL.format(token=self.bot_token),
                json={"chat_id": chat_id, "text": text, "parse_mode": "HTML"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.warning("Telegram send to %s failed: %s", chat_id, exc)
            return False, str(exc)

        if resp.status_code != 200:
            logger.warning("Telegram send to %s returned %s: %s", chat_id, resp.status_code, resp.text[:200])
            return False, f"HTTP {resp.status_code}"
        return True, None


def get_notifier():
    return current_app.extensions["notifier"]


def mention(first_name: str, username: str = None) -> str:
    return f"@{username}" if username else first_name
