import json
import time
from datetime import datetime, timedelta
from urllib.parse import urlencode

import pytest

from app import create_app
from config import Config
from models import db
from models.service import Service
from scheduling.errors import GatewayError
from scheduling.gateway import PaymentIntent
from security.telegram_auth import TelegramUser, sign

BOT_TOKEN = "123456:TEST-TOKEN"
ADMIN_ID = 1000
CLIENT_ID = 2000
OTHER_CLIENT_ID = 3000

# 12:00 on 2026-03-10 in the studio's timezone (UTC+3)
NOW = datetime(2026, 3, 10, 9, 0)
FAR_DATE = "2026-03-20"     # free mode
NEAR_DATE = "2026-03-12"    # two days out, tight mode


class AppTestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    AUTO_CREATE_TABLES = True
    SCHEDULER_ENABLED = False
    BOT_TOKEN = BOT_TOKEN
    ADMIN_TG_ID = ADMIN_ID
    WEBAPP_URL = "https://mini.example"
    PAYMENT_REQUIRED = True
    PREPAYMENT_AMOUNT = None
    STRIPE_SECRET_KEY = None
    STRIPE_WEBHOOK_SECRET = None
    PAYMENT_WEBHOOK_ALLOWED_NETWORKS = []
    BOOKING_RATE_MAX_REQUESTS = 100
    LOG_LEVEL = "WARNING"


class FakeGateway:
    provider = "FAKE"

    def __init__(self):
        self.created = []
        self.refunds = []
        self.cancelled = []
        self.fail_create = False
        self.fail_refund = False

    def create_payment(self, booking_id, amount, description, return_url):
        if self.fail_create:
            raise GatewayError("Payment creation failed: gateway down")
        self.created.append((booking_id, amount))
        return PaymentIntent(intent_id=f"cs_test_{booking_id}", confirmation_url=f"https://pay.example/{booking_id}")

    def refund(self, provider_payment_id, amount):
        if self.fail_refund or not provider_payment_id:
            raise GatewayError("Refund failed")
        self.refunds.append((provider_payment_id, amount))
        return f"re_{len(self.refunds)}"

    def cancel(self, intent_id):
        self.cancelled.append(intent_id)

    def verify_event(self, payload, sig_header):
        return json.loads(payload)


class RecordingNotifier:
    def __init__(self):
        self.messages = []

    def send(self, chat_id, text):
        self.messages.append((chat_id, text))
        return True, None

    def to(self, chat_id):
        return [text for cid, text in self.messages if cid == chat_id]


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(gateway, notifier):
    app = create_app(AppTestConfig, gateway=gateway, notifier=notifier)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def lash(app):
    # seeded: 120 min main service
    return Service.query.filter_by(name="Lash extension").one()


@pytest.fixture
def correction(app):
    # seeded: 60 min main service
    return Service.query.filter_by(name="Correction").one()


@pytest.fixture
def addon(app):
    return Service.query.filter_by(name="Lower lashes").one()


@pytest.fixture
def anna():
    return TelegramUser(id=CLIENT_ID, first_name="Anna", username="anna")


@pytest.fixture
def maria():
    return TelegramUser(id=OTHER_CLIENT_ID, first_name="Maria")


def init_data(user_id, first_name="Anna", username=None, bot_token=BOT_TOKEN, auth_date=None):
    params = {
        "query_id": "AAHdF6IQAAAAAN0XohDhrOrc",
        "auth_date": str(auth_date if auth_date is not None else int(time.time())),
        "user": json.dumps({"id": user_id, "first_name": first_name, "username": username}),
    }
    params["hash"] = sign(params, bot_token)
    return urlencode(params)


def auth_headers(user_id=CLIENT_ID, **kwargs):
    return {"Authorization": f"tma {init_data(user_id, **kwargs)}"}


def local_date(days_ahead):
    return (datetime.utcnow() + timedelta(hours=3, days=days_ahead)).strftime("%Y-%m-%d")
