import hashlib
import hmac
import json
import time

import pytest
import stripe

from scheduling.errors import GatewayError, ValidationError
from scheduling.gateway import EVENT_CANCELED, EVENT_SUCCEEDED, StripeGateway, event_from_payload

WEBHOOK_SECRET = "whsec_test"


def _signature(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    ts = int(time.time())
    digest = hmac.new(secret.encode(), f"{ts}.".encode() + payload, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def _event(event_type, obj):
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


def test_create_payment_carries_booking_id(monkeypatch):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return {"id": "cs_123", "url": "https://checkout.stripe.com/c/cs_123"}

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    intent = StripeGateway("sk_test").create_payment(7, 150000, "Correction", "https://mini.example")

    assert intent.intent_id == "cs_123"
    assert intent.confirmation_url.endswith("cs_123")
    assert captured["metadata"] == {"booking_id": "7"}
    assert captured["payment_intent_data"] == {"metadata": {"booking_id": "7"}}
    assert captured["line_items"][0]["price_data"]["unit_amount"] == 150000
    assert captured["expires_at"] > time.time() + 30 * 60


def test_create_payment_wraps_stripe_errors(monkeypatch):
    def boom(**kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.checkout.Session, "create", boom)
    with pytest.raises(GatewayError):
        StripeGateway("sk_test").create_payment(7, 100, "x", "https://mini.example")


def test_each_checkout_attempt_gets_its_own_idempotency_key(monkeypatch):
    keys = []

    def flaky_create(**kwargs):
        keys.append(kwargs["idempotency_key"])
        if len(keys) == 1:
            raise stripe.APIConnectionError("network down")
        return {"id": "cs_2", "url": "https://checkout.stripe.com/c/cs_2"}

    monkeypatch.setattr(stripe.checkout.Session, "create", flaky_create)
    gateway = StripeGateway("sk_test")
    with pytest.raises(GatewayError):
        gateway.create_payment(1, 100, "Lash extension", "https://mini.example")
    # the failed booking row is gone and its id may be handed out again
    intent = gateway.create_payment(1, 250000, "Correction", "https://mini.example")

    assert intent.intent_id == "cs_2"
    assert keys[0] != keys[1]
    assert all(key.startswith("booking-1-") for key in keys)


def test_unconfigured_gateway_refuses():
    with pytest.raises(GatewayError):
        StripeGateway(None).create_payment(1, 100, "x", "https://mini.example")


def test_verify_event_checks_signature():
    gateway = StripeGateway("sk_test", webhook_secret=WEBHOOK_SECRET)
    payload = json.dumps(_event("checkout.session.expired", {"metadata": {"booking_id": "1"}})).encode()

    assert gateway.verify_event(payload, _signature(payload))["type"] == "checkout.session.expired"
    with pytest.raises(ValidationError):
        gateway.verify_event(payload, _signature(payload, secret="whsec_other"))
    with pytest.raises(ValidationError):
        gateway.verify_event(payload, None)


def test_verify_event_without_secret_only_parses():
    gateway = StripeGateway("sk_test")
    assert gateway.verify_event(b'{"type": "x"}', None) == {"type": "x"}
    with pytest.raises(ValidationError):
        gateway.verify_event(b"not json", None)


def test_completed_session_maps_to_succeeded():
    event = event_from_payload(_event("checkout.session.completed", {
        "id": "cs_1",
        "payment_status": "paid",
        "payment_intent": "pi_1",
        "metadata": {"booking_id": "12"},
    }))
    assert (event.kind, event.booking_id, event.intent_id, event.provider_payment_id) == (EVENT_SUCCEEDED, 12, "cs_1", "pi_1")


def test_unpaid_completed_session_is_not_success():
    assert event_from_payload(_event("checkout.session.completed", {
        "id": "cs_1",
        "payment_status": "unpaid",
        "metadata": {"booking_id": "12"},
    })) is None


def test_payment_intent_events():
    succeeded = event_from_payload(_event("payment_intent.succeeded", {"id": "pi_9", "metadata": {"booking_id": "3"}}))
    assert (succeeded.kind, succeeded.provider_payment_id) == (EVENT_SUCCEEDED, "pi_9")

    canceled = event_from_payload(_event("payment_intent.canceled", {"id": "pi_9", "metadata": {"booking_id": "3"}}))
    assert canceled.kind == EVENT_CANCELED


def test_card_decline_is_not_terminal():
    assert event_from_payload(_event("payment_intent.payment_failed", {"id": "pi_9", "metadata": {"booking_id": "3"}})) is None


def test_irrelevant_events_ignored():
    assert event_from_payload(_event("customer.created", {"id": "cus_1"})) is None
    assert event_from_payload(_event("checkout.session.expired", {"id": "cs_1", "metadata": {}})) is None
