"""Stripe Checkout as the payment gateway for booking prepayments.

The booking id travels in the session and payment intent metadata, so the
webhook can find the booking without a local lookup table.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

import stripe
from flask import current_app

from scheduling.errors import GatewayError, ValidationError

logger = logging.getLogger(__name__)

EVENT_SUCCEEDED = "succeeded"
EVENT_CANCELED = "canceled"

SUCCEEDED_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "payment_intent.succeeded",
}
# payment_intent.payment_failed is absent: a declined card leaves the session
# open for another attempt
CANCELED_EVENTS = {
    "checkout.session.expired",
    "checkout.session.async_payment_failed",
    "payment_intent.canceled",
}

# Stripe refuses checkout sessions that expire sooner than this
MIN_SESSION_LIFETIME = timedelta(minutes=30)


@dataclass
class PaymentIntent:
    intent_id: str
    confirmation_url: str


@dataclass
class GatewayEvent:
    kind: str
    booking_id: int
    event_type: str
    intent_id: Optional[str] = None
    provider_payment_id: Optional[str] = None


class StripeGateway:
    provider = "STRIPE"

    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str] = None, currency: str = "rub"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency
        if secret_key:
            stripe.api_key = secret_key
        else:
            logger.warning("STRIPE_SECRET_KEY not set; payments will fail until configured")

    def _require_key(self):
        if not self.secret_key:
            raise GatewayError("Payment provider not configured")

    def create_payment(self, booking_id: int, amount: int, description: str, return_url: str) -> PaymentIntent:
        self._require_key()
        metadata = {"booking_id": str(booking_id)}
        expires_at = datetime.now(timezone.utc) + MIN_SESSION_LIFETIME + timedelta(minutes=1)
        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": description},
                        "unit_amount": int(amount),
                    },
                    "quantity": 1,
                }],
                success_url=return_url,
                cancel_url=return_url,
                expires_at=int(expires_at.timestamp()),
                metadata=metadata,
                payment_intent_data={"metadata": metadata},
                idempotency_key=f"booking-{booking_id}-{uuid4().hex}",
            )
        except stripe.StripeError as exc:
            logger.error("Stripe checkout creation failed for booking %s: %s", booking_id, exc)
            raise GatewayError(f"Payment creation failed: {exc.user_message or exc}")

        session_id = session.get("id")
        url = session.get("url")
        if not session_id or not url:
            raise GatewayError("Payment provider returned an unexpected response")

        logger.info("Stripe checkout session %s created for booking %s", session_id, booking_id)
        return PaymentIntent(intent_id=session_id, confirmation_url=url)

    def refund(self, provider_payment_id: str, amount: int) -> str:
        self._require_key()
        if not provider_payment_id:
            raise GatewayError("Payment has no captured charge to refund")
        try:
            refund = stripe.Refund.create(
                payment_intent=provider_payment_id,
                amount=int(amount),
                idempotency_key=f"refund-{provider_payment_id}",
            )
        except stripe.StripeError as exc:
            logger.error("Stripe refund failed for %s: %s", provider_payment_id, exc)
            raise GatewayError(f"Refund failed: {exc.user_message or exc}")
        logger.info("Stripe refund %s created for %s", refund.get("id"), provider_payment_id)
        return refund.get("id")

    def cancel(self, intent_id: str) -> None:
        """Expire an open checkout session so a late payment cannot land."""
        self._require_key()
        try:
            stripe.checkout.Session.expire(intent_id)
        except stripe.StripeError as exc:
            raise GatewayError(f"Could not expire checkout session: {exc}")

    def verify_event(self, payload: bytes, sig_header: Optional[str]) -> dict:
        if self.webhook_secret:
            if not sig_header:
                raise ValidationError("Missing webhook signature")
            try:
                stripe.Webhook.construct_event(payload, sig_header, self.webhook_secret)
            except (ValueError, stripe.SignatureVerificationError):
                raise ValidationError("Invalid webhook signature")
        try:
            return json.loads(payload)
        except ValueError:
            raise ValidationError("Webhook payload is not JSON")


def event_from_payload(event: dict) -> Optional[GatewayEvent]:
    """Map a Stripe event to a booking-level event, or None if irrelevant."""
    event_type = event.get("type") or ""
    if event_type in SUCCEEDED_EVENTS:
        kind = EVENT_SUCCEEDED
    elif event_type in CANCELED_EVENTS:
        kind = EVENT_CANCELED
    else:
        return None

    obj = (event.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}
    try:
        booking_id = int(metadata.get("booking_id"))
    except (TypeError, ValueError):
        logger.warning("Webhook %s without booking_id in metadata", event_type)
        return None

    if event_type == "checkout.session.completed" and obj.get("payment_status") not in ("paid", "no_payment_required"):
        # delayed payment methods: wait for async_payment_succeeded
        return None

    if event_type.startswith("checkout.session."):
        return GatewayEvent(
            kind=kind,
            booking_id=booking_id,
            event_type=event_type,
            intent_id=obj.get("id"),
            provider_payment_id=obj.get("payment_intent"),
        )
    return GatewayEvent(
        kind=kind,
        booking_id=booking_id,
        event_type=event_type,
        provider_payment_id=obj.get("id"),
    )


def get_gateway():
    return current_app.extensions["payment_gateway"]
