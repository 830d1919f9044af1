import ipaddress
import logging

from flask import Blueprint, current_app, request

from scheduling.errors import Forbidden
from scheduling.gateway import event_from_payload, get_gateway
from scheduling.reconciliation import handle_gateway_event
from utils.responses import ok

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _origin_allowed(remote_addr: str) -> bool:
    networks = current_app.config.get("PAYMENT_WEBHOOK_ALLOWED_NETWORKS") or []
    if not networks:
        return True
    try:
        addr = ipaddress.ip_address(remote_addr or "")
    except ValueError:
        return False
    return any(addr in ipaddress.ip_network(net, strict=False) for net in networks)


def _webhook_unprotected() -> bool:
    # with live keys an unauthenticated event could confirm a booking
    cfg = current_app.config
    return bool(cfg.get("STRIPE_SECRET_KEY")) and not (
        cfg.get("STRIPE_WEBHOOK_SECRET") or cfg.get("PAYMENT_WEBHOOK_ALLOWED_NETWORKS")
    )


@payments_bp.post("/webhook")
def payment_webhook():
    if _webhook_unprotected():
        logger.error("Payment webhook refused: set STRIPE_WEBHOOK_SECRET or PAYMENT_WEBHOOK_ALLOWED_NETWORKS")
        raise Forbidden("Webhook verification not configured")

    if not _origin_allowed(request.remote_addr):
        logger.warning("Payment webhook from %s rejected by allowlist", request.remote_addr)
        raise Forbidden("Origin not allowed")

    payload = request.get_data()
    raw_event = get_gateway().verify_event(payload, request.headers.get("Stripe-Signature"))

    event = event_from_payload(raw_event)
    if event is None:
        # acknowledged so the provider stops retrying
        return ok({"received": True, "outcome": "ignored"})

    outcome = handle_gateway_event(event)
    return ok({"received": True, "outcome": outcome})
