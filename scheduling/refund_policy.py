INITIATOR_CLIENT = "client"
INITIATOR_PROVIDER = "provider"

FULL_REFUND = "full"
NO_REFUND = "none"

DEFAULT_THRESHOLD_HOURS = 24


def evaluate_refund(initiator: str, lead_time_hours: float, threshold_hours: float = DEFAULT_THRESHOLD_HOURS) -> str:
    """Decide the refund for a cancellation.

    The provider cancelling always refunds in full. A client gets a full
    refund only when cancelling at least ``threshold_hours`` before the
    appointment starts (exactly on the threshold still counts).
    """
    if initiator == INITIATOR_PROVIDER:
        return FULL_REFUND
    if initiator != INITIATOR_CLIENT:
        raise ValueError(f"Unknown cancellation initiator {initiator!r}")
    return FULL_REFUND if lead_time_hours >= threshold_hours else NO_REFUND
