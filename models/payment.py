from datetime import datetime
from models.db import db

# status values (mirrors the gateway's view of the intent)
INTENT_PENDING = "pending"
INTENT_SUCCEEDED = "succeeded"
INTENT_CANCELED = "canceled"


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True, index=True)

    provider = db.Column(db.String(20), nullable=False, default="STRIPE")
    amount = db.Column(db.Integer, nullable=False)   # smallest unit
    currency = db.Column(db.String(10), nullable=False, default="rub")

    status = db.Column(db.String(20), nullable=False, default=INTENT_PENDING)
    intent_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    provider_payment_id = db.Column(db.String(255), nullable=True)

    refund_id = db.Column(db.String(255), nullable=True)
    refunded_amount = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)
    refunded_at = db.Column(db.DateTime, nullable=True)
