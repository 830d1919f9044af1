from datetime import datetime
from models.db import db

# status values
STATUS_PENDING_PAYMENT = "pending_payment"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
STATUS_EXPIRED = "expired"

ACTIVE_STATUSES = (STATUS_PENDING_PAYMENT, STATUS_CONFIRMED)

# payment_status values
PAYMENT_NONE = "none"
PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_REFUNDED = "refunded"


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)

    # copied from the slot run at creation time
    date = db.Column(db.String(10), nullable=False, index=True)
    start_time = db.Column(db.String(5), nullable=False)
    end_time = db.Column(db.String(5), nullable=False)

    client_tg_id = db.Column(db.BigInteger, nullable=False, index=True)
    client_first_name = db.Column(db.String(120), nullable=False)
    client_username = db.Column(db.String(64), nullable=True)

    with_addon = db.Column(db.Boolean, default=False, nullable=False)
    total_price = db.Column(db.Integer, nullable=False)
    prepaid_amount = db.Column(db.Integer, default=0, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING_PAYMENT, index=True)
    payment_status = db.Column(db.String(20), nullable=False, default=PAYMENT_NONE, index=True)

    reminder_sent = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.String(20), nullable=True)  # client, provider
    cancel_reason = db.Column(db.String(120), nullable=True)

    service = db.relationship("Service", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "service_id": self.service_id,
            "service_name": self.service.name if self.service else None,
            "service_price": self.service.price if self.service else None,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "client_tg_id": self.client_tg_id,
            "client_first_name": self.client_first_name,
            "client_username": self.client_username,
            "with_addon": self.with_addon,
            "total_price": self.total_price,
            "prepaid_amount": self.prepaid_amount,
            "status": self.status,
            "payment_status": self.payment_status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancelled_by": self.cancelled_by,
        }
