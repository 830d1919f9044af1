from datetime import datetime
from models.db import db


class Slot(db.Model):
    __tablename__ = "slots"

    id = db.Column(db.Integer, primary_key=True)

    date = db.Column(db.String(10), nullable=False, index=True)   # YYYY-MM-DD
    start_time = db.Column(db.String(5), nullable=False)          # HH:MM
    end_time = db.Column(db.String(5), nullable=False)            # HH:MM

    is_booked = db.Column(db.Boolean, default=False, nullable=False)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_slots_date_booked", "date", "is_booked"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "is_booked": self.is_booked,
            "booking_id": self.booking_id,
        }
