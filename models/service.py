from datetime import datetime
from models.db import db

SERVICE_TYPE_MAIN = "main"
SERVICE_TYPE_ADDON = "addon"


class Service(db.Model):
    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255), nullable=False, default="")

    price = db.Column(db.Integer, nullable=False)  # smallest currency unit
    duration_min = db.Column(db.Integer, nullable=False)

    # never hard-deleted while bookings reference it; disable instead
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    sort_order = db.Column(db.Integer, default=0, nullable=False)

    # main = bookable on its own, addon = only attached to a main booking
    service_type = db.Column(db.String(10), nullable=False, default=SERVICE_TYPE_MAIN)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_addon(self) -> bool:
        return self.service_type == SERVICE_TYPE_ADDON

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "duration_min": self.duration_min,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
            "service_type": self.service_type,
        }
