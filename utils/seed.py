from models import db
from models.service import Service, SERVICE_TYPE_ADDON, SERVICE_TYPE_MAIN

# prices in kopecks
DEFAULT_SERVICES = [
    {"name": "Lash extension", "description": "Any volume", "price": 250000, "duration_min": 120,
     "sort_order": 1, "service_type": SERVICE_TYPE_MAIN},
    {"name": "Lower lashes", "description": "Lower lash extension add-on", "price": 50000, "duration_min": 20,
     "sort_order": 2, "service_type": SERVICE_TYPE_ADDON},
    {"name": "Correction", "description": "Extension correction", "price": 150000, "duration_min": 60,
     "sort_order": 3, "service_type": SERVICE_TYPE_MAIN},
]

def seed_services():
    # only an empty catalog is seeded; the provider owns it afterwards
    if Service.query.first() is not None:
        return
    for row in DEFAULT_SERVICES:
        db.session.add(Service(**row))
    db.session.commit()
