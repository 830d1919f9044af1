from .db import db
from .audit_log import AuditLog
from .ip_rate_limit import IpRateLimit
from .service import Service
from .slot import Slot
from .booking import Booking
from .payment import Payment
from .setting import Setting
