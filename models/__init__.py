from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .property import Property
from .availability import Availability, NightClaim
from .booking import Booking
from .payment import Payment
from .transaction import Transaction
