from .db import db
from .user import User, Role, user_roles
from .session import UserSession
from .audit_log import AuditLog
from .temple import Temple, TempleService
from .booking import Booking, BOOKING_STATUSES
