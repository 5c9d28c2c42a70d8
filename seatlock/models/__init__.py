from .models import *

__all__ = [
    "Base",
    "Trip",
    "Seat",
    "Booking",
    "BookingSeat",
    "AuditLog",
]
