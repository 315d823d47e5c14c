"""
Constants and Enums for the parking engine
Closed state sets, action codes and error codes shared across the engine
"""

from enum import Enum
from typing import Optional, Union

# Version information
VERSION = "1.0.0"


class SpotStatus(Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"
    MAINTENANCE = "MAINTENANCE"


class SpotClass(Enum):
    """Spot classification; each class is bound to one fee strategy"""
    STANDARD = "STANDARD"
    VIP = "VIP"

    @classmethod
    def resolve(cls, value: Union['SpotClass', str, None]) -> 'SpotClass':
        """Resolve a class name, falling back to STANDARD for unknown or missing values"""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.STANDARD
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.STANDARD


class SessionStatus(Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class ReservationStatus(Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Reservations in these states hold their time window
HOLDING_RESERVATION_STATUSES = (ReservationStatus.PENDING, ReservationStatus.ACTIVE)


class PaymentStatus(Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class PaymentMethod(Enum):
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"

    @classmethod
    def parse(cls, value: Union['PaymentMethod', str, None]) -> 'PaymentMethod':
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.CREDIT_CARD
        return cls(str(value).strip().upper())


# Audit action codes
class ActionCode(Enum):
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"
    RESERVATION_CREATED = "RESERVATION_CREATED"
    RESERVATION_CANCELLED = "RESERVATION_CANCELLED"
    PAYMENT_PROCESSED = "PAYMENT_PROCESSED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


def format_duration_minutes(minutes: Optional[int]) -> str:
    """Format whole minutes as '1h 30min'"""
    minutes = max(0, int(minutes or 0))
    return f"{minutes // 60}h {minutes % 60}min"
