"""
Core Data Models
Spot, Session, Reservation, Payment, User and activity entry records
"""

import json
import uuid
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Dict, Any

from parkcore.core.constants import (
    SpotStatus, SpotClass, SessionStatus, ReservationStatus,
    PaymentStatus, PaymentMethod
)


def utc_now() -> datetime:
    """Default engine clock"""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


class _Record:
    """Shared serialization for engine records"""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with JSON-friendly values"""
        return {key: _serialize(value) for key, value in asdict(self).items()}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2)


@dataclass
class User(_Record):
    """Entry in the user directory"""

    id: str
    full_name: str = ""
    email: str = ""
    is_active: bool = True


@dataclass
class Spot(_Record):
    """Physical parking spot; (status, version) is the only cross-request shared state"""

    id: str
    spot_number: str
    spot_class: SpotClass = SpotClass.STANDARD
    status: SpotStatus = SpotStatus.AVAILABLE
    version: int = 0
    floor: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.id:
            raise ValueError("spot id is required")

        if not self.spot_number:
            self.spot_number = self.id

        self.spot_class = SpotClass.resolve(self.spot_class)
        if not isinstance(self.status, SpotStatus):
            self.status = SpotStatus(str(self.status).upper())


@dataclass
class Session(_Record):
    """Real-time occupancy record bounded by check-in and check-out"""

    id: str
    spot_id: str
    user_id: str
    check_in_time: datetime
    status: SessionStatus = SessionStatus.ACTIVE
    vehicle_tag: Optional[str] = None
    check_out_time: Optional[datetime] = None
    amount_due: Optional[Decimal] = None
    duration_minutes: Optional[int] = None
    reservation_id: Optional[str] = None

    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def elapsed_minutes(self, now: datetime) -> int:
        """Whole minutes between check-in and `now` (truncated, never negative)"""
        seconds = (now - self.check_in_time).total_seconds()
        return max(0, int(seconds // 60))


@dataclass
class Reservation(_Record):
    """Future time-window hold on a spot, half-open interval [start_time, end_time)"""

    id: str
    spot_id: str
    user_id: str
    start_time: datetime
    end_time: datetime
    status: ReservationStatus = ReservationStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if self.end_time <= self.start_time:
            raise ValueError(f"Reservation end_time must be after start_time ({self.start_time} - {self.end_time})")

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap: touching boundaries do not overlap"""
        return self.start_time < end and self.end_time > start

    def covers(self, instant: datetime) -> bool:
        return self.start_time <= instant < self.end_time

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


@dataclass
class Payment(_Record):
    """Charge record tied to a completed session"""

    id: str
    session_id: str
    amount: Decimal
    method: PaymentMethod = PaymentMethod.CREDIT_CARD
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_reference: Optional[str] = None
    currency: str = "USD"
    failure_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    def is_success(self) -> bool:
        return self.status == PaymentStatus.SUCCESS


@dataclass
class ActivityEntry(_Record):
    """Audit trail entry"""

    actor_id: str
    action: str
    details: str = ""
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)

    def format_line(self) -> str:
        return f"{self.actor_id} | {self.action} | {self.details}"
