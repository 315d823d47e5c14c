"""
In-process Persistence
Lock-guarded tables for users, spots, sessions, reservations and payments
"""

import logging
import threading
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Iterable

from parkcore.core.constants import (
    SpotStatus, SpotClass, SessionStatus, ReservationStatus, PaymentStatus
)
from parkcore.core.models import User, Spot, Session, Reservation, Payment, utc_now

logger = logging.getLogger(__name__)


class UserDirectory:
    """User lookup collaborator"""

    def __init__(self, users: Iterable[User] = ()):
        self._users: Dict[str, User] = {}
        self.lock = threading.Lock()
        for user in users:
            self.add_user(user)

    def add_user(self, user: User) -> User:
        with self.lock:
            self._users[user.id] = replace(user)
        return user

    def find_user(self, user_id: str) -> Optional[User]:
        with self.lock:
            user = self._users.get(user_id)
            return replace(user) if user else None


class SpotRepository:
    """
    Spot table keyed by id

    All writes go through `compare_and_set`, a single conditional write on
    (status, version) performed under the table lock.
    """

    def __init__(self):
        self._spots: Dict[str, Spot] = {}
        self.lock = threading.Lock()

    def add(self, spot: Spot) -> Spot:
        with self.lock:
            if spot.id in self._spots:
                raise ValueError(f"Spot '{spot.id}' already exists")
            self._spots[spot.id] = replace(spot)
            return replace(spot)

    def get(self, spot_id: str) -> Optional[Spot]:
        with self.lock:
            spot = self._spots.get(spot_id)
            return replace(spot) if spot else None

    def list_all(self) -> List[Spot]:
        with self.lock:
            return [replace(spot) for spot in self._spots.values()]

    def count_by_status(self, status: SpotStatus) -> int:
        with self.lock:
            return sum(1 for spot in self._spots.values() if spot.status == status)

    def find(self, status: Optional[SpotStatus] = None,
             spot_class: Optional[SpotClass] = None) -> List[Spot]:
        with self.lock:
            return [
                replace(spot) for spot in self._spots.values()
                if (status is None or spot.status == status)
                and (spot_class is None or spot.spot_class == spot_class)
            ]

    def compare_and_set(self, spot_id: str, expected_status: SpotStatus, new_status: SpotStatus,
                        expected_version: Optional[int] = None,
                        now: Optional[datetime] = None) -> Tuple[bool, Optional[Spot]]:
        """
        Conditional update of a spot's status

        Returns:
            (True, updated spot) when the current status (and version, if given)
            matched; (False, current spot or None) otherwise.
        """
        with self.lock:
            spot = self._spots.get(spot_id)
            if spot is None:
                return False, None

            if spot.status != expected_status:
                return False, replace(spot)
            if expected_version is not None and spot.version != expected_version:
                return False, replace(spot)

            spot.status = new_status
            spot.version += 1
            spot.updated_at = now or utc_now()
            return True, replace(spot)


class SessionRepository:
    """Session table with an atomic one-active-session-per-user insert"""

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self.lock = threading.Lock()

    def add_active(self, session: Session) -> Optional[Session]:
        """
        Insert an ACTIVE session unless the user already owns one

        Returns:
            None on success, otherwise the user's existing ACTIVE session
        """
        with self.lock:
            for existing in self._sessions.values():
                if existing.user_id == session.user_id and existing.status == SessionStatus.ACTIVE:
                    return replace(existing)
            self._sessions[session.id] = replace(session)
            return None

    def get(self, session_id: str) -> Optional[Session]:
        with self.lock:
            session = self._sessions.get(session_id)
            return replace(session) if session else None

    def find_active_by_user(self, user_id: str) -> Optional[Session]:
        with self.lock:
            for session in self._sessions.values():
                if session.user_id == user_id and session.status == SessionStatus.ACTIVE:
                    return replace(session)
            return None

    def find_active_by_spot(self, spot_id: str) -> List[Session]:
        with self.lock:
            return [
                replace(s) for s in self._sessions.values()
                if s.spot_id == spot_id and s.status == SessionStatus.ACTIVE
            ]

    def list_by_user(self, user_id: str, status: Optional[SessionStatus] = None) -> List[Session]:
        """User's sessions, newest check-in first"""
        with self.lock:
            sessions = [
                replace(s) for s in self._sessions.values()
                if s.user_id == user_id and (status is None or s.status == status)
            ]
        return sorted(sessions, key=lambda s: s.check_in_time, reverse=True)

    def complete(self, session_id: str, check_out_time: datetime, amount_due: Decimal,
                 duration_minutes: int) -> Optional[Session]:
        """
        ACTIVE -> COMPLETED, exactly once

        Returns:
            The completed session, or None if it was not ACTIVE
        """
        with self.lock:
            session = self._sessions.get(session_id)
            if session is None or session.status != SessionStatus.ACTIVE:
                return None

            session.check_out_time = check_out_time
            session.amount_due = amount_due
            session.duration_minutes = duration_minutes
            session.status = SessionStatus.COMPLETED
            return replace(session)


class ReservationRepository:
    """Reservation table with the overlap query primitive"""

    def __init__(self):
        self._reservations: Dict[str, Reservation] = {}
        self.lock = threading.Lock()

    def _overlapping(self, spot_id: str, start: datetime, end: datetime,
                     statuses: Iterable[ReservationStatus]) -> List[Reservation]:
        statuses = tuple(statuses)
        return [
            r for r in self._reservations.values()
            if r.spot_id == spot_id and r.status in statuses and r.overlaps(start, end)
        ]

    def exists_overlapping(self, spot_id: str, start: datetime, end: datetime,
                           statuses: Iterable[ReservationStatus]) -> bool:
        with self.lock:
            return bool(self._overlapping(spot_id, start, end, statuses))

    def add_if_no_overlap(self, reservation: Reservation,
                          statuses: Iterable[ReservationStatus]) -> bool:
        """Insert unless an overlapping reservation in `statuses` exists; check and insert are atomic"""
        with self.lock:
            if self._overlapping(reservation.spot_id, reservation.start_time,
                                 reservation.end_time, statuses):
                return False
            self._reservations[reservation.id] = replace(reservation)
            return True

    def get(self, reservation_id: str) -> Optional[Reservation]:
        with self.lock:
            reservation = self._reservations.get(reservation_id)
            return replace(reservation) if reservation else None

    def find_covering(self, spot_id: str, instant: datetime,
                      statuses: Iterable[ReservationStatus]) -> List[Reservation]:
        """Reservations on `spot_id` whose window contains `instant`"""
        statuses = tuple(statuses)
        with self.lock:
            return [
                replace(r) for r in self._reservations.values()
                if r.spot_id == spot_id and r.status in statuses and r.covers(instant)
            ]

    def list_by_user(self, user_id: str) -> List[Reservation]:
        """User's reservations, newest start first"""
        with self.lock:
            reservations = [replace(r) for r in self._reservations.values() if r.user_id == user_id]
        return sorted(reservations, key=lambda r: r.start_time, reverse=True)

    def list_by_spot(self, spot_id: str) -> List[Reservation]:
        with self.lock:
            reservations = [replace(r) for r in self._reservations.values() if r.spot_id == spot_id]
        return sorted(reservations, key=lambda r: r.start_time)

    def update_status(self, reservation_id: str, new_status: ReservationStatus,
                      expected: Optional[Iterable[ReservationStatus]] = None,
                      now: Optional[datetime] = None) -> Optional[Reservation]:
        """
        Set a reservation's status, optionally only when it is in `expected`

        Returns:
            The updated reservation, or None if missing or not in `expected`
        """
        with self.lock:
            reservation = self._reservations.get(reservation_id)
            if reservation is None:
                return None
            if expected is not None and reservation.status not in tuple(expected):
                return None

            reservation.status = new_status
            reservation.updated_at = now or utc_now()
            return replace(reservation)


class PaymentRepository:
    """
    Payment table

    A session may hold at most one PENDING-or-SUCCESS payment at a time;
    `claim` checks and inserts under one lock, the in-process equivalent of
    a partial unique index on (session_id) for those statuses.
    """

    _BLOCKING = (PaymentStatus.PENDING, PaymentStatus.SUCCESS)

    def __init__(self):
        self._payments: Dict[str, Payment] = {}
        self.lock = threading.Lock()

    def _blocking_for(self, session_id: str) -> Optional[Payment]:
        for payment in self._payments.values():
            if payment.session_id == session_id and payment.status in self._BLOCKING:
                return payment
        return None

    def claim(self, payment: Payment) -> Optional[Payment]:
        """
        Insert a PENDING payment unless the session already has a PENDING or SUCCESS one

        Returns:
            None on success, otherwise the blocking payment
        """
        with self.lock:
            existing = self._blocking_for(payment.session_id)
            if existing is not None:
                return replace(existing)
            payment = replace(payment, status=PaymentStatus.PENDING)
            self._payments[payment.id] = payment
            return None

    def finalize(self, payment_id: str, status: PaymentStatus,
                 transaction_reference: Optional[str] = None,
                 failure_reason: Optional[str] = None) -> Optional[Payment]:
        """PENDING -> SUCCESS/FAILED"""
        with self.lock:
            payment = self._payments.get(payment_id)
            if payment is None or payment.status != PaymentStatus.PENDING:
                return None
            payment.status = status
            payment.transaction_reference = transaction_reference
            payment.failure_reason = failure_reason
            return replace(payment)

    def find_success_for_session(self, session_id: str) -> Optional[Payment]:
        with self.lock:
            for payment in self._payments.values():
                if payment.session_id == session_id and payment.status == PaymentStatus.SUCCESS:
                    return replace(payment)
            return None

    def list_by_session(self, session_id: str) -> List[Payment]:
        with self.lock:
            payments = [replace(p) for p in self._payments.values() if p.session_id == session_id]
        return sorted(payments, key=lambda p: p.created_at)

    def sum_by_status(self, status: PaymentStatus) -> Decimal:
        with self.lock:
            return sum((p.amount for p in self._payments.values() if p.status == status), Decimal("0.00"))


class EngineStore:
    """Bundle of the tables an engine instance works against"""

    def __init__(self, users: Optional[UserDirectory] = None):
        self.users = users or UserDirectory()
        self.spots = SpotRepository()
        self.sessions = SessionRepository()
        self.reservations = ReservationRepository()
        self.payments = PaymentRepository()
