"""
Reservation Scheduler
Future time-window bookings with a per-spot no-overlap guarantee
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from parkcore.config.settings import EngineConfig, config as default_config
from parkcore.core.constants import (
    ActionCode, ReservationStatus, SpotStatus, HOLDING_RESERVATION_STATUSES
)
from parkcore.core.exceptions import (
    UserNotFoundException, InactiveUserException, ReservationNotFoundException,
    InvalidReservationException, ReservationStateException
)
from parkcore.core.models import Reservation, new_id, utc_now
from parkcore.monitoring.activity_log import AuditTrail
from parkcore.registry.spot_registry import SpotRegistry
from parkcore.storage.repositories import UserDirectory, ReservationRepository

logger = logging.getLogger(__name__)

OVERLAP_MESSAGE = "There is an overlapping reservation for this spot and time"


class ReservationScheduler:
    """
    Books half-open windows [start, end) on spots

    Reservations are a soft hold: the spot's status is not changed. The
    check-in side enforces the hold while the window is open.
    """

    def __init__(self, users: UserDirectory, registry: SpotRegistry, reservations: ReservationRepository,
                 audit: Optional[AuditTrail] = None, engine_config: Optional[EngineConfig] = None,
                 clock=utc_now):
        self.users = users
        self.registry = registry
        self.reservations = reservations
        self.audit = audit or AuditTrail()
        self.config = engine_config or default_config
        self.clock = clock

    def create_reservation(self, user_id: str, spot_id: str, start_time: datetime,
                           duration_minutes: Optional[int] = None) -> Reservation:
        """
        Book `spot_id` from `start_time` for `duration_minutes`

        Naive start times are taken as UTC; a missing duration uses
        DEFAULT_RESERVATION_MINUTES.

        Raises:
            UserNotFoundException / SpotNotFoundException: unknown user or spot
            InactiveUserException: user account disabled
            InvalidReservationException: spot not AVAILABLE, start in the past,
                non-positive duration or overlapping window
        """
        user = self.users.find_user(user_id)
        if user is None:
            raise UserNotFoundException(user_id)
        if not user.is_active:
            raise InactiveUserException(user_id)

        spot = self.registry.get_spot(spot_id)
        if spot.status != SpotStatus.AVAILABLE:
            raise InvalidReservationException(
                "Spot is not available for reservation",
                {"spot_id": spot_id, "status": spot.status.value}
            )

        if start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=timezone.utc)

        now = self.clock()
        if start_time < now:
            raise InvalidReservationException(
                "Dates in the past are not available for reservations. Please select a future date and time.",
                {"start_time": start_time.isoformat(), "now": now.isoformat()}
            )

        if duration_minutes is None:
            duration_minutes = self.config.DEFAULT_RESERVATION_MINUTES
        if duration_minutes <= 0:
            raise InvalidReservationException(
                "Duration must be a positive number of minutes",
                {"duration_minutes": duration_minutes}
            )

        end_time = start_time + timedelta(minutes=duration_minutes)

        if self.reservations.exists_overlapping(spot_id, start_time, end_time, HOLDING_RESERVATION_STATUSES):
            raise InvalidReservationException(OVERLAP_MESSAGE, self._window(spot_id, start_time, end_time))

        reservation = Reservation(
            id=new_id(),
            spot_id=spot_id,
            user_id=user_id,
            start_time=start_time,
            end_time=end_time,
            status=ReservationStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

        if not self.reservations.add_if_no_overlap(reservation, HOLDING_RESERVATION_STATUSES):
            logger.warning(f"⚠️ Overlapping reservation for spot {spot_id} committed concurrently")
            raise InvalidReservationException(OVERLAP_MESSAGE, self._window(spot_id, start_time, end_time))

        self.audit.record(
            user_id, ActionCode.RESERVATION_CREATED,
            f"User created a new reservation for spot {spot.spot_number} "
            f"from {start_time.isoformat()} to {end_time.isoformat()}"
        )
        logger.info(f"🗓️ Reservation {reservation.id}: spot {spot.spot_number} "
                    f"{start_time.isoformat()} -> {end_time.isoformat()}")
        return reservation

    @staticmethod
    def _window(spot_id: str, start: datetime, end: datetime) -> dict:
        return {"spot_id": spot_id, "start_time": start.isoformat(), "end_time": end.isoformat()}

    def cancel_reservation(self, reservation_id: str) -> Reservation:
        """
        Cancel a reservation

        Cancelling twice returns the cancelled reservation unchanged. COMPLETED
        reservations are refused unless ALLOW_CANCEL_COMPLETED_RESERVATION is set.
        """
        reservation = self.reservations.get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundException(reservation_id)

        if reservation.status == ReservationStatus.CANCELLED:
            return reservation

        if (reservation.status == ReservationStatus.COMPLETED
                and not self.config.ALLOW_CANCEL_COMPLETED_RESERVATION):
            raise ReservationStateException(
                reservation_id, reservation.status.value, "reservation already completed"
            )

        cancelled = self.reservations.update_status(
            reservation_id, ReservationStatus.CANCELLED,
            expected=(reservation.status,), now=self.clock()
        )
        if cancelled is None:
            raise ReservationStateException(
                reservation_id, reservation.status.value, "reservation changed concurrently"
            )

        self.audit.record(
            cancelled.user_id, ActionCode.RESERVATION_CANCELLED,
            f"Reservation {reservation_id} cancelled (was {reservation.status.value})"
        )
        logger.info(f"Reservation {reservation_id} cancelled (was {reservation.status.value})")
        return cancelled

    def get_reservation(self, reservation_id: str) -> Reservation:
        reservation = self.reservations.get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundException(reservation_id)
        return reservation

    def get_user_reservations(self, user_id: str) -> List[Reservation]:
        return self.reservations.list_by_user(user_id)

    def get_spot_reservations(self, spot_id: str) -> List[Reservation]:
        return self.reservations.list_by_spot(spot_id)
