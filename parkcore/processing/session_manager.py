"""
Session Manager
Check-in / check-out state machine: NONE -> ACTIVE -> COMPLETED
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Dict, Any

from parkcore.config.settings import EngineConfig, config as default_config
from parkcore.config.logging_config import PerformanceLogContext
from parkcore.core.constants import (
    ActionCode, PaymentMethod, ReservationStatus, SessionStatus, SpotStatus,
    HOLDING_RESERVATION_STATUSES
)
from parkcore.core.exceptions import (
    ParkingEngineException, UserNotFoundException, InactiveUserException,
    SessionNotFoundException, SessionAlreadyCompletedException,
    ActiveSessionExistsException, SpotUnavailableException, StaleSpotVersionException
)
from parkcore.core.models import Session, Spot, Payment, new_id, utc_now
from parkcore.monitoring.activity_log import AuditTrail
from parkcore.pricing.fee_calculator import FeeCalculator, FeeQuote
from parkcore.processing.payment_settlement import PaymentSettlement, parse_payment_method
from parkcore.registry.spot_registry import SpotRegistry
from parkcore.storage.repositories import UserDirectory, SessionRepository, ReservationRepository

logger = logging.getLogger(__name__)


@dataclass
class CheckOutResult:
    """Completed session plus the payment that settled it"""

    session: Session
    payment: Payment
    spot: Spot

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session.id,
            'spot_id': self.spot.id,
            'spot_number': self.spot.spot_number,
            'check_in_time': self.session.check_in_time.isoformat(),
            'check_out_time': self.session.check_out_time.isoformat(),
            'duration_minutes': self.session.duration_minutes,
            'amount_due': str(self.session.amount_due),
            'payment_id': self.payment.id,
            'payment_status': self.payment.status.value,
            'transaction_id': self.payment.transaction_reference,
            'payment_method': self.payment.method.value,
        }


class SessionManager:
    """Owns the occupancy invariant: a spot is OCCUPIED iff one ACTIVE session references it"""

    def __init__(self, users: UserDirectory, registry: SpotRegistry, sessions: SessionRepository,
                 reservations: ReservationRepository, fee_calculator: FeeCalculator,
                 settlement: PaymentSettlement, audit: Optional[AuditTrail] = None,
                 engine_config: Optional[EngineConfig] = None, clock=utc_now):
        self.users = users
        self.registry = registry
        self.sessions = sessions
        self.reservations = reservations
        self.fee_calculator = fee_calculator
        self.settlement = settlement
        self.audit = audit or AuditTrail()
        self.config = engine_config or default_config
        self.clock = clock

    def check_in(self, user_id: str, spot_id: str, vehicle_tag: Optional[str] = None) -> Session:
        """
        Start an occupancy session

        Raises:
            UserNotFoundException / SpotNotFoundException: unknown user or spot
            InactiveUserException: user account disabled
            ActiveSessionExistsException: user already parked elsewhere
            SpotUnavailableException: spot not AVAILABLE or held by another user's reservation
            StaleSpotVersionException: lost the occupancy race after bounded retries
        """
        with PerformanceLogContext(f"check_in {user_id} -> {spot_id}"):
            user = self.users.find_user(user_id)
            if user is None:
                raise UserNotFoundException(user_id)
            if not user.is_active:
                raise InactiveUserException(user_id)

            existing = self.sessions.find_active_by_user(user_id)
            if existing is not None:
                raise ActiveSessionExistsException(user_id, existing.id)

            spot = self.registry.get_spot(spot_id)
            if spot.status != SpotStatus.AVAILABLE:
                raise SpotUnavailableException(spot_id, spot.status.value)

            now = self.clock()
            own_reservation = self._check_reservation_hold(user_id, spot_id, now)

            occupied = self._occupy(spot)

            session = Session(
                id=new_id(),
                spot_id=spot_id,
                user_id=user_id,
                check_in_time=now,
                status=SessionStatus.ACTIVE,
                vehicle_tag=vehicle_tag,
                reservation_id=own_reservation.id if own_reservation else None,
            )

            blocking = self.sessions.add_active(session)
            if blocking is not None:
                # A concurrent check-in by the same user won; give the spot back
                self._release(occupied, reason="duplicate active session")
                raise ActiveSessionExistsException(user_id, blocking.id)

            if own_reservation is not None:
                self.reservations.update_status(
                    own_reservation.id, ReservationStatus.ACTIVE,
                    expected=(ReservationStatus.PENDING,), now=now
                )

            self.audit.record(user_id, ActionCode.CHECK_IN, f"Spot: {spot.spot_number}")
            logger.info(f"🚗 Check-in: user {user_id} -> spot {spot.spot_number} (session {session.id})")
            return session

    def _check_reservation_hold(self, user_id: str, spot_id: str, now):
        """Apply the soft-hold policy; returns the caller's own PENDING reservation covering `now`"""
        covering = self.reservations.find_covering(spot_id, now, HOLDING_RESERVATION_STATUSES)

        foreign = [r for r in covering if r.user_id != user_id]
        if foreign and self.config.BLOCK_CHECKIN_DURING_FOREIGN_RESERVATION:
            raise SpotUnavailableException(
                spot_id, SpotStatus.AVAILABLE.value,
                reason=f"reserved by another user until {foreign[0].end_time.isoformat()}"
            )

        own = [r for r in covering if r.user_id == user_id and r.status == ReservationStatus.PENDING]
        return own[0] if own else None

    def _occupy(self, spot: Spot) -> Spot:
        """AVAILABLE -> OCCUPIED with a bounded number of CAS attempts"""
        last_error = None
        for attempt in range(1, self.config.CAS_MAX_RETRIES + 1):
            try:
                return self.registry.try_transition(
                    spot.id, SpotStatus.AVAILABLE, SpotStatus.OCCUPIED, expected_version=spot.version
                )
            except StaleSpotVersionException as e:
                last_error = e
                logger.warning(f"⚠️ Lost CAS race on spot {spot.id} (attempt {attempt}/{self.config.CAS_MAX_RETRIES})")
                spot = self.registry.get_spot(spot.id)
                if spot.status != SpotStatus.AVAILABLE:
                    raise
        raise last_error

    def _release(self, spot: Spot, reason: str):
        try:
            self.registry.try_transition(spot.id, SpotStatus.OCCUPIED, SpotStatus.AVAILABLE)
        except StaleSpotVersionException as e:
            logger.error(f"❌ Could not release spot {spot.id} ({reason}): {e}")
            raise

    def check_out(self, session_id: str, payment_method=PaymentMethod.CREDIT_CARD) -> CheckOutResult:
        """
        Complete a session, free its spot, then settle payment

        Session completion and spot release are committed before payment is
        attempted; a payment failure is raised to the caller without undoing them.

        Raises:
            SessionNotFoundException: unknown session
            SessionAlreadyCompletedException: session already checked out
            InvalidPaymentRequestException: unknown payment method, nothing is changed
            PaymentGatewayException and other settlement errors (state stays committed)
        """
        payment_method = parse_payment_method(payment_method)
        logger.info(f"Processing checkout for session {session_id} with method {payment_method.value}")

        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundException(session_id)
        if session.status == SessionStatus.COMPLETED:
            logger.warning(f"⚠️ Attempted double checkout for session {session_id}")
            raise SessionAlreadyCompletedException(session_id)

        spot = self.registry.get_spot(session.spot_id)

        now = self.clock()
        duration_minutes = session.elapsed_minutes(now)
        amount_due = self.fee_calculator.calculate_amount_due(duration_minutes, spot.spot_class)

        completed = self.sessions.complete(session_id, now, amount_due, duration_minutes)
        if completed is None:
            logger.warning(f"⚠️ Concurrent checkout won for session {session_id}")
            raise SessionAlreadyCompletedException(session_id)

        try:
            spot = self.registry.try_transition(spot.id, SpotStatus.OCCUPIED, SpotStatus.AVAILABLE)
        except StaleSpotVersionException as e:
            # Session is already committed; the spot was not in the state this session implies
            logger.error(f"❌ Spot {spot.id} was not OCCUPIED at checkout of {session_id}: {e}")
            spot = self.registry.get_spot(spot.id)

        if completed.reservation_id:
            self.reservations.update_status(
                completed.reservation_id, ReservationStatus.COMPLETED,
                expected=(ReservationStatus.ACTIVE,), now=now
            )

        self.audit.record(
            completed.user_id, ActionCode.CHECK_OUT,
            f"Checked out from spot {spot.spot_number}. Duration: {duration_minutes} minutes. "
            f"Amount: ${amount_due}. Payment method: {payment_method.value}"
        )

        try:
            payment = self.settlement.process_payment(session_id, amount_due, payment_method)
        except ParkingEngineException as e:
            logger.error(
                f"❌ Payment failed after spot {spot.spot_number} was released for session {session_id}; "
                f"session stays COMPLETED: {e}"
            )
            raise

        logger.info(
            f"🚪 Checkout completed for session {session_id}: {duration_minutes} min, "
            f"${amount_due} - Transaction: {payment.transaction_reference}"
        )
        return CheckOutResult(session=completed, payment=payment, spot=spot)

    def estimate_fee(self, session_id: str) -> FeeQuote:
        """Fee the session would be charged if it checked out now"""
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundException(session_id)
        if session.status == SessionStatus.COMPLETED:
            logger.warning(f"Attempted to calculate fee for already checked out session: {session_id}")
            raise SessionAlreadyCompletedException(session_id)

        spot = self.registry.get_spot(session.spot_id)
        now = self.clock()
        duration_minutes = session.elapsed_minutes(now)
        amount_due = self.fee_calculator.calculate_amount_due(duration_minutes, spot.spot_class)
        message = self.fee_calculator.describe(duration_minutes, spot.spot_class, amount_due)

        logger.info(f"Fee calculated for session {session_id}: {message}")
        return FeeQuote(
            session_id=session.id,
            spot_number=spot.spot_number,
            spot_class=spot.spot_class,
            check_in_time=session.check_in_time,
            calculated_check_out_time=now,
            duration_minutes=duration_minutes,
            hourly_rate=self.fee_calculator.hourly_rate(spot.spot_class),
            amount_due=amount_due,
            message=message,
        )

    def get_session(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundException(session_id)
        return session

    def get_active_sessions(self, user_id: str) -> List[Session]:
        return self.sessions.list_by_user(user_id, status=SessionStatus.ACTIVE)

    def get_user_sessions(self, user_id: str) -> List[Session]:
        return self.sessions.list_by_user(user_id)
