"""
Parking Engine
Wires registry, fee calculator, session manager, scheduler and settlement together
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from parkcore.config.settings import EngineConfig, config as default_config
from parkcore.config.logging_config import get_event_logger, get_sync_logger
from parkcore.core.constants import PaymentMethod, PaymentStatus, SpotStatus, SpotClass
from parkcore.core.models import User, Spot, Session, Reservation, Payment, utc_now
from parkcore.monitoring.activity_log import InMemoryActivityLog, AuditTrail
from parkcore.monitoring.statistics import AvailabilityCache, ParkingStatistics
from parkcore.pricing.fee_calculator import FeeCalculator, FeeQuote
from parkcore.processing.payment_settlement import PaymentSettlement
from parkcore.processing.reservation_scheduler import ReservationScheduler
from parkcore.processing.session_manager import SessionManager, CheckOutResult
from parkcore.registry.spot_registry import SpotRegistry
from parkcore.storage.repositories import EngineStore
from parkcore.utils.file_utils import load_parking_spots

logger = logging.getLogger(__name__)


class ParkingEngine:
    """In-process entry point for a request layer"""

    def __init__(self, engine_config: Optional[EngineConfig] = None, store: Optional[EngineStore] = None,
                 gateway=None, extra_sinks=(), event_logger=None, clock=utc_now):
        self.config = engine_config or default_config
        self.store = store or EngineStore()
        self.clock = clock

        self.activity_log = InMemoryActivityLog(event_logger=event_logger, clock=clock)
        self.audit = AuditTrail([self.activity_log, *extra_sinks])

        self.registry = SpotRegistry(self.store.spots, clock=clock)
        self.fee_calculator = FeeCalculator(self.config)
        self.settlement = PaymentSettlement(
            self.store.sessions, self.store.payments, audit=self.audit,
            gateway=gateway, engine_config=self.config, clock=clock
        )
        self.session_manager = SessionManager(
            self.store.users, self.registry, self.store.sessions, self.store.reservations,
            self.fee_calculator, self.settlement, audit=self.audit,
            engine_config=self.config, clock=clock
        )
        self.scheduler = ReservationScheduler(
            self.store.users, self.registry, self.store.reservations,
            audit=self.audit, engine_config=self.config, clock=clock
        )

        self.availability_cache = AvailabilityCache(
            self.registry, max_size=self.config.CACHE_SIZE, enabled=self.config.ENABLE_CACHING
        )
        self.statistics = ParkingStatistics(
            self.registry, self.store.sessions, self.store.reservations, self.activity_log
        )

        logger.info(f"🅿️ Parking engine ready for {self.config.LOCATION_NAME}")

    @classmethod
    def from_config(cls, engine_config: Optional[EngineConfig] = None,
                    spots_path: Optional[str] = None, **kwargs) -> 'ParkingEngine':
        """Build an engine and seed its registry from the spot inventory file"""
        engine_config = engine_config or default_config
        extra_sinks = list(kwargs.pop('extra_sinks', ()))

        if engine_config.SYNC_ENABLED:
            from parkcore.sync.server_sync import RemoteActivitySink
            extra_sinks.append(RemoteActivitySink(engine_config, sync_logger=get_sync_logger(engine_config.LOGS_DIR)))

        kwargs.setdefault('event_logger', get_event_logger(engine_config.LOGS_DIR))
        engine = cls(engine_config, extra_sinks=extra_sinks, **kwargs)
        for spot in load_parking_spots(spots_path or engine_config.PARKING_SPOTS_CONFIG):
            engine.registry.register_spot(
                spot['id'], spot_number=spot['spot_number'], spot_class=spot['spot_class'],
                status=spot['status'], floor=spot.get('floor')
            )
        return engine

    # Administration hooks
    def add_user(self, user_id: str, full_name: str = "", email: str = "", is_active: bool = True) -> User:
        return self.store.users.add_user(User(id=user_id, full_name=full_name, email=email, is_active=is_active))

    def add_spot(self, spot_id: str, spot_number: str = None, spot_class=SpotClass.STANDARD,
                 floor: str = None) -> Spot:
        return self.registry.register_spot(spot_id, spot_number=spot_number, spot_class=spot_class, floor=floor)

    # Sessions
    def check_in(self, user_id: str, spot_id: str, vehicle_tag: Optional[str] = None) -> Session:
        return self.session_manager.check_in(user_id, spot_id, vehicle_tag)

    def check_out(self, session_id: str, payment_method=PaymentMethod.CREDIT_CARD) -> CheckOutResult:
        return self.session_manager.check_out(session_id, payment_method)

    def estimate_fee(self, session_id: str) -> FeeQuote:
        return self.session_manager.estimate_fee(session_id)

    # Reservations
    def create_reservation(self, user_id: str, spot_id: str, start_time: datetime,
                           duration_minutes: Optional[int] = None) -> Reservation:
        return self.scheduler.create_reservation(user_id, spot_id, start_time, duration_minutes)

    def cancel_reservation(self, reservation_id: str) -> Reservation:
        return self.scheduler.cancel_reservation(reservation_id)

    # Payments
    def process_payment(self, session_id: str, amount: Decimal,
                        method=PaymentMethod.CREDIT_CARD) -> Payment:
        return self.settlement.process_payment(session_id, amount, method)

    # Reads
    def get_available_spots(self, spot_class=None) -> List[Spot]:
        spot_class = SpotClass.resolve(spot_class) if spot_class is not None else None
        return self.availability_cache.list_spots(SpotStatus.AVAILABLE, spot_class)

    def get_dashboard(self, user_id: str) -> Dict[str, Any]:
        return self.statistics.get_user_dashboard(user_id)

    def get_status(self) -> Dict[str, Any]:
        return {
            'location_name': self.config.LOCATION_NAME,
            'timestamp': self.clock().isoformat(),
            'parking_summary': self.statistics.get_occupancy_summary(),
            'cache': self.availability_cache.get_stats(),
            'revenue_collected': self.store.payments.sum_by_status(PaymentStatus.SUCCESS),
            'audit_failures': self.audit.failures,
        }

    def close(self):
        """Stop background sinks, flushing what they still hold"""
        for sink in self.audit.sinks:
            if hasattr(sink, 'close'):
                sink.close()
