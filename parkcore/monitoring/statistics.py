"""
Statistics and Read Cache
Occupancy summaries, user dashboards and the spot availability read-through cache
"""

import logging
import threading
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Any, List, Optional, Tuple

from parkcore.core.constants import SpotStatus, SpotClass, SessionStatus, HOLDING_RESERVATION_STATUSES
from parkcore.core.models import Spot
from parkcore.registry.spot_registry import SpotRegistry
from parkcore.storage.repositories import SessionRepository, ReservationRepository

logger = logging.getLogger(__name__)


class AvailabilityCache:
    """
    Read-through cache over spot listings

    Lives outside the engine core: it subscribes to the registry and is
    cleared on every successful spot mutation, so a read never observes a
    listing older than the last committed transition.
    """

    def __init__(self, registry: SpotRegistry, max_size: int = 100, enabled: bool = True):
        self.registry = registry
        self.max_size = max_size
        self.enabled = enabled
        self._entries: "OrderedDict[Tuple, List[Spot]]" = OrderedDict()
        self.lock = threading.Lock()
        self.stats = {'hits': 0, 'misses': 0, 'invalidations': 0}
        # bumped on every invalidation; a listing read under an older value is not stored
        self._generation = 0
        registry.subscribe(self._on_spot_changed)

    def _on_spot_changed(self, spot: Spot):
        self.invalidate()

    def invalidate(self):
        with self.lock:
            self._entries.clear()
            self._generation += 1
            self.stats['invalidations'] += 1

    def list_spots(self, status: Optional[SpotStatus] = SpotStatus.AVAILABLE,
                   spot_class: Optional[SpotClass] = None) -> List[Spot]:
        if not self.enabled:
            return self.registry.list_spots(status=status, spot_class=spot_class)

        key = (status, spot_class)
        with self.lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                self.stats['hits'] += 1
                return list(self._entries[key])
            self.stats['misses'] += 1
            generation = self._generation

        spots = self.registry.list_spots(status=status, spot_class=spot_class)

        with self.lock:
            if generation != self._generation:
                return list(spots)
            self._entries[key] = spots
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
        return list(spots)

    def get_stats(self) -> Dict[str, Any]:
        with self.lock:
            return {**self.stats, 'entries': len(self._entries), 'enabled': self.enabled}


class ParkingStatistics:
    """System-wide occupancy and per-user dashboard figures"""

    def __init__(self, registry: SpotRegistry, sessions: SessionRepository,
                 reservations: ReservationRepository, activity_log=None):
        self.registry = registry
        self.sessions = sessions
        self.reservations = reservations
        self.activity_log = activity_log

    def get_occupancy_summary(self) -> Dict[str, Any]:
        total = self.registry.total_spots()
        occupied = self.registry.count_by_status(SpotStatus.OCCUPIED)
        summary = {
            'total_spots': total,
            'available_spots': self.registry.count_by_status(SpotStatus.AVAILABLE),
            'occupied_spots': occupied,
            'reserved_spots': self.registry.count_by_status(SpotStatus.RESERVED),
            'maintenance_spots': self.registry.count_by_status(SpotStatus.MAINTENANCE),
            'occupancy_rate': round(occupied * 100.0 / total, 2) if total else 0.0,
        }
        return summary

    def get_user_dashboard(self, user_id: str, recent_limit: int = 10) -> Dict[str, Any]:
        sessions = self.sessions.list_by_user(user_id)
        reservations = self.reservations.list_by_user(user_id)

        completed = [s for s in sessions if s.status == SessionStatus.COMPLETED]
        total_spent = sum((s.amount_due for s in sessions if s.amount_due is not None), Decimal("0.00"))
        average_fee = (
            (total_spent / len(completed)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            if completed else Decimal("0.00")
        )

        recent_activity = []
        if self.activity_log is not None:
            recent_activity = [e.to_dict() for e in self.activity_log.get_user_logs(user_id)[:recent_limit]]

        dashboard = self.get_occupancy_summary()
        dashboard.update({
            'user_id': user_id,
            'active_sessions': [s.to_dict() for s in sessions if s.status == SessionStatus.ACTIVE],
            'active_reservations': sum(1 for r in reservations if r.status in HOLDING_RESERVATION_STATUSES),
            'total_reservations': len(reservations),
            'completed_sessions': len(completed),
            'total_spent': total_spent,
            'average_session_fee': average_fee,
            'recent_activity': recent_activity,
        })
        return dashboard
