"""
Spot Registry
Spot state with optimistic compare-and-swap transitions
"""

import logging
from typing import Callable, List, Optional

from parkcore.core.constants import SpotStatus, SpotClass
from parkcore.core.exceptions import SpotNotFoundException, StaleSpotVersionException
from parkcore.core.models import Spot, utc_now
from parkcore.storage.repositories import SpotRepository

logger = logging.getLogger(__name__)

SpotListener = Callable[[Spot], None]


class SpotRegistry:
    """
    Holds every spot's (status, class, version)

    `try_transition` is the sole synchronization point of the engine: a
    conditional write that succeeds only when the spot is still in the
    expected status, bumping the version. Reads never block on writers of
    other spots; there is no table-wide lock held across operations.
    """

    def __init__(self, repository: Optional[SpotRepository] = None, clock=utc_now):
        self.repository = repository or SpotRepository()
        self.clock = clock
        self._listeners: List[SpotListener] = []

    def subscribe(self, listener: SpotListener):
        """Register a callback invoked after every successful spot mutation"""
        self._listeners.append(listener)

    def _notify(self, spot: Spot):
        for listener in self._listeners:
            try:
                listener(spot)
            except Exception as e:
                logger.warning(f"⚠️ Spot listener failed for {spot.id}: {e}")

    def register_spot(self, spot_id: str, spot_number: str = None,
                      spot_class=SpotClass.STANDARD, status: SpotStatus = SpotStatus.AVAILABLE,
                      floor: str = None) -> Spot:
        now = self.clock()
        spot = self.repository.add(Spot(
            id=spot_id,
            spot_number=spot_number or spot_id,
            spot_class=SpotClass.resolve(spot_class),
            status=status,
            floor=floor,
            created_at=now,
            updated_at=now,
        ))
        logger.debug(f"Registered spot {spot.spot_number} ({spot.spot_class.value}, {spot.status.value})")
        self._notify(spot)
        return spot

    def get_spot(self, spot_id: str) -> Spot:
        spot = self.repository.get(spot_id)
        if spot is None:
            raise SpotNotFoundException(spot_id)
        return spot

    def find_spot(self, spot_id: str) -> Optional[Spot]:
        return self.repository.get(spot_id)

    def try_transition(self, spot_id: str, expected_status: SpotStatus, new_status: SpotStatus,
                       expected_version: Optional[int] = None) -> Spot:
        """
        Compare-and-swap on (status, version)

        Raises:
            SpotNotFoundException: unknown spot
            StaleSpotVersionException: current status (or version) differs
        """
        ok, spot = self.repository.compare_and_set(
            spot_id, expected_status, new_status,
            expected_version=expected_version, now=self.clock()
        )

        if spot is None:
            raise SpotNotFoundException(spot_id)

        if not ok:
            logger.debug(
                f"CAS rejected on {spot_id}: expected {expected_status.value}"
                f"@{expected_version}, found {spot.status.value}@{spot.version}"
            )
            raise StaleSpotVersionException(
                spot_id,
                expected_status.value,
                actual_status=spot.status.value,
                expected_version=expected_version,
                actual_version=spot.version,
            )

        logger.debug(f"Spot {spot_id}: {expected_status.value} -> {new_status.value} (v{spot.version})")
        self._notify(spot)
        return spot

    def set_maintenance(self, spot_id: str) -> Spot:
        """AVAILABLE -> MAINTENANCE"""
        return self.try_transition(spot_id, SpotStatus.AVAILABLE, SpotStatus.MAINTENANCE)

    def release_maintenance(self, spot_id: str) -> Spot:
        """MAINTENANCE -> AVAILABLE"""
        return self.try_transition(spot_id, SpotStatus.MAINTENANCE, SpotStatus.AVAILABLE)

    def list_spots(self, status: Optional[SpotStatus] = None,
                   spot_class=None) -> List[Spot]:
        spot_class = SpotClass.resolve(spot_class) if spot_class is not None else None
        spots = self.repository.find(status=status, spot_class=spot_class)
        return sorted(spots, key=lambda s: s.spot_number)

    def get_available_spots(self) -> List[Spot]:
        return self.list_spots(status=SpotStatus.AVAILABLE)

    def count_by_status(self, status: SpotStatus) -> int:
        return self.repository.count_by_status(status)

    def total_spots(self) -> int:
        return len(self.repository.list_all())
