"""
Shared fixtures for the parking engine tests
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from parkcore.config.settings import EngineConfig
from parkcore.core.constants import SpotClass
from parkcore.engine import ParkingEngine

START = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced engine clock"""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0):
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now


def run_concurrently(func, args_list):
    """
    Run func(*args) for every args tuple on its own thread, released together

    Returns a list of (result, exception) pairs in submission order.
    """
    barrier = threading.Barrier(len(args_list))

    def call(args):
        barrier.wait()
        try:
            return func(*args), None
        except Exception as e:
            return None, e

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(call, args_list))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine_config():
    return EngineConfig(LOCATION_NAME="Test Garage")


def build_engine(engine_config, clock, **kwargs) -> ParkingEngine:
    engine = ParkingEngine(engine_config, clock=clock, **kwargs)
    for user_id in ("alice", "bob", "carol"):
        engine.add_user(user_id, full_name=user_id.title(), email=f"{user_id}@example.com")
    engine.add_user("dave", full_name="Dave", is_active=False)

    engine.add_spot("A1", spot_class=SpotClass.STANDARD, floor="1")
    engine.add_spot("A2", spot_class=SpotClass.STANDARD, floor="1")
    engine.add_spot("B1", spot_class=SpotClass.VIP, floor="2")
    return engine


@pytest.fixture
def engine(engine_config, clock):
    return build_engine(engine_config, clock)
