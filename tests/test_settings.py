from decimal import Decimal

import pytest

from parkcore.config.settings import EngineConfig


def test_defaults():
    engine_config = EngineConfig()

    assert engine_config.get_hourly_rates() == {'STANDARD': Decimal("10.00"), 'VIP': Decimal("15.00")}
    assert engine_config.MINIMUM_FEE == Decimal("1.00")
    assert engine_config.DEFAULT_RESERVATION_MINUTES == 120
    assert engine_config.SYNC_ENABLED is False


def test_money_values_become_decimal():
    engine_config = EngineConfig(STANDARD_HOURLY_RATE="12.5", MINIMUM_FEE=2)

    assert engine_config.STANDARD_HOURLY_RATE == Decimal("12.5")
    assert isinstance(engine_config.MINIMUM_FEE, Decimal)


@pytest.mark.parametrize("overrides", [
    {"STANDARD_HOURLY_RATE": "-1"},
    {"MINIMUM_FEE": "-0.01"},
    {"DEFAULT_RESERVATION_MINUTES": 0},
    {"CAS_MAX_RETRIES": 0},
    {"CACHE_SIZE": 0},
    {"REQUEST_TIMEOUT": 0},
    {"OFFLINE_QUEUE_SIZE": 0},
    {"SYNC_INTERVAL": 0},
    {"HEALTH_CHECK_INTERVAL": -1},
    {"LOG_LEVEL": "VERBOSE"},
])
def test_invalid_values_rejected(overrides):
    with pytest.raises(ValueError):
        EngineConfig(**overrides)


def test_from_env(monkeypatch):
    monkeypatch.setenv("LOCATION_NAME", "Harbor Lot")
    monkeypatch.setenv("VIP_HOURLY_RATE", "22.00")
    monkeypatch.setenv("ALLOW_CANCEL_COMPLETED_RESERVATION", "true")
    monkeypatch.setenv("CAS_MAX_RETRIES", "5")

    engine_config = EngineConfig.from_env()

    assert engine_config.LOCATION_NAME == "Harbor Lot"
    assert engine_config.VIP_HOURLY_RATE == Decimal("22.00")
    assert engine_config.ALLOW_CANCEL_COMPLETED_RESERVATION is True
    assert engine_config.CAS_MAX_RETRIES == 5


def test_server_endpoints():
    endpoints = EngineConfig(SYNC_SERVER_URL="https://api.example.com/").get_server_endpoints()

    assert endpoints['activity'] == "https://api.example.com/api/activity"
    assert endpoints['health'] == "https://api.example.com/api/health"
