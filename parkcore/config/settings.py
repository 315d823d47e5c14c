"""
Engine Configuration Settings
Global configuration for the parking occupancy & reservation engine
"""

import os
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict

logger = logging.getLogger(__name__)

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == 'true'


@dataclass
class EngineConfig:
    """Engine configuration with validated defaults"""

    # Site identification
    LOCATION_NAME: str = "Main Garage"
    CURRENCY: str = "USD"

    # Pricing (per hour, prorated by minute)
    STANDARD_HOURLY_RATE: Decimal = field(default_factory=lambda: Decimal("10.00"))
    VIP_HOURLY_RATE: Decimal = field(default_factory=lambda: Decimal("15.00"))
    MINIMUM_FEE: Decimal = field(default_factory=lambda: Decimal("1.00"))

    # Reservations
    DEFAULT_RESERVATION_MINUTES: int = 120
    ALLOW_CANCEL_COMPLETED_RESERVATION: bool = False
    BLOCK_CHECKIN_DURING_FOREIGN_RESERVATION: bool = True

    # Optimistic concurrency
    CAS_MAX_RETRIES: int = 3

    # Availability read cache
    ENABLE_CACHING: bool = True
    CACHE_SIZE: int = 100

    # Remote activity sink
    SYNC_ENABLED: bool = False
    SYNC_SERVER_URL: str = "http://localhost:5000"
    CONNECTION_TIMEOUT: float = 5.0
    REQUEST_TIMEOUT: float = 10.0
    MAX_RETRY_ATTEMPTS: int = 3
    OFFLINE_QUEUE_SIZE: int = 200
    BATCH_SYNC_SIZE: int = 10
    SYNC_INTERVAL: float = 5.0
    HEALTH_CHECK_INTERVAL: float = 30.0

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    LOG_FILE: str = 'logs/parking_engine.log'
    LOG_MAX_BYTES: int = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT: int = 5
    LOGS_DIR: str = "logs"

    # File paths
    PARKING_SPOTS_CONFIG: str = "config/parking_spots.yaml"

    def __post_init__(self):
        """Post-initialization validation"""
        # Money values arrive as str/float from the environment
        self.STANDARD_HOURLY_RATE = Decimal(str(self.STANDARD_HOURLY_RATE))
        self.VIP_HOURLY_RATE = Decimal(str(self.VIP_HOURLY_RATE))
        self.MINIMUM_FEE = Decimal(str(self.MINIMUM_FEE))

        # Validate pricing
        for name in ("STANDARD_HOURLY_RATE", "VIP_HOURLY_RATE", "MINIMUM_FEE"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")

        # Validate reservation settings
        if self.DEFAULT_RESERVATION_MINUTES <= 0:
            raise ValueError(
                f"DEFAULT_RESERVATION_MINUTES must be > 0, got {self.DEFAULT_RESERVATION_MINUTES}"
            )

        if self.CAS_MAX_RETRIES < 1:
            raise ValueError(f"CAS_MAX_RETRIES must be >= 1, got {self.CAS_MAX_RETRIES}")

        if self.CACHE_SIZE < 1:
            raise ValueError(f"CACHE_SIZE must be >= 1, got {self.CACHE_SIZE}")

        # Validate network settings
        if self.CONNECTION_TIMEOUT <= 0 or self.REQUEST_TIMEOUT <= 0:
            raise ValueError("CONNECTION_TIMEOUT and REQUEST_TIMEOUT must be > 0")

        if self.OFFLINE_QUEUE_SIZE < 1 or self.BATCH_SYNC_SIZE < 1:
            raise ValueError("OFFLINE_QUEUE_SIZE and BATCH_SYNC_SIZE must be >= 1")

        if self.SYNC_INTERVAL <= 0 or self.HEALTH_CHECK_INTERVAL <= 0:
            raise ValueError("SYNC_INTERVAL and HEALTH_CHECK_INTERVAL must be > 0")

        if self.LOG_LEVEL.upper() not in _VALID_LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {_VALID_LOG_LEVELS}, got {self.LOG_LEVEL}")

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Create config from environment variables"""
        defaults = cls()
        return cls(
            LOCATION_NAME=os.getenv('LOCATION_NAME', defaults.LOCATION_NAME),
            CURRENCY=os.getenv('CURRENCY', defaults.CURRENCY),
            STANDARD_HOURLY_RATE=Decimal(os.getenv('STANDARD_HOURLY_RATE', str(defaults.STANDARD_HOURLY_RATE))),
            VIP_HOURLY_RATE=Decimal(os.getenv('VIP_HOURLY_RATE', str(defaults.VIP_HOURLY_RATE))),
            MINIMUM_FEE=Decimal(os.getenv('MINIMUM_FEE', str(defaults.MINIMUM_FEE))),
            DEFAULT_RESERVATION_MINUTES=int(os.getenv('DEFAULT_RESERVATION_MINUTES', defaults.DEFAULT_RESERVATION_MINUTES)),
            ALLOW_CANCEL_COMPLETED_RESERVATION=_env_bool(
                'ALLOW_CANCEL_COMPLETED_RESERVATION', defaults.ALLOW_CANCEL_COMPLETED_RESERVATION
            ),
            BLOCK_CHECKIN_DURING_FOREIGN_RESERVATION=_env_bool(
                'BLOCK_CHECKIN_DURING_FOREIGN_RESERVATION', defaults.BLOCK_CHECKIN_DURING_FOREIGN_RESERVATION
            ),
            CAS_MAX_RETRIES=int(os.getenv('CAS_MAX_RETRIES', defaults.CAS_MAX_RETRIES)),
            ENABLE_CACHING=_env_bool('ENABLE_CACHING', defaults.ENABLE_CACHING),
            SYNC_ENABLED=_env_bool('SYNC_ENABLED', defaults.SYNC_ENABLED),
            SYNC_SERVER_URL=os.getenv('SYNC_SERVER_URL', defaults.SYNC_SERVER_URL),
            LOG_LEVEL=os.getenv('LOG_LEVEL', defaults.LOG_LEVEL),
            PARKING_SPOTS_CONFIG=os.getenv('PARKING_SPOTS_CONFIG', defaults.PARKING_SPOTS_CONFIG),
        )

    def get_hourly_rates(self) -> Dict[str, Decimal]:
        """Hourly rate per spot class name"""
        return {
            'STANDARD': self.STANDARD_HOURLY_RATE,
            'VIP': self.VIP_HOURLY_RATE,
        }

    def get_server_endpoints(self) -> dict:
        """Get server endpoint URLs"""
        base = self.SYNC_SERVER_URL.rstrip('/')
        return {
            'activity': f"{base}/api/activity",
            'bulk_activity': f"{base}/api/activity/bulk",
            'health': f"{base}/api/health",
        }

    def display_config(self):
        """Log current configuration"""
        logger.info("📋 Current Configuration:")
        logger.info(f"   🏢 Location: {self.LOCATION_NAME}")
        logger.info(f"   💵 Rates: STANDARD={self.STANDARD_HOURLY_RATE}/hr, VIP={self.VIP_HOURLY_RATE}/hr "
                    f"(minimum {self.MINIMUM_FEE} {self.CURRENCY})")
        logger.info(f"   🔁 CAS retries: {self.CAS_MAX_RETRIES}")
        logger.info(f"   🗓️ Default reservation: {self.DEFAULT_RESERVATION_MINUTES} min")
        logger.info(f"   💾 Caching: {'Enabled' if self.ENABLE_CACHING else 'Disabled'}")
        logger.info(f"   🌐 Activity sync: {self.SYNC_SERVER_URL if self.SYNC_ENABLED else 'Disabled'}")


# Create global config instance
config = EngineConfig()

# Environment-based configuration (if needed)
if os.getenv('USE_ENV_CONFIG', 'false').lower() == 'true':
    config = EngineConfig.from_env()
