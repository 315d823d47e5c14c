"""
Parking Engine - Main Entry Point
Loads the spot inventory and reports the engine status
"""

import json
import logging
import sys
from typing import Optional

from parkcore.config.settings import config
from parkcore.config.logging_config import setup_logging_from_config
from parkcore.core.constants import VERSION
from parkcore.core.exceptions import ParkingEngineException
from parkcore.engine import ParkingEngine

logger = logging.getLogger(__name__)


def display_system_info(engine_config=config):
    """Display system information and configuration"""
    print("\n" + "=" * 60)
    print(f"🅿️ PARKING OCCUPANCY & RESERVATION ENGINE v{VERSION}")
    print("=" * 60)
    print(f"📍 Location: {engine_config.LOCATION_NAME}")
    print(f"💵 Rates: {', '.join(f'{k}={v}/hr' for k, v in engine_config.get_hourly_rates().items())}")
    print(f"🌐 Activity sync: {engine_config.SYNC_SERVER_URL if engine_config.SYNC_ENABLED else 'Disabled'}")
    print("=" * 60)


def main(spots_path: Optional[str] = None, engine_config=None, configure_logging: bool = True) -> int:
    engine_config = engine_config or config
    if configure_logging:
        setup_logging_from_config(engine_config)

    display_system_info(engine_config)

    try:
        engine = ParkingEngine.from_config(engine_config, spots_path=spots_path)
    except ParkingEngineException as e:
        logger.error(f"❌ Initialization failed: {e}")
        return 1

    engine_config.display_config()
    status = engine.get_status()
    summary = status['parking_summary']
    logger.info(f"📊 Occupancy: {summary['occupied_spots']}/{summary['total_spots']} "
                f"({summary['occupancy_rate']}%), available: {summary['available_spots']}")

    print(json.dumps(status, indent=2, ensure_ascii=False, default=str))
    engine.close()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1] if len(sys.argv) > 1 else None))
