"""
File Utilities
Spot inventory loading and saving (JSON / YAML)
"""

import os
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Dict, Any, Optional

import yaml

from parkcore.core.constants import SpotClass, SpotStatus
from parkcore.core.exceptions import FileReadException, ConfigurationException

logger = logging.getLogger(__name__)

SEARCH_PATHS = [
    "config/parking_spots.yaml",
    "config/parking_spots.yml",
    "config/parking_spots.json",
    "parking_spots.yaml",
    "parking_spots.json",
]


def _is_yaml(path: str) -> bool:
    return path.endswith('.yaml') or path.endswith('.yml')


def load_parking_spots(config_path: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Load the spot inventory from file

    Args:
        config_path: Path to a JSON or YAML inventory; searched in SEARCH_PATHS when omitted

    Returns:
        List of normalized spot dictionaries (id, spot_number, spot_class, status, floor)
    """
    if config_path is None:
        config_path = next((p for p in SEARCH_PATHS if os.path.exists(p)), None)

    if not config_path or not os.path.exists(config_path):
        logger.warning("⚠️ No parking spots config found, using default inventory")
        return create_default_parking_spots()

    logger.info(f"📖 Loading parking spots from: {config_path}")
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) if _is_yaml(config_path) else json.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"❌ Failed to load parking spots config: {e}")
        raise FileReadException(config_path, str(e))

    # Accept a bare list or a {parking_spots: [...]} / {spots: [...]} document
    if isinstance(data, dict):
        spots_data = data.get('parking_spots', data.get('spots'))
    else:
        spots_data = data

    if not isinstance(spots_data, list):
        raise ConfigurationException("parking_spots", expected="a list of spots")

    validated_spots = []
    seen = set()
    for i, spot_data in enumerate(spots_data):
        try:
            spot = validate_parking_spot_config(spot_data)
        except ValueError as e:
            logger.warning(f"⚠️ Invalid spot config at index {i}: {e}")
            continue
        if spot['id'] in seen:
            logger.warning(f"⚠️ Duplicate spot id '{spot['id']}' at index {i}, skipped")
            continue
        seen.add(spot['id'])
        validated_spots.append(spot)

    logger.info(f"✅ Loaded {len(validated_spots)} valid parking spots")
    return validated_spots


def validate_parking_spot_config(spot_data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and normalize one spot entry"""
    if not isinstance(spot_data, dict):
        raise ValueError("Spot entry must be a mapping")
    if not spot_data.get('id'):
        raise ValueError("Missing required field: id")

    raw_class = spot_data.get('spot_class', spot_data.get('type'))
    spot_class = SpotClass.resolve(raw_class)
    if raw_class and str(raw_class).strip().upper() != spot_class.value:
        logger.warning(f"Unknown spot_class '{raw_class}', using '{spot_class.value}'")

    raw_status = str(spot_data.get('status', SpotStatus.AVAILABLE.value)).strip().upper()
    if raw_status == SpotStatus.OCCUPIED.value:
        # Occupancy only comes from sessions
        raise ValueError("Spots cannot be loaded as OCCUPIED")
    try:
        status = SpotStatus(raw_status)
    except ValueError:
        raise ValueError(f"Invalid status '{raw_status}'")

    return {
        'id': str(spot_data['id']),
        'spot_number': str(spot_data.get('spot_number', spot_data['id'])),
        'spot_class': spot_class,
        'status': status,
        'floor': spot_data.get('floor'),
    }


def create_default_parking_spots() -> List[Dict[str, Any]]:
    """Default inventory: A1-A4 STANDARD, B1-B2 VIP"""
    spots = []
    for number in ("A1", "A2", "A3", "A4"):
        spots.append({'id': number, 'spot_number': number, 'spot_class': SpotClass.STANDARD,
                      'status': SpotStatus.AVAILABLE, 'floor': "1"})
    for number in ("B1", "B2"):
        spots.append({'id': number, 'spot_number': number, 'spot_class': SpotClass.VIP,
                      'status': SpotStatus.AVAILABLE, 'floor': "2"})
    return spots


def save_parking_spots_config(spots: List[Dict[str, Any]], file_path: str):
    """Save a spot inventory to JSON or YAML"""
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    config_data = {
        'version': '1.0',
        'created_at': datetime.now().isoformat(),
        'total_spots': len(spots),
        'parking_spots': [
            {
                'id': spot['id'],
                'spot_number': spot.get('spot_number', spot['id']),
                'spot_class': SpotClass.resolve(spot.get('spot_class')).value,
                'status': SpotStatus(spot.get('status', SpotStatus.AVAILABLE)).value,
                'floor': spot.get('floor'),
            }
            for spot in spots
        ],
    }

    with open(file_path, 'w', encoding='utf-8') as f:
        if _is_yaml(file_path):
            yaml.safe_dump(config_data, f, default_flow_style=False, allow_unicode=True)
        else:
            json.dump(config_data, f, ensure_ascii=False, indent=2)

    logger.info(f"💾 Saved parking spots config to: {file_path}")
