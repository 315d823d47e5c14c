"""
ParkCore - Parking Spot Occupancy & Reservation Engine
In-process engine for check-in/check-out sessions, reservations, fees and payments
"""

from parkcore.core.constants import VERSION

__version__ = VERSION
