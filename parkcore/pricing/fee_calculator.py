"""
Fee Calculator
Per-class rate strategies mapping a parking duration to a monetary amount
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from functools import partial
from typing import Callable, Dict, Optional, Union

from parkcore.config.settings import EngineConfig, config as default_config
from parkcore.core.constants import SpotClass, format_duration_minutes

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
HOURS_PRECISION = Decimal("0.0001")
ZERO_FEE = Decimal("0.00")

FeeStrategy = Callable[[int], Decimal]


def prorated_fee(duration_minutes: Optional[int], hourly_rate: Decimal) -> Decimal:
    """
    Hourly rate prorated by minute

    hours = minutes / 60 (half-up, 4 places); fee = hours * rate (half-up, 2 places).
    Missing or non-positive durations cost nothing.
    """
    if duration_minutes is None or duration_minutes <= 0:
        return ZERO_FEE

    minutes = int(duration_minutes)
    hours = (Decimal(minutes) / Decimal(60)).quantize(HOURS_PRECISION, rounding=ROUND_HALF_UP)
    return (hours * hourly_rate).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass
class FeeQuote:
    """Fee preview for an active session"""

    session_id: str
    spot_number: str
    spot_class: SpotClass
    check_in_time: datetime
    calculated_check_out_time: datetime
    duration_minutes: int
    hourly_rate: Decimal
    amount_due: Decimal
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            'session_id': self.session_id,
            'spot_number': self.spot_number,
            'spot_class': self.spot_class.value,
            'check_in_time': self.check_in_time.isoformat(),
            'calculated_check_out_time': self.calculated_check_out_time.isoformat(),
            'duration_minutes': self.duration_minutes,
            'hourly_rate': str(self.hourly_rate),
            'amount_due': str(self.amount_due),
            'message': self.message,
        }


class FeeCalculator:
    """Closed mapping SpotClass -> pure duration->fee function"""

    def __init__(self, engine_config: Optional[EngineConfig] = None):
        self.config = engine_config or default_config
        self.minimum_fee = self.config.MINIMUM_FEE.quantize(CENTS, rounding=ROUND_HALF_UP)
        self._rates: Dict[SpotClass, Decimal] = {
            SpotClass.STANDARD: self.config.STANDARD_HOURLY_RATE,
            SpotClass.VIP: self.config.VIP_HOURLY_RATE,
        }
        self._strategies: Dict[SpotClass, FeeStrategy] = {
            spot_class: partial(prorated_fee, hourly_rate=rate)
            for spot_class, rate in self._rates.items()
        }

        missing = [c.value for c in SpotClass if c not in self._strategies]
        if missing:
            raise ValueError(f"No fee strategy bound for spot classes: {missing}")

    def hourly_rate(self, spot_class: Union[SpotClass, str, None]) -> Decimal:
        return self._rates[SpotClass.resolve(spot_class)]

    def calculate_fee(self, duration_minutes: Optional[int],
                      spot_class: Union[SpotClass, str, None] = None) -> Decimal:
        """
        Raw fee for a duration; unknown or missing classes are priced as STANDARD

        The minimum-fee floor is not applied here (see `apply_minimum`).
        """
        strategy = self._strategies[SpotClass.resolve(spot_class)]
        return strategy(duration_minutes)

    def apply_minimum(self, fee: Decimal) -> Decimal:
        return max(fee, self.minimum_fee)

    def calculate_amount_due(self, duration_minutes: Optional[int],
                             spot_class: Union[SpotClass, str, None] = None) -> Decimal:
        """Fee with the minimum floor, as charged at checkout"""
        return self.apply_minimum(self.calculate_fee(duration_minutes, spot_class))

    def describe(self, duration_minutes: int, spot_class: Union[SpotClass, str, None],
                 amount: Decimal) -> str:
        """Human-readable breakdown, e.g. '1h 30min @ $10.00/hr = $15.00'"""
        rate = self.hourly_rate(spot_class).quantize(CENTS)
        return f"{format_duration_minutes(duration_minutes)} @ ${rate}/hr = ${amount}"
