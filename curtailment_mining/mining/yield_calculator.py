"""Yield calculator -- curtailed energy to expected proof-of-work yield.

Converts the energy a farm was paid not to generate into the number of
mining units that energy could have powered for one settlement interval,
then applies the standard proof-of-work expectation:

    units     = floor(energy_J / (power_W * interval_s))
    capacity  = units * hashrate_Hs
    yield     = capacity * interval_s / (difficulty * 2**32) * block_reward

All functions are pure. The block reward is an input, resolved by the
caller from a date-keyed schedule; nothing here knows about dates.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from curtailment_mining.core.exceptions import InputValidationError

JOULES_PER_MWH = 3.6e9
HASHES_PER_DIFFICULTY = 2**32


class HardwareProfile(Protocol):
    """Anything exposing a hash rate (H/s) and a power draw (W)."""

    hashrate: float
    power_draw: float


def _require_positive(name: str, value: float) -> None:
    if value is None or not math.isfinite(value) or value <= 0:
        raise InputValidationError(f"{name} must be a positive finite number, got {value!r}")


def hardware_unit_count(
    curtailed_energy_mwh: float,
    power_draw: float,
    interval_seconds: float,
) -> int:
    """Number of whole units the energy could have powered for one interval.

    Args:
        curtailed_energy_mwh: Curtailed energy magnitude in MWh (>= 0).
        power_draw: Power draw of one unit in watts.
        interval_seconds: Settlement interval length in seconds.

    Returns:
        Integer unit count; 0 when the energy cannot power a single unit.

    Raises:
        InputValidationError: On negative energy or non-positive power/interval.
    """
    _require_positive("power_draw", power_draw)
    _require_positive("interval_seconds", interval_seconds)
    if not math.isfinite(curtailed_energy_mwh) or curtailed_energy_mwh < 0:
        raise InputValidationError(
            f"curtailed_energy_mwh must be a non-negative magnitude, got {curtailed_energy_mwh!r}"
        )

    energy_joules = curtailed_energy_mwh * JOULES_PER_MWH
    return math.floor(energy_joules / (power_draw * interval_seconds))


def estimate_yield(
    curtailed_energy_mwh: float,
    hardware: HardwareProfile,
    difficulty: float,
    interval_seconds: float,
    block_reward: float,
) -> float:
    """Estimate units mined had the curtailed energy powered ``hardware``.

    Args:
        curtailed_energy_mwh: Curtailed energy magnitude in MWh.
        hardware: Profile with ``hashrate`` (H/s) and ``power_draw`` (W).
        difficulty: Network difficulty in force for the interval.
        interval_seconds: Settlement interval length in seconds.
        block_reward: Reward per block for the interval's reward epoch.

    Returns:
        Expected yield (>= 0). Zero when no whole unit could be powered.

    Raises:
        InputValidationError: If any input is out of range. Non-positive
            difficulty is rejected rather than producing inf/NaN.
    """
    _require_positive("difficulty", difficulty)
    _require_positive("block_reward", block_reward)
    _require_positive("hashrate", hardware.hashrate)

    units = hardware_unit_count(curtailed_energy_mwh, hardware.power_draw, interval_seconds)
    if units == 0:
        return 0.0

    capacity = units * hardware.hashrate
    return capacity * interval_seconds / (difficulty * HASHES_PER_DIFFICULTY) * block_reward


def quantize_yield(value: float | Decimal, places: int = 8) -> Decimal:
    """Round a yield to the persisted precision (half-up)."""
    exponent = Decimal(1).scaleb(-places)
    if not isinstance(value, Decimal):
        value = Decimal(repr(float(value)))
    return value.quantize(exponent, rounding=ROUND_HALF_UP)
