"""Pure mining-yield arithmetic (no I/O)."""

from curtailment_mining.mining.yield_calculator import (
    estimate_yield,
    hardware_unit_count,
    quantize_yield,
)

__all__ = [
    "estimate_yield",
    "hardware_unit_count",
    "quantize_yield",
]
