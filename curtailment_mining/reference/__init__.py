"""Reference data consumed by the reconciler.

- Hardware catalogue (hash rate / power draw per miner model)
- Block-reward schedule keyed by halving epoch
- Network difficulty resolvers ("most recent at or before" lookups)
"""

from curtailment_mining.reference.difficulty import (
    DatabaseDifficultyResolver,
    DifficultyResolver,
    StaticDifficultySchedule,
)
from curtailment_mining.reference.hardware import (
    HARDWARE_CATALOGUE,
    HardwareSpec,
    active_hardware,
    resolve_active_models,
)
from curtailment_mining.reference.schedule import ResolvedValue
from curtailment_mining.reference.rewards import BlockRewardSchedule

__all__ = [
    "BlockRewardSchedule",
    "DatabaseDifficultyResolver",
    "DifficultyResolver",
    "HARDWARE_CATALOGUE",
    "HardwareSpec",
    "ResolvedValue",
    "StaticDifficultySchedule",
    "active_hardware",
    "resolve_active_models",
]
