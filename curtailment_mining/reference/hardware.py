"""Mining hardware catalogue.

Hash rates are stored in H/s so the yield calculator never needs unit
conversions; ``HardwareSpec.from_terahash`` accepts datasheet TH/s figures.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from curtailment_mining.core.config import settings
from curtailment_mining.core.exceptions import ConfigurationError

TERAHASH = 1e12


@dataclass(frozen=True)
class HardwareSpec:
    """One mining hardware model.

    Attributes:
        model: Catalogue key, e.g. ``"S19J_PRO"``.
        hashrate: Hash rate in H/s.
        power_draw: Wall power in watts.
    """

    model: str
    hashrate: float
    power_draw: float

    @classmethod
    def from_terahash(cls, model: str, hashrate_th: float, power_draw_w: float) -> "HardwareSpec":
        return cls(model=model, hashrate=hashrate_th * TERAHASH, power_draw=power_draw_w)

    @property
    def efficiency_j_per_th(self) -> float:
        """Joules per terahash, the usual datasheet efficiency figure."""
        return self.power_draw / (self.hashrate / TERAHASH)


HARDWARE_CATALOGUE: dict[str, HardwareSpec] = {
    "S19J_PRO": HardwareSpec.from_terahash("S19J_PRO", 100.0, 3000.0),
    "S9": HardwareSpec.from_terahash("S9", 13.5, 1323.0),
    "M20S": HardwareSpec.from_terahash("M20S", 68.0, 3264.0),
}


def resolve_active_models(
    names: Iterable[str],
    catalogue: dict[str, HardwareSpec] | None = None,
) -> list[HardwareSpec]:
    """Map configured model names to catalogue entries, preserving order.

    Raises:
        ConfigurationError: If a name is unknown or the resulting set is empty.
    """
    catalogue = HARDWARE_CATALOGUE if catalogue is None else catalogue
    specs: list[HardwareSpec] = []
    seen: set[str] = set()
    for raw in names:
        name = raw.strip().upper()
        if not name or name in seen:
            continue
        if name not in catalogue:
            raise ConfigurationError(
                f"Unknown hardware model {name!r}; known: {sorted(catalogue)}"
            )
        seen.add(name)
        specs.append(catalogue[name])
    if not specs:
        raise ConfigurationError("At least one active hardware model is required")
    return specs


def active_hardware(hardware: Iterable[HardwareSpec] | None = None) -> list[HardwareSpec]:
    """An explicit hardware list, or the configured models when ``hardware`` is None.

    Raises:
        ConfigurationError: If the resulting set is empty.
    """
    if hardware is None:
        return resolve_active_models(settings.hardware_model_names)
    specs = list(hardware)
    if not specs:
        raise ConfigurationError("At least one active hardware model is required")
    return specs
