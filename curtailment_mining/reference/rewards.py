"""Block-reward schedule keyed by halving epoch.

The subsidy changes at each halving; a single hard-coded reward applied to
every date silently overstates or understates historical yield, so the
reconciler always resolves the reward for the event's own date.
"""

from __future__ import annotations

from datetime import date
from typing import Mapping

from curtailment_mining.core.exceptions import ReferenceDataError
from curtailment_mining.reference.schedule import DatedSeries, ResolvedValue

# Halving dates (UTC calendar day of the halving block) -> subsidy in BTC
HALVING_EPOCHS: dict[date, float] = {
    date(2009, 1, 3): 50.0,
    date(2012, 11, 28): 25.0,
    date(2016, 7, 9): 12.5,
    date(2020, 5, 11): 6.25,
    date(2024, 4, 20): 3.125,
}


class BlockRewardSchedule:
    """Resolve the block reward in force on a calendar date.

    Args:
        epochs: Mapping of epoch start date to reward. Defaults to the
            Bitcoin halving history.
    """

    def __init__(self, epochs: Mapping[date, float] | None = None) -> None:
        self._series = DatedSeries(HALVING_EPOCHS if epochs is None else epochs)
        if len(self._series) == 0:
            raise ReferenceDataError("Block reward schedule has no epochs")

    def resolve(self, day: date) -> ResolvedValue:
        """Return the reward whose epoch started on or before ``day``.

        Falling inside an epoch is the normal case, so callers should not
        treat ``is_fallback`` on a reward as a data gap.

        Raises:
            ReferenceDataError: If ``day`` precedes the first epoch.
        """
        resolved = self._series.at_or_before(day)
        if resolved is None:
            raise ReferenceDataError(f"No block reward epoch starts on or before {day}")
        return resolved

    def __call__(self, day: date) -> float:
        return self.resolve(day).value
