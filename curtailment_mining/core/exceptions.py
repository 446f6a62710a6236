"""Exception hierarchy for the reconciliation engine.

- ReconciliationError: base for all engine errors
- InputValidationError: invalid yield-calculator input (one unit only)
- ReferenceDataError: no difficulty / reward value to fall back to
- UpstreamFetchError: the raw-event collaborator failed for a date
- ConfigurationError: unknown hardware model or invalid settings
"""


class ReconciliationError(Exception):
    """Base exception for all reconciliation engine errors."""


class InputValidationError(ReconciliationError):
    """Raised when yield-calculator inputs are out of range."""


class ReferenceDataError(ReconciliationError):
    """Raised when no reference value exists at or before a date."""


class UpstreamFetchError(ReconciliationError):
    """Raised when raw curtailment events cannot be fetched for a date."""


class ConfigurationError(ReconciliationError):
    """Raised when engine configuration is inconsistent."""
