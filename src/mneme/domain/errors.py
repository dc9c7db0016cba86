"""Error taxonomy for the scheduling core.

None of these cross the public boundary of ``ReviewScheduler``: validation
errors become sentinel return values and algorithm errors are healed.
"""


class SchedulingError(Exception):
    """Base class for all scheduling errors."""


class ValidationError(SchedulingError):
    """Unknown item id or malformed input."""


class AlgorithmError(SchedulingError):
    """Missing or corrupt algorithm state (e.g. unusable FSRS card data)."""
