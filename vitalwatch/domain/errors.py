"""
Error taxonomy for the monitoring engine.

Validation failures are raised at the boundary before any store is touched.
Lookup and conflict failures on the alert lifecycle are returned as values
(see `vitalwatch.services.result.Result`) rather than raised to the caller.
"""


class EngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(EngineError, ValueError):
    """Malformed input, e.g. a negative heart rate."""


class NotFoundError(EngineError, LookupError):
    """Referenced record does not exist or belongs to another patient."""


class AlreadyResolvedError(NotFoundError):
    """Resolve requested on an alert that is no longer active."""


class ConflictError(EngineError):
    """A write would break a uniqueness invariant (e.g. two active alerts per key)."""


class InvalidTransitionError(ConflictError):
    """A dose log is already in a terminal state."""
