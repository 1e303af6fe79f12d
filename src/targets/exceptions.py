"""Error taxonomy of the targets module."""


class TargetError(Exception):
    """Base class for target lifecycle errors."""


class InvalidTarget(TargetError, ValueError):
    """Create/update input failed validation."""


class TargetNotFound(TargetError, LookupError):
    """No target with the requested id."""


class NotRecurring(TargetError):
    """Rollover requested on a non-recurring target."""


class ComputationUnavailable(TargetError):
    """The invoice store could not be read while computing achievement.

    Never escapes the achievement engine: it is logged and turned into a
    zero, stale result.
    """


class TargetLockBusy(TargetError):
    """Another worker holds the per-customer progress lock."""
