from __future__ import annotations


class HabitGridError(Exception):
    """Base class for errors reported back to the caller as an error response."""


class HabitLookupError(HabitGridError):
    pass


class DateLookupError(HabitGridError):
    pass


class InvalidRequestError(HabitGridError):
    pass


class LockTimeoutError(HabitGridError):
    pass
