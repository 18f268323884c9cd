"""Household error kinds.

Core functions raise these and never swallow them; the caller (service or
bot layer) decides how to recover.
"""

from __future__ import annotations


class HouseholdError(Exception):
    """Base class for every domain error raised by the household core."""


class InvalidState(HouseholdError):
    """Operation invoked on an empty or invariant-violating input."""


class NotFound(HouseholdError):
    """A referenced member, task or item id does not exist."""


class ValidationError(HouseholdError):
    """Out-of-range or missing field value."""
