"""
Exception hierarchy for recall-coach.

Only configuration problems escape the public surface, and only at
construction time. Persistence failures are caught inside the store
and logged.
"""

from __future__ import annotations


class RecallCoachError(Exception):
    """Base class for all recall-coach errors."""


class ConfigurationError(RecallCoachError, ValueError):
    """Raised when a configuration value is malformed (fatal at startup)."""


class PersistenceError(RecallCoachError):
    """Raised internally when the review document cannot be read or written."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path
