"""Exception hierarchy for the passkey metrics subsystem.

None of these ever reach the authentication path: the pipeline converts
them into counters and log records at its task boundaries.
"""

from __future__ import annotations


class PasskeyMetricsError(Exception):
    """Base class for all passkey metrics errors."""


class StoreError(PasskeyMetricsError):
    """A metric store operation failed (append, delete or query)."""


class ConfigurationError(PasskeyMetricsError):
    """The live metrics configuration could not be read or is invalid."""
