"""Exception types raised by the sync pipeline."""

from __future__ import annotations


class SyncError(Exception):
    """Base class for sync failures that should mark a pull or period failed."""


class TransientSyncError(SyncError):
    """A failure worth retrying (timeouts, deadlocks, upstream 5xx)."""


class AdapterNotConfiguredError(SyncError):
    """The account's booking provider has no usable credentials."""


class InvalidPullOptionsError(SyncError, ValueError):
    """Pull options do not describe a valid date range."""
