from __future__ import annotations


class StateStoreError(RuntimeError):
    """Base error for user-state persistence."""


class StateReadError(StateStoreError):
    """The user document could not be read from disk."""


class StateDeserializationError(StateReadError):
    """The user document exists but is not valid JSON or has an incompatible shape."""


class StateWriteError(StateStoreError):
    """The user document could not be written or deleted."""


class OptimisticLockError(StateWriteError):
    """Raised when a fingerprint precondition fails during a conditional write."""


class InvalidUserStateError(StateStoreError):
    """A record or identifier failed validation before any I/O was attempted."""
