"""
Per-user state tracking persisted as local JSON documents.

Layers, leaf first: `JsonStateStore` (one file per user), `StateRepository`
(read-modify-write operations returning `Result`), and `StateService`
(session-bound facade that substitutes defaults on failure).
"""

from .errors import (
    InvalidUserStateError,
    OptimisticLockError,
    StateDeserializationError,
    StateReadError,
    StateStoreError,
    StateWriteError,
)
from .json_store import JsonStateStore
from .models import ActivityRecord, StateHistoryEntry, UserSettings, UserStateRecord
from .repository import Result, StateRepository
from .service import StateService
from .session import UserSession

__all__ = [
    "ActivityRecord",
    "InvalidUserStateError",
    "JsonStateStore",
    "OptimisticLockError",
    "Result",
    "StateDeserializationError",
    "StateHistoryEntry",
    "StateReadError",
    "StateRepository",
    "StateService",
    "StateStoreError",
    "StateWriteError",
    "UserSession",
    "UserSettings",
    "UserStateRecord",
]
