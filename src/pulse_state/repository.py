from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

import structlog

from .errors import InvalidUserStateError, StateStoreError
from .json_store import JsonStateStore
from .models import (
    ActivityRecord,
    StateHistoryEntry,
    UserSettings,
    UserStateRecord,
    align_to,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a repository operation: a value, or the error that prevented it."""

    value: Optional[T] = None
    error: Optional[StateStoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: StateStoreError) -> "Result[T]":
        return cls(error=error)

    def value_or(self, default: T) -> T:
        """The value when the operation succeeded and produced one, else `default`."""
        if self.error is None and self.value is not None:
            return self.value
        return default


class StateRepository:
    """
    Typed operations over a `JsonStateStore`.

    Every write is a whole-document read-modify-write with no locking: two
    callers updating the same user concurrently can lose the earlier write.
    Store errors never escape; they come back as failed `Result`s.
    """

    def __init__(self, store: JsonStateStore) -> None:
        self._store = store

    @property
    def store(self) -> JsonStateStore:
        return self._store

    # -------- Reads --------
    def get_user_state(self, user_id: str) -> Result[Optional[UserStateRecord]]:
        """The stored record; `Result.success(None)` when the user has none."""
        try:
            return Result.success(self._store.read(user_id))
        except StateStoreError as ex:
            logger.warning("user_state_read_failed", user_id=user_id, error=str(ex))
            return Result.failure(ex)

    def get_or_create(self, user_id: str) -> UserStateRecord:
        """Load the record for `user_id`, or start an empty one.

        An unreadable document is treated like a missing one, so the next save
        replaces it.
        """
        result = self.get_user_state(user_id)
        if result.value is not None:
            return result.value
        logger.info("user_state_created", user_id=user_id, replaced_unreadable=not result.ok)
        return UserStateRecord.empty(user_id)

    def get_user_activities(self, user_id: str) -> Result[List[ActivityRecord]]:
        result = self.get_user_state(user_id)
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]
        activities = result.value.activities if result.value is not None else []
        logger.debug("activities_loaded", user_id=user_id, count=len(activities))
        return Result.success(activities)

    def user_exists(self, user_id: str) -> Result[bool]:
        try:
            return Result.success(self._store.exists(user_id))
        except OSError as ex:
            return Result.failure(StateStoreError(f"Cannot check data for {user_id}: {ex}"))

    # -------- Writes --------
    def save_user_state(
        self, record: Optional[UserStateRecord], *, if_match: Optional[str] = None
    ) -> Result[UserStateRecord]:
        """Persist `record` under its own `user_id`.

        Fails without touching disk when the record is missing or has no id.
        `if_match` is passed through to the store's fingerprint check.
        """
        if record is None or not record.user_id:
            logger.warning("user_state_rejected", reason="missing record or user id")
            return Result.failure(InvalidUserStateError("record and user_id are required"))
        try:
            self._store.write(record.user_id, record, if_match=if_match)
        except StateStoreError as ex:
            logger.warning("user_state_write_failed", user_id=record.user_id, error=str(ex))
            return Result.failure(ex)
        return Result.success(record)

    def update_current_state(
        self, user_id: str, new_state: str, start_time: datetime
    ) -> Result[UserStateRecord]:
        """Switch the user to `new_state`, recording the transition in history.

        The first open history entry labelled with the previous state is closed
        at `start_time`. If none matches, nothing is closed. Matching is by label,
        so with a label repeated in history the earliest open one wins.
        """
        record = self.get_or_create(user_id)

        if record.current_state:
            previous = record.open_entry_for(record.current_state)
            if previous is not None:
                previous.end_time = align_to(start_time, previous.start_time)
                logger.debug("state_closed", user_id=user_id, state=record.current_state)

        record.current_state = new_state
        record.state_start_time = start_time
        record.state_history.append(StateHistoryEntry(state=new_state, start_time=start_time))
        logger.info("state_changed", user_id=user_id, state=new_state)

        return self.save_user_state(record)

    def add_state_history_entry(self, user_id: str, entry: StateHistoryEntry) -> Result[UserStateRecord]:
        """Append `entry` as given; closing other open entries is up to the caller."""
        record = self.get_or_create(user_id)
        record.state_history.append(entry)
        return self.save_user_state(record)

    def update_user_settings(self, user_id: str, settings: UserSettings) -> Result[UserStateRecord]:
        record = self.get_or_create(user_id)
        record.settings = settings
        logger.info("settings_updated", user_id=user_id)
        return self.save_user_state(record)

    def update_user_activities(
        self, user_id: str, activities: List[ActivityRecord]
    ) -> Result[UserStateRecord]:
        record = self.get_or_create(user_id)
        record.activities = list(activities)
        logger.info("activities_updated", user_id=user_id, count=len(record.activities))
        return self.save_user_state(record)

    def delete_user_data(self, user_id: str) -> Result[None]:
        try:
            self._store.delete(user_id)
        except StateStoreError as ex:
            logger.warning("user_state_delete_failed", user_id=user_id, error=str(ex))
            return Result.failure(ex)
        return Result.success()
