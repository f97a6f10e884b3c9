from __future__ import annotations

from datetime import datetime, timedelta, UTC
from typing import Callable, List, Optional, Sequence, Tuple
from uuid import uuid4

import structlog

from .models import (
    DEFAULT_CURRENT_STATE,
    DEFAULT_STATES,
    ActivityRecord,
    StateHistoryEntry,
    UserSettings,
    UserStateRecord,
    align_to,
    default_activities,
)
from .repository import StateRepository
from .session import UserSession


logger = structlog.get_logger(__name__)


class StateService:
    """
    Session-scoped facade over `StateRepository`.

    Every operation acts on the session's current user and substitutes a
    documented default (or returns False) when the repository reports a
    failure, so callers never have to handle persistence errors.
    """

    def __init__(
        self,
        repository: StateRepository,
        session: Optional[UserSession] = None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        if repository is None:
            raise ValueError("repository is required")
        self._repo = repository
        self._session = session or UserSession()
        self._clock = clock

    # -------- Session --------
    @property
    def session(self) -> UserSession:
        return self._session

    @property
    def current_user_id(self) -> str:
        return self._session.user_id

    def set_current_user(self, user_id: Optional[str]) -> bool:
        return self._session.set_user(user_id)

    def _stored_or_empty(self) -> UserStateRecord:
        user_id = self.current_user_id
        return self._repo.get_user_state(user_id).value_or(UserStateRecord.empty(user_id))

    # -------- Current state --------
    def get_current_state(self) -> Tuple[str, datetime]:
        """(label, start time) of the active state, or the placeholder label and now."""
        record = self._stored_or_empty()
        if record.current_state:
            return record.current_state, record.state_start_time or self._clock()
        logger.debug("current_state_defaulted", user_id=self.current_user_id)
        return DEFAULT_CURRENT_STATE, self._clock()

    def update_current_state(self, new_state: Optional[str]) -> bool:
        if not new_state:
            logger.warning("state_update_rejected", reason="empty state")
            return False
        result = self._repo.update_current_state(self.current_user_id, new_state, self._clock())
        return result.ok

    def get_elapsed_time(self) -> timedelta:
        """Time spent so far in the current state."""
        _, started = self.get_current_state()
        return align_to(self._clock(), started) - started

    def get_state_history(self) -> List[StateHistoryEntry]:
        return list(self._stored_or_empty().state_history)

    # -------- Available states --------
    def get_available_states(self) -> List[str]:
        states = self._stored_or_empty().settings.available_states
        if states:
            return list(states)
        return list(DEFAULT_STATES)

    def update_available_states(self, states: Sequence[str]) -> bool:
        record = self._repo.get_or_create(self.current_user_id)
        record.settings.available_states = list(states)
        result = self._repo.save_user_state(record)
        logger.info("available_states_updated", ok=result.ok, count=len(record.settings.available_states))
        return result.ok

    # -------- Activities --------
    def get_activities(self) -> List[ActivityRecord]:
        """The stored agenda; the placeholder agenda if the user has no document."""
        result = self._repo.get_user_state(self.current_user_id)
        if result.value is None:
            return default_activities()
        return list(result.value.activities)

    def update_activities(self, activities: Sequence[ActivityRecord]) -> bool:
        return self._repo.update_user_activities(self.current_user_id, list(activities)).ok

    def add_activity(self, activity: Optional[ActivityRecord]) -> bool:
        if activity is None:
            logger.warning("activity_add_rejected", reason="missing activity")
            return False
        activities = self.get_activities()
        if not activity.id:
            activity.id = str(uuid4())
        activities.append(activity)
        ok = self.update_activities(activities)
        logger.info("activity_added", ok=ok, activity_id=activity.id)
        return ok

    def remove_activity(self, activity_id: str) -> bool:
        activities = self.get_activities()
        remaining = [a for a in activities if a.id != activity_id]
        if len(remaining) == len(activities):
            logger.info("activity_not_found", activity_id=activity_id)
            return False
        ok = self.update_activities(remaining)
        logger.info("activity_removed", ok=ok, activity_id=activity_id)
        return ok

    def set_activity_completed(self, activity_id: str, completed: bool = True) -> bool:
        activities = self.get_activities()
        for activity in activities:
            if activity.id == activity_id:
                activity.is_completed = completed
                return self.update_activities(activities)
        logger.info("activity_not_found", activity_id=activity_id)
        return False

    # -------- Settings --------
    def get_user_settings(self) -> UserSettings:
        return self._stored_or_empty().settings

    def update_user_settings(self, settings: UserSettings) -> bool:
        return self._repo.update_user_settings(self.current_user_id, settings).ok

    # -------- Lifecycle --------
    def delete_user_data(self) -> bool:
        return self._repo.delete_user_data(self.current_user_id).ok
