from __future__ import annotations

from datetime import date as _Date, datetime, timedelta, UTC
from typing import Any, Dict, List, Optional, Tuple, get_args
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel


DEFAULT_USER_ID = "default_user"
DEFAULT_CURRENT_STATE = "ESTADO ACTUAL"
DEFAULT_STATES: Tuple[str, ...] = tuple(f"ESTADO {i}" for i in range(1, 9))
DEFAULT_STATE_COLOR = "#4A76A8"
DEFAULT_PRIORITY = 2

# Validation context flag set when loading a document from disk
STORED_DOCUMENT = "stored_document"

# (id, time, description) for the placeholder agenda shown before any data exists
_DEFAULT_ACTIVITY_ROWS: Tuple[Tuple[str, str, str], ...] = (
    ("default-1", "09:00", "INICIO DE JORNADA"),
    ("default-2", "11:00", "REUNIÓN DE EQUIPO"),
    ("default-3", "13:00", "ALMUERZO"),
    ("default-4", "17:00", "CIERRE DE JORNADA"),
)


def _new_id() -> str:
    return str(uuid4())


def _accepts_none(annotation: Any) -> bool:
    return annotation is None or type(None) in get_args(annotation)


def align_to(moment: datetime, reference: datetime) -> datetime:
    """`moment` with the same timezone awareness as `reference`; naive means local time."""
    if reference.tzinfo is None and moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    if reference.tzinfo is not None and moment.tzinfo is None:
        return moment.astimezone()
    return moment


class _DocumentModel(BaseModel):
    """
    Base for everything persisted inside a user document.

    Keys are written in camelCase and read case-insensitively. Unknown keys are
    ignored; a null for a field that is not Optional falls back to its
    default, so older or hand-edited documents still load.
    """

    model_config = ConfigDict(alias_generator=to_camel)

    @model_validator(mode="before")
    @classmethod
    def _normalize_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        lookup: Dict[str, Tuple[str, Any]] = {}
        for name, field in cls.model_fields.items():
            alias = field.alias or name
            lookup[alias.lower()] = (alias, field)
            lookup[name.lower()] = (alias, field)

        out: Dict[str, Any] = {}
        for key, value in data.items():
            match = lookup.get(str(key).lower())
            if match is None:
                continue
            alias, field = match
            if value is None and not _accepts_none(field.annotation):
                continue
            out[alias] = value
        return out


class StateHistoryEntry(_DocumentModel):
    """
    One interval during which a state label was active.

    Fields
    - state: the label that was active.
    - start_time: when the interval began.
    - end_time: when it ended; None while the interval is still open.
    - notes: optional free text.
    """

    state: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def duration(self) -> timedelta:
        """Length of the interval; open entries are measured up to now."""
        end = self.end_time if self.end_time is not None else datetime.now(UTC)
        return align_to(end, self.start_time) - self.start_time


class ActivityRecord(_DocumentModel):
    """
    A scheduled activity on the user's agenda.

    `time` is free-form text (e.g. "13:00"), not a parsed time of day. A `date`
    of None marks a recurring activity.
    """

    id: Optional[str] = Field(default_factory=_new_id)
    time: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    is_completed: bool = False
    date: Optional[_Date] = Field(default_factory=_Date.today)
    priority: int = Field(default=DEFAULT_PRIORITY, ge=1, le=3, description="1 is highest")

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_stored_priority(cls, value: Any, info: ValidationInfo) -> Any:
        # Stored documents may carry any integer; new records are checked strictly
        if not (info.context or {}).get(STORED_DOCUMENT):
            return value
        try:
            return min(3, max(1, int(value)))
        except (TypeError, ValueError):
            return DEFAULT_PRIORITY


class UserSettings(_DocumentModel):
    available_states: List[str] = Field(default_factory=lambda: list(DEFAULT_STATES))
    enable_notifications: bool = True
    notification_minutes_before: int = 5
    theme: Optional[str] = "Default"
    show_completed_activities: bool = True
    user_name: Optional[str] = None
    email: Optional[str] = None
    state_color: Optional[str] = DEFAULT_STATE_COLOR


class UserStateRecord(_DocumentModel):
    """
    Root of the per-user JSON document.

    Fields
    - user_id: identity key; also the (sanitized) file name stem.
    - current_state: active label, None until the first state change.
    - state_start_time: when `current_state` began.
    - state_history: append-only ledger of state intervals.
    - activities: the user's agenda.
    - settings: per-user preferences.
    - last_updated: set by the store on every write; a last-write marker only.
    """

    user_id: Optional[str] = None
    current_state: Optional[str] = None
    state_start_time: Optional[datetime] = None
    state_history: List[StateHistoryEntry] = Field(default_factory=list)
    activities: List[ActivityRecord] = Field(default_factory=list)
    settings: UserSettings = Field(default_factory=UserSettings)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def empty(cls, user_id: str) -> "UserStateRecord":
        """Convenience constructor for a user with no stored data yet."""
        return cls(user_id=user_id)

    def open_entry_for(self, state: Optional[str]) -> Optional[StateHistoryEntry]:
        """First open history entry whose label equals `state`, if any."""
        for entry in self.state_history:
            if entry.state == state and entry.end_time is None:
                return entry
        return None


def default_activities() -> List[ActivityRecord]:
    """Placeholder agenda used when a user has no stored document."""
    return [
        ActivityRecord(id=aid, time=at, description=desc, date=None)
        for aid, at, desc in _DEFAULT_ACTIVITY_ROWS
    ]
