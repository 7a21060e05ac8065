"""Pydantic models for the event, its sessions and their validation results.

All data structures use Pydantic v2 for validation, serialization, and type safety.
Rooms, days and slots are read-only reference data for a run. Sessions are
mutated in place by the scheduler and reference rooms, days and slots by name.
"""

import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.breakouts.config import get_config

ROOM_PATTERN = re.compile(r"^(.*?)(?:\s*\((\d+)\s*(?:-\s*([^)]+))?\))?(?:\s*\((vip)\))?$", re.IGNORECASE)
SLOT_PATTERN = re.compile(r"^(\d+):(\d+)\s*-\s*(\d+):(\d+)$")
DAY_PATTERN = re.compile(r"^(.*) \((\d{4}-\d{2}-\d{2})\)$")
BARE_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def pad_time(time: str | None) -> str | None:
    """Normalize "9:00" to "09:00" so that times compare as strings."""
    if not time:
        return None
    return "0" + time if len(time) == 4 else time


class Room(BaseModel):
    """A room option, e.g. "Salon Ecija (30 - Floor 2) (VIP)".

    The full option name is what sessions reference. Label, capacity,
    location and VIP flag are extracted from it when not given explicitly.
    The option description may add "key: value" lines (capacity, location,
    vip, and free-form keys kept in `metadata`); the option name wins when
    both set the same thing.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    label: str = ""
    description: str = ""
    location: str = ""
    capacity: int = 30
    vip: bool = False
    metadata: dict[str, str] = Field(default_factory=dict)
    id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_option_name(cls, data: Any) -> Any:
        if isinstance(data, str):
            data = {"name": data}
        if not isinstance(data, dict) or "name" not in data:
            return data
        data = dict(data)
        data["description"] = data.get("description") or ""
        described = parse_room_description(data["description"])
        label, capacity, location, vip = ROOM_PATTERN.match(data["name"].strip()).groups()
        data.setdefault("label", label.strip() or data["name"])
        if capacity:
            data.setdefault("capacity", int(capacity))
        elif described.get("capacity", "").isdigit():
            data.setdefault("capacity", int(described["capacity"]))
        else:
            data.setdefault("capacity", get_config().default_room_capacity)
        data.setdefault("location", location.strip() if location else described.get("location", ""))
        data.setdefault("vip", bool(vip) or described.get("vip", "").lower() in ("true", "yes"))
        data.setdefault(
            "metadata", {k: v for k, v in described.items() if k not in ("capacity", "location", "vip")}
        )
        return data


class Slot(BaseModel):
    """A time slot option, e.g. "9:00 - 10:00", shared by all days."""

    model_config = ConfigDict(frozen=True)

    name: str
    start: str = ""
    end: str = ""
    duration: int = 0
    id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_option_name(cls, data: Any) -> Any:
        if isinstance(data, str):
            data = {"name": data}
        if not isinstance(data, dict) or "name" not in data:
            return data
        data = dict(data)
        match = SLOT_PATTERN.match(data["name"].strip())
        if match:
            h1, m1, h2, m2 = (int(g) for g in match.groups())
            data.setdefault("start", f"{match.group(1)}:{match.group(2)}")
            data.setdefault("end", f"{match.group(3)}:{match.group(4)}")
            data.setdefault("duration", (h2 * 60 + m2) - (h1 * 60 + m1))
        return data


class Day(BaseModel):
    """A day option, e.g. "Monday (2042-02-10)" or a bare "2042-02-10"."""

    model_config = ConfigDict(frozen=True)

    name: str
    label: str = ""
    date: str = ""
    id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_option_name(cls, data: Any) -> Any:
        if isinstance(data, str):
            data = {"name": data}
        if not isinstance(data, dict) or "name" not in data:
            return data
        data = dict(data)
        match = DAY_PATTERN.match(data["name"])
        if match:
            data.setdefault("label", match.group(1))
            data.setdefault("date", match.group(2))
        else:
            data.setdefault("label", data["name"])
            data.setdefault("date", data["name"])
        return data


class Meeting(BaseModel):
    """One (room, day, slot) occupancy. Any field may be None while partially scheduled.

    `invalid` holds the raw compact-encoding entry when one of its tokens could
    not be resolved; all three fields are then None. `actual_start` and
    `actual_end`, when set, replace the start and end times of the slot.
    """

    model_config = ConfigDict(frozen=True)

    room: str | None = None
    day: str | None = None
    slot: str | None = None
    actual_start: str | None = None
    actual_end: str | None = None
    invalid: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.room and self.day and self.slot)


class GroupedMeeting(BaseModel):
    """Contiguous same-room meetings on one day, merged into a single calendar block."""

    room: str
    day: str
    start: str
    end: str
    meetings: list[Meeting] = Field(default_factory=list)


class Chair(BaseModel):
    """A session chair: a GitHub-style login, a free-text name, or both."""

    login: str | None = None
    name: str | None = None
    w3c_id: str | None = None


class Group(BaseModel):
    """A group resolved from a group-meeting title, e.g. "Media WG"."""

    name: str
    type: str = "other"
    abbr_name: str = ""
    label: str = ""
    w3c_id: str | None = None


class RequestedTime(BaseModel):
    """A (day, slot) pair the session asked for, referenced by option names."""

    model_config = ConfigDict(frozen=True)

    day: str
    slot: str


class CalendarEntry(BaseModel):
    """A calendar occurrence previously recorded on the session."""

    day: str
    start: str
    end: str
    type: str | None = None
    url: str | None = None


class CalendarAction(CalendarEntry):
    """A create/update/cancel action for the calendar sink.

    `meeting` is the desired block the entry is bound to; it is None for
    cancellations. `previous` is the recorded entry an update moves.
    """

    meeting: GroupedMeeting | None = None
    previous: CalendarEntry | None = None


class _BaseDescription(BaseModel):
    description: str = ""
    goal: str = ""
    chairs: list[Chair] = Field(default_factory=list)
    shortname: str | None = None  # IRC channel
    conflicts: list[int] = Field(default_factory=list)
    capacity: int = 0  # 0 means "don't know"
    duration: int | None = None
    nbslots: int = 0
    times: list[RequestedTime] = Field(default_factory=list)
    materials: dict[str, str] = Field(default_factory=dict)
    comments: str | None = None
    calendar: list[CalendarEntry] = Field(default_factory=list)


class BreakoutDescription(_BaseDescription):
    type: Literal["breakout"] = "breakout"


class PlenaryDescription(_BaseDescription):
    type: Literal["plenary"] = "plenary"


SessionDescription = Annotated[
    Union[BreakoutDescription, PlenaryDescription],
    Field(discriminator="type"),
]


class SessionValidation(BaseModel):
    """Last recorded validation results, as comma-joined issue types, plus the admin note."""

    error: str = ""
    warning: str = ""
    check: str = ""
    note: str = ""


class Session(BaseModel):
    """A proposed session, as recorded in the external tracker."""

    number: int
    title: str
    body: str = ""
    author: str | None = None
    labels: list[str] = Field(default_factory=list)

    # Scheduling fields, referencing option names
    room: str | None = None
    day: str | None = None
    slot: str | None = None
    meeting: str | None = None

    validation: SessionValidation = Field(default_factory=SessionValidation)

    # Derived during a run, never persisted
    description: SessionDescription | None = None
    chairs: list[Chair] | None = None
    groups: list[Group] | None = None
    highlight: str | None = None
    indirect_conflicts: list[int] = Field(default_factory=list)
    updated: bool = False
    blocking_error: bool = False

    @field_validator("description", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> Any:
        if isinstance(value, dict) and "type" not in value:
            return {**value, "type": "breakout"}
        return value

    @property
    def tracks(self) -> list[str]:
        """Track names, taken from "track: <name>" labels."""
        return [
            label[len("track:"):].strip()
            for label in self.labels
            if label.lower().startswith("track:")
        ]

    @property
    def is_plenary(self) -> bool:
        return self.description is not None and self.description.type == "plenary"


class ProjectMetadata(BaseModel):
    """Event-level settings, usually encoded in the project description."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    meeting: str | None = None
    timezone: str | None = None
    type: str | None = None
    plenary_room: str | None = Field(default=None, alias="plenary room")
    plenary_holds: str | None = Field(default=None, alias="plenary holds")


class Project(BaseModel):
    """The full snapshot of an event: reference data plus sessions."""

    title: str = ""
    description: str = ""
    rooms: list[Room] = Field(default_factory=list)
    days: list[Day] = Field(default_factory=list)
    slots: list[Slot] = Field(default_factory=list)
    sessions: list[Session] = Field(default_factory=list)
    metadata: ProjectMetadata = Field(default_factory=ProjectMetadata)
    allow_multiple_meetings: bool = False
    w3c_ids: dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata", mode="before")
    @classmethod
    def _parse_metadata(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_metadata(value)
        return value

    @property
    def event_type(self) -> str:
        return self.metadata.type or "breakouts"

    @property
    def plenary_room_name(self) -> str:
        return self.metadata.plenary_room or get_config().plenary_room

    @property
    def plenary_room(self) -> Room | None:
        """The designated plenary room, matched case-insensitively on name or label."""
        wanted = self.plenary_room_name.lower()
        for room in self.rooms:
            if room.name.lower() == wanted or room.label.lower() == wanted:
                return room
        return None

    @property
    def plenary_holds(self) -> int:
        holds = self.metadata.plenary_holds
        if holds and holds.strip().isdigit():
            return int(holds.strip())
        return get_config().plenary_holds

    def find_room(self, name: str | None) -> Room | None:
        if not name:
            return None
        return next((r for r in self.rooms if r.name == name), None)

    def find_day(self, name: str | None) -> Day | None:
        if not name:
            return None
        return next((d for d in self.days if d.name == name), None)

    def find_slot(self, name: str | None) -> Slot | None:
        if not name:
            return None
        return next((s for s in self.slots if s.name == name), None)

    def find_session(self, number: int) -> Session | None:
        return next((s for s in self.sessions if s.number == number), None)

    def slot_index(self, name: str | None) -> int:
        """Position of the slot in the daily sequence, -1 when unknown."""
        for index, slot in enumerate(self.slots):
            if slot.name == name:
                return index
        return -1


class ValidationIssue(BaseModel):
    """One category of problem found for a session."""

    session: int
    severity: Literal["error", "warning", "check"]
    type: str
    messages: list[str]
    details: list[dict[str, Any]] = Field(default_factory=list)


class ValidationChange(BaseModel):
    """New validation values to record for a session whose results changed."""

    number: int
    validation: SessionValidation


class GridValidation(BaseModel):
    issues: list[ValidationIssue] = Field(default_factory=list)
    changes: list[ValidationChange] = Field(default_factory=list)


class ScheduleReport(BaseModel):
    """What the scheduler did, with enough information to reproduce the run."""

    seed: str
    order: list[int] = Field(default_factory=list)
    track_rooms: dict[str, str | None] = Field(default_factory=dict)
    assigned: list[int] = Field(default_factory=list)
    unscheduled: list[int] = Field(default_factory=list)


def parse_metadata(description: str | None) -> dict[str, str]:
    """Parse a "key: value, key: value" project description into a dict."""
    metadata: dict[str, str] = {}
    if not description:
        return metadata
    for param in description.split(","):
        key, _, value = param.partition(":")
        if key.strip():
            metadata[key.strip()] = value.strip()
    return metadata


def parse_room_description(description: str | None) -> dict[str, str]:
    """Parse "- key: value" lines of a room option description into a dict.

    List markers are optional. Lines without a key or a value are skipped.
    """
    metadata: dict[str, str] = {}
    for line in (description or "").splitlines():
        key, _, value = line.strip().lstrip("-*").partition(":")
        key, value = key.strip().lower(), value.strip()
        if key and value:
            metadata[key] = value
    return metadata
