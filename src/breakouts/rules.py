"""Conflict rules shared by the validator and the scheduler.

Each rule looks at a session, a candidate (or existing) meeting and a
ScheduleSnapshot of everybody else's meetings. The `find_*` functions return
the evidence (offending sessions, shared chairs, shared tracks) used in
validation messages; the predicates built on top of them return a bool and
are what the scheduler composes into its active rule set.

Two meetings are "in parallel" when they share day and slot but not the room
(or when either room is unknown). Same room, same day and slot is a double
booking.
"""

from dataclasses import dataclass, field
from typing import Callable

from src.breakouts.chairs import (
    resolve_session_chairs,
    resolve_session_groups,
    shared_chairs,
    shared_groups,
)
from src.breakouts.meetings import (
    meetings_in_parallel_with,
    meetings_meet_at,
    parse_session_meetings,
)
from src.breakouts.models import Chair, Group, Meeting, Project, Session

Rule = Callable[[Session, Meeting, "ScheduleSnapshot"], bool]


@dataclass
class ScheduleSnapshot:
    """Everybody's meetings at one point in time, keyed by session number."""

    project: Project
    meetings: dict[int, list[Meeting]] = field(default_factory=dict)
    _chairs: dict[int, list[Chair]] = field(default_factory=dict, repr=False)
    _groups: dict[int, list[Group]] = field(default_factory=dict, repr=False)

    @classmethod
    def from_project(cls, project: Project) -> "ScheduleSnapshot":
        return cls(
            project=project,
            meetings={s.number: parse_session_meetings(s, project) for s in project.sessions},
        )

    @property
    def plenary_room(self) -> str | None:
        room = self.project.plenary_room
        return room.name if room else None

    @property
    def plenary_holds(self) -> int:
        return self.project.plenary_holds

    def meetings_of(self, session: Session) -> list[Meeting]:
        return self.meetings.get(session.number, [])

    def update(self, session: Session, meetings: list[Meeting]) -> None:
        self.meetings[session.number] = list(meetings)

    def sessions_at(self, meeting: Meeting, exclude: Session | None = None) -> list[Session]:
        """Sessions meeting at the meeting's day/slot, in the same room when one is given."""
        return [
            s
            for s in self.project.sessions
            if s is not exclude and meetings_meet_at(self.meetings_of(s), meeting)
        ]

    def sessions_in_parallel(self, meeting: Meeting, exclude: Session | None = None) -> list[Session]:
        return [
            s
            for s in self.project.sessions
            if s is not exclude and meetings_in_parallel_with(self.meetings_of(s), meeting)
        ]

    def chairs_of(self, session: Session) -> list[Chair]:
        if session.chairs is not None:
            return session.chairs
        if session.number not in self._chairs:
            chairs = []
            if session.description is not None:
                chairs = resolve_session_chairs(session, self.project.w3c_ids)
            self._chairs[session.number] = chairs
        return self._chairs[session.number]

    def groups_of(self, session: Session) -> list[Group]:
        if session.groups is not None:
            return session.groups
        if session.number not in self._groups:
            self._groups[session.number] = resolve_session_groups(session, self.project.w3c_ids)[0]
        return self._groups[session.number]


def _both_plenary(session: Session, other: Session) -> bool:
    return session.is_plenary and other.is_plenary


def _scheduled(meeting: Meeting) -> bool:
    return bool(meeting.day and meeting.slot)


def _shortname(session: Session) -> str | None:
    if session.description is None or not session.description.shortname:
        return None
    return session.description.shortname.lstrip("#").lower()


def find_double_bookings(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> list[Session]:
    """Other sessions in the same room at the same day/slot.

    Plenary sessions share the plenary room by design, so only non-plenary
    occupants count against a plenary session.
    """
    if not meeting.is_complete:
        return []
    others = snapshot.sessions_at(meeting, exclude=session)
    if session.is_plenary:
        others = [s for s in others if not s.is_plenary]
    return others


def find_plenary_overflow(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> list[Session]:
    """Other plenary sessions in the slot, when the slot cannot take one more."""
    if not session.is_plenary or not _scheduled(meeting):
        return []
    others = [s for s in snapshot.sessions_at(meeting, exclude=session) if s.is_plenary]
    return others if len(others) >= snapshot.plenary_holds else []


def find_plenary_parallels(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> list[Session]:
    """Plenary sessions that meet in parallel with the meeting."""
    if not _scheduled(meeting):
        return []
    return [s for s in snapshot.sessions_in_parallel(meeting, exclude=session) if s.is_plenary]


def find_chair_conflicts(
    session: Session, meeting: Meeting, snapshot: ScheduleSnapshot
) -> list[tuple[Session, list[str]]]:
    """Parallel sessions sharing a chair (or a group, for group meetings), with the shared names."""
    if not _scheduled(meeting):
        return []
    groups_event = snapshot.project.event_type == "groups"
    conflicts = []
    for other in snapshot.sessions_in_parallel(meeting, exclude=session):
        if _both_plenary(session, other):
            continue
        if groups_event:
            names = shared_groups(snapshot.groups_of(session), snapshot.groups_of(other))
        else:
            names = shared_chairs(snapshot.chairs_of(session), snapshot.chairs_of(other))
        if names:
            conflicts.append((other, names))
    return conflicts


def find_track_conflicts(
    session: Session, meeting: Meeting, snapshot: ScheduleSnapshot
) -> list[tuple[Session, str]]:
    """Parallel sessions in one of the session's tracks, with the shared track."""
    if not _scheduled(meeting) or not session.tracks:
        return []
    conflicts = []
    for other in snapshot.sessions_in_parallel(meeting, exclude=session):
        if _both_plenary(session, other):
            continue
        for track in session.tracks:
            if track in other.tracks:
                conflicts.append((other, track))
    return conflicts


def find_session_conflicts(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> list[Session]:
    """Parallel sessions that either session declared as conflicting."""
    if not _scheduled(meeting) or session.description is None:
        return []
    declared = set(session.description.conflicts) | set(session.indirect_conflicts)
    conflicts = []
    for other in snapshot.sessions_in_parallel(meeting, exclude=session):
        other_declared = other.description.conflicts if other.description else []
        if other.number in declared or session.number in other_declared:
            conflicts.append(other)
    return conflicts


def find_irc_conflicts(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> list[Session]:
    """Parallel sessions using the same IRC channel, unless both are plenary."""
    channel = _shortname(session)
    if not channel or not _scheduled(meeting):
        return []
    return [
        other
        for other in snapshot.sessions_in_parallel(meeting, exclude=session)
        if _shortname(other) == channel and not _both_plenary(session, other)
    ]


def duration_mismatch(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    """Slot duration differs from the requested duration."""
    requested = session.description.duration if session.description else None
    slot = snapshot.project.find_slot(meeting.slot)
    return bool(requested and slot and slot.duration != requested)


def duration_too_short(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    """Slot is shorter than the requested duration."""
    requested = session.description.duration if session.description else None
    slot = snapshot.project.find_slot(meeting.slot)
    return bool(requested and slot and slot.duration < requested)


def capacity_shortfall(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    """Room capacity is below the requested capacity."""
    requested = session.description.capacity if session.description else 0
    room = snapshot.project.find_room(meeting.room)
    return bool(requested and room and room.capacity < requested)


def plenary_room_misuse(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    """Plenary session outside the plenary room, or breakout session inside it."""
    if not meeting.room:
        return False
    in_plenary_room = meeting.room == snapshot.plenary_room
    return in_plenary_room != session.is_plenary


def double_booked(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    return bool(find_double_bookings(session, meeting, snapshot))


def plenary_full(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    return bool(find_plenary_overflow(session, meeting, snapshot))


def parallel_to_plenary(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    return not session.is_plenary and bool(find_plenary_parallels(session, meeting, snapshot))


def chair_conflict(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    return bool(find_chair_conflicts(session, meeting, snapshot))


def track_conflict(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    return bool(find_track_conflicts(session, meeting, snapshot))


def session_conflict(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    return bool(find_session_conflicts(session, meeting, snapshot))


def irc_conflict(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot) -> bool:
    return bool(find_irc_conflicts(session, meeting, snapshot))


# Rules that no relaxation ever drops
HARD_RULES: list[Rule] = [
    double_booked,
    plenary_full,
    plenary_room_misuse,
    parallel_to_plenary,
    chair_conflict,
    irc_conflict,
]


def violates(session: Session, meeting: Meeting, snapshot: ScheduleSnapshot, rules: list[Rule]) -> bool:
    """True if the meeting breaks any of the given rules."""
    return any(rule(session, meeting, snapshot) for rule in rules)
