"""Greedy scheduler with constraint relaxation.

Sessions are shuffled with a seeded generator (so that session numbers do not
favor early proposers, and so that a run can be reproduced), then processed
track by track: plenary sessions first, then each track, then sessions
without a track. Each session is placed under the strictest constraints
first; when that fails, constraints are dropped one at a time following a
fixed relaxation ladder. A session that cannot be placed even with every
relaxation is left as is and reported.

Goals, in rough order of importance:
- Same chair (or group) never meets twice at the same time.
- Sessions in the same track do not run in parallel and share a room.
- Declared conflicting sessions do not run in parallel.
- Requested times, duration and capacity are met.
- Rooms are filled back to back, without favoring any session number.
"""

import random
import secrets
import string
from dataclasses import dataclass, field, replace

from src.breakouts.body import parse_session_body
from src.breakouts.config import get_config
from src.breakouts.errors import ConfigurationError
from src.breakouts.logging import get_logger
from src.breakouts.meetings import serialize_session_meetings
from src.breakouts.models import Day, Meeting, Project, Room, ScheduleReport, Session, Slot
from src.breakouts.project import check_project
from src.breakouts.rules import (
    HARD_RULES,
    Rule,
    ScheduleSnapshot,
    duration_mismatch,
    duration_too_short,
    session_conflict,
    track_conflict,
    violates,
)
from src.breakouts.validate import Parser, prepare_sessions

logger = get_logger(__name__)

PLENARY_TRACK = "_plenary"
NO_TRACK = ""


def make_seed() -> str:
    """Return a fresh random seed, short enough to be noted down and reused."""
    return "".join(secrets.choice(string.ascii_lowercase) for _ in range(5))


def shuffle_sessions(sessions: list[Session], seed: str) -> list[Session]:
    """Fisher-Yates shuffle driven by a seeded generator. Same seed, same order."""
    rng = random.Random(seed)
    shuffled = list(sessions)
    for i in range(len(shuffled) - 1, 0, -1):
        j = int(rng.random() * (i + 1))
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def requested_meetings(session: Session) -> int:
    """Number of meetings the session asked for (0 when it did not say)."""
    description = session.description
    if description.times:
        return len(description.times)
    return description.nbslots or 0


def requested_capacity(session: Session) -> int:
    """Requested capacity, with "don't know" replaced by a mid-size value."""
    return session.description.capacity or get_config().unknown_capacity


@dataclass(frozen=True)
class Constraints:
    """One rung of the relaxation ladder."""

    track_room: str | None
    number_of_meetings: int
    strict_duration: bool = True
    strict_times: bool = True
    meet_duration: bool = True
    meet_capacity: bool = True
    meet_conflicts: frozenset[str] = frozenset({"track", "session"})

    def rules(self) -> list[Rule]:
        """Rules a candidate meeting must not break under these constraints."""
        rules = list(HARD_RULES)
        if "track" in self.meet_conflicts:
            rules.append(track_conflict)
        if "session" in self.meet_conflicts:
            rules.append(session_conflict)
        if self.meet_duration:
            rules.append(duration_mismatch if self.strict_duration else duration_too_short)
        return rules


def relaxation_ladder(
    session: Session, track_room: str | None, number_of_meetings: int
) -> list[tuple[str, Constraints]]:
    """Return the ordered constraint sets to try for the session.

    The first entry is the strictest set. Each following entry drops exactly
    one constraint. Steps that do not apply to the session are skipped, and
    the number of meetings is decremented one step at a time down to one.
    """
    description = session.description
    current = Constraints(track_room=track_room, number_of_meetings=number_of_meetings)
    ladder = [("strict", current)]

    def relax(step: str, **changes) -> None:
        nonlocal current
        current = replace(current, **changes)
        ladder.append((step, current))

    if description.duration:
        relax("strict duration", strict_duration=False)
    if track_room:
        relax("track room", track_room=None)
    if description.times:
        relax("strict times", strict_times=False)
    while current.number_of_meetings > 1:
        relax("number of meetings", number_of_meetings=current.number_of_meetings - 1)
    if description.duration:
        relax("duration", meet_duration=False)
    if requested_capacity(session):
        relax("capacity", meet_capacity=False)
    relax("track conflicts", meet_conflicts=current.meet_conflicts - {"track"})
    relax("session conflicts", meet_conflicts=current.meet_conflicts - {"session"})
    relax("all conflicts", meet_conflicts=frozenset())
    return ladder


@dataclass
class DaySlotView:
    """A (day, slot) pair and the sessions that meet during it, in any room."""

    day: Day
    slot: Slot
    pos: int
    sessions: list[Session] = field(default_factory=list)


@dataclass
class RoomView:
    """A room and the sessions that meet in it."""

    room: Room
    pos: int
    sessions: list[Session] = field(default_factory=list)


@dataclass
class ScheduleContext:
    """All mutable state of one scheduling run."""

    project: Project
    snapshot: ScheduleSnapshot
    sessions: list[Session]
    day_slots: list[DaySlotView]
    rooms: list[RoomView]
    processed: set[int] = field(default_factory=set)

    @classmethod
    def build(cls, project: Project, sessions: list[Session]) -> "ScheduleContext":
        snapshot = ScheduleSnapshot.from_project(project)
        day_slots = []
        for day in project.days:
            for slot in project.slots:
                view = DaySlotView(day=day, slot=slot, pos=len(day_slots))
                at = Meeting(day=day.name, slot=slot.name)
                view.sessions = snapshot.sessions_in_parallel(at)
                day_slots.append(view)
        rooms = []
        for pos, room in enumerate(project.rooms):
            view = RoomView(room=room, pos=pos)
            view.sessions = [
                s for s in project.sessions if any(m.room == room.name for m in snapshot.meetings_of(s))
            ]
            rooms.append(view)
        return cls(project=project, snapshot=snapshot, sessions=sessions, day_slots=day_slots, rooms=rooms)

    @property
    def plenary_room(self) -> RoomView | None:
        name = self.snapshot.plenary_room
        return next((r for r in self.rooms if r.room.name == name), None)

    def find_room(self, name: str | None) -> RoomView | None:
        return next((r for r in self.rooms if r.room.name == name), None)

    def find_day_slot(self, day: str | None, slot: str | None) -> DaySlotView | None:
        return next((d for d in self.day_slots if d.day.name == day and d.slot.name == slot), None)


def choose_track_room(track: str, ctx: ScheduleContext) -> RoomView | None:
    """Pick the room that sessions of the track should preferably share.

    Rooms already requested by sessions of the track come first, then every
    other room, each group sorted by the number of sessions from other tracks
    that already use the room.
    """
    if track == PLENARY_TRACK:
        return ctx.plenary_room
    if track == NO_TRACK:
        return None

    track_sessions = [s for s in ctx.sessions if track in s.tracks]
    if not track_sessions:
        return None
    largest = max(requested_capacity(s) for s in track_sessions)

    def slots_taken(view: RoomView) -> int:
        return sum(1 for s in view.sessions if track not in s.tracks)

    def meet_capacity(view: RoomView) -> bool:
        return view.room.capacity >= largest

    def meet_same_room(view: RoomView) -> bool:
        return slots_taken(view) + len(track_sessions) <= len(ctx.day_slots)

    requested: list[RoomView] = []
    for session in track_sessions:
        view = ctx.find_room(session.room)
        if view is not None and view not in requested:
            requested.append(view)
    plenary = ctx.plenary_room
    others = [v for v in ctx.rooms if v not in requested and v is not plenary and not v.room.vip]
    candidates = sorted(requested, key=slots_taken) + sorted(others, key=slots_taken)

    for accept in (
        lambda v: meet_capacity(v) and meet_same_room(v),
        meet_capacity,
        meet_same_room,
    ):
        room = next((v for v in candidates if accept(v)), None)
        if room is not None:
            return room
    return candidates[0] if candidates else None


def select_next_session(track: str, ctx: ScheduleContext) -> Session | None:
    """Return the next session of the track to process, and flag it as processed.

    A session with an imposed slot goes first, so that later placements work
    around it. Otherwise sessions that need more meetings go first.
    """
    chosen = None
    for session in ctx.sessions:
        if session.number in ctx.processed:
            continue
        in_track = (
            (track == PLENARY_TRACK and session.is_plenary)
            or track in session.tracks
            or track == NO_TRACK
        )
        if not in_track:
            continue
        if any(m.slot for m in ctx.snapshot.meetings_of(session)):
            chosen = session
            break
        if chosen is None or requested_meetings(session) > requested_meetings(chosen):
            chosen = session
    if chosen is not None:
        ctx.processed.add(chosen.number)
    return chosen


def _possible_rooms(
    session: Session,
    meeting: Meeting,
    constraints: Constraints,
    ctx: ScheduleContext,
    preferred: RoomView | None = None,
) -> list[RoomView]:
    if meeting.room:
        view = ctx.find_room(meeting.room)
        return [view] if view else []
    if constraints.track_room:
        view = ctx.find_room(constraints.track_room)
        return [view] if view else []

    plenary = ctx.plenary_room
    if session.is_plenary:
        eligible = [plenary] if plenary else []
    else:
        eligible = [v for v in ctx.rooms if not v.room.vip and v is not plenary]
    capacity = requested_capacity(session)
    rooms = sorted((v for v in eligible if v.room.capacity >= capacity), key=lambda v: v.room.capacity)
    if not constraints.meet_capacity:
        rooms += sorted(
            (v for v in eligible if v.room.capacity < capacity),
            key=lambda v: v.room.capacity,
            reverse=True,
        )
    if preferred is not None and preferred in rooms:
        rooms.remove(preferred)
        rooms.insert(0, preferred)
    return rooms


def _possible_day_slots(
    session: Session,
    meeting: Meeting,
    others: list[Meeting],
    constraints: Constraints,
    ctx: ScheduleContext,
) -> list[DaySlotView]:
    if meeting.day and meeting.slot:
        view = ctx.find_day_slot(meeting.day, meeting.slot)
        candidates = [view] if view else []
    else:
        candidates = [
            v
            for v in ctx.day_slots
            if (not meeting.day or v.day.name == meeting.day)
            and (not meeting.slot or v.slot.name == meeting.slot)
        ]
        if session.is_plenary:
            # Fill a plenary slot before opening a new one
            candidates.sort(key=lambda v: (-sum(1 for s in v.sessions if s.is_plenary), -v.pos))
        elif not constraints.track_room:
            # Spread sessions outside tracks, least busy slots first
            candidates.sort(key=lambda v: (len(v.sessions), v.pos))
    return [
        v
        for v in candidates
        if not any(o.day == v.day.name and o.slot == v.slot.name for o in others)
    ]


def choose_session_meetings(
    session: Session, constraints: Constraints, ctx: ScheduleContext
) -> list[Meeting] | None:
    """Try to place the session under the given constraints.

    Fields that are already set (room, day, slot) are kept. Nothing is
    committed here.

    Returns:
        The complete list of meetings, or None if placement failed.
    """
    current = ctx.snapshot.meetings_of(session)
    n = constraints.number_of_meetings
    if current and all(m.is_complete for m in current):
        return list(current)

    if not current or (len(current) == 1 and not session.meeting):
        times = session.description.times
        if constraints.strict_times and times:
            base = [Meeting(room=session.room, day=t.day, slot=t.slot) for t in times]
        else:
            base = [Meeting(room=session.room, day=session.day, slot=session.slot) for _ in range(n)]
    else:
        base = list(current)

    rules = constraints.rules()
    for first_room in _possible_rooms(session, base[0], constraints, ctx):
        meetings = list(base)
        scheduled = 0
        for i, meeting in enumerate(meetings):
            if meeting.is_complete:
                scheduled += 1
            else:
                rooms = [first_room] if i == 0 else _possible_rooms(
                    session, meeting, constraints, ctx, preferred=first_room
                )
                others = meetings[:i] + meetings[i + 1:]
                for room in rooms:
                    candidate = next(
                        (
                            Meeting(room=room.room.name, day=v.day.name, slot=v.slot.name)
                            for v in _possible_day_slots(session, meeting, others, constraints, ctx)
                            if not violates(
                                session,
                                Meeting(room=room.room.name, day=v.day.name, slot=v.slot.name),
                                ctx.snapshot,
                                rules,
                            )
                        ),
                        None,
                    )
                    if candidate is not None:
                        meetings[i] = candidate
                        scheduled += 1
                        break
            if scheduled >= n:
                break

        # Drop extra unscheduled meetings
        while len(meetings) > n:
            index = next((k for k, m in enumerate(meetings) if not m.is_complete), None)
            if index is None:
                break
            meetings.pop(index)

        if len(meetings) == n and all(m.is_complete for m in meetings):
            return meetings
    return None


def commit_meetings(session: Session, meetings: list[Meeting], ctx: ScheduleContext) -> bool:
    """Record the meetings on the session and in the availability views.

    Returns:
        True if the session changed.
    """
    previous = ctx.snapshot.meetings_of(session)
    if meetings == previous:
        return False

    if ctx.project.allow_multiple_meetings:
        room, encoded = serialize_session_meetings(meetings, ctx.project)
        if room:
            session.room = room
        session.meeting = encoded
    else:
        session.room = meetings[0].room
        session.day = meetings[0].day
        session.slot = meetings[0].slot
    session.updated = True

    for meeting in meetings:
        if meeting in previous:
            continue
        room = ctx.find_room(meeting.room)
        if room is not None and session not in room.sessions:
            room.sessions.append(session)
        day_slot = ctx.find_day_slot(meeting.day, meeting.slot)
        if day_slot is not None and session not in day_slot.sessions:
            day_slot.sessions.append(session)
    ctx.snapshot.update(session, meetings)
    return True


def reset_pins(
    project: Project, preserve: str | list[int] = "all", reset: list[int] | tuple[int, ...] = ()
) -> None:
    """Discard the room, day, slot and meeting of sessions that are not preserved."""
    for session in project.sessions:
        keep = preserve == "all" or (isinstance(preserve, list) and session.number in preserve)
        if keep and session.number not in reset:
            continue
        if session.room or session.day or session.slot or session.meeting:
            session.room = session.day = session.slot = session.meeting = None
            session.updated = True


def suggest_schedule(
    project: Project,
    *,
    seed: str | None = None,
    preserve: str | list[int] = "all",
    reset: list[int] | tuple[int, ...] = (),
    parser: Parser = parse_session_body,
) -> ScheduleReport:
    """Assign rooms, days and slots to sessions, updating them in place.

    Updated sessions get their `updated` flag set. Sessions flagged with a
    blocking error, and sessions whose body cannot be parsed, are left alone.

    Args:
        project: Project snapshot.
        seed: Shuffle seed. A fresh one is generated (and reported) when not given.
        preserve: "all" to keep existing assignments, "none" to discard them,
            or the list of session numbers whose assignments to keep.
        reset: Session numbers whose assignments are discarded in any case.
        parser: Body parser.

    Returns:
        ScheduleReport: Seed, shuffled order, track rooms, assigned and
        unscheduled sessions.

    Raises:
        ConfigurationError: If the project configuration is invalid, or if
            there are plenary sessions but no plenary room.
    """
    check_project(project)
    prepare_sessions(project, parser)
    reset_pins(project, preserve, reset)

    seed = seed or make_seed()
    shuffled = shuffle_sessions(project.sessions, seed)
    order = [s.number for s in shuffled]
    logger.info("sessions_shuffled", seed=seed, order=order)

    sessions = [s for s in shuffled if s.description is not None and not s.blocking_error]
    ctx = ScheduleContext.build(project, sessions)
    if ctx.plenary_room is None and any(s.is_plenary for s in sessions):
        raise ConfigurationError(
            f'Plenary room "{project.plenary_room_name}" not found in project "{project.title}"'
        )

    tracks = [PLENARY_TRACK] if ctx.plenary_room else []
    for session in sessions:
        for track in session.tracks:
            if track not in tracks:
                tracks.append(track)
    tracks.append(NO_TRACK)

    report = ScheduleReport(seed=seed, order=order)
    for track in tracks:
        track_room = choose_track_room(track, ctx)
        room_name = track_room.room.name if track_room else None
        report.track_rooms[track] = room_name
        logger.info("track_room_chosen", track=track or "(none)", room=room_name)

        session = select_next_session(track, ctx)
        while session is not None:
            if session.meeting:
                number_of_meetings = len(ctx.snapshot.meetings_of(session)) or 1
            else:
                number_of_meetings = requested_meetings(session) or 1
            meetings = None
            for step, constraints in relaxation_ladder(session, room_name, number_of_meetings):
                if step != "strict":
                    logger.debug("constraint_relaxed", session=session.number, dropped=step)
                meetings = choose_session_meetings(session, constraints, ctx)
                if meetings is not None:
                    break

            if meetings is None:
                report.unscheduled.append(session.number)
                logger.warning("session_unscheduled", session=session.number, track=track or "(none)")
            elif commit_meetings(session, meetings, ctx):
                report.assigned.append(session.number)
                for meeting in meetings:
                    logger.info(
                        "session_assigned",
                        session=session.number,
                        room=meeting.room,
                        day=meeting.day,
                        slot=meeting.slot,
                    )
            session = select_next_session(track, ctx)

    logger.info(
        "schedule_suggested",
        seed=seed,
        assigned=len(report.assigned),
        unscheduled=len(report.unscheduled),
    )
    return report
