"""Session and grid validation.

validate_session() runs the structural checks (body format, chairs or groups,
declared conflicts) and then the scheduling checks against the session's
meetings. Constraint problems are returned as ValidationIssue data, never
raised. validate_grid() validates every session and computes, per session,
the issue types to record, taking admin notes into account.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from src.breakouts.body import TODO_STRINGS, parse_session_body
from src.breakouts.chairs import (
    is_joint_meeting,
    resolve_session_chairs,
    resolve_session_groups,
    same_group,
    validate_session_chairs,
    validate_session_groups,
)
from src.breakouts.config import get_config
from src.breakouts.errors import ConfigurationError, SessionFormatError
from src.breakouts.logging import get_logger
from src.breakouts.models import (
    GridValidation,
    Meeting,
    Project,
    Session,
    SessionDescription,
    SessionValidation,
    ValidationChange,
    ValidationIssue,
)
from src.breakouts.project import check_project
from src.breakouts.rules import (
    ScheduleSnapshot,
    duration_mismatch,
    find_chair_conflicts,
    find_double_bookings,
    find_irc_conflicts,
    find_plenary_overflow,
    find_plenary_parallels,
    find_session_conflicts,
    find_track_conflicts,
)

logger = get_logger(__name__)

Parser = Callable[[str, Project], SessionDescription]

SEVERITIES = ("error", "warning", "check")

# Issue types that scheduling can create or fix
SCHEDULING_ISSUES = (
    "error: chair conflict",
    "error: group conflict",
    "error: scheduling",
    "error: irc",
    "error: times",
    "warning: capacity",
    "warning: conflict",
    "warning: duration",
    "warning: switch",
    "warning: track",
    "warning: times",
    "warning: plenary",
)

# Errors that scheduling may resolve; any other error blocks scheduling
RELAXABLE_ERRORS = ("chair conflict", "group conflict", "meeting duplicate", "scheduling", "irc")


class _Issues:
    """Ordered issue list that merges messages of the same severity and type."""

    def __init__(self, number: int) -> None:
        self.number = number
        self.items: list[ValidationIssue] = []

    def add(
        self,
        severity: str,
        type: str,
        messages: list[str],
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        if not messages:
            return
        for issue in self.items:
            if issue.severity == severity and issue.type == type:
                issue.messages.extend(m for m in messages if m not in issue.messages)
                issue.details.extend(details or [])
                return
        self.items.append(
            ValidationIssue(
                session=self.number,
                severity=severity,
                type=type,
                messages=list(dict.fromkeys(messages)),
                details=details or [],
            )
        )

    def has(self, severity: str, type: str) -> bool:
        return any(i.severity == severity and i.type == type for i in self.items)

    def drop(self, severity: str, type: str) -> None:
        self.items = [i for i in self.items if not (i.severity == severity and i.type == type)]


def prepare_sessions(project: Project, parser: Parser = parse_session_body) -> None:
    """Parse session bodies (and resolve groups for group meetings) where not done yet.

    Sessions whose body cannot be parsed keep an empty description; the
    format error is reported when that session gets validated.
    """
    for session in project.sessions:
        if session.description is None:
            try:
                session.description = parser(session.body, project)
            except SessionFormatError:
                continue
    if project.event_type == "groups":
        for session in project.sessions:
            if session.groups is None:
                session.groups, session.highlight = resolve_session_groups(session, project.w3c_ids)


def _meeting_label(meeting: Meeting) -> str:
    return f"{meeting.day} {meeting.slot}"


def _detail(meeting: Meeting, other: Session | None = None, **extra: Any) -> dict[str, Any]:
    detail: dict[str, Any] = {"meeting": meeting.model_dump(exclude_none=True)}
    if other is not None:
        detail["conflicts_with"] = other.number
    detail.update(extra)
    return detail


def _compute_indirect_conflicts(session: Session, project: Project) -> list[int]:
    """Sessions of groups declared as conflicting, including those of joint meetings.

    For joint meetings, the declared conflicts of each participating group's
    own session count as well.
    """
    direct = list(session.description.conflicts)
    indirect: list[int] = []
    transitive = list(direct)
    groups = session.groups or []
    if len(groups) > 1:
        for group in groups:
            group_session = next(
                (
                    s
                    for s in project.sessions
                    if s.groups and len(s.groups) == 1 and s.groups[0].abbr_name == group.abbr_name
                ),
                None,
            )
            if group_session is None or group_session.description is None:
                continue
            indirect.extend(group_session.description.conflicts)
            transitive.extend(group_session.description.conflicts)

    result = set(indirect)
    for number in transitive:
        if number == session.number:
            continue
        conflicting = project.find_session(number)
        if conflicting is None or not conflicting.groups or len(conflicting.groups) > 1:
            # Joint meeting explicitly flagged as conflicting, no need to go further
            continue
        conflicting_group = conflicting.groups[0]
        for other in project.sessions:
            if other.number in (number, session.number) or other.number in direct:
                continue
            if any(same_group(g, conflicting_group) for g in other.groups or []):
                result.add(other.number)
    result.discard(session.number)
    return sorted(result)


def _check_groups(session: Session, project: Project, issues: _Issues) -> None:
    groups = session.groups or []
    errors = validate_session_groups(groups)
    if errors:
        issues.add("error", "groups", errors)
    elif is_joint_meeting(session.title):
        if len(groups) == 1:
            issues.add("error", "groups", ["Group cannot have a joint meeting with itself"])
    elif len(groups) > 1:
        issues.add(
            "error",
            "groups",
            ['Joint meeting found but the title does not have "Joint Meeting"'],
        )
    elif len(groups) == 1:
        duplicates = [
            s
            for s in project.sessions
            if s is not session
            and s.groups
            and len(s.groups) == 1
            and same_group(s.groups[0], groups[0])
            and s.highlight == session.highlight
        ]
        issues.add(
            "error",
            "groups",
            [f'Another issue #{d.number} found for the "{groups[0].label}"' for d in duplicates],
        )
    session.indirect_conflicts = _compute_indirect_conflicts(session, project)


def _minutes_url(session: Session) -> str | None:
    url = session.description.materials.get("minutes")
    if not url or url.strip().upper() in TODO_STRINGS:
        return None
    return url


def validate_session(
    number: int,
    project: Project,
    *,
    parser: Parser = parse_session_body,
    snapshot: ScheduleSnapshot | None = None,
    now: datetime | None = None,
    previous_body: str | None = None,
) -> list[ValidationIssue]:
    """Validate one session and return the list of issues found.

    Args:
        number: Session number.
        project: Project snapshot. Sessions get their description, chairs or
            groups filled in as a side effect.
        parser: Body parser, raising SessionFormatError on malformed bodies.
        snapshot: Meetings of all sessions, built from the project when not given.
        now: Reference time for the minutes check (defaults to current UTC time).
        previous_body: Previous version of the body, if it just changed.

    Raises:
        ConfigurationError: If the session is not in the project.
    """
    config = get_config()
    session = project.find_session(number)
    if session is None:
        raise ConfigurationError(f'Session #{number} is not in project "{project.title}"')

    issues = _Issues(number)

    # Cannot validate anything else if the body cannot be parsed
    if session.description is None:
        try:
            session.description = parser(session.body, project)
        except SessionFormatError as e:
            issues.add("error", "format", e.messages)
            return issues.items

    if snapshot is None:
        prepare_sessions(project, parser)
        snapshot = ScheduleSnapshot.from_project(project)
    description = session.description

    if project.event_type == "groups":
        if session.groups is None:
            session.groups, session.highlight = resolve_session_groups(session, project.w3c_ids)
        _check_groups(session, project, issues)
    else:
        if session.chairs is None:
            session.chairs = resolve_session_chairs(session, project.w3c_ids)
        issues.add("error", "chairs", validate_session_chairs(session.chairs, project.w3c_ids))

    # Declared conflicts must point to other existing sessions
    if description.conflicts:
        if session.is_plenary:
            conflict_errors = ["Plenary session cannot conflict with any other session"]
        else:
            conflict_errors = []
            for other_number in description.conflicts:
                if other_number == number:
                    conflict_errors.append("Session cannot conflict with itself")
                elif project.find_session(other_number) is None:
                    conflict_errors.append(f"Conflicting session #{other_number} is not in the project")
        issues.add("error", "conflict", conflict_errors)
    has_conflict_errors = issues.has("error", "conflict")

    meetings = snapshot.meetings_of(session)
    issues.add(
        "error",
        "meeting format",
        [f'Invalid room, day or slot in "{m.invalid}"' for m in meetings if m.invalid],
    )

    duplicated = [
        m
        for i, m in enumerate(meetings)
        if m.day
        and m.slot
        and any(j != i and o.day == m.day and o.slot == m.slot for j, o in enumerate(meetings))
    ]
    issues.add(
        "error",
        "meeting duplicate",
        [f"Scheduled more than once in day/slot {_meeting_label(m)}" for m in duplicated],
        [_detail(m) for m in duplicated],
    )

    plenary_room = snapshot.plenary_room
    if session.is_plenary:
        if len(meetings) > 1:
            issues.add(
                "error",
                "scheduling",
                ["Plenary session must be scheduled only once"],
                [_detail(m) for m in meetings],
            )
        elif len(meetings) == 1:
            meeting = meetings[0]
            if meeting.room and meeting.room != plenary_room:
                issues.add(
                    "error",
                    "scheduling",
                    ["Plenary session must be scheduled in plenary room"],
                    [_detail(meeting)],
                )
            if meeting.is_complete and find_plenary_overflow(session, meeting, snapshot):
                issues.add(
                    "error",
                    "scheduling",
                    ["Too many sessions scheduled in same plenary slot"],
                    [_detail(meeting)],
                )
    else:
        in_plenary_room = next((m for m in meetings if m.room and m.room == plenary_room), None)
        if in_plenary_room:
            issues.add(
                "error",
                "scheduling",
                ["Non plenary session must not be scheduled in plenary room"],
                [_detail(in_plenary_room)],
            )
        for meeting in meetings:
            for other in find_double_bookings(session, meeting, snapshot):
                issues.add(
                    "error",
                    "scheduling",
                    [
                        f"Session scheduled in same room ({meeting.room}) and same day/slot "
                        f'({_meeting_label(meeting)}) as session "{other.title}" ({other.number})'
                    ],
                    [_detail(meeting, other)],
                )

    # Requested number of slots must fit in the selected times
    if description.nbslots > 0 and description.times and description.nbslots > len(description.times):
        selected = len(description.times)
        issues.add(
            "error",
            "times",
            [
                f"{description.nbslots} slots requested but only {selected} "
                f"acceptable slot{'s' if selected > 1 else ''} selected"
            ],
        )

    if description.times and meetings:
        for time in description.times:
            if not any(m.day == time.day and m.slot == time.slot for m in meetings):
                issues.add(
                    "warning",
                    "times",
                    [f"Session not scheduled on {time.day} at {time.slot} as requested"],
                    [{"time": time.model_dump()}],
                )
        if len(description.times) != len(meetings):
            issues.add(
                "warning",
                "times",
                [f"Session scheduled {len(meetings)} times instead of {len(description.times)}"],
            )

    if description.capacity:
        for meeting in meetings:
            room = project.find_room(meeting.room)
            if room is None or room.capacity >= description.capacity:
                continue
            used_for = ""
            day = project.find_day(meeting.day)
            slot = project.find_slot(meeting.slot)
            if day and slot:
                used_for = f", used for meeting on {day.label} at {slot.start},"
            issues.add(
                "warning",
                "capacity",
                [
                    f'Capacity of "{room.name}" ({room.capacity}){used_for} '
                    f"is lower than requested capacity ({description.capacity})"
                ],
                [_detail(meeting, capacity=room.capacity, requested=description.capacity)],
            )

    if description.duration:
        for meeting in meetings:
            if meeting.slot and duration_mismatch(session, meeting, snapshot):
                slot = project.find_slot(meeting.slot)
                issues.add(
                    "warning",
                    "duration",
                    [
                        f"Session scheduled in a {slot.duration}-minute slot "
                        f"({_meeting_label(meeting)}) instead of {description.duration} minutes"
                    ],
                    [_detail(meeting)],
                )

    # Room switches between consecutive slots of the same day
    scheduled = [m for m in meetings if m.is_complete]
    for meeting in scheduled:
        index = project.slot_index(meeting.slot)
        for following in scheduled:
            if (
                following.day == meeting.day
                and following.room != meeting.room
                and project.slot_index(following.slot) == index + 1
            ):
                day = project.find_day(following.day)
                issues.add(
                    "warning",
                    "switch",
                    [
                        f'Room switch between "{meeting.room}" and "{following.room}" '
                        f"on {day.label if day else following.day} at {following.slot}"
                    ],
                    [_detail(following, previous=meeting.model_dump(exclude_none=True))],
                )

    chair_or_group = "group" if project.event_type == "groups" else "chair"
    for meeting in meetings:
        for other, names in find_chair_conflicts(session, meeting, snapshot):
            issues.add(
                "error",
                f"{chair_or_group} conflict",
                [
                    f'Session scheduled at the same time as "{other.title}" (#{other.number}), '
                    f"which shares {chair_or_group} {', '.join(names)}"
                ],
                [_detail(meeting, other, names=names)],
            )

    if not has_conflict_errors:
        for meeting in meetings:
            for other in find_session_conflicts(session, meeting, snapshot):
                issues.add(
                    "warning",
                    "conflict",
                    [
                        f'Same day/slot "{_meeting_label(meeting)}" as conflicting session '
                        f'"{other.title}" (#{other.number})'
                    ],
                    [_detail(meeting, other)],
                )

    for meeting in meetings:
        for other, track in find_track_conflicts(session, meeting, snapshot):
            issues.add(
                "warning",
                "track",
                [
                    f'Same day/slot "{_meeting_label(meeting)}" as session in same track '
                    f'"{track}": "{other.title}" (#{other.number})'
                ],
                [_detail(meeting, other, track=track)],
            )

    for meeting in meetings:
        for other in find_plenary_parallels(session, meeting, snapshot):
            issues.add(
                "warning",
                "plenary",
                [f'Session scheduled at the same time as plenary session "{other.title}" (#{other.number})'],
                [_detail(meeting, other)],
            )

    for meeting in meetings:
        for other in find_irc_conflicts(session, meeting, snapshot):
            issues.add(
                "error",
                "irc",
                [f'Same IRC channel "{description.shortname}" as session #{other.number} "{other.title}"'],
                [_detail(meeting, other)],
            )

    if description.comments:
        issues.add("check", "instructions", ["Session contains instructions for meeting planners"])

    minutes_url = _minutes_url(session)
    if project.event_type != "groups" and minutes_url is None and scheduled:
        now = now or datetime.now(timezone.utc)
        grace = timedelta(hours=config.minutes_grace_hours)
        for meeting in scheduled:
            day = project.find_day(meeting.day)
            try:
                day_start = datetime.fromisoformat(day.date).replace(tzinfo=timezone.utc)
            except (AttributeError, ValueError):
                continue
            if now - day_start > grace:
                issues.add("check", "minutes", ["Session needs a link to the minutes"])
                break

    if minutes_url and not re.search(config.minutes_url_pattern, minutes_url):
        issues.add("check", "minutes origin", ["Minutes not stored on w3.org"])

    # An admin may already have reviewed the instructions and cleared the flag.
    # Keep it cleared unless the instructions changed.
    if (
        issues.has("check", "instructions")
        and "instructions" not in session.validation.check
        and previous_body
    ):
        try:
            previous = parser(previous_body, project)
        except SessionFormatError:
            previous = None
        if previous is not None and previous.comments == description.comments:
            issues.drop("check", "instructions")

    return issues.items


def _suppressed(warning: str, note: str) -> bool:
    return any(f"{prefix}:{warning}" in note for prefix in ("-warning", "-warn", "-w"))


def compute_validation_changes(
    project: Project, issues: list[ValidationIssue], what: str = "everything"
) -> list[ValidationChange]:
    """Compute, per session, the issue types to record when they differ from the recorded ones."""
    changes = []
    for session in project.sessions:
        recorded = session.validation
        new_values = {}
        for severity in SEVERITIES:
            results = [
                i.type for i in issues if i.session == session.number and i.severity == severity
            ]
            if severity == "check" and "irc channel" in recorded.check and "irc channel" not in results:
                # Kept until an admin removes it
                results.append("irc channel")
            elif severity == "warning" and recorded.note:
                results = [w for w in results if not _suppressed(w, recorded.note)]
            previous = getattr(recorded, severity)
            if what != "everything" and previous:
                # Preserve recorded results that scheduling does not touch
                for value in (v.strip() for v in previous.split(",")):
                    if value and f"{severity}: {value}" not in SCHEDULING_ISSUES:
                        results.append(value)
            new_values[severity] = ", ".join(sorted(dict.fromkeys(results)))

        if any(getattr(recorded, s) != new_values[s] for s in SEVERITIES):
            changes.append(
                ValidationChange(
                    number=session.number,
                    validation=SessionValidation(note=recorded.note, **new_values),
                )
            )
    return changes


def validate_grid(
    project: Project,
    what: str = "everything",
    *,
    parser: Parser = parse_session_body,
    now: datetime | None = None,
) -> GridValidation:
    """Validate every session of the project.

    Args:
        project: Project snapshot.
        what: "everything", or "scheduling" to only report scheduling issues.
        parser: Body parser.
        now: Reference time for the minutes check.

    Returns:
        GridValidation: The issues found and the validation changes to record.

    Raises:
        ConfigurationError: If the project configuration is invalid.
    """
    check_project(project)
    prepare_sessions(project, parser)
    snapshot = ScheduleSnapshot.from_project(project)

    issues: list[ValidationIssue] = []
    for session in project.sessions:
        issues.extend(
            validate_session(session.number, project, parser=parser, snapshot=snapshot, now=now)
        )
    if what != "everything":
        issues = [i for i in issues if f"{i.severity}: {i.type}" in SCHEDULING_ISSUES]

    changes = compute_validation_changes(project, issues, what)
    logger.info(
        "grid_validated",
        what=what,
        sessions=len(project.sessions),
        issues=len(issues),
        errors=sum(1 for i in issues if i.severity == "error"),
        changed=len(changes),
    )
    return GridValidation(issues=issues, changes=changes)


def flag_blocking_sessions(project: Project, issues: list[ValidationIssue]) -> list[int]:
    """Flag sessions whose errors scheduling cannot fix, so the scheduler skips them.

    Returns:
        Numbers of the flagged sessions.
    """
    blocking = {
        i.session
        for i in issues
        if i.severity == "error" and i.type not in RELAXABLE_ERRORS
    }
    for session in project.sessions:
        session.blocking_error = session.number in blocking
    flagged = sorted(blocking)
    if flagged:
        logger.warning("sessions_blocked", sessions=flagged)
    return flagged
