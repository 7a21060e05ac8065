"""Meeting model: the (room, day, slot) occupancies of a session.

A breakout session meets at most once, from its `room`, `day` and `slot`
fields. When the event allows multiple meetings, the `meeting` field holds a
compact encoding of all occurrences, e.g. "Monday, 9:00; Tuesday, 14:00, Room 2":
entries are separated by ";" or "|", tokens within an entry by ",". Each
token names a day, a slot or a room, by option name, label, date or start time.
The `room`, `day` and `slot` fields then act as defaults for every entry.

A slot token may carry actual times between angle brackets when the meeting
does not follow the slot boundaries: "9:00<8:30>", "9:00 - 10:00<10:30>" or
"9:00<8:30> - 10:00<10:30>".
"""

import re

from src.breakouts.models import GroupedMeeting, Meeting, Project, Session, Slot, pad_time

# Slot start (1), actual start (2), slot end (3), actual end (4)
SLOT_TOKEN = re.compile(r"^(\d+:\d+)(?:<(\d+:\d+)>)?(?:\s*-\s*(\d+:\d+)(?:<(\d+:\d+)>)?)?$")


def _resolve_token(token: str, project: Project) -> tuple[str, str] | None:
    """Return (field, option name) for a lowercased token, None when unknown."""
    for day in project.days:
        if token in (day.name.lower(), day.label.lower(), day.date):
            return "day", day.name
    for slot in project.slots:
        if token == slot.name.lower():
            return "slot", slot.name
    for room in project.rooms:
        if token in (room.name.lower(), room.label.lower()):
            return "room", room.name
    return None


def _valid_actual_times(index: int, actual_start: str | None, actual_end: str | None, project: Project) -> bool:
    """Check actual times against the slot at `index` and its neighbours.

    An actual time must differ from the slot time it replaces, leave some of
    the slot, and not overlap the previous or next slot.
    """
    slot = project.slots[index]
    previous = project.slots[index - 1] if index > 0 else None
    following = project.slots[index + 1] if index + 1 < len(project.slots) else None
    start = pad_time(actual_start)
    end = pad_time(actual_end)
    if start:
        if start == pad_time(slot.start) or start >= pad_time(slot.end):
            return False
        if previous and start < pad_time(previous.end):
            return False
    if end:
        if end == pad_time(slot.end) or end <= pad_time(slot.start):
            return False
        if following and end > pad_time(following.start):
            return False
    return not (start and end and start > end)


def _resolve_slot_token(match: re.Match, project: Project) -> dict | None:
    start, actual_start, end, actual_end = match.groups()
    index = next(
        (
            i
            for i, slot in enumerate(project.slots)
            if pad_time(slot.start) == pad_time(start) and (not end or pad_time(slot.end) == pad_time(end))
        ),
        None,
    )
    if index is None or not _valid_actual_times(index, actual_start, actual_end, project):
        return None
    return {"slot": project.slots[index].name, "actual_start": actual_start, "actual_end": actual_end}


def parse_session_meetings(session: Session, project: Project) -> list[Meeting]:
    """Return the meetings the session is associated with.

    Unresolvable tokens, and actual times that do not fit the slot, mark
    their entry invalid instead of raising.
    """
    if session.meeting:
        meetings = []
        for entry in session.meeting.replace("|", ";").split(";"):
            entry = entry.strip()
            if not entry:
                continue
            fields = {"room": session.room, "day": session.day, "slot": session.slot}
            invalid = None
            for token in entry.split(","):
                token = token.strip().lower()
                match = SLOT_TOKEN.match(token)
                if match:
                    resolved = _resolve_slot_token(match, project)
                    if resolved is None:
                        invalid = entry
                        break
                    fields.update(resolved)
                    continue
                resolved = _resolve_token(token, project)
                if resolved is None:
                    invalid = entry
                    break
                fields[resolved[0]] = resolved[1]
            if invalid:
                meetings.append(Meeting(invalid=invalid))
            else:
                meetings.append(Meeting(**fields))
        return meetings

    if session.room or session.day or session.slot:
        return [Meeting(room=session.room, day=session.day, slot=session.slot)]
    return []


def _slot_token(meeting: Meeting, slot: Slot) -> str:
    if meeting.actual_end:
        if meeting.actual_start:
            return f"{slot.start}<{meeting.actual_start}> - {slot.end}<{meeting.actual_end}>"
        return f"{slot.start} - {slot.end}<{meeting.actual_end}>"
    if meeting.actual_start:
        return f"{slot.start}<{meeting.actual_start}>"
    return slot.start


def serialize_session_meetings(
    meetings: list[Meeting], project: Project
) -> tuple[str | None, str]:
    """Serialize meetings to the compact encoding.

    Returns:
        (room, meeting): `room` is the common room name when every meeting
        takes place in the same room, in which case the encoded entries omit
        it. Otherwise `room` is None and each entry names its room.
    """
    if not meetings:
        return None, ""
    rooms = {m.room for m in meetings}
    common_room = meetings[0].room if len(rooms) == 1 and meetings[0].room else None

    entries = []
    for meeting in meetings:
        tokens = []
        day = project.find_day(meeting.day)
        if day:
            tokens.append(day.label or day.name)
        slot = project.find_slot(meeting.slot)
        if slot:
            tokens.append(_slot_token(meeting, slot))
        if meeting.room and not common_room:
            tokens.append(meeting.room)
        entries.append(", ".join(tokens))
    return common_room, "; ".join(entries)


def group_session_meetings(session: Session, project: Project) -> list[GroupedMeeting]:
    """Merge contiguous same-room meetings of each day into calendar blocks.

    A meeting is contiguous with the previous one when its slot immediately
    follows in the slot sequence. Incomplete meetings are ignored.
    """
    by_room_and_day: dict[tuple[str, str], list[Meeting]] = {}
    for meeting in parse_session_meetings(session, project):
        if meeting.is_complete:
            by_room_and_day.setdefault((meeting.room, meeting.day), []).append(meeting)

    blocks = []
    for (room, day), meetings in by_room_and_day.items():
        meetings.sort(key=lambda m: project.slot_index(m.slot))
        current = None
        for meeting in meetings:
            index = project.slot_index(meeting.slot)
            slot = project.slots[index]
            if current and index == current["end_index"] + 1:
                current["end"] = meeting.actual_end or slot.end
                current["end_index"] = index
                current["meetings"].append(meeting)
            else:
                current = {
                    "start": meeting.actual_start or slot.start,
                    "end": meeting.actual_end or slot.end,
                    "end_index": index,
                    "meetings": [meeting],
                }
                blocks.append((room, day, current))

    return [
        GroupedMeeting(
            room=room,
            day=day,
            start=block["start"],
            end=block["end"],
            meetings=block["meetings"],
        )
        for room, day, block in blocks
    ]


def meetings_meet_at(meetings: list[Meeting], meeting: Meeting) -> bool:
    """True if one of the meetings is at the meeting's day/slot (and room, when given)."""
    return any(
        (not meeting.room or m.room == meeting.room)
        and m.day == meeting.day
        and m.slot == meeting.slot
        for m in meetings
    )


def meetings_in_parallel_with(meetings: list[Meeting], meeting: Meeting) -> bool:
    """True if one of the meetings is at the meeting's day/slot in another (or unknown) room."""
    return any(
        (not m.room or not meeting.room or m.room != meeting.room)
        and m.day == meeting.day
        and m.slot == meeting.slot
        for m in meetings
    )


def meets_at(session: Session, meeting: Meeting, project: Project) -> bool:
    return meetings_meet_at(parse_session_meetings(session, project), meeting)


def meets_in_parallel_with(session: Session, meeting: Meeting, project: Project) -> bool:
    return meetings_in_parallel_with(parse_session_meetings(session, project), meeting)


def meets_in_room(session: Session, room: str, project: Project) -> bool:
    return any(m.room == room for m in parse_session_meetings(session, project))
