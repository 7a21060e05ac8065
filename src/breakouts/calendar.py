"""
Diff-based calendar sync for sessions.

Compares the calendar blocks a session needs (its meetings, merged into
contiguous same-room runs) against the calendar entries previously recorded
on the session, and produces targeted create/update/cancel actions instead of
recreating everything.

Recorded entries that no longer match a block are reused for pending
creations when possible, so that external identifiers (and links shared with
participants) survive a reschedule.
"""

from typing import Callable

from pydantic import BaseModel, Field

from src.breakouts.errors import CalendarError
from src.breakouts.logging import get_logger
from src.breakouts.meetings import group_session_meetings
from src.breakouts.models import CalendarAction, CalendarEntry, Project, Session, ValidationIssue
from src.breakouts.rules import ScheduleSnapshot

logger = get_logger(__name__)

PLENARY_ENTRY = "plenary"


class CalendarUpdates(BaseModel):
    """Actions needed to bring a session's calendar entries in sync.

    `unchanged` lists recorded entries that already match a desired block;
    they need no external call. No entry appears in more than one list.
    """

    session: int
    create: list[CalendarAction] = Field(default_factory=list)
    update: list[CalendarAction] = Field(default_factory=list)
    cancel: list[CalendarAction] = Field(default_factory=list)
    unchanged: list[CalendarAction] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.create or self.update or self.cancel)


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------
def _normalize_day(entry: CalendarEntry, project: Project) -> CalendarAction:
    """Convert a recorded entry to an action keyed on the day option name."""
    wanted = entry.day.lower()
    day = next(
        (d for d in project.days if wanted in (d.name.lower(), d.label.lower(), d.date)),
        None,
    )
    return CalendarAction(
        day=day.name if day else entry.day,
        start=entry.start,
        end=entry.end,
        type=entry.type,
        url=entry.url,
    )


def compute_calendar_updates(session: Session, project: Project) -> CalendarUpdates:
    """Compare desired calendar blocks against recorded entries.

    Identity key: (day, start, end). Plenary sessions only match entries
    of plenary type, since a plenary entry is shared among the sessions of
    the plenary.

    Args:
        session: Session, with its description parsed.
        project: Project the session belongs to.

    Returns:
        CalendarUpdates with the create/update/cancel actions.
    """
    plenary = session.is_plenary
    recorded = session.description.calendar if session.description else []
    entries = [_normalize_day(entry, project) for entry in recorded]
    matched: set[int] = set()

    updates = CalendarUpdates(session=session.number)
    for block in group_session_meetings(session, project):
        index = next(
            (
                i
                for i, entry in enumerate(entries)
                if i not in matched
                and entry.day == block.day
                and entry.start == block.start
                and entry.end == block.end
                and (entry.type == PLENARY_ENTRY or not plenary)
            ),
            None,
        )
        if index is not None:
            matched.add(index)
            updates.unchanged.append(entries[index].model_copy(update={"meeting": block}))
        else:
            updates.create.append(
                CalendarAction(
                    day=block.day,
                    start=block.start,
                    end=block.end,
                    type=PLENARY_ENTRY if plenary else None,
                    meeting=block,
                )
            )

    for i, entry in enumerate(entries):
        if i in matched:
            continue
        # A plenary entry is shared, it cannot be moved to another block
        if entry.type != PLENARY_ENTRY and updates.create and not plenary:
            reused = updates.create.pop()
            updates.update.append(reused.model_copy(update={"url": entry.url, "previous": recorded[i]}))
        else:
            updates.cancel.append(entry)

    logger.info(
        "calendar_updates_computed",
        session=session.number,
        create=len(updates.create),
        update=len(updates.update),
        cancel=len(updates.cancel),
        unchanged=len(updates.unchanged),
    )
    return updates


# ---------------------------------------------------------------------------
# Blockers
# ---------------------------------------------------------------------------
def find_sync_blockers(project: Project, issues: list[ValidationIssue]) -> dict[int, list[int]]:
    """Find sessions whose calendar entries must not be synced.

    A session with validation errors is blocked by itself. A plenary session
    shares its calendar entry with the other sessions of the same plenary
    meeting, so errors in any of them block it too.

    Args:
        project: Project snapshot, with session descriptions parsed.
        issues: Validation issues, e.g. from validate_grid().

    Returns:
        Blocked session number -> numbers of the sessions with errors.
    """
    with_errors = {i.session for i in issues if i.severity == "error"}
    snapshot = ScheduleSnapshot.from_project(project)

    blockers: dict[int, list[int]] = {}
    for session in project.sessions:
        blocking = {session.number} & with_errors
        if session.is_plenary:
            for meeting in snapshot.meetings_of(session):
                if meeting.is_complete:
                    blocking.update(
                        s.number for s in snapshot.sessions_at(meeting, exclude=session) if s.number in with_errors
                    )
        if blocking:
            blockers[session.number] = sorted(blocking)
    if blockers:
        logger.warning("calendar_sync_blocked", sessions=sorted(blockers))
    return blockers


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------
def _label(action: CalendarAction) -> str:
    return f"{action.day} {action.start}-{action.end}"


def _recorded(action: CalendarAction, url: str | None) -> CalendarEntry:
    return CalendarEntry(day=action.day, start=action.start, end=action.end, type=action.type, url=url)


def apply_calendar_updates(
    session: Session,
    updates: CalendarUpdates,
    *,
    create_fn: Callable[[Session, CalendarAction], str],
    update_fn: Callable[[Session, CalendarAction], str],
    cancel_fn: Callable[[Session, CalendarAction], None],
) -> dict:
    """Execute calendar calls for a session's updates.

    Cancellations run first so that a failed cancel never leaves a duplicate.

    Args:
        session: Session the updates were computed for.
        updates: Output from compute_calendar_updates().
        create_fn: Callable(session, action) -> url of the new entry.
        update_fn: Callable(session, action) -> url of the updated entry.
        cancel_fn: Callable(session, action) -> None.

    Returns:
        {
            "created": int,
            "updated": int,
            "cancelled": int,
            "failed": int,
            "errors": [...],
            "entries": [CalendarEntry, ...],
        }
    """
    created = 0
    updated = 0
    cancelled = 0
    failed = 0
    errors = []
    entries = [_recorded(action, action.url) for action in updates.unchanged]

    for action in updates.cancel:
        try:
            cancel_fn(session, action)
            cancelled += 1
        except CalendarError as e:
            errors.append(f"cancel #{session.number} {_label(action)}: {e}")
            failed += 1
            entries.append(_recorded(action, action.url))
            logger.error("calendar_call_failed", session=session.number, action="cancel", error=str(e))

    for action in updates.update:
        try:
            url = update_fn(session, action)
            updated += 1
            entries.append(_recorded(action, url or action.url))
        except CalendarError as e:
            errors.append(f"update #{session.number} {_label(action)}: {e}")
            failed += 1
            # The entry still sits where it was recorded
            entries.append(action.previous or _recorded(action, action.url))
            logger.error("calendar_call_failed", session=session.number, action="update", error=str(e))

    for action in updates.create:
        try:
            url = create_fn(session, action)
            created += 1
            entries.append(_recorded(action, url))
        except CalendarError as e:
            errors.append(f"create #{session.number} {_label(action)}: {e}")
            failed += 1
            logger.error("calendar_call_failed", session=session.number, action="create", error=str(e))

    return {
        "created": created,
        "updated": updated,
        "cancelled": cancelled,
        "failed": failed,
        "errors": errors,
        "entries": entries,
    }


# ---------------------------------------------------------------------------
# Summary formatting
# ---------------------------------------------------------------------------
def format_updates_summary(updates: CalendarUpdates) -> str:
    """Format calendar updates for human-readable display."""
    lines = [
        f"  #{updates.session}  Create: {len(updates.create)}  |  "
        f"Update: {len(updates.update)}  |  "
        f"Cancel: {len(updates.cancel)}  |  "
        f"Unchanged: {len(updates.unchanged)}"
    ]
    for action in updates.create:
        room = action.meeting.room if action.meeting else ""
        lines.append(f"    + {_label(action)} {room}")
    for action in updates.update:
        room = action.meeting.room if action.meeting else ""
        lines.append(f"    ~ {_label(action)} {room} (reuses {action.url})")
    for action in updates.cancel:
        kind = "remove from plenary" if action.type == PLENARY_ENTRY else "cancel"
        lines.append(f"    - {_label(action)} {kind} {action.url or ''}".rstrip())
    return "\n".join(lines)
