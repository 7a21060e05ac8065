"""
Sync session meetings to the event calendar.

Compares each scheduled session's meetings against the calendar entries
recorded in its description and creates, updates or cancels calendar entries
so that the calendar matches the schedule. Entry URLs are recorded back in
the session bodies.

Usage:
    python scripts/sync_calendar.py data/project.json              # dry-run (default)
    python scripts/sync_calendar.py data/project.json --execute    # call the calendar API
    python scripts/sync_calendar.py data/project.json --session 12 --execute

Pre-requisites:
    - BREAKOUTS_CALENDAR_URL and BREAKOUTS_CALENDAR_TOKEN set in .env
"""

import argparse
import os
import sys
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.breakouts.body import serialize_session_description  # noqa: E402
from src.breakouts.calendar import (  # noqa: E402
    apply_calendar_updates,
    compute_calendar_updates,
    find_sync_blockers,
    format_updates_summary,
)
from src.breakouts.calendar_client import CalendarClient  # noqa: E402
from src.breakouts.config import get_config  # noqa: E402
from src.breakouts.errors import BreakoutsError  # noqa: E402
from src.breakouts.logging import bind_run, setup_logging  # noqa: E402
from src.breakouts.project import dump_project, load_project  # noqa: E402
from src.breakouts.validate import validate_grid  # noqa: E402


def main():
    parser = argparse.ArgumentParser(
        description="Sync session meetings to the event calendar"
    )
    parser.add_argument("project", type=str, help="Path to the project JSON file.")
    parser.add_argument(
        "--execute", action="store_true",
        help="Call the calendar API (default: dry-run)",
    )
    parser.add_argument(
        "--session", type=int, nargs="+", default=None,
        help="Only sync these session numbers",
    )
    args = parser.parse_args()

    config = get_config()
    setup_logging(config.log_json, config.log_level)

    mode = "execute" if args.execute else "dry-run"
    print("=" * 60)
    print(f"CALENDAR SYNC [{mode.upper()}]")
    print("=" * 60)

    project = load_project(args.project)
    bind_run(command="sync", mode=mode, project=project.title)
    validation = validate_grid(project)
    blockers = find_sync_blockers(project, validation.issues)

    sessions = [
        s for s in project.sessions
        if s.description is not None and (args.session is None or s.number in args.session)
    ]
    # Sessions with errors, or in a plenary with errors, keep their calendar as is
    for session in [s for s in sessions if s.number in blockers]:
        numbers = ", ".join(f"#{n}" for n in blockers[session.number])
        print(f"  skip #{session.number}: errors need fixing in {numbers}")
    sessions = [s for s in sessions if s.number not in blockers]
    all_updates = [(s, compute_calendar_updates(s, project)) for s in sessions]
    pending = [(s, u) for s, u in all_updates if not u.is_empty]
    print(f"{len(sessions)} sessions, {len(pending)} need calendar updates\n")

    # Dry-run: just print what would happen
    if mode == "dry-run":
        print("--- DRY RUN -- no API calls ---\n")
        for _, updates in pending:
            print(format_updates_summary(updates))
        print("\nRun with --execute to apply.")
        return 0

    client = CalendarClient.from_config()
    callables = client.callables(project)

    summary = {"created": 0, "updated": 0, "cancelled": 0, "failed": 0}
    errors = []
    for session, updates in pending:
        print(format_updates_summary(updates))
        result = apply_calendar_updates(session, updates, **callables)
        for key in summary:
            summary[key] += result[key]
        errors.extend(result["errors"])

        # Record entry URLs in the session body
        session.description.calendar = result["entries"]
        session.body = serialize_session_description(session.description, project)
        session.updated = True

    dump_project(project, args.project)

    print(f"\nSync finished at {datetime.now(timezone.utc).isoformat()}")
    print(
        f"  Created: {summary['created']}  |  Updated: {summary['updated']}  |  "
        f"Cancelled: {summary['cancelled']}  |  Failed: {summary['failed']}"
    )
    for error in errors[:10]:
        print(f"  ! {error}")
    if len(errors) > 10:
        print(f"  ... and {len(errors) - 10} more")
    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except BreakoutsError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
