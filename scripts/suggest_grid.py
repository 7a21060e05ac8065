"""Suggest a schedule for an event.

Validates the project, flags sessions whose errors scheduling cannot fix,
then assigns rooms, days and slots to the remaining sessions. The seed is
printed so that a run can be reproduced.

Run with: python scripts/suggest_grid.py data/project.json
Replay:   python scripts/suggest_grid.py data/project.json --seed qzjfr
Fresh:    python scripts/suggest_grid.py data/project.json --preserve none
Keep:     python scripts/suggest_grid.py data/project.json --preserve 12 15
Move:     python scripts/suggest_grid.py data/project.json --reset 7
Output:   python scripts/suggest_grid.py data/project.json --output data/suggested.json

Exit codes:
  0 = every session is scheduled
  1 = configuration problem (message on stderr)
  2 = some sessions could not be scheduled
"""

import argparse
import os
import sys

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.breakouts.config import get_config  # noqa: E402
from src.breakouts.errors import BreakoutsError  # noqa: E402
from src.breakouts.logging import bind_run, setup_logging  # noqa: E402
from src.breakouts.project import dump_project, load_project  # noqa: E402
from src.breakouts.schedule import reset_pins, suggest_schedule  # noqa: E402
from src.breakouts.validate import flag_blocking_sessions, validate_grid  # noqa: E402


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="Suggest a schedule for an event.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("project", type=str, help="Path to the project JSON file.")
    parser.add_argument(
        "--seed",
        type=str,
        default=None,
        help="Shuffle seed, to reproduce a previous run.",
    )
    parser.add_argument(
        "--preserve",
        nargs="+",
        default=["all"],
        help=(
            "Assignments to keep: 'all' (default), 'none', "
            "or a list of session numbers."
        ),
    )
    parser.add_argument(
        "--reset",
        nargs="+",
        type=int,
        default=[],
        help="Session numbers whose assignments are discarded in any case.",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output file path. Default: overwrite the project file.",
    )
    return parser.parse_args()


def _parse_preserve(values: list[str]) -> str | list[int]:
    if values in (["all"], ["none"]):
        return values[0]
    return [int(v) for v in values]


def main(args: argparse.Namespace) -> int:
    config = get_config()
    setup_logging(config.log_json, config.log_level)

    project = load_project(args.project)
    bind_run(command="suggest", project=project.title)

    # Pins are discarded first so that errors they caused do not block scheduling
    reset_pins(project, _parse_preserve(args.preserve), args.reset)

    # Sessions with errors that scheduling cannot fix stay where they are
    validation = validate_grid(project)
    blocked = flag_blocking_sessions(project, validation.issues)

    report = suggest_schedule(project, seed=args.seed)

    print("=" * 60)
    print(f"SUGGESTED SCHEDULE [seed: {report.seed}]")
    print("=" * 60)
    for track, room in report.track_rooms.items():
        if track and track != "_plenary":
            print(f"  Track {track}: {room or '(no room)'}")
    print(
        f"\nAssigned: {len(report.assigned)}  |  Unscheduled: {len(report.unscheduled)}  |  "
        f"Blocked: {len(blocked)}"
    )
    for number in report.assigned:
        session = project.find_session(number)
        where = session.meeting or f"{session.day}, {session.slot}"
        print(f"  + #{number} {session.title}: {where} in {session.room}")
    for number in report.unscheduled:
        print(f"  ! #{number} {project.find_session(number).title}: could not be scheduled")
    if blocked:
        print(f"  Blocked by errors: {', '.join(f'#{n}' for n in blocked)}")

    path = dump_project(project, args.output or args.project)
    print(f"\nSchedule written -> {path}")
    print(f"Replay with --seed {report.seed}")

    return 2 if report.unscheduled else 0


if __name__ == "__main__":
    args = _parse_args()
    try:
        sys.exit(main(args))
    except (BreakoutsError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
