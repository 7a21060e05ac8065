"""Validate the schedule of an event and report issues per session.

Reads a project JSON file (rooms, days, slots, sessions), runs every
validation rule, and prints issues as a table or as JSON. With --write, the
new validation results are recorded in the project file.

Run with: python scripts/validate_grid.py data/project.json
JSON:     python scripts/validate_grid.py data/project.json --json
Subset:   python scripts/validate_grid.py data/project.json --what scheduling
Record:   python scripts/validate_grid.py data/project.json --write

Exit codes:
  0 = no errors
  1 = configuration problem (message on stderr)
  2 = at least one session has errors
"""

import argparse
import json
import os
import sys
from collections import Counter

from dotenv import load_dotenv

load_dotenv()

# Add project root to path for src imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from src.breakouts.config import get_config  # noqa: E402
from src.breakouts.errors import BreakoutsError  # noqa: E402
from src.breakouts.logging import bind_run, setup_logging  # noqa: E402
from src.breakouts.models import ValidationIssue  # noqa: E402
from src.breakouts.project import dump_project, load_project  # noqa: E402
from src.breakouts.validate import validate_grid  # noqa: E402


def _parse_args() -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        description="Validate an event schedule and report issues per session.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("project", type=str, help="Path to the project JSON file.")
    parser.add_argument(
        "--what",
        choices=["everything", "scheduling"],
        default="everything",
        help="Which issues to report (default: everything).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output issues and validation changes as JSON on stdout.",
    )
    parser.add_argument(
        "--write",
        action="store_true",
        help="Record the new validation results in the project file.",
    )
    return parser.parse_args()


def _format_table(issues: list[ValidationIssue]) -> str:
    """Format issues as a human-readable table."""
    headers = ["Session", "Severity", "Type", "Message"]
    rows = []
    for issue in sorted(issues, key=lambda i: (i.session, i.severity, i.type)):
        for message in issue.messages:
            rows.append([f"#{issue.session}", issue.severity, issue.type, message])
    if not rows:
        return "No issues found."

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row[:-1]):
            widths[i] = max(widths[i], len(cell))

    header_line = " | ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
    separator = "-+-".join("-" * w for w in widths)
    row_lines = [" | ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)) for row in rows]
    return "\n".join([header_line, separator, *row_lines])


def main(args: argparse.Namespace) -> int:
    config = get_config()
    setup_logging(config.log_json, config.log_level)

    project = load_project(args.project)
    bind_run(command="validate", project=project.title)
    result = validate_grid(project, args.what)

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))
    else:
        print(_format_table(result.issues))
        counts = Counter(issue.severity for issue in result.issues)
        print(
            f"\nErrors: {counts['error']}  |  Warnings: {counts['warning']}  |  "
            f"Checks: {counts['check']}  |  Changed: {len(result.changes)}"
        )
        for change in result.changes:
            v = change.validation
            print(f"  ~ #{change.number}: error=[{v.error}] warning=[{v.warning}] check=[{v.check}]")

    if args.write and result.changes:
        for change in result.changes:
            project.find_session(change.number).validation = change.validation
        path = dump_project(project, args.project)
        print(f"\nValidation results recorded -> {path}", file=sys.stderr)

    return 2 if any(issue.severity == "error" for issue in result.issues) else 0


if __name__ == "__main__":
    args = _parse_args()
    try:
        sys.exit(main(args))
    except BreakoutsError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
