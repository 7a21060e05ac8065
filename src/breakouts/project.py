"""Project loading, dumping and structural validation.

A project file is a JSON document holding the event's rooms, days, slots and
sessions. Rooms, days and slots may be given as option names (the way the
tracker stores them) or as full objects.
"""

import json
from datetime import date
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from src.breakouts.errors import ConfigurationError
from src.breakouts.logging import get_logger
from src.breakouts.models import BARE_DATE_PATTERN, SLOT_PATTERN, Project, parse_metadata

logger = get_logger(__name__)

EVENT_TYPES = ("breakouts", "groups")
SLOT_DURATIONS = (30, 60)

# Fields that only live for the duration of a run
RUNTIME_FIELDS = {
    "description",
    "chairs",
    "groups",
    "highlight",
    "indirect_conflicts",
    "updated",
    "blocking_error",
}


def load_project(path: str | Path) -> Project:
    """Load and validate a project file.

    Args:
        path: Path to the JSON project file.

    Returns:
        Project: The validated project snapshot.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if "metadata" not in data and data.get("description"):
        data["metadata"] = parse_metadata(data["description"])
    project = Project.model_validate(data)
    logger.info(
        "project_loaded",
        path=str(path),
        sessions=len(project.sessions),
        rooms=len(project.rooms),
        days=len(project.days),
        slots=len(project.slots),
    )
    return project


def dump_project(project: Project, path: str | Path) -> Path:
    """Write the project back to disk, dropping runtime-only session fields.

    Returns:
        Path to the written file.
    """
    path = Path(path)
    data = project.model_dump(
        mode="json",
        by_alias=True,
        exclude={"sessions": {"__all__": RUNTIME_FIELDS}},
        exclude_none=True,
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    return path


def validate_project(project: Project) -> list[str]:
    """Return the list of structural problems with the project configuration."""
    problems = []

    metadata = project.metadata
    if metadata.timezone:
        try:
            ZoneInfo(metadata.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            problems.append(
                f'The "timezone" info "{metadata.timezone}" is not a valid timezone. '
                'Value should be a "tz identifier" such as "Europe/Madrid"'
            )
    if metadata.type and metadata.type not in EVENT_TYPES:
        problems.append('The "type" info must be one of "groups" or "breakouts"')

    for slot in project.slots:
        if not SLOT_PATTERN.match(slot.name.strip()):
            problems.append(f'Invalid slot name "{slot.name}". Format should be "HH:mm - HH:mm"')
        elif slot.duration not in SLOT_DURATIONS:
            problems.append(
                f"Unexpected slot duration {slot.duration}. "
                "Duration should be either 30 or 60 minutes."
            )

    for day in project.days:
        if not BARE_DATE_PATTERN.match(day.date):
            problems.append(
                f'Invalid day name "{day.name}". '
                'Format should be either "YYYY-MM-DD" or "[label] (YYYY-MM-DD)"'
            )
            continue
        try:
            date.fromisoformat(day.date)
        except ValueError:
            problems.append(f'Invalid date in day name "{day.name}".')

    return problems


def check_project(project: Project) -> None:
    """Raise ConfigurationError when the project cannot be validated or scheduled."""
    problems = validate_project(project)
    if problems:
        logger.error("project_invalid", title=project.title, problems=len(problems))
        raise ConfigurationError(f'Project "{project.title}" is invalid', problems)
