"""Session scheduling engine for multi-day, multi-track events.

Validates session proposals against scheduling rules, suggests a schedule
with constraint relaxation, and keeps an external calendar in sync.
"""

from src.breakouts.calendar import CalendarUpdates, apply_calendar_updates, compute_calendar_updates
from src.breakouts.models import Project, Session, ValidationIssue
from src.breakouts.project import load_project
from src.breakouts.schedule import suggest_schedule
from src.breakouts.validate import validate_grid, validate_session

__all__ = [
    "Project",
    "Session",
    "ValidationIssue",
    "load_project",
    "validate_grid",
    "validate_session",
    "suggest_schedule",
    "compute_calendar_updates",
    "apply_calendar_updates",
    "CalendarUpdates",
]
