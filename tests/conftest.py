import pytest

from src.breakouts.config import reset_config
from src.breakouts.models import Project

ROOMS = ["Plenary (200)", "Room A (30)", "Room B (50)", "Room C (15)"]
DAYS = ["Monday (2042-02-10)", "Tuesday (2042-02-11)"]
SLOTS = ["9:00 - 10:00", "10:00 - 11:00", "11:00 - 12:00", "14:00 - 14:30"]

MONDAY = "Monday (2042-02-10)"
TUESDAY = "Tuesday (2042-02-11)"
NINE = "9:00 - 10:00"
TEN = "10:00 - 11:00"
ELEVEN = "11:00 - 12:00"
TWO_PM = "14:00 - 14:30"
PLENARY = "Plenary (200)"
ROOM_A = "Room A (30)"
ROOM_B = "Room B (50)"
ROOM_C = "Room C (15)"


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Isolate tests from the developer's environment and .env file."""
    for name in ("BREAKOUTS_PLENARY_ROOM", "BREAKOUTS_PLENARY_HOLDS", "BREAKOUTS_UNKNOWN_CAPACITY"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


def make_body(
    description="Let's talk about things.",
    goal="Agree on next steps.",
    type="Breakout (Default)",
    chairs=None,
    shortname=None,
    conflicts=None,
    capacity=None,
    duration=None,
    nbslots=None,
    times=None,
    materials=None,
    comments=None,
    calendar=None,
) -> str:
    """Build a session body the way the issue form renders it. None skips a section."""
    sections = [
        ("Session description", description),
        ("Session goal", goal),
        ("Session type", type),
        ("Additional session chairs (Optional)", chairs),
        ("IRC channel (Optional)", shortname),
        ("Other sessions where we should avoid scheduling conflicts (Optional)", conflicts),
        ("Estimated number of in-person attendees (Optional)", capacity),
        ("Session duration (Optional)", duration),
        ("Number of slots (Optional)", nbslots),
        ("Preferred slots (Optional)", times),
        ("Meeting materials (Optional)", materials),
        ("Links to calendar (For meeting planners only)", calendar),
        ("Comments (For meeting planners only)", comments),
    ]
    return "\n\n".join(f"### {title}\n\n{value}" for title, value in sections if value is not None)


def make_session(number, title=None, author=None, body=None, **fields) -> dict:
    return {
        "number": number,
        "title": title or f"Session {number}",
        "author": author or f"user{number}",
        "body": body if body is not None else make_body(),
        **fields,
    }


@pytest.fixture
def make_project():
    """Factory for a two-day project with a plenary room and three breakout rooms."""

    def _make(sessions=(), metadata=None, **kwargs) -> Project:
        data = {
            "title": "Test event",
            "rooms": list(ROOMS),
            "days": list(DAYS),
            "slots": list(SLOTS),
            "metadata": metadata or {"timezone": "Europe/Madrid", "type": "breakouts"},
            "sessions": list(sessions),
        }
        data.update(kwargs)
        return Project.model_validate(data)

    return _make
