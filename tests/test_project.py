import json

import pytest

from src.breakouts.errors import ConfigurationError
from src.breakouts.models import Day, Project, Room, Slot
from src.breakouts.project import check_project, dump_project, load_project, validate_project
from tests.conftest import ROOM_A, make_body, make_session


def test_option_names_are_parsed():
    room = Room.model_validate("Salon Ecija (30 - Floor 2)")
    assert (room.label, room.capacity, room.location) == ("Salon Ecija", 30, "Floor 2")

    slot = Slot.model_validate("9:00 - 10:30")
    assert (slot.start, slot.end, slot.duration) == ("9:00", "10:30", 90)

    day = Day.model_validate("Monday (2042-02-10)")
    assert (day.label, day.date) == ("Monday", "2042-02-10")


def test_room_without_capacity_uses_default():
    room = Room.model_validate("Foyer")
    assert room.label == "Foyer"
    assert room.capacity == 30


@pytest.mark.parametrize(
    "option, expected",
    [
        ({"name": "Just a room"}, ("Just a room", 30, "", False, {})),
        ({"name": "Inline (75 - basement) (VIP)"}, ("Inline", 75, "basement", True, {})),
        ({"name": "VIP room", "description": "- capacity: 25\n- vip: true"}, ("VIP room", 25, "", True, {})),
        (
            {"name": "In the back", "description": "* location: 2nd floor\n* capacity: 40\n* vip: false\n* type: backroom"},
            ("In the back", 40, "2nd floor", False, {"type": "backroom"}),
        ),
        ({"name": "Weird", "description": "-\n- yes\n- location: somewhere"}, ("Weird", 30, "somewhere", False, {})),
        (
            {"name": "Hybrid (42)", "description": "capacity: 35\nlocation: on ze web"},
            ("Hybrid", 42, "on ze web", False, {}),
        ),
    ],
)
def test_room_metadata_from_name_and_description(option, expected):
    room = Room.model_validate(option)
    assert (room.label, room.capacity, room.location, room.vip, room.metadata) == expected


def test_explicit_room_fields_win():
    room = Room.model_validate({"name": "Lounge (20) (vip)", "capacity": 12, "vip": False})
    assert (room.label, room.capacity, room.vip) == ("Lounge", 12, False)


def test_metadata_from_description_string():
    project = Project.model_validate(
        {"description": "x", "metadata": "meeting: TPAC 2042, timezone: Europe/Madrid, plenary holds: 3"}
    )
    assert project.metadata.meeting == "TPAC 2042"
    assert project.metadata.timezone == "Europe/Madrid"
    assert project.plenary_holds == 3
    assert project.event_type == "breakouts"


def test_plenary_holds_must_be_digits():
    project = Project.model_validate({"metadata": {"plenary holds": "five"}})
    assert project.plenary_holds == 5


def test_plenary_room_matches_label(make_project):
    project = make_project(metadata={"plenary room": "plenary"})
    assert project.plenary_room.name == "Plenary (200)"


def test_valid_project_has_no_problems(make_project):
    assert validate_project(make_project()) == []


def test_invalid_configuration_is_reported(make_project):
    project = make_project(
        slots=["9:00 - 9:45", "noon"],
        days=["Someday", "2042-02-31"],
        metadata={"timezone": "Mars/Olympus", "type": "party"},
    )

    problems = validate_project(project)

    assert "Unexpected slot duration 45. Duration should be either 30 or 60 minutes." in problems
    assert 'Invalid slot name "noon". Format should be "HH:mm - HH:mm"' in problems
    assert any(p.startswith('Invalid day name "Someday"') for p in problems)
    assert 'Invalid date in day name "2042-02-31".' in problems
    assert any('"Mars/Olympus" is not a valid timezone' in p for p in problems)
    assert 'The "type" info must be one of "groups" or "breakouts"' in problems

    with pytest.raises(ConfigurationError) as exc_info:
        check_project(project)
    assert len(exc_info.value.problems) == len(problems)


def test_load_and_dump_project(tmp_path):
    path = tmp_path / "project.json"
    path.write_text(
        json.dumps(
            {
                "title": "TPAC",
                "description": "meeting: TPAC 2042, timezone: Europe/Madrid",
                "rooms": [ROOM_A],
                "days": ["2042-02-10"],
                "slots": ["9:00 - 10:00"],
                "sessions": [make_session(1, room=ROOM_A, body=make_body())],
            }
        ),
        encoding="utf-8",
    )

    project = load_project(path)
    assert project.metadata.timezone == "Europe/Madrid"
    assert project.days[0].label == "2042-02-10"

    project.sessions[0].updated = True
    out = dump_project(project, tmp_path / "out" / "project.json")
    data = json.loads(out.read_text(encoding="utf-8"))
    session = data["sessions"][0]
    assert session["room"] == ROOM_A
    assert "updated" not in session
    assert "description" not in session
    assert data["metadata"]["timezone"] == "Europe/Madrid"
