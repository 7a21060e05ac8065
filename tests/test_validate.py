from datetime import datetime, timezone

import pytest

from src.breakouts.errors import ConfigurationError
from src.breakouts.validate import (
    compute_validation_changes,
    flag_blocking_sessions,
    validate_grid,
    validate_session,
)
from tests.conftest import MONDAY, NINE, PLENARY, ROOM_A, ROOM_B, TEN, TUESDAY, make_body, make_session


def _issue(issues, severity, type):
    return next((i for i in issues if i.severity == severity and i.type == type), None)


def test_double_booking_names_the_other_session(make_project):
    project = make_project(
        [
            make_session(1, title="WebGPU", room=ROOM_A, day=MONDAY, slot=NINE),
            make_session(2, title="WebCodecs", room=ROOM_A, day=MONDAY, slot=NINE),
        ]
    )

    issue = _issue(validate_session(1, project), "error", "scheduling")

    assert issue is not None
    assert issue.messages == [
        f"Session scheduled in same room ({ROOM_A}) and same day/slot ({MONDAY} {NINE}) "
        'as session "WebCodecs" (2)'
    ]
    assert issue.details[0]["conflicts_with"] == 2


def test_plenary_overflow(make_project):
    plenary_body = make_body(type="Plenary")
    project = make_project(
        [make_session(n, body=plenary_body, room=PLENARY, day=MONDAY, slot=NINE) for n in range(1, 7)]
    )

    issue = _issue(validate_session(6, project), "error", "scheduling")

    assert issue.messages == ["Too many sessions scheduled in same plenary slot"]


def test_plenary_slot_at_capacity_is_fine(make_project):
    plenary_body = make_body(type="Plenary")
    project = make_project(
        [make_session(n, body=plenary_body, room=PLENARY, day=MONDAY, slot=NINE) for n in range(1, 6)]
    )
    assert _issue(validate_session(5, project), "error", "scheduling") is None


def test_capacity_warning_cites_both_numbers(make_project):
    project = make_project(
        [make_session(1, body=make_body(capacity="More than 45 people"), room=ROOM_A, day=MONDAY, slot=NINE)]
    )

    issue = _issue(validate_session(1, project), "warning", "capacity")

    assert issue.messages == [
        f'Capacity of "{ROOM_A}" (30), used for meeting on Monday at 9:00, '
        "is lower than requested capacity (50)"
    ]


def test_shared_chair_is_reported_on_both_sessions(make_project):
    project = make_project(
        [
            make_session(1, title="WebGPU", author="alice", room=ROOM_A, day=MONDAY, slot=NINE),
            make_session(2, title="WebNN", author="bob", body=make_body(chairs="@alice"), room=ROOM_B, day=MONDAY, slot=NINE),
        ]
    )

    first = _issue(validate_session(1, project), "error", "chair conflict")
    second = _issue(validate_session(2, project), "error", "chair conflict")

    assert first.messages == ['Session scheduled at the same time as "WebNN" (#2), which shares chair alice']
    assert second.messages == ['Session scheduled at the same time as "WebGPU" (#1), which shares chair alice']


def test_unparsable_body_short_circuits(make_project):
    project = make_project([make_session(1, body="### Session description\n\nHello", room=ROOM_A, day="Someday")])

    issues = validate_session(1, project)

    assert [(i.severity, i.type) for i in issues] == [("error", "format")]
    assert 'Missing required section "Session goal"' in issues[0].messages


def test_unknown_session_raises(make_project):
    with pytest.raises(ConfigurationError):
        validate_session(42, make_project())


def test_declared_conflicts_must_exist(make_project):
    project = make_project(
        [
            make_session(1, body=make_body(conflicts="#1, #7")),
            make_session(2, body=make_body(type="Plenary", conflicts="#1")),
        ]
    )

    assert _issue(validate_session(1, project), "error", "conflict").messages == [
        "Session cannot conflict with itself",
        "Conflicting session #7 is not in the project",
    ]
    assert _issue(validate_session(2, project), "error", "conflict").messages == [
        "Plenary session cannot conflict with any other session"
    ]


def test_conflict_track_and_irc_findings(make_project):
    project = make_project(
        [
            make_session(1, title="A", labels=["track: media"], body=make_body(shortname="#media"), room=ROOM_A, day=MONDAY, slot=NINE),
            make_session(2, title="B", labels=["track: media"], body=make_body(shortname="#media", conflicts="#1"), room=ROOM_B, day=MONDAY, slot=NINE),
        ]
    )

    issues = validate_session(2, project)

    assert _issue(issues, "warning", "conflict").messages == [
        f'Same day/slot "{MONDAY} {NINE}" as conflicting session "A" (#1)'
    ]
    assert _issue(issues, "warning", "track").messages == [
        f'Same day/slot "{MONDAY} {NINE}" as session in same track "media": "A" (#1)'
    ]
    assert _issue(issues, "error", "irc").messages == ['Same IRC channel "#media" as session #1 "A"']


def test_times_and_duration_findings(make_project):
    body = make_body(
        duration="30 minutes",
        nbslots="3 slots",
        times="- [x] Monday, 9:00 - 10:00\n- [x] Tuesday, 10:00 - 11:00",
    )
    project = make_project([make_session(1, body=body, room=ROOM_A, day=MONDAY, slot=TEN)])

    issues = validate_session(1, project)

    assert _issue(issues, "error", "times").messages == ["3 slots requested but only 2 acceptable slots selected"]
    times = _issue(issues, "warning", "times")
    assert f"Session not scheduled on {MONDAY} at {NINE} as requested" in times.messages
    assert f"Session not scheduled on {TUESDAY} at {TEN} as requested" in times.messages
    assert "Session scheduled 1 times instead of 2" in times.messages
    assert _issue(issues, "warning", "duration") is not None


def test_room_switch_warning(make_project):
    project = make_project(
        [make_session(1, room=ROOM_A, meeting="Monday, 9:00; Monday, 10:00, Room B (50)")],
        allow_multiple_meetings=True,
    )
    issue = _issue(validate_session(1, project), "warning", "switch")
    assert issue.messages == [f'Room switch between "{ROOM_A}" and "{ROOM_B}" on Monday at {TEN}']


def test_invalid_meeting_entry(make_project):
    project = make_project([make_session(1, room=ROOM_A, meeting="Monday, 9:00; Friday, 9:00")])
    issue = _issue(validate_session(1, project), "error", "meeting format")
    assert issue.messages == ['Invalid room, day or slot in "Friday, 9:00"']


def test_minutes_checks(make_project):
    project = make_project(
        [
            make_session(1, room=ROOM_A, day=MONDAY, slot=NINE),
            make_session(2, body=make_body(materials="- [Minutes](https://example.org/minutes)"), room=ROOM_B, day=MONDAY, slot=TEN),
        ]
    )
    after = datetime(2042, 2, 15, tzinfo=timezone.utc)
    during = datetime(2042, 2, 10, 12, tzinfo=timezone.utc)

    assert _issue(validate_session(1, project, now=after), "check", "minutes") is not None
    assert _issue(validate_session(1, project, now=during), "check", "minutes") is None
    assert _issue(validate_session(2, project, now=after), "check", "minutes origin") is not None


def test_instructions_flag_stays_cleared_when_comments_did_not_change(make_project):
    body = make_body(comments="Needs a projector")
    project = make_project([make_session(1, body=body)])

    assert _issue(validate_session(1, project), "check", "instructions") is not None
    project.sessions[0].description = None
    issues = validate_session(1, project, previous_body=body.replace("Let's talk", "Let us talk"))
    assert _issue(issues, "check", "instructions") is None


def test_validation_is_idempotent(make_project):
    project = make_project(
        [
            make_session(1, title="WebGPU", author="alice", room=ROOM_A, day=MONDAY, slot=NINE),
            make_session(2, title="WebNN", author="bob", body=make_body(chairs="@alice"), room=ROOM_B, day=MONDAY, slot=NINE),
            make_session(3, body=make_body(capacity="More than 45 people"), room=ROOM_A, day=MONDAY, slot=TEN),
        ]
    )

    first = validate_grid(project)
    assert {c.number for c in first.changes} == {1, 2, 3}
    for change in first.changes:
        project.find_session(change.number).validation = change.validation

    second = validate_grid(project)

    assert second.issues == first.issues
    assert second.changes == []
    assert project.find_session(1).validation.error == "chair conflict"
    assert project.find_session(3).validation.warning == "capacity"


def test_admin_note_suppresses_warnings(make_project):
    project = make_project(
        [make_session(1, body=make_body(capacity="More than 45 people"), room=ROOM_A, day=MONDAY, slot=NINE)]
    )
    project.sessions[0].validation.note = "-warning:capacity (room is fine)"

    result = validate_grid(project)

    assert _issue(result.issues, "warning", "capacity") is not None
    assert result.changes == []


def test_scheduling_mode_preserves_other_results(make_project):
    project = make_project([make_session(1, body=make_body(comments="Call me"), room=ROOM_A, day=MONDAY, slot=NINE)])
    project.sessions[0].validation.check = "instructions"
    project.sessions[0].validation.warning = "capacity"

    result = validate_grid(project, "scheduling")

    assert result.issues == []
    [change] = result.changes
    assert change.validation.check == "instructions"
    assert change.validation.warning == ""


def test_irc_channel_check_is_kept(make_project):
    project = make_project([make_session(1)])
    project.sessions[0].validation.check = "irc channel"
    assert compute_validation_changes(project, []) == []


def test_blocking_sessions(make_project):
    project = make_project(
        [
            make_session(1, body="### Session goal\n\nNothing"),
            make_session(2, title="WebGPU", author="alice", room=ROOM_A, day=MONDAY, slot=NINE),
            make_session(3, author="bob", body=make_body(chairs="@alice"), room=ROOM_B, day=MONDAY, slot=NINE),
        ]
    )
    result = validate_grid(project)

    assert flag_blocking_sessions(project, result.issues) == [1]
    assert [s.blocking_error for s in project.sessions] == [True, False, False]


def test_invalid_project_configuration(make_project):
    with pytest.raises(ConfigurationError):
        validate_grid(make_project(slots=["9:00 - 9:45"]))
