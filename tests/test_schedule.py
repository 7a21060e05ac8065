from collections import Counter

import pytest

from src.breakouts.errors import ConfigurationError
from src.breakouts.models import Session
from src.breakouts.rules import duration_mismatch, duration_too_short, parallel_to_plenary, track_conflict
from src.breakouts.schedule import (
    Constraints,
    relaxation_ladder,
    reset_pins,
    shuffle_sessions,
    suggest_schedule,
)
from src.breakouts.validate import flag_blocking_sessions, validate_grid, validate_session
from tests.conftest import (
    MONDAY,
    NINE,
    PLENARY,
    ROOM_A,
    ROOM_B,
    TEN,
    TWO_PM,
    make_body,
    make_session,
)


def _assignments(project):
    return [(s.number, s.room, s.day, s.slot, s.meeting) for s in project.sessions]


def _busy_project(make_project, **kwargs):
    sessions = [make_session(n) for n in range(1, 9)]
    sessions += [make_session(n, labels=["track: media"]) for n in range(9, 12)]
    sessions += [make_session(n, body=make_body(type="Plenary")) for n in range(12, 15)]
    sessions += [make_session(15, body=make_body(capacity="More than 45 people", conflicts="#1"))]
    return make_project(sessions, metadata={"timezone": "Europe/Madrid", "plenary holds": "2"}, **kwargs)


def test_shuffle_is_deterministic():
    sessions = [Session(number=n, title=str(n)) for n in range(10)]

    first = [s.number for s in shuffle_sessions(sessions, "abcde")]
    second = [s.number for s in shuffle_sessions(sessions, "abcde")]

    assert first == second
    assert sorted(first) == list(range(10))


def test_same_seed_gives_same_schedule(make_project):
    first = _busy_project(make_project)
    second = _busy_project(make_project)

    report_1 = suggest_schedule(first, seed="qzjfr")
    report_2 = suggest_schedule(second, seed="qzjfr")

    assert _assignments(first) == _assignments(second)
    assert report_1 == report_2


def test_generated_seed_is_reported(make_project):
    report = suggest_schedule(make_project([make_session(1)]))
    assert len(report.seed) == 5


def test_schedule_is_sound(make_project):
    project = _busy_project(make_project)

    report = suggest_schedule(project, seed="soundness")

    assert report.unscheduled == []
    occupied = Counter((s.room, s.day, s.slot) for s in project.sessions if not s.is_plenary)
    assert all(count == 1 for count in occupied.values())
    plenaries = Counter((s.day, s.slot) for s in project.sessions if s.is_plenary)
    assert all(count <= 2 for count in plenaries.values())
    assert all(s.room == PLENARY for s in project.sessions if s.is_plenary)
    assert all(s.room != PLENARY for s in project.sessions if not s.is_plenary)


def test_track_sessions_share_a_room_and_do_not_overlap(make_project):
    project = _busy_project(make_project)

    report = suggest_schedule(project, seed="tracks")

    track = [s for s in project.sessions if "media" in s.tracks]
    assert {s.room for s in track} == {report.track_rooms["media"]}
    assert len({(s.day, s.slot) for s in track}) == len(track)


def test_plenary_sessions_are_packed(make_project):
    project = make_project([make_session(n, body=make_body(type="Plenary")) for n in range(1, 4)])

    suggest_schedule(project, seed="plenary")

    # Default plenary holds is 5: all three share the same slot
    assert len({(s.day, s.slot) for s in project.sessions}) == 1


def test_unscheduled_session_gets_a_full_meeting(make_project):
    project = make_project([make_session(1)])

    report = suggest_schedule(project, seed="abcde")

    session = project.sessions[0]
    assert report.assigned == [1]
    assert (session.room, session.day, session.slot) == (ROOM_A, MONDAY, NINE)
    assert session.updated
    issues = validate_session(1, project)
    assert not [i for i in issues if i.type == "scheduling"]


def test_capacity_picks_smallest_fitting_room(make_project):
    project = make_project(
        [make_session(1, body=make_body(capacity="More than 45 people"))],
        rooms=[PLENARY, ROOM_A, {"name": "VIP Lounge (100)", "vip": True}, "Hall (80)", ROOM_B],
    )

    suggest_schedule(project, seed="abcde")

    assert project.sessions[0].room == ROOM_B


def test_vip_rooms_are_never_picked(make_project):
    project = make_project(
        [make_session(1), make_session(2)],
        rooms=[PLENARY, "Lounge (40) (VIP)", {"name": "Board room", "description": "- vip: yes"}, ROOM_A],
        days=[MONDAY],
        slots=["9:00 - 10:00"],
    )

    report = suggest_schedule(project, seed="abcde")

    assert len(report.assigned) == 1
    assert {s.room for s in project.sessions} == {ROOM_A, None}


def test_pins_are_kept(make_project):
    project = make_project([make_session(1, room=ROOM_B, day=MONDAY, slot=TWO_PM)])

    report = suggest_schedule(project, seed="abcde")

    assert report.assigned == []
    assert (project.sessions[0].room, project.sessions[0].slot) == (ROOM_B, TWO_PM)
    assert not project.sessions[0].updated


def test_partial_pin_is_completed(make_project):
    project = make_project([make_session(1, day=MONDAY, slot=TEN)])

    suggest_schedule(project, seed="abcde")

    assert (project.sessions[0].room, project.sessions[0].day, project.sessions[0].slot) == (ROOM_A, MONDAY, TEN)


def test_preserve_none_resets_pins(make_project):
    project = make_project([make_session(1, room=ROOM_B, day=MONDAY, slot=TWO_PM)])

    report = suggest_schedule(project, seed="abcde", preserve="none")

    assert report.assigned == [1]
    assert (project.sessions[0].room, project.sessions[0].slot) == (ROOM_A, NINE)


def test_chair_conflict_is_never_relaxed(make_project):
    project = make_project(
        [
            make_session(1, author="alice", room=ROOM_A, day=MONDAY, slot=NINE),
            make_session(2, author="alice", day=MONDAY, slot=NINE),
        ]
    )

    report = suggest_schedule(project, seed="abcde")

    assert report.unscheduled == [2]
    assert project.find_session(2).room is None


def test_session_conflict_is_relaxed_last(make_project):
    project = make_project(
        [
            make_session(1, room=ROOM_A, day=MONDAY, slot=NINE),
            make_session(2, body=make_body(conflicts="#1"), day=MONDAY, slot=NINE),
        ]
    )

    report = suggest_schedule(project, seed="abcde")

    assert report.assigned == [2]
    assert project.find_session(2).room == ROOM_B


def test_multiple_meetings_are_encoded(make_project):
    project = make_project(
        [make_session(1, body=make_body(nbslots="2 slots"))],
        allow_multiple_meetings=True,
    )

    suggest_schedule(project, seed="abcde")

    session = project.sessions[0]
    assert session.room == ROOM_A
    assert session.meeting == "Monday, 9:00; Monday, 10:00"


def test_blocked_sessions_are_skipped(make_project):
    project = make_project([make_session(1)])
    project.sessions[0].blocking_error = True

    report = suggest_schedule(project, seed="abcde")

    assert report.assigned == []
    assert project.sessions[0].room is None


def test_breakout_never_runs_parallel_to_plenary(make_project):
    project = make_project(
        [
            make_session(1, body=make_body(type="Plenary")),
            make_session(2),
        ],
        days=[MONDAY],
        slots=["9:00 - 10:00"],
    )

    report = suggest_schedule(project, seed="abcde")

    assert report.unscheduled == [2]
    assert project.find_session(1).room == PLENARY
    assert project.find_session(2).room is None


def test_reset_pins_before_validation_unblocks_sessions(make_project):
    project = make_project([make_session(1, meeting="Someday, 9:00", room=ROOM_A)])

    reset_pins(project, "none")
    blocked = flag_blocking_sessions(project, validate_grid(project).issues)
    report = suggest_schedule(project, seed="abcde")

    assert blocked == []
    assert report.assigned == [1]
    assert project.sessions[0].meeting is None
    assert (project.sessions[0].day, project.sessions[0].slot) == (MONDAY, NINE)


def test_missing_plenary_room_is_a_configuration_error(make_project):
    project = make_project([make_session(1, body=make_body(type="Plenary"))], rooms=[ROOM_A, ROOM_B])
    with pytest.raises(ConfigurationError):
        suggest_schedule(project, seed="abcde")


def test_relaxation_ladder_order():
    session = Session(
        number=1,
        title="Everything",
        labels=["track: media"],
        description={
            "duration": 60,
            "capacity": 50,
            "times": [{"day": MONDAY, "slot": NINE}, {"day": MONDAY, "slot": TEN}, {"day": MONDAY, "slot": TWO_PM}],
        },
    )

    ladder = relaxation_ladder(session, ROOM_B, 3)

    assert [step for step, _ in ladder] == [
        "strict",
        "strict duration",
        "track room",
        "strict times",
        "number of meetings",
        "number of meetings",
        "duration",
        "capacity",
        "track conflicts",
        "session conflicts",
        "all conflicts",
    ]
    first, last = ladder[0][1], ladder[-1][1]
    assert first == Constraints(track_room=ROOM_B, number_of_meetings=3)
    assert last.track_room is None
    assert last.number_of_meetings == 1
    assert not (last.strict_duration or last.strict_times or last.meet_duration or last.meet_capacity)
    assert last.meet_conflicts == frozenset()


def test_relaxation_ladder_skips_steps_that_do_not_apply():
    session = Session(number=1, title="Simple", description={})

    ladder = relaxation_ladder(session, None, 1)

    assert [step for step, _ in ladder] == [
        "strict",
        "capacity",
        "track conflicts",
        "session conflicts",
        "all conflicts",
    ]


def test_constraint_rules():
    strict = Constraints(track_room=None, number_of_meetings=1)
    rules = strict.rules()
    assert duration_mismatch in rules
    assert track_conflict in rules
    assert parallel_to_plenary in rules

    relaxed = Constraints(
        track_room=None, number_of_meetings=1, strict_duration=False, meet_conflicts=frozenset({"session"})
    ).rules()
    assert duration_too_short in relaxed
    assert duration_mismatch not in relaxed
    assert track_conflict not in relaxed
    assert parallel_to_plenary in relaxed

    assert parallel_to_plenary in Constraints(track_room=None, number_of_meetings=1, meet_conflicts=frozenset()).rules()
