from src.breakouts.chairs import (
    is_joint_meeting,
    resolve_session_chairs,
    shared_chairs,
    split_title,
    title_to_groups,
    validate_session_chairs,
)
from src.breakouts.models import Chair, Session


def _session(author="alice", chairs=()):
    return Session(number=1, title="Session", author=author, description={"chairs": list(chairs)})


def test_author_is_first_chair_and_duplicates_are_dropped():
    session = _session(chairs=[{"login": "Alice"}, {"login": "bob"}, {"name": "Jane Doe"}, {"name": "jane doe"}])

    chairs = resolve_session_chairs(session)

    assert [(c.login, c.name) for c in chairs] == [("alice", None), ("bob", None), (None, "Jane Doe")]


def test_author_can_opt_out():
    session = _session(chairs=[{"name": "author-"}, {"login": "bob"}])
    assert [c.login for c in resolve_session_chairs(session)] == ["bob"]


def test_chairs_are_required():
    session = _session(author=None)
    assert validate_session_chairs(resolve_session_chairs(session)) == [
        "Issue author is not a session chair, no other chair specified"
    ]


def test_accounts_are_checked_against_directory():
    session = _session(chairs=[{"name": "Jane Doe"}, {"login": "bob"}])
    w3c_ids = {"alice": "1234", "Jane Doe": "5678"}

    chairs = resolve_session_chairs(session, w3c_ids)

    assert [c.w3c_id for c in chairs] == ["1234", "5678", None]
    assert validate_session_chairs(chairs, w3c_ids) == ['No W3C account linked to "@bob"']


def test_no_account_check_without_directory():
    assert validate_session_chairs([Chair(login="bob")]) == []


def test_shared_chairs_match_login_or_name():
    mine = [Chair(login="alice"), Chair(name="Jane Doe")]
    others = [Chair(login="ALICE"), Chair(name="jane doe"), Chair(login="carol")]
    assert shared_chairs(mine, others) == ["ALICE", "jane doe"]


def test_title_split_on_highlight():
    assert split_title("Media WG: Next steps for MSE") == ("Media WG", "Next steps for MSE")
    assert split_title("Media WG > codecs") == ("Media WG", "codecs")
    assert split_title("Media WG") == ("Media WG", None)


def test_joint_meeting_groups():
    groups = title_to_groups("Second Screen Working Group and Media WG Joint Meeting", {"Media WG": "42"})

    assert [(g.abbr_name, g.type) for g in groups] == [("second screen", "wg"), ("media", "wg")]
    assert [g.w3c_id for g in groups] == [None, "42"]
    assert is_joint_meeting("Second Screen WG and Media WG Joint Meeting: codecs")
    assert not is_joint_meeting("Media WG")
