"""Chair and group resolution.

Breakout sessions are run by chairs: the session author plus additional
chairs listed in the body. Group meetings are run by the groups named in the
session title ("Media WG", "Second Screen WG and Media WG Joint Meeting").
Account identifiers come from an optional directory mapping logins, names
and group names to W3C account IDs.
"""

import re

from src.breakouts.models import Chair, Group, Session

AUTHOR_OPT_OUT = "author-"

GROUP_TYPES = [
    ("BG", "Business Group"),
    ("CG", "Community Group"),
    ("IG", "Interest Group"),
    ("WG", "Working Group"),
    ("TF", "Task Force"),
]

JOINT_MEETING_PATTERN = re.compile(r"^(.*)\s+Joint Meeting$", re.IGNORECASE)
TYPED_NAME_PATTERN = re.compile(r"^(.*?)\s+(BG|CG|IG|WG|TF)$", re.IGNORECASE)
_GROUP_SUFFIX = "|".join(f"{abbr}|{long}" for abbr, long in GROUP_TYPES)
HIGHLIGHT_PATTERN = re.compile(
    rf"^(.*?\b(?:{_GROUP_SUFFIX}|Joint Meeting))\s*[:>]\s*(.*)$", re.IGNORECASE
)


def _lowercase_keys(directory: dict[str, str] | None) -> dict[str, str]:
    return {key.lower(): value for key, value in (directory or {}).items()}


def _is_author_opt_out(chair: Chair) -> bool:
    return (chair.name or "").lower() == AUTHOR_OPT_OUT


def resolve_session_chairs(session: Session, w3c_ids: dict[str, str] | None = None) -> list[Chair]:
    """Return the session chairs: the author (unless opted out) and the listed chairs.

    Duplicates are dropped: proposers sometimes list themselves as additional
    chairs.
    """
    directory = _lowercase_keys(w3c_ids)
    listed = session.description.chairs if session.description else []
    chairs: list[Chair] = []

    if session.author and not any(_is_author_opt_out(c) for c in listed):
        chairs.append(
            Chair(
                login=session.author,
                w3c_id=directory.get(session.author.lower()),
            )
        )

    for listed_chair in listed:
        if _is_author_opt_out(listed_chair):
            continue
        key = (listed_chair.login or listed_chair.name or "").lower()
        chair = listed_chair.model_copy(update={"w3c_id": listed_chair.w3c_id or directory.get(key)})
        duplicate = any(
            (chair.login and c.login and chair.login.lower() == c.login.lower())
            or (chair.name and c.name and chair.name.lower() == c.name.lower())
            for c in chairs
        )
        if not duplicate:
            chairs.append(chair)
    return chairs


def validate_session_chairs(chairs: list[Chair], w3c_ids: dict[str, str] | None = None) -> list[str]:
    """Return chair problems. Account checks only run when a directory is available."""
    if not chairs:
        return ["Issue author is not a session chair, no other chair specified"]
    if not w3c_ids:
        return []
    errors = []
    for chair in chairs:
        if chair.w3c_id:
            continue
        if chair.login:
            errors.append(f'No W3C account linked to "@{chair.login}"')
        else:
            errors.append(f'No W3C account linked to "{chair.name}"')
    return errors


def shared_chairs(chairs: list[Chair], others: list[Chair]) -> list[str]:
    """Names (or logins) of chairs present in both lists."""
    names = []
    for chair in others:
        for mine in chairs:
            same_login = chair.login and mine.login and chair.login.lower() == mine.login.lower()
            same_name = chair.name and mine.name and chair.name.lower() == mine.name.lower()
            if same_login or same_name:
                names.append(chair.name or chair.login)
                break
    return names


def split_title(title: str) -> tuple[str, str | None]:
    """Split a group meeting title into its groups part and its highlight, if any."""
    title = title.strip()
    match = HIGHLIGHT_PATTERN.match(title)
    if match:
        return match.group(1).strip(), match.group(2).strip() or None
    if ">" in title:
        groups, _, highlight = title.partition(">")
        return groups.strip(), highlight.strip() or None
    return title, None


def title_to_groups(title: str, w3c_ids: dict[str, str] | None = None) -> list[Group]:
    """Resolve the groups named in a title such as "Second Screen WG and Media WG"."""
    directory = _lowercase_keys(w3c_ids)
    joint = JOINT_MEETING_PATTERN.match(title)
    if joint:
        title = joint.group(1)

    normalized = title
    for abbr, long_name in GROUP_TYPES:
        normalized = re.sub(
            rf" ({abbr}|{long_name})($|,| and| &)",
            f" {abbr}|",
            normalized,
            flags=re.IGNORECASE,
        )

    groups = []
    for name in normalized.split("|"):
        name = name.strip().strip(",").strip()
        if not name:
            continue
        match = TYPED_NAME_PATTERN.match(name)
        if match:
            abbr_name, group_type = match.group(1), match.group(2).lower()
        else:
            abbr_name, group_type = name, "other"
        groups.append(
            Group(
                name=name,
                type=group_type,
                abbr_name=abbr_name.lower(),
                label=name,
                w3c_id=directory.get(name.lower()),
            )
        )
    return groups


def resolve_session_groups(
    session: Session, w3c_ids: dict[str, str] | None = None
) -> tuple[list[Group], str | None]:
    """Return the groups named in the session title and the title's highlight."""
    groups_part, highlight = split_title(session.title)
    return title_to_groups(groups_part, w3c_ids), highlight


def validate_session_groups(groups: list[Group]) -> list[str]:
    if not groups:
        return ["No group associated with the issue"]
    return [f'No W3C group found for "{g.name}"' for g in groups if not g.w3c_id]


def same_group(group: Group, other: Group) -> bool:
    return group.type == other.type and group.abbr_name == other.abbr_name


def shared_groups(groups: list[Group], others: list[Group]) -> list[str]:
    """Names of groups present in both lists."""
    return [g.name for g in others if any(same_group(g, mine) for mine in groups)]


def is_joint_meeting(title: str) -> bool:
    groups_part, _ = split_title(title)
    return bool(JOINT_MEETING_PATTERN.match(groups_part))
