"""Session body parser.

Session bodies are markdown documents produced by the tracker's issue form:
one "### " heading per section. This module validates a body, parses it into
a structured session description and serializes a description back.

The validator receives this parser by default but accepts any callable with
the same signature.
"""

import re
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import TypeAdapter

from src.breakouts.errors import SessionFormatError
from src.breakouts.models import (
    CalendarEntry,
    Chair,
    Project,
    RequestedTime,
    SessionDescription,
    pad_time,
)

LINK_PATTERN = re.compile(r"^\[\s*(.+?)\s*\]\((.*)\)$")
URL_PATTERN = re.compile(r"^https?://[^ \"]+$")
NICKNAME_PATTERN = re.compile(r"^@[A-Za-z0-9][A-Za-z0-9-]+$")
NICK_URL_PATTERN = re.compile(r"^https://github\.com/([^/]+)/?$")
SHORTNAME_PATTERN = re.compile(r"^(`#?[A-Za-z0-9\-_]+`|#?[A-Za-z0-9\-_]+)$")
ISSUE_NUMBER_PATTERN = re.compile(r"^#(\d+)$")
ISSUE_URL_PATTERN = re.compile(r"^https?://\S+/issues/(\d+)$")
TIME_PATTERN = re.compile(
    r"^\[( |x)\]\s*(.+?),\s*(\d{1,2}:\d{2})\s*-\s*(\d{1,2}:\d{2})$", re.IGNORECASE
)
CALENDAR_INFO_PATTERN = re.compile(
    r"^(.+?),\s*(\d{1,2}:\d{2})\s*-\s*(\d{1,2}:\d{2})(?:,\s*(plenary))?$", re.IGNORECASE
)
LABEL_THEN_URL_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")
LIST_MARKER_PATTERN = re.compile(r"^(?:[-+*]|\d+[.)])\s*(.*)$")

TODO_STRINGS = ("TODO", "TBD", "TBA")

CAPACITY_OPTIONS = {
    "Don't know (Default)": 0,
    "Fewer than 20 people": 15,
    "20-45 people": 30,
    "More than 45 people": 50,
}
DURATION_OPTIONS = {"30 minutes": 30, "60 minutes (Default)": 60}
TYPE_OPTIONS = {"Breakout (Default)": "breakout", "Plenary": "plenary"}

_description_adapter = TypeAdapter(SessionDescription)


def parse_list(
    value: str | None,
    *,
    space_separator: bool = False,
    prefix: str | None = None,
    lines_only: bool = False,
) -> list[str]:
    """Split a free-text list into tokens.

    Proposers mix comma-separated values, one value per line and markdown
    lists, whatever the form asks for. With `space_separator`, tokens are also
    split on spaces, but only tokens that start with `prefix` when one is given
    (e.g. "@alice @bob" next to "John Doe").
    """
    if not value:
        return []
    raw = value.split("\n") if lines_only else re.split(r"[\n,]", value)
    tokens = []
    for token in raw:
        token = token.strip()
        match = LIST_MARKER_PATTERN.match(token)
        if match:
            token = match.group(1).strip()
        if not token:
            continue
        if space_separator and (not prefix or token.startswith(prefix)):
            tokens.extend(token.split())
        else:
            tokens.append(token)
    return tokens


def _is_todo(value: str) -> bool:
    return value.strip().upper() in TODO_STRINGS


def _find_day(project: Project, token: str):
    token = token.strip().lower()
    return next(
        (
            d
            for d in project.days
            if token in (d.name.lower(), d.label.lower(), d.date)
        ),
        None,
    )


def _find_slot(project: Project, start: str, end: str | None = None):
    return next(
        (
            s
            for s in project.slots
            if pad_time(s.start) == pad_time(start)
            and (end is None or pad_time(s.end) == pad_time(end))
        ),
        None,
    )


@dataclass
class Section:
    """How one body section is validated, parsed and serialized."""

    id: str
    title: str
    required: bool = False
    optional_suffix: bool = False
    admin_only: bool = False
    auto_hide: bool = False
    allow_empty: bool = False
    options: dict[str, Any] | None = None
    validate: Callable[[str], bool] = lambda value: True
    parse: Callable[[str | None], Any] = lambda value: value
    serialize: Callable[[Any], str] = lambda value: str(value)

    def heading(self) -> str:
        suffix = ""
        if self.optional_suffix:
            suffix = " (Optional)"
        if self.admin_only:
            suffix = " (For meeting planners only)"
        return f"### {self.title}{suffix}"


def _dropdown(section: Section) -> Section:
    """Wire validate/parse/serialize for a dropdown section from its options."""
    options = dict(section.options or {})
    lowered = {label.lower(): value for label, value in options.items()}
    lowered.setdefault("none", None)

    def validate(value: str) -> bool:
        return value.strip().lower() in lowered

    def parse(value: str | None) -> Any:
        return lowered.get((value or "").strip().lower())

    def serialize(value: Any) -> str:
        for label, option_value in options.items():
            if option_value == value:
                return label
        return "None"

    section.validate = validate
    section.parse = parse
    section.serialize = serialize
    return section


def _chairs_section() -> Section:
    def to_chair(token: str) -> Chair:
        if NICKNAME_PATTERN.match(token):
            return Chair(login=token[1:])
        link = LINK_PATTERN.match(token)
        if link:
            text = link.group(1)
            if NICKNAME_PATTERN.match(text):
                return Chair(login=text[1:])
            nick_url = NICK_URL_PATTERN.match(link.group(2))
            if nick_url:
                return Chair(login=nick_url.group(1))
            return Chair(name=text)
        nick_url = NICK_URL_PATTERN.match(token)
        if nick_url:
            return Chair(login=nick_url.group(1))
        return Chair(name=token)

    def validate(value: str) -> bool:
        for token in parse_list(value, space_separator=True, prefix="@"):
            if token.startswith("@") and not NICKNAME_PATTERN.match(token):
                return False
        return True

    return Section(
        id="chairs",
        title="Additional session chairs",
        optional_suffix=True,
        validate=validate,
        parse=lambda value: [
            to_chair(t) for t in parse_list(value, space_separator=True, prefix="@")
        ],
        serialize=lambda chairs: ", ".join(
            f"@{c.login}" if c.login else (c.name or "") for c in chairs
        ),
    )


def _shortname_section() -> Section:
    def strip(value: str) -> str:
        link = LINK_PATTERN.match(value.strip())
        value = link.group(1) if link else value.strip()
        return value.strip("`")

    return Section(
        id="shortname",
        title="IRC channel",
        optional_suffix=True,
        validate=lambda value: bool(SHORTNAME_PATTERN.match(strip(value))),
        parse=strip,
        serialize=lambda value: f"#{value.lstrip('#')}",
    )


def _conflicts_section() -> Section:
    def to_number(token: str) -> int | None:
        link = LINK_PATTERN.match(token)
        if link:
            token = link.group(1)
        for pattern in (ISSUE_NUMBER_PATTERN, ISSUE_URL_PATTERN):
            match = pattern.match(token)
            if match:
                return int(match.group(1))
        return None

    return Section(
        id="conflicts",
        title="Other sessions where we should avoid scheduling conflicts",
        optional_suffix=True,
        validate=lambda value: all(
            to_number(t) is not None
            for t in parse_list(value, space_separator=True, prefix="#")
        ),
        parse=lambda value: [
            to_number(t) for t in parse_list(value, space_separator=True, prefix="#")
        ],
        serialize=lambda numbers: "\n".join(f"- #{n}" for n in numbers),
    )


def _nbslots_section() -> Section:
    pattern = re.compile(r"^(\d+) slots?$", re.IGNORECASE)

    def parse(value: str | None) -> int:
        match = pattern.match((value or "").strip())
        return int(match.group(1)) if match else 0

    return Section(
        id="nbslots",
        title="Number of slots",
        optional_suffix=True,
        validate=lambda value: value.strip().lower() == "none" or bool(pattern.match(value.strip())),
        parse=parse,
        serialize=lambda n: "None" if not n else f"{n} slot" + ("s" if n > 1 else ""),
    )


def _times_section(project: Project | None) -> Section:
    def resolve(line: str) -> RequestedTime | None:
        match = TIME_PATTERN.match(line)
        if project is None:
            return RequestedTime(day=match.group(2), slot=f"{match.group(3)} - {match.group(4)}")
        day = _find_day(project, match.group(2))
        slot = _find_slot(project, match.group(3), match.group(4))
        if day is None or slot is None:
            return None
        return RequestedTime(day=day.name, slot=slot.name)

    def validate(value: str) -> bool:
        for line in parse_list(value, lines_only=True):
            match = TIME_PATTERN.match(line)
            if not match:
                return False
            # Unselected lines are rewritten on serialization anyway
            if match.group(1).strip() and project is not None and resolve(line) is None:
                return False
        return True

    def parse(value: str | None) -> list[RequestedTime]:
        times = []
        for line in parse_list(value, lines_only=True):
            if TIME_PATTERN.match(line).group(1).strip():
                time = resolve(line)
                if time is not None:
                    times.append(time)
        return times

    def serialize(times: list[RequestedTime]) -> str:
        lines = []
        if project is None:
            for time in times:
                lines.append(f"- [X] {time.day}, {time.slot}")
            return "\n".join(lines)
        for day in project.days:
            for slot in project.slots:
                selected = any(t.day == day.name and t.slot == slot.name for t in times)
                lines.append(f"- [{'X' if selected else ' '}] {day.label}, {slot.start} - {slot.end}")
        return "\n".join(lines)

    return Section(
        id="times",
        title="Preferred slots",
        optional_suffix=True,
        allow_empty=True,
        validate=validate,
        parse=parse,
        serialize=serialize,
    )


def _materials_section() -> Section:
    def split(line: str):
        return LINK_PATTERN.match(line) or LABEL_THEN_URL_PATTERN.match(line)

    def validate(value: str) -> bool:
        for line in parse_list(value):
            match = split(line)
            if not match:
                return False
            if not _is_todo(match.group(2)) and not URL_PATTERN.match(match.group(2)):
                return False
        return True

    def parse(value: str | None) -> dict[str, str]:
        materials = {}
        for line in parse_list(value):
            match = split(line)
            materials[match.group(1).strip().lower()] = match.group(2).strip()
        return materials

    def serialize(materials: dict[str, str]) -> str:
        lines = []
        for key, url in materials.items():
            label = key[:1].upper() + key[1:]
            lines.append(f"- {label}: {url}" if _is_todo(url) else f"- [{label}]({url})")
        return "\n".join(lines)

    return Section(
        id="materials",
        title="Meeting materials",
        optional_suffix=True,
        auto_hide=True,
        validate=validate,
        parse=parse,
        serialize=serialize,
    )


def _calendar_section() -> Section:
    def validate(value: str) -> bool:
        for line in parse_list(value, lines_only=True):
            link = LINK_PATTERN.match(line)
            if not link or not URL_PATTERN.match(link.group(2)):
                return False
            if not CALENDAR_INFO_PATTERN.match(link.group(1)):
                return False
        return True

    def parse(value: str | None) -> list[CalendarEntry]:
        entries = []
        for line in parse_list(value, lines_only=True):
            link = LINK_PATTERN.match(line)
            info = CALENDAR_INFO_PATTERN.match(link.group(1))
            entries.append(
                CalendarEntry(
                    day=info.group(1).strip(),
                    start=info.group(2),
                    end=info.group(3),
                    type="plenary" if info.group(4) else None,
                    url=link.group(2),
                )
            )
        return entries

    def serialize(entries: list[CalendarEntry]) -> str:
        return "\n".join(
            f"- [{e.day}, {e.start} - {e.end}{', plenary' if e.type == 'plenary' else ''}]({e.url})"
            for e in entries
        )

    return Section(
        id="calendar",
        title="Links to calendar",
        admin_only=True,
        auto_hide=True,
        validate=validate,
        parse=parse,
        serialize=serialize,
    )


def get_sections(project: Project | None = None) -> list[Section]:
    """Return the body sections, in the order they appear in a serialized body.

    The project is needed to resolve requested times to day and slot options.
    """
    return [
        Section(id="description", title="Session description", required=True),
        Section(
            id="goal",
            title="Session goal",
            required=True,
        ),
        _dropdown(Section(id="type", title="Session type", required=True, options=TYPE_OPTIONS)),
        _chairs_section(),
        _shortname_section(),
        _conflicts_section(),
        _dropdown(
            Section(
                id="capacity",
                title="Estimated number of in-person attendees",
                optional_suffix=True,
                options=CAPACITY_OPTIONS,
            )
        ),
        _dropdown(
            Section(
                id="duration",
                title="Session duration",
                optional_suffix=True,
                options=DURATION_OPTIONS,
            )
        ),
        _nbslots_section(),
        _times_section(project),
        _materials_section(),
        _calendar_section(),
        Section(id="comments", title="Comments", admin_only=True),
    ]


def _split_into_sections(body: str) -> list[tuple[str, str | None]]:
    sections = []
    for chunk in re.split(r"^### ", (body or "").strip(), flags=re.MULTILINE):
        if not chunk:
            continue
        lines = re.split(r"\r?\n", chunk)
        value = "\n".join(lines[1:]).strip()
        if value.strip("_") == "No response":
            value = None
        title = re.sub(r" \(Optional\)$", "", lines[0].strip(), flags=re.IGNORECASE)
        title = re.sub(r" \(For meeting planners only\)$", "", title, flags=re.IGNORECASE)
        sections.append((title, value or None))
    return sections


def validate_session_body(body: str, project: Project | None = None) -> list[str]:
    """Return the list of format errors found in the body (empty when fine)."""
    handlers = {s.title: s for s in get_sections(project)}
    sections = _split_into_sections(body)
    errors = []
    for title, value in sections:
        handler = handlers.get(title)
        if handler is None:
            errors.append(f'Unexpected section "{title}"')
        elif not value and handler.required:
            errors.append(f'Unexpected empty section "{title}"')
        elif value and not handler.validate(value):
            errors.append(f'Invalid content in section "{title}"')

    seen = {title for title, _ in sections}
    for handler in handlers.values():
        if handler.required and handler.title not in seen:
            errors.append(f'Missing required section "{handler.title}"')
    return errors


def parse_session_body(body: str, project: Project | None = None) -> SessionDescription:
    """Parse a session body into a structured description.

    Raises:
        SessionFormatError: If the body does not follow the expected format.
    """
    errors = validate_session_body(body, project)
    if errors:
        raise SessionFormatError(errors)

    handlers = {s.title: s for s in get_sections(project)}
    data: dict[str, Any] = {}
    for title, value in _split_into_sections(body):
        handler = handlers[title]
        if value or handler.allow_empty:
            parsed = handler.parse(value)
            if parsed is not None:
                data[handler.id] = parsed
    data.setdefault("type", "breakout")
    return _description_adapter.validate_python(data)


def serialize_session_description(
    description: SessionDescription, project: Project | None = None
) -> str:
    """Serialize a session description back into a markdown body."""
    chunks = []
    for section in get_sections(project):
        value = getattr(description, section.id, None)
        empty = value is None or value == "" or value == [] or value == {}
        if section.auto_hide and empty:
            continue
        if empty and not section.allow_empty:
            text = "_No response_"
        else:
            text = section.serialize(value)
        chunks.append(f"{section.heading()}\n\n{text}")
    return "\n\n".join(chunks)
