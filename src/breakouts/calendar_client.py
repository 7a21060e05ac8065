"""REST client for the calendar that mirrors session meetings.

Implements the create/update/cancel callables expected by
apply_calendar_updates(). Failures are classified so that tenacity retries
transient ones (timeouts, 5xx, rate limits) and fails fast on the others.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.breakouts.config import get_config
from src.breakouts.errors import (
    AuthenticationError,
    ConfigurationError,
    PermanentError,
    RateLimitError,
    TransientError,
)
from src.breakouts.logging import get_logger
from src.breakouts.models import CalendarAction, Project, Session

logger = get_logger(__name__)


def build_entry_body(session: Session, action: CalendarAction, project: Project) -> dict:
    """Build the JSON body of a calendar entry for a session block."""
    day = project.find_day(action.day)
    if day is None:
        raise PermanentError(f"Unknown day {action.day} for session #{session.number}")
    tz = ZoneInfo(project.metadata.timezone or "UTC")
    start = datetime.fromisoformat(f"{day.date}T{action.start.zfill(5)}").replace(tzinfo=tz)
    end = datetime.fromisoformat(f"{day.date}T{action.end.zfill(5)}").replace(tzinfo=tz)

    room = project.find_room(action.meeting.room) if action.meeting else None
    description = session.description
    body = {
        "title": session.title,
        "description": description.description if description else "",
        "start": start.isoformat(),
        "end": end.isoformat(),
        "timezone": tz.key,
        "location": room.label if room else "",
        "type": action.type or "breakout",
        "session": session.number,
        "event": project.metadata.meeting or project.title,
    }
    if description and description.shortname:
        body["irc"] = description.shortname
    if description and description.materials:
        body["materials"] = description.materials
    return body


class CalendarClient:
    """Calendar API client with retry on transient failures."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: int = 30,
        http_session: requests.Session | None = None,
    ) -> None:
        if not base_url:
            raise ConfigurationError("Calendar URL is not configured")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.http = http_session or requests.Session()

    @classmethod
    def from_config(cls) -> "CalendarClient":
        config = get_config()
        return cls(config.calendar_url, config.calendar_token, config.calendar_timeout)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(TransientError),
    )
    def _send(self, method: str, url: str, json_body: dict | None = None) -> dict:
        """Send a request and classify failures.

        Retries on TransientError but fails fast on PermanentError.
        """
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }
        try:
            resp = self.http.request(method, url, headers=headers, json=json_body, timeout=self.timeout)
        except (requests.Timeout, requests.ConnectionError) as e:
            logger.warning("calendar_request_retry", method=method, url=url, error=str(e))
            raise TransientError(f"{method} {url} failed: {e}") from e

        if resp.status_code == 429:
            logger.warning("calendar_rate_limited", method=method, url=url)
            raise RateLimitError(f"{method} {url}: 429")
        if resp.status_code >= 500:
            logger.warning("calendar_request_retry", method=method, url=url, status=resp.status_code)
            raise TransientError(f"{method} {url}: {resp.status_code}")
        if resp.status_code in (401, 403):
            raise AuthenticationError(f"{method} {url}: {resp.status_code}")
        if resp.status_code >= 400:
            raise PermanentError(f"{method} {url}: {resp.status_code} {resp.text[:200]}")

        if resp.status_code == 204 or not resp.content:
            return {}
        return resp.json()

    def create_entry(self, session: Session, action: CalendarAction, project: Project) -> str:
        """Create an entry, return its URL."""
        data = self._send("POST", f"{self.base_url}/entries", build_entry_body(session, action, project))
        url = data.get("url", "")
        logger.info("calendar_entry_created", session=session.number, url=url)
        return url

    def update_entry(self, session: Session, action: CalendarAction, project: Project) -> str:
        """Update the entry at the action's URL, return its (possibly new) URL."""
        data = self._send("PUT", action.url, build_entry_body(session, action, project))
        url = data.get("url") or action.url
        logger.info("calendar_entry_updated", session=session.number, url=url)
        return url

    def cancel_entry(self, session: Session, action: CalendarAction) -> None:
        """Cancel an entry. A plenary entry is shared: only the session is removed from it."""
        if action.type == "plenary":
            self._send("POST", f"{action.url.rstrip('/')}/remove", {"session": session.number})
        else:
            self._send("DELETE", action.url)
        logger.info("calendar_entry_cancelled", session=session.number, url=action.url, type=action.type)

    def callables(self, project: Project) -> dict:
        """Keyword arguments for apply_calendar_updates()."""
        return {
            "create_fn": lambda session, action: self.create_entry(session, action, project),
            "update_fn": lambda session, action: self.update_entry(session, action, project),
            "cancel_fn": self.cancel_entry,
        }
