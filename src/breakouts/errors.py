"""Error hierarchy for the scheduling engine and its calendar sink.

Constraint problems (double-booking, shared chairs, capacity...) are never
raised: they are reported as ValidationIssue data. Exceptions are reserved for
configuration problems that prevent any useful schedule, for session bodies
that cannot be parsed (caught by the validator), and for calendar sink
failures, which tenacity classifies as transient (retry) or permanent.

Example usage with tenacity:
    @retry(retry=retry_if_exception_type(TransientError), stop=stop_after_attempt(3))
    def create_entry(...):
        ...
"""


class BreakoutsError(Exception):
    """Base exception for all scheduling errors."""

    pass


class ConfigurationError(BreakoutsError):
    """Project configuration is unusable (invalid slots, days, plenary room...).

    Carries the full list of problems found so they can be reported at once.
    """

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        self.problems = problems or []
        if self.problems:
            message = message + ":\n" + "\n".join(f"- {p}" for p in self.problems)
        super().__init__(message)


class SessionFormatError(BreakoutsError):
    """Session body cannot be parsed into a structured description."""

    def __init__(self, messages: list[str]) -> None:
        self.messages = messages
        super().__init__("; ".join(messages))


class CalendarError(BreakoutsError):
    """Base exception for calendar sink failures."""

    pass


class TransientError(CalendarError):
    """Temporary failure that may succeed on retry.

    Examples: network timeouts, 503 Service Unavailable.
    """

    pass


class RateLimitError(TransientError):
    """Rate limit exceeded - needs longer backoff.

    Inherits from TransientError so tenacity will retry it.
    """

    pass


class PermanentError(CalendarError):
    """Failure that won't succeed on retry.

    Examples: 400 Bad Request, unknown calendar entry.
    """

    pass


class AuthenticationError(PermanentError):
    """Calendar token missing, expired or rejected.

    Requires a new token, cannot be fixed by retry.
    """

    pass
