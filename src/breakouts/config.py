"""Scheduling configuration loaded from environment variables.

Project metadata ("plenary room", "plenary holds") takes precedence over the
defaults defined here.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class BreakoutsConfig(BaseSettings):
    """Scheduling configuration loaded from environment variables.

    Settings are loaded from environment variables with sensible defaults.
    For local development, create a .env file in the project root.
    """

    # Plenary defaults (overridden by project metadata)
    plenary_room: str = Field(
        default="Plenary",
        description="Name of the room that hosts plenary sessions",
    )
    plenary_holds: int = Field(
        default=5,
        description="Maximum number of sessions in the same plenary slot",
    )

    # Capacities
    default_room_capacity: int = Field(
        default=30,
        description="Capacity assumed for rooms whose name does not carry one",
    )
    unknown_capacity: int = Field(
        default=30,
        description="Capacity used for sessions that don't know how many people will attend",
    )

    # Minutes checks
    minutes_url_pattern: str = Field(
        default=r"/(www|lists)\.w3\.org/",
        description="Regular expression that canonical minutes URLs match",
    )
    minutes_grace_hours: int = Field(
        default=48,
        description="Hours after the meeting day before minutes are expected",
    )

    # Calendar sink
    calendar_url: str = Field(
        default="",
        description="Base URL of the calendar API that mirrors session meetings",
    )
    calendar_token: str = Field(
        default="",
        description="Bearer token for the calendar API",
    )
    calendar_timeout: int = Field(
        default=30,
        description="Timeout in seconds for calendar API requests",
    )

    # Logging
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format (for production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "BREAKOUTS_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: BreakoutsConfig | None = None


def get_config() -> BreakoutsConfig:
    """Get the scheduling configuration singleton.

    Returns:
        BreakoutsConfig: Scheduling configuration instance
    """
    global _config
    if _config is None:
        _config = BreakoutsConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config
    _config = None
