"""structlog setup for command-line runs.

Reports (validation tables, schedule summaries, project JSON) go to stdout, so
log events go to stderr and never mix with them. Modules log through
get_logger(), never print().
"""

import logging
import sys

import structlog

# Libraries whose INFO chatter drowns scheduling events
NOISY_LOGGERS = ("urllib3", "requests")


def setup_logging(json_output: bool = False, log_level: str = "INFO") -> None:
    """Configure structlog for a validate, schedule or sync run.

    Args:
        json_output: Emit one JSON object per event, for CI logs.
            Colored console lines otherwise.
        log_level: Minimum level name, e.g. "DEBUG" to see each relaxation step.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info if json_output else structlog.dev.set_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # HTTP libraries log through stdlib logging
    logging.basicConfig(format="%(name)s: %(message)s", stream=sys.stderr, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_run(**context) -> None:
    """Attach context (project title, command...) to every event of the run."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(**context)


def get_logger(name: str) -> structlog.BoundLogger:
    """Return a logger bound with the module name."""
    return structlog.get_logger(name)
