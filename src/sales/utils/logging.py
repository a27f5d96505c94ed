"""Logging for the Sales domain.

Modules only ever call ``structlog.get_logger(__name__)``. The process entry
points (``app.py``, ``server.py``, ``manage.py``) call ``configure_logging``
once; importing the domain configures nothing, so tests keep pytest's own
log capture.
"""

import logging
import os
import sys

import structlog

_ENV_LEVELS = {
    "production": logging.INFO,
    "staging": logging.INFO,
    "development": logging.DEBUG,
    "test": logging.WARNING,
}


def _environment() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def resolve_log_level(environment: str | None = None) -> int:
    """``LOG_LEVEL`` wins; otherwise the level follows the environment."""
    explicit = os.getenv("LOG_LEVEL")
    if explicit:
        return logging.getLevelName(explicit.upper())
    return _ENV_LEVELS.get(environment or _environment(), logging.INFO)


def configure_logging(environment: str | None = None) -> None:
    """Route structlog through stdlib to stdout: JSON in production, console text elsewhere."""
    environment = environment or _environment()
    level = resolve_log_level(environment)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    logging.getLogger("protean").setLevel(logging.WARNING)

    if environment in ("production", "staging"):
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_actor(actor_id: str, **kwargs) -> None:
    """Attach the acting user to every log line emitted for this request."""
    structlog.contextvars.bind_contextvars(actor_id=actor_id, **kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
