import logging
import sys

import structlog

# chatty at DEBUG and never useful for tracing a settlement
QUIET_LOGGERS = ("pymongo", "motor", "uvicorn.access")


def _renderer(debug: bool):
    return structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            _renderer(debug),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    return structlog.get_logger(name)


def new_request_context(request_id: str) -> None:
    """Start a clean log context for one HTTP request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def bind_user_id(user_id: str) -> None:
    """Attach the acting user to every log line for the rest of the request."""
    structlog.contextvars.bind_contextvars(user_id=user_id)
