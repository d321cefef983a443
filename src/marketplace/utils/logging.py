"""Logging configuration for the marketplace.

Standard library logging owns the handlers, structlog renders the events.
Every module logs through ``get_logger(__name__)`` with snake_case event
names such as ``checkout_started`` or ``reconciliation_required``, so the
JSON output in production can be filtered on ``event``.

Gateway credentials and webhook signatures are masked before rendering.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path

import structlog

LEVELS_BY_ENVIRONMENT = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

# Third-party loggers that are too chatty below WARNING. The stripe SDK
# logs full request lines at INFO.
QUIET_LOGGERS = ("urllib3", "asyncio", "httpx", "stripe")

SENSITIVE_KEYS = frozenset({"api_key", "stripe_api_key", "webhook_secret", "signature", "authorization"})

_MAX_LOG_BYTES = 10 * 1024 * 1024


def get_environment() -> str:
    return (os.getenv("PROTEAN_ENV") or os.getenv("ENVIRONMENT") or "development").lower()


def get_log_level() -> str:
    """LOG_LEVEL wins; otherwise the level follows the environment."""
    return os.getenv("LOG_LEVEL") or LEVELS_BY_ENVIRONMENT.get(get_environment(), "INFO")


def get_log_dir() -> Path | None:
    """Directory for rotating log files. An empty LOG_DIR disables file logging."""
    log_dir = os.getenv("LOG_DIR", "logs")
    return Path(log_dir) if log_dir else None


def _rotating_handler(path: Path, level) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=_MAX_LOG_BYTES,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def setup_stdlib_logging() -> None:
    level = get_log_level()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    root.addHandler(console)

    log_dir = get_log_dir()
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        root.addHandler(_rotating_handler(log_dir / "marketplace.log", level))
        # Failed payments and reconciliation alerts also land in their own file
        root.addHandler(_rotating_handler(log_dir / "marketplace_error.log", logging.ERROR))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def mask_secrets(logger, method_name, event_dict):
    """structlog processor: never render credentials or signatures."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        value = event_dict[key]
        event_dict[key] = f"{str(value)[:4]}…" if value else value
    return event_dict


def _renderer(env: str):
    if env in ("production", "staging"):
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(),
        exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=False, max_frames=2),
    )


def setup_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            mask_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.CallsiteParameterAdder(
                parameters=[
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                ]
            ),
            _renderer(get_environment()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging() -> None:
    """Configure all logging for the marketplace process."""
    setup_stdlib_logging()
    setup_structlog()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
