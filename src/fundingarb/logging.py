"""structlog setup shared by every module.

Events are snake_case names with key=value fields, e.g.
``logger.warning("funding_fetch_failed", exchange="gate", error=...)``.
Exchange credentials never reach a handler: any field named like a secret is
masked before rendering.
"""

import logging
import os

import structlog

# Third-party loggers that are chatty at INFO when every adapter call logs.
_NOISY_LOGGERS = ("ccxt", "urllib3", "aiohttp.access", "uvicorn.access")

_SECRET_FIELDS = frozenset({
    "api_key",
    "apikey",
    "api_secret",
    "secret",
    "password",
    "private_key",
    "privatekey",
})


def mask_secrets(
    logger: object, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """Replace the value of any credential-named field with ``***``."""
    for key in event_dict:
        if key.lower() in _SECRET_FIELDS and event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        # Decimal and Enum values render via str()
        return structlog.processors.JSONRenderer(default=str)
    return structlog.dev.ConsoleRenderer()


def setup_logging(log_level: str = "INFO") -> None:
    """Configure structlog and route stdlib logging (ccxt, uvicorn) through it.

    Rendering is selected by the LOG_FORMAT environment variable: "json"
    for production, "console" (default) for development. Context bound
    with structlog.contextvars follows every coroutine spawned from the
    binding task.
    """
    log_format = os.environ.get("LOG_FORMAT", "console").lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        mask_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(log_format),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
