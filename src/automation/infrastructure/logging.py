"""Structured logging: loguru handlers plus the reading/rule being evaluated."""

import contextvars
import sys
from typing import Any

from loguru import logger

from src.config import LoggingConfig

# Deployment and rule currently being evaluated or dispatched
evaluation_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "evaluation_context", default={}
)

CONTEXT_FIELDS = ("sensor_deployment_id", "rule_id")


class LoggingContext:
    """
    Tags every record emitted inside the block with the given fields.

    Nested contexts merge, inner values win. Because the state lives in a
    context variable, each dispatch task keeps the tags it was created with.

    Example:
        with LoggingContext(sensor_deployment_id=7):
            logger.info("Evaluating reading")  # sensor_deployment_id=7 in the record
    """

    def __init__(self, **fields):
        self.fields = fields
        self._token: contextvars.Token | None = None

    def __enter__(self):
        self._token = evaluation_context.set({**evaluation_context.get(), **self.fields})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            evaluation_context.reset(self._token)
            self._token = None


def get_logging_context() -> dict[str, Any]:
    """Fields currently attached to log records."""
    return dict(evaluation_context.get())


def _context_filter(record) -> bool:
    """Add context variables to log record."""
    for key in CONTEXT_FIELDS:
        record["extra"].setdefault(key, "-")
    for key, value in evaluation_context.get().items():
        record["extra"][key] = value
    return True


def configure_structured_logging(config: LoggingConfig | None = None) -> None:
    """
    Configure loguru to include context variables in all log messages.

    This should be called once at application startup.
    """
    config = config or LoggingConfig()

    # Remove default handler
    logger.remove()

    logger.add(
        sink=sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[sensor_deployment_id]}</cyan>:<cyan>{extra[rule_id]}</cyan> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        ),
        filter=_context_filter,
        level=config.level.upper(),
        colorize=True,
    )

    if config.file:
        logger.add(
            sink=config.file,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra} | {name}:{function}:{line} | {message}",
            filter=_context_filter,
            level="INFO",
            rotation=config.rotation,
            retention=config.retention,
            compression="zip",
            enqueue=True,
        )
