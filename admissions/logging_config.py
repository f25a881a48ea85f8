"""
Structured logging configuration.
Uses structlog for structured JSON logging.
"""

import logging
import sys
from typing import Any
import structlog
from admissions.config import config


def configure_logging():
    """
    Configure structured logging for the application.

    In production: JSON formatted logs
    In development: Pretty printed colored logs
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    )

    # HTTP client libraries log every request at INFO.
    for noisy_logger in [
        "httpx",
        "httpcore",
        "openai",
        "twilio",
        "urllib3",
    ]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.DEBUG:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None) -> Any:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("lead_created", lead_id=12, source="MANUAL")
        logger.error("reply_generation_failed", session_id="ab12", error="timeout")
    """
    return structlog.get_logger(name)


def log_transcript_turn(*, session_id: str, turn: int, role: str, text: str) -> None:
    """Log one spoken turn when LOG_CALL_TRANSCRIPT is enabled."""
    if not config.LOG_CALL_TRANSCRIPT:
        return
    max_chars = int(config.LOG_CALL_TRANSCRIPT_MAX_CHARS or 500)
    content = (text or "").strip()
    if max_chars > 0 and len(content) > max_chars:
        content = content[:max_chars] + "…"
    logger.info("call_transcript_turn", session_id=session_id, turn=turn, role=role, text=content)


# Configure on module import
configure_logging()

# Create default logger
logger = get_logger("admissions")
