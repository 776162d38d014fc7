"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import re
import sys

import structlog

REDACTED = "***REDACTED***"

# Structured fields that never reach the output
_SECRET_FIELDS = frozenset({"token", "secret", "password", "authorization"})

# token=..., "secret": "...", Authorization: ... inside free text
_SECRET_TEXT_RE = re.compile(
    r"(token|secret|password|authorization)[\"']?\s*[:=]\s*[\"']?[\w\-\.:]+", re.IGNORECASE
)

# Bot API URLs embed the token: /bot123456:ABC-DEF/sendMessage
_BOT_URL_RE = re.compile(r"/bot\d+:[\w\-]+")


def redact_secrets(
    _logger: structlog.types.WrappedLogger,
    _method: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    for key, value in list(event_dict.items()):
        if key.lower() in _SECRET_FIELDS:
            event_dict[key] = REDACTED
        elif isinstance(value, str):
            value = _BOT_URL_RE.sub(f"/bot{REDACTED}", value)
            event_dict[key] = _SECRET_TEXT_RE.sub(rf"\1={REDACTED}", value)
    return event_dict


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog with optional JSON output."""
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if numeric_level <= logging.DEBUG:
        print(
            "WARNING: DEBUG logging is enabled. Message texts and callback "
            "payloads will appear in logs.",
            file=sys.stderr,
        )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        redact_secrets,
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    # HTTP client and SQLite chatter stays at WARNING unless asked for
    for name in ("httpx", "httpcore", "aiohttp.access", "aiosqlite"):
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
