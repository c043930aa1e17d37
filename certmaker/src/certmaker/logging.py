"""structlog setup: one JSON object per line on stderr."""
from __future__ import annotations

import logging
import os
import sys
from typing import Dict, MutableMapping

import structlog

LEVEL_ENV = "CERTMAKER_LOG_LEVEL"

_LEVELS: Dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def resolve_level(level: str | None = None) -> int:
    """Explicit level, then ``CERTMAKER_LOG_LEVEL``, then INFO. Unknown names mean INFO."""
    name = (level or os.getenv(LEVEL_ENV) or "info").strip().lower()
    return _LEVELS.get(name, logging.INFO)


def _shape_record(
    logger: structlog.BoundLoggerBase, _method: str, event_dict: MutableMapping[str, object]
) -> MutableMapping[str, object]:
    # records carry ``msg`` and ``component`` rather than structlog's ``event``
    event_dict.setdefault("component", getattr(logger, "name", None) or "certmaker")
    if "msg" not in event_dict:
        event_dict["msg"] = event_dict.pop("event", "")
    return event_dict


def configure_logging(level: str | None = None) -> None:
    """Route certmaker logs to stderr so stdout only carries command output.

    Context bound by callers (``provider``, ``slot``, ``reference``,
    ``cert_level``, ``path``) is kept as top-level JSON keys.
    """
    numeric_level = resolve_level(level)
    logging.basicConfig(
        level=numeric_level,
        handlers=[logging.StreamHandler(sys.stderr)],
        format="%(message)s",
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            structlog.stdlib.add_log_level,
            _shape_record,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )


__all__ = ["LEVEL_ENV", "configure_logging", "resolve_level"]
