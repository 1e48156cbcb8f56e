from __future__ import annotations

import logging
import os
import re
from typing import Any, Callable

import orjson
import structlog


_SECRET_NAME_RE = re.compile(r"(KEY|TOKEN|SECRET|PASSWORD)", re.IGNORECASE)


class _RedactSecretsProcessor:
    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        return {
            key: ("[REDACTED]" if _SECRET_NAME_RE.search(key) else value)
            for key, value in event_dict.items()
        }


def _orjson_dumps(obj: Any, *, default: Any | None = None, **_: Any) -> str:
    options = orjson.OPT_NON_STR_KEYS | orjson.OPT_SORT_KEYS
    if default is None:
        return orjson.dumps(obj, option=options).decode("utf-8")
    return orjson.dumps(obj, default=default, option=options).decode("utf-8")


def _join(items: Any) -> str:
    if not items:
        return "-"
    if isinstance(items, (list, tuple, set)):
        return ", ".join(str(x) for x in items)
    return str(items)


def _boot_bullets_processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Render the handful of boot events as bullet lines in console output.

    Only the known boot events are rewritten; everything else passes through.
    """
    event = event_dict.get("event")

    if event == "storage_backend_initialized":
        return {"event": f"• Storage backend: {event_dict.get('backend', '-')}"}

    if event == "knowledge_seed_loaded":
        return {"event": f"• Knowledge seed loaded: {event_dict.get('entries', 0)} entries"}

    if event == "lookups_registered":
        return {"event": f"• Lookups registered: {_join(event_dict.get('lookups'))}"}

    if event == "startup_complete":
        return {"event": f"• Startup complete: v{event_dict.get('version', '?')}"}

    return event_dict


def setup_logging(level: str = "INFO") -> None:
    """Configure logging.

    Console output by default. Set ZAC_LOG_FORMAT=json for structured JSON lines.
    """
    level = (level or "INFO").upper()
    py_level = getattr(logging, level, logging.INFO)

    logging.basicConfig(level=py_level, format="%(message)s")

    log_format = (os.getenv("ZAC_LOG_FORMAT") or "human").strip().lower()
    if log_format not in {"human", "json"}:
        log_format = "human"

    processors: list[Callable[[Any, str, dict[str, Any]], Any]] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _RedactSecretsProcessor(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "human":
        processors.append(_boot_bullets_processor)
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer(serializer=_orjson_dumps))

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(py_level),
        cache_logger_on_first_use=True,
    )

    noisy_level = (os.getenv("ZAC_NOISY_LOG_LEVEL", "WARNING") or "WARNING").upper()
    noisy_py_level = getattr(logging, noisy_level, logging.WARNING)
    for noisy in ["uvicorn", "uvicorn.error", "uvicorn.access", "fastapi", "starlette", "httpcore", "httpx", "aiosqlite"]:
        logging.getLogger(noisy).setLevel(noisy_py_level)


def get_logger(name: str):
    return structlog.get_logger(name)
