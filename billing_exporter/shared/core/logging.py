import logging
import re
import sys
from typing import Any, Optional, cast

import structlog

from billing_exporter.shared.core.config import Settings, get_settings

_SENSITIVE_FIELDS = {
    "password",
    "api_key",
    "apikey",
    "authorization",
    "auth",
    "secret",
    "token",
    "private_key",
}
_SENSITIVE_SUFFIXES = ("_token", "_secret", "_password", "_key")
# user:pass@host in URLs that end up in error strings
_URL_CREDENTIALS = re.compile(r"(https?://)[^/\s:@]+:[^/\s@]+@")


def _is_sensitive_key(key: Any) -> bool:
    key_norm = str(key).lower().strip().replace("-", "_")
    if key_norm in _SENSITIVE_FIELDS:
        return True
    return key_norm.endswith(_SENSITIVE_SUFFIXES)


def secret_redactor(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Recursively redact credentials from log events.
    Upstream API keys must never reach the log stream.
    """

    def redact(data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: ("[REDACTED]" if _is_sensitive_key(k) else redact(v))
                for k, v in data.items()
            }
        if isinstance(data, (list, tuple)):
            return type(data)(redact(item) for item in data)
        if isinstance(data, str):
            return _URL_CREDENTIALS.sub(r"\1[REDACTED]@", data)
        return data

    redacted = redact(event_dict)
    if isinstance(redacted, dict):
        return cast(dict[str, Any], redacted)
    return {}


def setup_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()

    # 1. Common processors
    base_processors = [
        structlog.contextvars.merge_contextvars,  # pass_id bound per collection pass
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        secret_redactor,
    ]

    # 2. Renderer by environment
    if settings.DEBUG:
        renderer: Any = structlog.dev.ConsoleRenderer()
        processors = base_processors + [renderer]
        min_level = logging.DEBUG
    else:
        renderer = structlog.processors.JSONRenderer()
        processors = base_processors + [structlog.processors.dict_tracebacks, renderer]
        min_level = logging.getLevelName(settings.LOG_LEVEL.upper())
        if not isinstance(min_level, int):
            min_level = logging.INFO

    structlog.configure(
        processors=cast(Any, processors),
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    # 3. Library logs (httpx, apscheduler) go to the same stream
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=min_level,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(min_level, logging.WARNING))
