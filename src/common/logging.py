"""
structlog setup for the chat gateway.

Every entry is a snake_case ``event`` plus context fields. Tokens, secrets
and message bodies are never written: ``redact_sensitive`` masks them even if
a caller passes them by mistake.
"""

import json
import logging
import logging.handlers
import shutil
import subprocess
import time
from typing import Any, Dict, List, Optional

import structlog

from common.config import Config

SENSITIVE_KEYS = frozenset({"token", "authorization", "secret", "password", "content"})
REDACTED = "[redacted]"

# Rendering mode, fixed by setup_logging
_render_mode = "json"

EventDict = Dict[str, Any]


def redact_sensitive(_, __, event_dict: EventDict) -> EventDict:
    """Mask values of sensitive keys."""
    for key in SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = REDACTED
    return event_dict


def _jq(json_str: str) -> str:
    # jq is optional; indent with json when it is not installed
    if shutil.which("jq"):
        try:
            result = subprocess.run(
                ["jq", "."], input=json_str, text=True, capture_output=True, timeout=1
            )
        except (subprocess.TimeoutExpired, subprocess.SubprocessError):
            result = None
        if result is not None and result.returncode == 0:
            return result.stdout.rstrip()
    return json.dumps(json.loads(json_str), indent=2)


def _pretty(event_dict: EventDict) -> str:
    fields = {
        k: v for k, v in event_dict.items() if k not in ("timestamp", "level", "logger")
    }
    lines = [f"EVENT: {fields.pop('event', 'unknown_event')}"]
    lines.extend(f"{key}: {value}" for key, value in fields.items())
    lines.append("-" * 50)
    return "\n".join(lines)


def render(logger: Any, method_name: str, event_dict: EventDict) -> str:
    """
    Final processor. Compact JSON by default; ``enable_pretty_print`` gives
    one field per line and ``enable_jq_json_formatting`` indented JSON.
    """
    if _render_mode == "pretty":
        return _pretty(event_dict)

    json_str = structlog.processors.JSONRenderer()(logger, method_name, event_dict)
    if _render_mode == "jq":
        return _jq(json_str)
    return json_str


def setup_logging(config: Config) -> None:
    """Configure structlog and the stdlib root logger from ``config``."""
    global _render_mode
    if config.enable_jq_json_formatting:
        _render_mode = "jq"
    elif config.enable_pretty_print:
        _render_mode = "pretty"
    else:
        _render_mode = "json"

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            render,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = logging.Formatter("%(message)s")
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if config.save_to_file:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=config.log_file_path,
                maxBytes=config.max_log_file_size,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()), handlers=handlers, force=True
    )

    # uvicorn's own access lines duplicate connection_established/closed
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


class TimedLogger:
    """
    Context manager that logs ``event`` with ``elapsed_ms`` on exit.

    ``failed`` is true when the block raised; the exception still propagates.
    """

    def __init__(self, logger: structlog.BoundLogger, event: str, **context: Any):
        self.logger = logger
        self.event = event
        self.context = context
        self.start_time: Optional[float] = None

    def __enter__(self) -> "TimedLogger":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.start_time is None:
            return
        elapsed_ms = round((time.perf_counter() - self.start_time) * 1000, 2)
        self.logger.debug(
            self.event, elapsed_ms=elapsed_ms, failed=exc_type is not None, **self.context
        )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a configured structlog logger."""
    return structlog.get_logger(name)
