"""
Structured Logging Configuration.

Supports two modes:
- text: Human-readable format for development
- json: Structured JSON format for log shipping

Set LOG_FORMAT environment variable to "json" for production.
"""

import json
import logging
import sys
from typing import Any, Dict, Optional

from depgraph.core.tracing import TracingContext


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings with tracing context.

    Includes run_id, repo_name, package_name, etc. from TracingContext so the
    lines of one repository can be filtered out of a concurrent build.
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = TracingContext.get()

        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
            "line": record.lineno,
            "run_id": ctx.get("run_id", ""),
            "org_name": ctx.get("org_name", ""),
            "repo_name": ctx.get("repo_name", ""),
            "package_name": ctx.get("package_name", ""),
            "phase": ctx.get("phase", ""),
        }

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record)


TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(trace)s%(message)s"


class TextFormatter(logging.Formatter):
    """Human-readable formatter; messages are prefixed with the tracing context."""

    def __init__(self, fmt: str = TEXT_FORMAT, datefmt: Optional[str] = None):
        super().__init__(fmt, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        prefix = TracingContext.get_log_prefix()
        record.trace = f"{prefix} " if prefix else ""
        return super().format(record)


def setup_logging(log_format: Optional[str] = None) -> None:
    """
    Setup logging for the application.

    Uses LOG_FORMAT setting to determine format:
    - "json": Structured JSON
    - "text" (default): Human-readable for development
    """
    root_logger = logging.getLogger()

    # Avoid adding multiple handlers
    if root_logger.handlers:
        return

    root_logger.setLevel(logging.INFO)

    handler = logging.StreamHandler(sys.stdout)

    if log_format is None:
        from depgraph.config import settings

        log_format = settings.LOG_FORMAT
    if log_format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    # Set lower level for noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
