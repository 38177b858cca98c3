"""
Structured logging with automatic trace context propagation.

Key Features:
- Standard logger.info() calls pick up workflow/run/session/node context
- ContextVar-based propagation: safe across asyncio tasks
- Dual output modes: JSON for production, human-readable for development

Architecture:
    Workflow.run() → sets workflow_id, run_id, session_id once
        ↓ (automatic propagation via ContextVar)
    Step.execute() → adds node_id
        ↓ (automatic propagation, each Parallel branch task gets its own copy)
    Agent code → logger.info("message") → gets the whole context
"""

import json
import logging
import os
import re
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variable for trace propagation
trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

# ANSI escape code pattern (matches \033[...m or \x1b[...m)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m|\033\[[0-9;]*m")


def strip_ansi_codes(text: str) -> str:
    """Remove ANSI escape codes from text for clean JSON logging."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Produces machine-parseable log entries with:
    - Standard fields (timestamp, level, logger, message)
    - Trace context (workflow_id, run_id, session_id, node_id)
    - Custom fields from the extra dict (event, latency_ms, node_id, branch)
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        context = trace_context.get() or {}

        message = strip_ansi_codes(record.getMessage())

        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": message,
        }

        log_entry.update(context)

        event = getattr(record, "event", None)
        if event is not None:
            if isinstance(event, str):
                log_entry["event"] = strip_ansi_codes(event)
            else:
                log_entry["event"] = event

        latency_ms = getattr(record, "latency_ms", None)
        if latency_ms is not None:
            log_entry["latency_ms"] = latency_ms

        # An explicit node_id in extra wins over the trace context one
        node_id = getattr(record, "node_id", None)
        if node_id is not None:
            log_entry["node_id"] = node_id

        branch = getattr(record, "branch", None)
        if branch is not None:
            log_entry["branch"] = branch

        if record.exc_info:
            exception_text = self.formatException(record.exc_info)
            log_entry["exception"] = strip_ansi_codes(exception_text)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Colorized level plus a short trace prefix so interleaved concurrent runs
    can still be told apart.
    """

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as human-readable string."""
        context = trace_context.get() or {}
        workflow_id = context.get("workflow_id", "")
        run_id = context.get("run_id", "")
        session_id = context.get("session_id", "")
        node_id = context.get("node_id", "")

        prefix_parts = []
        if workflow_id:
            prefix_parts.append(f"wf:{workflow_id}")
        if run_id:
            prefix_parts.append(f"run:{run_id[-8:]}")
        if session_id:
            prefix_parts.append(f"session:{session_id}")
        if node_id:
            prefix_parts.append(f"node:{node_id}")

        context_prefix = f"[{' | '.join(prefix_parts)}] " if prefix_parts else ""

        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET

        level = f"{record.levelname:<8}"

        event = ""
        record_event = getattr(record, "event", None)
        if record_event is not None:
            event = f" [{record_event}]"

        line = f"{color}[{level}]{reset} {context_prefix}{record.getMessage()}{event}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(
    level: str = "INFO",
    format: str = "auto",  # "json", "human", or "auto"
) -> None:
    """
    Configure structured logging for the application.

    This should be called ONCE at application startup (main entry point or a
    test fixture). The library itself never calls it.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Output format:
            - "json": Machine-parseable JSON (for production)
            - "human": Human-readable with colors (for development)
            - "auto": JSON if LOG_FORMAT=json or ENV=production, else human

    Examples:
        configure_logging(level="DEBUG", format="human")
        configure_logging(level="INFO", format="json")
    """
    if format == "auto":
        log_format_env = os.getenv("LOG_FORMAT", "").lower()
        env = os.getenv("ENV", "development").lower()

        if log_format_env == "json" or env == "production":
            format = "json"
        else:
            format = "human"

    if format == "json":
        formatter: logging.Formatter = StructuredFormatter()
        _disable_colors()
    else:
        formatter = HumanReadableFormatter()

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())


def _disable_colors() -> None:
    """Disable color output in libraries that honour NO_COLOR."""
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"


def set_trace_context(**kwargs: Any) -> None:
    """
    Set trace context for current execution.

    Context is stored in a ContextVar and propagates through awaits within the
    same task. Tasks created with asyncio.create_task() start from a copy, so a
    Parallel branch adding node_id never leaks into its siblings.

    Called by the engine at:
    - Workflow.run(): workflow_id, run_id, session_id
    - Step.execute(): node_id, restored to its previous value on exit

    Args:
        **kwargs: Context fields (workflow_id, run_id, session_id, node_id, ...);
            a field passed as None is removed
    """
    current = trace_context.get() or {}
    merged = {**current, **kwargs}
    trace_context.set({key: value for key, value in merged.items() if value is not None})


def get_trace_context() -> dict:
    """
    Get current trace context.

    Returns:
        Dict with workflow_id, run_id, session_id, etc.
        Empty dict if no context set.
    """
    context = trace_context.get() or {}
    return context.copy()


def clear_trace_context() -> None:
    """Clear trace context (used between tests or for a fresh execution)."""
    trace_context.set(None)
