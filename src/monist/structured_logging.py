"""
Structured logging configuration for monist.

Emits machine-readable JSON events for graph construction, planning and
command execution. Events go to stderr so they never mix with the output of
the commands monist runs.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

_RESERVED_ATTRIBUTES = frozenset(
    [
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    ]
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRIBUTES:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class EventLogger:
    """Structured logger for one monist component."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(f"monist.{name}")
        self._setup_logger()
        self.run_context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        """Setup logger with structured formatting."""
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.WARNING)
            self.logger.propagate = False

    def set_run_context(
        self,
        run_id: Optional[str] = None,
        root: Optional[str] = None,
        command: Optional[str] = None,
    ) -> None:
        """Set run context for logging."""
        self.run_context = {}
        if run_id:
            self.run_context["run_id"] = run_id
        if root:
            self.run_context["root"] = root
        if command:
            self.run_context["command"] = command

    def clear_run_context(self) -> None:
        """Clear run context."""
        self.run_context.clear()

    def _log(self, level: str, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.run_context, **kwargs}
        getattr(self.logger, level)(event_type, extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        """Log info level event."""
        self._log("info", event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        """Log warning level event."""
        self._log("warning", event_type, **kwargs)

    def error(self, event_type: str, **kwargs) -> None:
        """Log error level event."""
        self._log("error", event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        """Log debug level event."""
        self._log("debug", event_type, **kwargs)


_graph_logger = EventLogger("graph")
_planner_logger = EventLogger("planner")
_executor_logger = EventLogger("executor")
_manifest_logger = EventLogger("manifest")

_ALL_LOGGERS = [_graph_logger, _planner_logger, _executor_logger, _manifest_logger]


def get_graph_logger() -> EventLogger:
    """Get dependency graph logger."""
    return _graph_logger


def log_plan_computed(root: str, plan: List[List[str]]) -> None:
    """Log the batches of a freshly computed plan."""
    _planner_logger.info(
        "plan_computed",
        root=root,
        batch_count=len(plan),
        member_count=sum(len(batch) for batch in plan),
        batches=plan,
    )


def log_command_started(cwd: str, command: List[str]) -> None:
    """Log the start of a member command."""
    _executor_logger.info("command_started", cwd=cwd, command=command)


def log_command_finished(
    cwd: str, command: List[str], returncode: Optional[int], duration_ms: int
) -> None:
    """Log the end of a member command."""
    data = {
        "cwd": cwd,
        "command": command,
        "returncode": returncode,
        "duration_ms": duration_ms,
    }
    if returncode == 0:
        _executor_logger.info("command_finished", **data)
    else:
        _executor_logger.warning("command_failed", **data)


def log_dependency_materialized(
    member: str, dependency: str, strategy: str, already_present: bool
) -> None:
    """Log a link/install/symlink step."""
    _executor_logger.info(
        "dependency_materialized",
        member=member,
        dependency=dependency,
        strategy=strategy,
        already_present=already_present,
    )


def log_manifest_written(path: str) -> None:
    """Log a manifest write."""
    _manifest_logger.debug("manifest_written", path=path)


def set_run_context(
    run_id: Optional[str] = None,
    root: Optional[str] = None,
    command: Optional[str] = None,
) -> None:
    """Set global run context for all loggers."""
    for logger in _ALL_LOGGERS:
        logger.set_run_context(run_id, root, command)


def clear_run_context() -> None:
    """Clear global run context."""
    for logger in _ALL_LOGGERS:
        logger.clear_run_context()


def configure_logging(log_level: str = "WARNING") -> None:
    """Set the level of every monist logger."""
    level = getattr(logging, log_level.upper(), logging.WARNING)
    logging.getLogger("monist").setLevel(level)
    for logger in _ALL_LOGGERS:
        logger.logger.setLevel(level)
