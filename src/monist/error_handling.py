"""
Error handling for monist.

Defines the exception hierarchy raised by the graph builder, planner,
executor and manifest editors, and a centralized handler that logs
structured error context. Errors are logged once, where the CLI reports
them.
"""

import logging
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class MonistError(Exception):
    """Base class for all errors reported by monist."""


class StructuralError(MonistError):
    """The repository layout is invalid. Raised before anything runs."""


class DuplicateMemberName(StructuralError):
    """Two member directories declare the same package name."""

    def __init__(self, name: str, first: str, second: str):
        first, second = sorted([first, second])
        super().__init__(f"duplicate package name {name} at {first} and {second}")
        self.name = name
        self.paths = (first, second)


class MissingMemberDeclaration(StructuralError):
    """The root manifest does not declare any workspaces."""

    def __init__(self, message: str = "workspaces must be defined"):
        super().__init__(message)


class CyclicDependency(StructuralError):
    """Local dependencies form a cycle."""

    def __init__(self, cycle: List[str]):
        super().__init__(f"cyclic dependency: {' -> '.join(cycle)}")
        self.cycle = cycle


class ManifestError(MonistError):
    """A manifest could not be read or is malformed."""


class VerificationFailed(MonistError):
    """Dependency verification reported violations."""

    def __init__(self, violations: List[str]):
        super().__init__("verification failed")
        self.violations = violations


class ExecutionFailed(MonistError):
    """A command could not be run, exited non-zero or was killed by a signal."""

    def __init__(
        self,
        cwd: str,
        command: List[str],
        returncode: Optional[int] = None,
        signal_name: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        pretty = " ".join(command)
        if reason is not None:
            message = f"{cwd}: {pretty} failed: {reason}"
        elif signal_name is not None:
            message = f"{cwd}: {pretty} was terminated by {signal_name}"
        else:
            message = f"{cwd}: {pretty} exited with code {returncode}"
        super().__init__(message)
        self.cwd = cwd
        self.command = command
        self.returncode = returncode
        self.signal_name = signal_name


class InvalidVersion(MonistError):
    """A version string is not valid semver."""

    def __init__(self, version: str):
        super().__init__(f"{version} is not a valid semver version")
        self.version = version


class ScriptConflict(MonistError):
    """A script would be overwritten without permission."""

    def __init__(self, message: str, conflicts: Optional[List[str]] = None):
        super().__init__(message)
        self.conflicts = conflicts or []


class InvalidCommand(MonistError):
    """The command to execute is missing or malformed."""


class ConfigError(MonistError):
    """The configuration file is invalid."""


class ErrorLevel(Enum):
    """Error severity levels."""

    WARNING = "WARNING"
    ERROR = "ERROR"


class ErrorCategory(Enum):
    """Error categories, mirroring the exception taxonomy."""

    STRUCTURAL = "STRUCTURAL"
    VALIDATION = "VALIDATION"
    EXECUTION = "EXECUTION"
    INPUT = "INPUT"
    CONFIGURATION = "CONFIGURATION"
    FILESYSTEM = "FILESYSTEM"


_LEVELS = {
    ErrorLevel.WARNING: logging.WARNING,
    ErrorLevel.ERROR: logging.ERROR,
}


@dataclass
class ErrorContext:
    """Structured error context information."""

    level: ErrorLevel
    category: ErrorCategory
    message: str
    module: str
    function: str
    details: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[BaseException] = None
    traceback_info: Optional[str] = None
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error context to dictionary for logging."""
        return {
            "level": self.level.value,
            "category": self.category.value,
            "message": self.message,
            "module": self.module,
            "function": self.function,
            "details": self.details,
            "exception_type": type(self.exception).__name__ if self.exception else None,
            "exception_message": str(self.exception) if self.exception else None,
            "traceback": self.traceback_info,
            "suggestions": self.suggestions,
        }


class ErrorHandler:
    """
    Centralized error handler.

    Logs every error with its context on the ``monist`` logger.
    """

    def __init__(self, logger_name: str = "monist", log_level: int = logging.WARNING):
        """
        Initialize error handler.

        Args:
            logger_name: Name for the logger
            log_level: Logging level
        """
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(log_level)
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
            self.logger.addHandler(handler)

    def handle_error(
        self,
        level: ErrorLevel,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        exception: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ) -> ErrorContext:
        """
        Handle an error with structured logging.

        Returns:
            ErrorContext: The created error context
        """
        context = ErrorContext(
            level=level,
            category=category,
            message=message,
            module=module,
            function=function,
            details=details or {},
            exception=exception,
            traceback_info=(
                "".join(traceback.format_exception(type(exception), exception, exception.__traceback__))
                if exception is not None
                else None
            ),
            suggestions=suggestions or [],
        )

        log_data = {
            "category": category.value,
            "module": module,
            "function": function,
            "details": context.details,
        }
        if exception is not None:
            log_data["exception"] = type(exception).__name__
        if context.suggestions:
            log_data["suggestions"] = context.suggestions
        self.logger.log(_LEVELS[level], f"{message} | {log_data}")

        return context

    def warning(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        """Handle warning level error."""
        return self.handle_error(
            ErrorLevel.WARNING, category, message, module, function, **kwargs
        )

    def error(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorContext:
        """Handle error level error."""
        return self.handle_error(
            ErrorLevel.ERROR, category, message, module, function, **kwargs
        )


_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def setup_error_handling(
    log_level: int = logging.WARNING, logger_name: str = "monist"
) -> ErrorHandler:
    """
    Setup global error handling configuration.

    Returns:
        ErrorHandler: Configured error handler
    """
    global _global_error_handler
    _global_error_handler = ErrorHandler(logger_name, log_level)
    return _global_error_handler


def category_for(exc: BaseException) -> ErrorCategory:
    """Map an exception to the category it is reported under."""
    if isinstance(exc, StructuralError):
        return ErrorCategory.STRUCTURAL
    if isinstance(exc, VerificationFailed):
        return ErrorCategory.VALIDATION
    if isinstance(exc, ExecutionFailed):
        return ErrorCategory.EXECUTION
    if isinstance(exc, (InvalidVersion, ScriptConflict, InvalidCommand)):
        return ErrorCategory.INPUT
    if isinstance(exc, ConfigError):
        return ErrorCategory.CONFIGURATION
    return ErrorCategory.FILESYSTEM
