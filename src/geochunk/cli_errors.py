"""Centralized error handling for CLI operations"""

from typing import Optional, Callable, Any, TypeVar
from functools import wraps
import sys
import logging

from .errors import (
    ConfigurationError,
    GeoDatabaseError,
    IntegrityError,
    InvalidDatabaseFileError,
)

logger = logging.getLogger(__name__)

# Type variable for decorator
F = TypeVar("F", bound=Callable[..., Any])


class CLIError(Exception):
    """Base exception for CLI operations."""

    exit_code = 1

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(message)


class FileError(CLIError):
    """File operation error."""

    exit_code = 2


class ConfigError(CLIError):
    """Configuration error."""

    exit_code = 3


class DataError(CLIError):
    """Data processing error."""

    exit_code = 4


class NetworkError(CLIError):
    """Network operation error."""

    exit_code = 5


def format_error_message(
    error: Exception, context: Optional[str] = None, include_traceback: bool = False
) -> str:
    """
    Format error message for user display.

    Args:
        error: Exception that occurred
        context: Additional context about operation
        include_traceback: Whether to include full traceback

    Returns:
        Formatted error message string
    """
    error_types = {
        FileNotFoundError: "File not found",
        ValueError: "Invalid value",
        PermissionError: "Permission denied",
        TimeoutError: "Operation timeout",
        ConnectionError: "Connection failed",
        ConfigurationError: "No database",
        InvalidDatabaseFileError: "Invalid database",
    }

    error_name = error_types.get(type(error), type(error).__name__)
    if isinstance(error, IntegrityError):
        error_name = "Integrity check failed"
    elif isinstance(error, FileNotFoundError):
        error_name = "File not found"

    if context:
        message = f"❌ {context}: {error_name}"
    else:
        message = f"❌ {error_name}"

    if str(error):
        message += f" - {str(error)}"

    if include_traceback:
        import traceback

        message += f"\n{traceback.format_exc()}"

    return message


def _exit_with(error: Exception, context: str, exit_code: int, verbose: bool = False) -> None:
    message = format_error_message(error, context, include_traceback=verbose)
    print(message, file=sys.stderr)
    logger.debug(f"CLI Error: {message}")
    sys.exit(exit_code)


def handle_cli_errors(
    context: str = "", exit_on_keyboard_interrupt: bool = True
) -> Callable[[F], F]:
    """
    Decorator to handle CLI errors automatically.

    Args:
        context: Context string for error messages
        exit_on_keyboard_interrupt: Exit on Ctrl+C (vs re-raise)

    Returns:
        Decorated function
    """

    def decorator(func: F) -> F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt:
                if exit_on_keyboard_interrupt:
                    print("\n⚠️  Operation cancelled by user", file=sys.stderr)
                    sys.exit(130)  # Standard SIGINT exit code
                else:
                    raise
            except CLIError as e:
                _exit_with(e, context or e.context or "", e.exit_code)
            except (FileNotFoundError, PermissionError) as e:
                _exit_with(e, context or "File operation", FileError.exit_code)
            except ConfigurationError as e:
                _exit_with(e, context or "Configuration", ConfigError.exit_code)
            except IntegrityError as e:
                _exit_with(e, context or "Database", DataError.exit_code)
            except (TimeoutError, ConnectionError) as e:
                _exit_with(e, context or "Network operation", NetworkError.exit_code)
            except (ValueError, GeoDatabaseError) as e:
                _exit_with(e, context or "Validation", DataError.exit_code)
            except Exception as e:
                _exit_with(e, context or "Operation", 1, verbose=True)

        return wrapper  # type: ignore

    return decorator
