# =============================================================================
# sitesinc_core/errors/handlers.py
# Error Handling Utilities for the SiteSinc offline core
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

from sitesinc_core.logging import get_logger
from .exceptions import AuthExpiredError, SiteSincError

logger = get_logger(__name__)

T = TypeVar("T")

SIGN_IN_HINT = "Please sign in again."


def describe_error(error: BaseException) -> Tuple[str, Dict[str, Any], bool]:
    """
    Code, details and recoverability of any exception.

    Non-SiteSinc exceptions are reported as ``UNKNOWN`` with their traceback
    in the details.
    """
    if isinstance(error, SiteSincError):
        return error.code, error.details, error.recoverable
    details = {
        "error_type": type(error).__name__,
        "traceback": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
    }
    return "UNKNOWN", details, True


def user_facing_message(error: BaseException, user_message: Optional[str] = None) -> str:
    """
    Text a presentation layer can show as-is.

    Recoverable errors read ``Error: ...``; unrecoverable ones read
    ``Critical Error: ...``, and an expired session asks the user to sign in.
    """
    message = user_message or getattr(error, "message", None) or str(error)
    _, _, recoverable = describe_error(error)

    if recoverable:
        return f"Error: {message}"
    if isinstance(error, AuthExpiredError):
        return f"Critical Error: {message}. {SIGN_IN_HINT}"
    return f"Critical Error: {message}"


def handle_error(
    error: BaseException,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> str:
    """
    Log an error with its code and return the user-facing message.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        user_message: Replaces the exception's own message for the user

    Returns:
        Message for the user
    """
    code, details, recoverable = describe_error(error)
    text = user_facing_message(error, user_message)

    if log_error:
        log = logger.error if recoverable else logger.critical
        log(
            f"[{code}] {getattr(error, 'message', None) or error}",
            extra={"details": details},
            exc_info=(type(error), error, error.__traceback__),
        )
    return text


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Call ``func`` and return ``default`` instead of raising.

    Args:
        func: Function to execute
        *args: Positional arguments to pass to func
        default: Value returned on error
        error_message: Message used in place of the exception's
        reraise: Re-raise after logging instead of returning ``default``
        **kwargs: Keyword arguments to pass to func
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, user_message=error_message)
        if reraise:
            raise
        return default


class ErrorContext:
    """
    Context manager that logs a failed operation and, when recoverable,
    swallows the error.

    Exceptions listed in ``propagate`` always escape; by default that is an
    expired session, which must reach the caller so it can re-authenticate.

    Usage:
        with ErrorContext("Flushing access log queue") as ctx:
            queue.flush_queue()
        if ctx.error is not None:
            show(ctx.user_message)
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        propagate: Tuple[Type[BaseException], ...] = (AuthExpiredError,),
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.propagate = propagate
        self.error: Optional[BaseException] = None
        self.user_message: Optional[str] = None

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"Completed: {self.operation}")
            return False
        if not isinstance(exc_val, Exception):
            return False

        self.error = exc_val
        fallback = None if isinstance(exc_val, SiteSincError) else f"Error during: {self.operation}"
        self.user_message = handle_error(exc_val, user_message=fallback)

        if isinstance(exc_val, self.propagate):
            return False
        return self.recoverable


def error_boundary(
    default_return: Any = None,
    log: bool = True,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
):
    """
    Decorator returning ``default_return`` when the wrapped call raises one of
    ``exceptions``.

    Usage:
        @error_boundary(default_return=False)
        def notify_observers(...) -> bool:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except exceptions as e:
                if log:
                    logger.error(f"Error in {func.__name__}: {e}", exc_info=True)
                return default_return

        return wrapper

    return decorator
