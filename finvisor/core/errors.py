"""Error taxonomy and the central error reporter."""
import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)


class FinvisorError(Exception):
    """Base class for every recoverable application error."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class QueryError(FinvisorError):
    """A remote read or write failed or returned an error payload."""


class NotFoundError(QueryError):
    """The requested row does not exist."""


class QueryTimeoutError(QueryError, TimeoutError):
    """The local wait for a remote operation exceeded the configured threshold."""

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Response time exceeded ({int(timeout_seconds * 1000)}ms)")
        self.timeout_seconds = timeout_seconds


class FormValidationError(FinvisorError):
    """A required form field is missing or invalid."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class WebhookError(FinvisorError):
    """An external webhook answered with a non-2xx status or a malformed body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(FinvisorError):
    """A required setting is missing."""


class CreditsExhaustedError(FinvisorError):
    """The account has no receipt credits left."""


class PermissionDeniedError(FinvisorError):
    """The user has no organisation, or the row belongs to another one."""


def report_error(
    error: BaseException,
    context: str,
    operation: Optional[str] = None,
    details: Any = None,
) -> str:
    """
    Log an error with its context and return the message to show the user.

    The returned message is prefixed with the operation (or the context when
    no operation is given) so notifications stay readable on their own.
    """
    message = getattr(error, "message", None) or str(error) or error.__class__.__name__
    label = f"[{context}] {operation}" if operation else f"[{context}]"
    logger.error("%s: %s", label, message, extra={"details": details}, exc_info=error)
    return f"{operation or context}: {message}"
