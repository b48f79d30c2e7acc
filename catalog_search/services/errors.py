"""Error types and centralized error handling for catalog search.

Validation errors are raised to the caller before any lookup happens.
Provider, network and catalog errors are converted into user-facing
messages here and recorded in a bounded history, so a failed enrichment
can be reported without ever replacing the cached results on screen.
"""

import json
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog

log = structlog.stdlib.get_logger()

# Longest value echoed back in technical details
MAX_VALUE_LENGTH = 100


class ErrorCategory(Enum):
    """What part of the system an error comes from."""
    NETWORK = "network"
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    PROVIDER = "provider"
    CATALOG = "catalog"
    UNEXPECTED = "unexpected"


class ErrorSeverity(Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorContext:
    """Where an unexpected error was caught."""
    operation: str
    component: str
    details: dict[str, Any]


@dataclass(frozen=True)
class UserFriendlyError:
    """An error as shown to the user, with what they can do about it."""
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    suggested_actions: list[str]
    technical_details: str | None = None
    recoverable: bool = True


def _describe(error: Exception) -> str:
    return f"{type(error).__name__}: {error}"


def _details(*lines: str | None) -> str | None:
    """Join the present detail lines, or None if there are none."""
    present = [line for line in lines if line]
    return "\n".join(present) if present else None


class AppError(Exception):
    """Base class of every error the application reports to users."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNEXPECTED,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        suggested_actions: list[str] | None = None,
        technical_details: str | None = None,
        recoverable: bool = True,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.suggested_actions = suggested_actions or []
        self.technical_details = technical_details
        self.recoverable = recoverable
        self.context = context

    def to_user_friendly(self) -> UserFriendlyError:
        return UserFriendlyError(
            message=self.message,
            category=self.category,
            severity=self.severity,
            suggested_actions=list(self.suggested_actions),
            technical_details=self.technical_details,
            recoverable=self.recoverable,
        )


class NetworkError(AppError):
    """A request to Twitch or IGDB could not be completed."""

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        if status_code == 429:
            actions = ["Wait a few seconds before searching again", "Increase rate_limit_delay in the configuration"]
        elif status_code in (401, 403):
            actions = ["Check the IGDB client id and secret"]
        elif status_code is not None and status_code >= 500:
            actions = ["IGDB is having problems", "Try again later"]
        else:
            actions = ["Check your internet connection", "Try again in a few moments"]

        super().__init__(
            message=message,
            category=ErrorCategory.NETWORK,
            suggested_actions=actions,
            technical_details=_details(
                f"Status: {status_code}" if status_code else None,
                f"URL: {url}" if url else None,
                _describe(original_error) if original_error else None,
            ),
        )
        self.original_error = original_error
        self.url = url
        self.status_code = status_code


class ValidationError(AppError):
    """Input that cannot be used as given."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        constraints: list[str] | None = None,
    ) -> None:
        self.field = field
        self.value = value
        self.constraints = constraints or []

        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.WARNING,
            suggested_actions=["Review the input requirements"] + [f"Ensure: {c}" for c in self.constraints],
            technical_details=_details(
                f"Field: {field}" if field else None,
                f"Value: {str(value)[:MAX_VALUE_LENGTH]}" if value is not None else None,
            ),
        )


class InvalidQuery(ValidationError):
    """The search text is empty once normalized."""

    def __init__(self, value: Any = None) -> None:
        super().__init__(
            message="Query is required to search cached games",
            field="query",
            value=value,
            constraints=["query contains at least one non-whitespace character"],
        )


class InvalidLimit(ValidationError):
    """The requested result count is not a positive integer."""

    def __init__(self, value: Any = None) -> None:
        super().__init__(
            message="Limit must be a positive number",
            field="limit",
            value=value,
            constraints=["limit is an integer greater than zero"],
        )


class ConfigurationError(AppError):
    """A configuration that fails validation."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        current_value: Any = None,
        expected: str | None = None,
    ) -> None:
        actions = ["Check the configuration file", "Delete it to go back to the defaults"]
        if expected:
            actions.append(f"Expected: {expected}")

        super().__init__(
            message=message,
            category=ErrorCategory.CONFIGURATION,
            suggested_actions=actions,
            technical_details=_details(
                f"Setting: {setting}" if setting else None,
                f"Current: {current_value}" if current_value is not None else None,
            ),
        )
        self.setting = setting
        self.current_value = current_value
        self.expected = expected


class ProviderError(AppError):
    """The enrichment provider failed; cached results stay valid."""

    def __init__(
        self,
        message: str,
        query: str | None = None,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.PROVIDER,
            severity=ErrorSeverity.WARNING,
            suggested_actions=["Cached results are still available", "Try the search again later"],
            technical_details=_details(
                f"Query: {query}" if query else None,
                f"Status: {status_code}" if status_code else None,
                f"Error: {_describe(original_error)}" if original_error else None,
            ),
        )
        self.query = query
        self.status_code = status_code
        self.original_error = original_error


class CatalogError(AppError):
    """The catalog snapshot could not be read or written."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message=message,
            category=ErrorCategory.CATALOG,
            suggested_actions=[
                "Check the catalog file path and permissions",
                "Delete the catalog file to start with an empty cache",
            ],
            technical_details=_details(
                f"Path: {path}" if path else None,
                f"Error: {_describe(original_error)}" if original_error else None,
            ),
        )
        self.path = path
        self.original_error = original_error


HTTP_STATUS_MESSAGES = {
    400: "IGDB rejected the search request.",
    401: "IGDB refused the access token. Please check your credentials.",
    403: "IGDB denied access. Please check your credentials.",
    404: "The IGDB endpoint was not found.",
    429: "Too many requests to IGDB. Please wait before searching again.",
    500: "IGDB encountered an error. Please try again later.",
    502: "IGDB is temporarily unavailable. Please try again later.",
    503: "IGDB is temporarily unavailable. Please try again later.",
    504: "IGDB took too long to respond. Please try again.",
}


class ErrorHandlingService:
    """Turns exceptions into user-facing errors and remembers recent ones."""

    def __init__(self, max_history_size: int = 100) -> None:
        self._history: deque[tuple[float, AppError]] = deque(maxlen=max_history_size)
        log.debug("Error handling service initialized", max_history_size=max_history_size)

    def handle_error(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any] | None = None,
    ) -> UserFriendlyError:
        """Classify, log and record an error.

        Args:
            error: The exception that occurred
            operation: What was being done, e.g. "enrich"
            component: Where it happened, e.g. "enrichment_scheduler"
            context: Extra values; "url", "path", "field" and "value" are
                used to fill in technical details

        Returns:
            User-facing representation of the error
        """
        app_error = self._convert(error, operation, component, context or {})
        self._log_error(app_error, operation, component, context)
        self._history.append((time.time(), app_error))
        return app_error.to_user_friendly()

    def _convert(
        self,
        error: Exception,
        operation: str,
        component: str,
        context: dict[str, Any],
    ) -> AppError:
        if isinstance(error, AppError):
            return error

        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code
            return NetworkError(
                message=HTTP_STATUS_MESSAGES.get(status_code, f"HTTP error {status_code} occurred."),
                original_error=error,
                url=str(error.request.url),
                status_code=status_code,
            )
        if isinstance(error, httpx.ConnectError):
            return NetworkError(
                message="Unable to connect to IGDB. Please check your internet connection.",
                original_error=error,
                url=context.get("url"),
            )
        if isinstance(error, httpx.TimeoutException):
            return NetworkError(
                message="The request to IGDB timed out.",
                original_error=error,
                url=context.get("url"),
            )
        if isinstance(error, httpx.RequestError):
            return NetworkError(
                message="A network error occurred while contacting IGDB.",
                original_error=error,
                url=context.get("url"),
            )

        # JSONDecodeError is a ValueError, so it has to be checked first
        if isinstance(error, json.JSONDecodeError):
            return ValidationError(message="Invalid JSON format. The data could not be parsed.", field="json_content")
        if isinstance(error, ValueError):
            return ValidationError(message=str(error), field=context.get("field"), value=context.get("value"))
        if isinstance(error, OSError):
            return CatalogError(
                message=f"A file system error occurred: {error}",
                path=context.get("path"),
                original_error=error,
            )

        return AppError(
            message="An unexpected error occurred. Please try again.",
            technical_details=_describe(error),
            context=ErrorContext(operation=operation, component=component, details=context),
        )

    def _log_error(
        self,
        error: AppError,
        operation: str,
        component: str,
        context: dict[str, Any] | None,
    ) -> None:
        log_method = log.warning if error.severity == ErrorSeverity.WARNING else log.error
        log_method(
            "Error occurred",
            error_message=error.message,
            category=error.category.value,
            severity=error.severity.value,
            operation=operation,
            component=component,
            technical_details=error.technical_details,
            recoverable=error.recoverable,
            context=context,
        )

    def get_recent_errors(self, count: int = 10) -> list[AppError]:
        """The most recent errors, oldest first."""
        if count <= 0:
            return []
        return [error for _, error in list(self._history)[-count:]]

    def get_error_count_by_category(self) -> dict[ErrorCategory, int]:
        counts: dict[ErrorCategory, int] = {}
        for _, error in self._history:
            counts[error.category] = counts.get(error.category, 0) + 1
        return counts

    def create_user_message(self, error: UserFriendlyError, include_suggestions: bool = True) -> str:
        """Format an error for display, with up to three suggested actions."""
        lines = [error.message]
        if include_suggestions and error.suggested_actions:
            lines.append("\nSuggested actions:")
            lines.extend(f"  • {action}" for action in error.suggested_actions[:3])
        return "\n".join(lines)


_error_service: ErrorHandlingService | None = None


def get_error_service() -> ErrorHandlingService:
    """The process-wide error handling service."""
    global _error_service
    if _error_service is None:
        _error_service = ErrorHandlingService()
    return _error_service


def handle_error(
    error: Exception,
    operation: str,
    component: str,
    context: dict[str, Any] | None = None,
) -> UserFriendlyError:
    """Handle an error with the process-wide service."""
    return get_error_service().handle_error(error, operation, component, context)
