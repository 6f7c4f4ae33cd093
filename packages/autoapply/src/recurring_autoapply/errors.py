"""Exceptions raised by the auto-apply engine, its stores and the supervisor."""

from dataclasses import dataclass
from typing import Any


class AutoApplyError(Exception):
    """Base exception for auto-apply errors."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


@dataclass(frozen=True)
class FieldError:
    """A single rule a recurring definition violates."""

    field: str
    rule: str
    value: Any
    message: str


class RecurringValidationError(AutoApplyError):
    """A recurring definition is not executable. No writes were attempted."""

    def __init__(self, errors: list[FieldError]):
        message = "Validation failed: " + ", ".join(e.message for e in errors)
        super().__init__(message, details=[e.field for e in errors])
        self.errors = errors


class InsufficientFundsError(AutoApplyError):
    """There is nothing to pay, or not enough to pay with."""

    pass


class StoreError(AutoApplyError):
    """An underlying store call failed."""

    def __init__(self, operation: str, message: str, details: Any = None):
        super().__init__(f"{operation} failed: {message}", details=details)
        self.operation = operation


class AutoApplyTimeoutError(AutoApplyError, TimeoutError):
    """A call did not settle within its deadline.

    The outcome is unknown: writes issued before the deadline are not
    rolled back, so verify state before retrying.
    """

    def __init__(self, what: str, timeout_ms: int):
        super().__init__(f"{what} timed out after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class ExhaustedRetriesError(AutoApplyError):
    """Every startup attempt failed."""

    def __init__(self, attempts: int, last_error: BaseException | None):
        reason = str(last_error) if last_error else "unknown error"
        super().__init__(f"Auto-apply failed after {attempts} attempt(s): {reason}")
        self.attempts = attempts
        self.last_error = last_error


class AlreadyRunningError(AutoApplyError):
    """A manual check was requested while a run is in progress."""

    def __init__(self) -> None:
        super().__init__("Auto-apply is already running")


class RecurringNotFoundError(AutoApplyError):
    """No recurring definition exists with the given id for the tenant."""

    def __init__(self, recurring_id: str):
        super().__init__(f"Recurring transaction not found: {recurring_id}")
        self.recurring_id = recurring_id
