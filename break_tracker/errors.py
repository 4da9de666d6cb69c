from __future__ import annotations


class BreakTrackerError(Exception):
    """Base class for every recoverable error raised by the tracker."""


class InputValidationError(BreakTrackerError):
    """Raised when user input must be corrected before continuing."""


class MissingRateError(InputValidationError):
    def __init__(self) -> None:
        super().__init__("Please set your salary/rate first.")


class MissingCityError(InputValidationError):
    def __init__(self) -> None:
        super().__init__("Please enter a city name.")


class EmptyBreakError(InputValidationError):
    def __init__(self) -> None:
        super().__init__("Timer has not run; nothing to log.")


class InvalidRateError(InputValidationError, ValueError):
    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Rate must be a finite, non-negative number (got {value!r})")


class ExternalServiceError(BreakTrackerError):
    """Raised when a collaborator (log store, geolocation) fails transiently."""


class LogStoreError(ExternalServiceError):
    def __init__(self, operation: str, detail: str) -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"Log store {operation} failed: {detail}")


class GeolocationError(ExternalServiceError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Geolocation failed: {reason}. Enter city manually.")


class LogValidationError(BreakTrackerError):
    """Raised when the log store rejects a payload with missing or invalid fields."""

    def __init__(self, fields: list[str]) -> None:
        self.fields = fields
        super().__init__(f"Missing or invalid required fields ({', '.join(fields)}).")


class SessionStateError(BreakTrackerError):
    def __init__(self, operation: str, state: str) -> None:
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while {state}")


class TimerStateError(SessionStateError):
    pass


class SubmitInProgressError(SessionStateError):
    def __init__(self) -> None:
        super().__init__("submit", "a submission is already in flight")
