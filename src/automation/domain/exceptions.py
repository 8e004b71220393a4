"""Custom exceptions for the automation engine."""


class AutomationException(Exception):
    """Base exception for all automation engine errors."""

    def __init__(self, message: str, details: dict | None = None):
        """
        Initialize automation exception.

        Args:
            message: Human-readable error message
            details: Optional dict with additional error context
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)


class RuleValidationError(AutomationException):
    """Raised when a rule definition is rejected at admission time."""

    def __init__(self, message: str, errors: list[dict] | None = None, rule_id: int | None = None):
        details = {}
        if errors:
            details["errors"] = errors
        if rule_id is not None:
            details["rule_id"] = rule_id
        super().__init__(message, details)


class RuleNotFoundError(AutomationException):
    """Raised when a rule id is not known to the lifecycle manager."""

    def __init__(self, rule_id: int):
        super().__init__(message=f"Automation rule {rule_id} not found", details={"rule_id": rule_id})


class EngineStoppedError(AutomationException):
    """Raised when readings or dispatches are submitted after shutdown."""

    pass


class DispatchError(AutomationException):
    """Base exception for failures delivering a fired rule's action."""

    pass


class DispatchTimeoutError(DispatchError):
    """Raised when a sink does not answer within the dispatch timeout."""

    def __init__(self, sink: str, timeout_seconds: float):
        super().__init__(
            message=f"{sink} did not respond within {timeout_seconds}s",
            details={"sink": sink, "timeout_seconds": timeout_seconds},
        )


class SinkRejectedError(DispatchError):
    """Raised when a sink refuses an alert or command."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str | None = None):
        details = {}
        if status_code is not None:
            details["status_code"] = status_code
        if response_body:
            details["response_preview"] = response_body[:500]
        super().__init__(message, details)


class SinkUnavailableError(DispatchError):
    """Raised when a sink cannot be reached."""

    def __init__(self, message: str, original_error: Exception | None = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__
        super().__init__(message, details)
