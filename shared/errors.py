"""
Shared error handling for the rule engine.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error report format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class RuleEngineException(Exception):
    """Base exception for the rule engine."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(RuleEngineException):
    """Malformed rule, condition or action configuration."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class HandlerExecutionError(RuleEngineException):
    """A condition or action implementation failed."""

    def __init__(self, handler_type: str, message: str = "Handler failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("HANDLER_EXECUTION_ERROR", f"{handler_type}: {message}", details)


class DependencyError(RuleEngineException):
    """Package dependency could not be satisfied."""

    def __init__(self, message: str = "Dependency unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("DEPENDENCY_ERROR", message, details)


class BindingError(RuleEngineException):
    """The host rejected an event binding."""

    def __init__(self, event_name: str, message: str = "Event binding failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("BINDING_ERROR", f"{event_name}: {message}", details)
