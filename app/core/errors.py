"""
Standardized errors for the study assistant core and its API
"""
from typing import Optional, Dict, Any
from pydantic import BaseModel


class ErrorCode:
    """Standard error codes"""
    # Validation errors (3xxx)
    INVALID_INPUT = "VALIDATION_001"
    MISSING_FIELD = "VALIDATION_002"
    INVALID_FORMAT = "VALIDATION_003"
    UNKNOWN_AGENT = "VALIDATION_004"

    # Server errors (5xxx)
    INTERNAL_ERROR = "SERVER_001"
    EXTERNAL_SERVICE_ERROR = "SERVER_003"
    TRANSIENT_BACKEND_ERROR = "SERVER_004"
    BACKEND_OVERLOADED = "SERVER_005"
    MALFORMED_RESPONSE = "SERVER_006"


class ErrorResponse(BaseModel):
    """Standardized error response model"""
    error: str  # Human-readable error message
    code: str  # Machine-readable error code
    details: Optional[Dict[str, Any]] = None  # Additional context


def create_error_response(
    message: str,
    code: str = ErrorCode.INTERNAL_ERROR,
    details: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Create a standardized error response
    
    Args:
        message: Human-readable error message
        code: Machine-readable error code
        details: Optional additional context
        
    Returns:
        Dictionary with error, code, and details
    """
    response = {
        "error": message,
        "code": code,
        "details": details or {}
    }
    return response


class StudyAssistantError(Exception):
    """Base class for all errors raised by the orchestration core"""

    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(**create_error_response(self.message, self.code, self.details))


class UnknownAgent(StudyAssistantError):
    """Agent identifier is outside the registry"""

    code = ErrorCode.UNKNOWN_AGENT

    def __init__(self, agent_id: Any):
        super().__init__(f"Unknown agent: {agent_id!r}", {"agent": str(agent_id)})
        self.agent_id = agent_id


class InvalidInput(StudyAssistantError):
    """Neither text nor image was supplied"""

    code = ErrorCode.INVALID_INPUT


class BackendError(StudyAssistantError):
    """Non-retryable failure talking to the generative backend"""

    code = ErrorCode.EXTERNAL_SERVICE_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.status_code = status_code


class TransientBackendError(BackendError):
    """Rate limit or quota exhaustion; safe to retry with the same request"""

    code = ErrorCode.TRANSIENT_BACKEND_ERROR


class BackendOverloaded(BackendError):
    """Transient failures persisted past the retry bound"""

    code = ErrorCode.BACKEND_OVERLOADED

    def __init__(self, attempts: int):
        super().__init__(
            "System overloaded, please try again in a moment.",
            status_code=429,
            details={"attempts": attempts}
        )
        self.attempts = attempts


class MalformedResponse(StudyAssistantError):
    """Structured output could not be parsed or is missing required fields"""

    code = ErrorCode.MALFORMED_RESPONSE

    def __init__(self, message: str, raw_text: Optional[str] = None):
        raw_text = raw_text or ""
        super().__init__(message, {"raw_response": raw_text[:500]})
        self.raw_text = raw_text
