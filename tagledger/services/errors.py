"""
tagledger Error Handling

Specific error types with user-friendly messages and debugging context.
"""
from typing import Optional, Dict, Any
from fastapi import HTTPException
from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for client handling."""
    # Input errors (400s)
    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"

    # Concurrency errors
    WRITE_CONFLICT = "WRITE_CONFLICT"

    # Processing errors (500s)
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"


STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_FAILED: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.WRITE_CONFLICT: 409,
    ErrorCode.LLM_UNAVAILABLE: 503,
}


class TagledgerError(Exception):
    """Base exception with structured error info."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        detail: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.detail = detail
        self.context = context or {}
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return STATUS_MAP.get(self.code, 500)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API response format."""
        result = {
            "error": self.code.value,
            "message": self.message
        }
        if self.detail:
            result["detail"] = self.detail
        if self.context:
            result["context"] = self.context
        return result


class NotFoundError(TagledgerError):
    """Identifier does not resolve to a stored record."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{resource} not found: {resource_id}",
            context={"resource": resource, "id": resource_id}
        )


class ValidationFailure(TagledgerError):
    """Missing or malformed input. Raised before anything is written."""

    def __init__(self, field: str, detail: str):
        super().__init__(
            code=ErrorCode.VALIDATION_FAILED,
            message=f"Invalid value for '{field}'",
            detail=detail,
            context={"field": field}
        )


class WriteConflict(TagledgerError):
    """Optimistic write lost against a concurrent writer."""

    def __init__(self, resource_id: str, detail: str = "Record was modified concurrently"):
        super().__init__(
            code=ErrorCode.WRITE_CONFLICT,
            message=f"Write conflict on {resource_id}",
            detail=detail,
            context={"id": resource_id}
        )


class LLMError(TagledgerError):
    """Error calling LLM service."""

    def __init__(self, detail: str):
        super().__init__(
            code=ErrorCode.LLM_UNAVAILABLE,
            message="AI rule generation unavailable",
            detail=detail
        )


def to_http_exception(error: TagledgerError) -> HTTPException:
    """Convert TagledgerError to HTTPException."""
    return HTTPException(
        status_code=error.status_code,
        detail=error.to_dict()
    )
