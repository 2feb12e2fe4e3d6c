from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standard error payload returned by the HTTP front door:
    {
        "error": "bad_request",
        "message": "unsupported model: gpt-5",
        "code": 400,
        "details": {...}
    }
    """

    error: str = Field(..., description="Machine-readable error type")
    message: str = Field(..., description="Human-readable error message")
    code: int = Field(..., description="HTTP status code for this error")
    details: Optional[Dict[str, Any]] = Field(
        default=None, description="Optional structured error details"
    )


def http_error(
    status_code: int,
    *,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> HTTPException:
    """
    Helper to create an HTTPException with a standardised error body.
    """
    payload = ErrorResponse(
        error=error,
        message=message,
        code=status_code,
        details=details,
    )
    return HTTPException(status_code=status_code, detail=payload.model_dump())


def bad_request(message: str, *, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return http_error(
        status.HTTP_400_BAD_REQUEST, error="bad_request", message=message, details=details
    )


def not_found(message: str, *, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return http_error(
        status.HTTP_404_NOT_FOUND, error="not_found", message=message, details=details
    )


def bad_gateway(message: str, *, details: Optional[Dict[str, Any]] = None) -> HTTPException:
    return http_error(
        status.HTTP_502_BAD_GATEWAY, error="bad_gateway", message=message, details=details
    )


def service_unavailable(
    message: str, *, details: Optional[Dict[str, Any]] = None
) -> HTTPException:
    return http_error(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        error="service_unavailable",
        message=message,
        details=details,
    )


__all__ = [
    "ErrorResponse",
    "http_error",
    "bad_request",
    "not_found",
    "bad_gateway",
    "service_unavailable",
]
