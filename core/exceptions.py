"""
Custom exception classes and error handling.

Provides consistent error responses across the API. Every error leaves the
service as ``{"success": false, "error": ..., "details": ...}``.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        details: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.details = details

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.detail}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Missing or malformed input."""

    def __init__(self, detail: str, field: Optional[str] = None, details: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code,
            details=details,
        )


class AuthError(APIException):
    """Bad credentials."""

    def __init__(self, detail: str = "Invalid credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED"
        )


class ConflictError(APIException):
    """Resource conflict (e.g., duplicate entry)."""

    def __init__(self, detail: str, status_code: int = status.HTTP_409_CONFLICT):
        super().__init__(
            status_code=status_code,
            detail=detail,
            error_code="CONFLICT"
        )


class PayloadTooLargeError(APIException):
    """Upload exceeds the configured size limit."""

    def __init__(self, detail: str = "File too large"):
        super().__init__(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=detail,
            error_code="PAYLOAD_TOO_LARGE"
        )


class StorageError(APIException):
    """Document store failure."""

    def __init__(self, detail: str, details: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="STORAGE_ERROR",
            details=details,
        )


class SubprocessError(APIException):
    """External analysis process failed to start or exited non-zero."""

    def __init__(self, detail: str, details: Optional[str] = None):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code="SUBPROCESS_ERROR",
            details=details,
        )


class UploadError(Exception):
    """Remote media host rejected or never received an upload."""


class NotConnectedError(RuntimeError):
    """Document store used before connect() completed."""
