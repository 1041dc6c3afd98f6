"""
Shared error handling for the Offline Bundle service.
"""

from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class OfflineLayerException(Exception):
    """Base exception for the offline bundle layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(OfflineLayerException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ExternalServiceError(OfflineLayerException):
    """External service errors."""

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)


class IncompleteFetchSetError(OfflineLayerException):
    """A build could not fetch every file of its manifest.

    Raised before any store write happens, so no cache exists for the version.
    """

    def __init__(self, version: int, failures: List[Dict[str, Any]], expected: int, received: int):
        super().__init__(
            "INCOMPLETE_FETCH_SET",
            f"Failed to fetch {len(failures)} of {expected} files for version {version}",
            {"version": version, "failures": failures, "expected": expected, "received": received},
        )
        self.version = version
        self.failures = failures


class ManifestFetchError(OfflineLayerException):
    """The manifest could not be fetched or parsed."""

    def __init__(self, message: str = "Manifest fetch failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("MANIFEST_FETCH_ERROR", message, details)


class StoreOperationError(OfflineLayerException):
    """The durable cache store rejected an open/put/delete/list operation."""

    def __init__(self, operation: str, message: str = "Store operation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_OPERATION_ERROR", f"{operation}: {message}", details)
        self.operation = operation
