"""
Shared error handling for the clinic offers services.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field

from .logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ClinicServiceException(Exception):
    """Base exception for clinic services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None,
                 status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(ClinicServiceException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class OfferNotFoundError(ClinicServiceException):
    """Raised when an offer id is not in the catalog."""

    status_code = 404

    def __init__(self, offer_id: str):
        super().__init__(
            "OFFER_NOT_FOUND",
            f"Offer '{offer_id}' not found",
            {"offer_id": offer_id}
        )
