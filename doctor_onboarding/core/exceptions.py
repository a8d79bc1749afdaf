"""Custom exceptions for domain-specific errors"""

from typing import Any, Dict, Optional


class DomainException(Exception):
    """Base exception for all domain errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# Authentication Errors
class AuthenticationError(DomainException):
    """Raised when the identity service rejects credentials or a token"""

    pass


# Validation Errors
class ValidationError(DomainException):
    """Raised when input validation fails"""

    pass


class InvalidDocumentError(ValidationError):
    """Raised when a document fails its type or size checks before upload"""

    def __init__(
        self, message: str, document_type: str, details: Optional[Dict[str, Any]] = None
    ):
        self.document_type = document_type
        super().__init__(message, details or {"document_type": document_type})


class UnknownFormFieldError(ValidationError):
    """Raised when a partial update names fields the form does not have"""

    def __init__(self, fields: list):
        self.fields = sorted(fields)
        super().__init__(
            f"Unknown form field(s): {', '.join(self.fields)}",
            details={"fields": self.fields},
        )


# External Service Errors
class ExternalServiceError(DomainException):
    """Raised when external service call fails"""

    pass


class SupabaseError(ExternalServiceError):
    """Raised when Supabase operation fails"""

    pass


# Registration Errors
class RegistrationError(DomainException):
    """Base exception for failures that abort a registration submission"""

    error_code = "REGISTRATION_FAILED"


class UploadFailure(RegistrationError):
    """Raised when a document upload fails (retryable)"""

    error_code = "UPLOAD_FAILED"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.field = field
        super().__init__(message, details or {"field": field})


class IdentityFailure(RegistrationError):
    """Raised when the acting identity cannot be resolved or created"""

    error_code = "IDENTITY_FAILED"


class PersistenceFailure(RegistrationError):
    """Raised when the doctor profile record cannot be written"""

    error_code = "PERSISTENCE_FAILED"


class SubmissionNotAllowedError(RegistrationError):
    """Raised when submit is called from a non-final step or while submitting"""

    error_code = "SUBMISSION_NOT_ALLOWED"


class RegistrationSessionNotFoundError(DomainException):
    """Raised when a wizard session id is unknown or expired"""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            "Registration session not found or expired",
            details={"session_id": session_id},
        )
