"""
Error types for the Naybourhood services.
Every error carries the HTTP status the server answers with.
"""

from typing import Any, Optional


class NaybourhoodError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code: int = 500

    def __init__(self, message: str, details: Any = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ConfigurationError(NaybourhoodError):
    """A required credential or setting is missing."""
    status_code = 500


class RequestValidationError(NaybourhoodError):
    """Caller supplied a missing or malformed field."""
    status_code = 400


class AuthError(NaybourhoodError):
    status_code = 401


class ForbiddenError(NaybourhoodError):
    status_code = 403


class NotFoundError(NaybourhoodError):
    status_code = 404


class AssignmentConflictError(NaybourhoodError):
    """The lead already has an active assignment."""
    status_code = 409


class InvalidTransitionError(NaybourhoodError):
    status_code = 409


class ContactLimitError(NaybourhoodError):
    """A monthly or per-buyer contact cap has been reached."""
    status_code = 403


class StoreError(NaybourhoodError):
    """The persistence backend rejected or failed a request."""
    status_code = 502


class AirtableError(NaybourhoodError):
    """Airtable answered with a non-2xx status."""
    status_code = 502


class RecordMappingError(NaybourhoodError):
    """An Airtable record could not be normalised."""
    status_code = 502

    def __init__(self, message: str, record_id: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id
        self.field = field


class AIServiceError(NaybourhoodError):
    """The hosted model failed or returned nothing."""
    status_code = 500


class AIRateLimitError(AIServiceError):
    status_code = 429


class AIPaymentRequiredError(AIServiceError):
    status_code = 402


class ResponseParseError(AIServiceError):
    """Model output did not contain parseable JSON."""
    status_code = 500

    def __init__(self, message: str, raw_response: Optional[str] = None):
        super().__init__(message)
        self.raw_response = raw_response

    def to_payload(self) -> dict:
        payload = super().to_payload()
        if self.raw_response is not None:
            payload["raw_response"] = self.raw_response
        return payload


class ResponseSchemaError(AIServiceError):
    """Model output parsed but did not match the expected shape."""
    status_code = 502


class BillingError(NaybourhoodError):
    status_code = 400


class NotificationError(NaybourhoodError):
    """Email delivery failed."""
    status_code = 502


class WebhookVerificationError(NaybourhoodError):
    status_code = 400
