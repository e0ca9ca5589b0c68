"""
Auth Exception Hierarchy

Every failure the auth flows can produce is classified here. Each class
carries the HTTP status it maps to, a machine-readable code and a message
that is safe to show to the caller. Operator-facing detail goes in
`details` and is only exposed when DEBUG is on.

Exception Hierarchy:
    AuthBaseError
    ├── ValidationError               400
    ├── VerificationCodeError         400
    ├── AuthenticationError           401
    ├── InvalidTokenError             401
    ├── AccountLockedError            403
    ├── AccountDisabledError          403
    ├── CaptchaRejectedError          403
    ├── NotFoundError                 404
    └── InfrastructureError           500
        ├── CredentialHashError
        ├── MailNotConfiguredError
        └── MailDeliveryError
"""
from typing import Optional, Dict, Any


class AuthBaseError(Exception):
    """
    Base exception for all auth and account errors.

    Attributes:
        message: Human-readable error description (safe for clients)
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
    """

    default_code: str = "auth_error"
    default_message: str = "Request failed"
    status_code: int = 400

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(AuthBaseError):
    """Malformed input, bad username shape, duplicate account fields."""
    default_code = "validation_error"
    default_message = "Invalid request"
    status_code = 400


class VerificationCodeError(AuthBaseError):
    """Wrong, expired, used or superseded code. Never says which."""
    default_code = "invalid_code"
    default_message = "Invalid or expired verification code"
    status_code = 400


class AuthenticationError(AuthBaseError):
    """Bad credential. Never says whether the account or the password was wrong."""
    default_code = "invalid_credentials"
    default_message = "Invalid account or password"
    status_code = 401


class InvalidTokenError(AuthBaseError):
    """Bad signature, malformed, expired or wrong token type."""
    default_code = "invalid_token"
    default_message = "Invalid or expired token"
    status_code = 401


class AccountLockedError(AuthBaseError):
    """Lock-expiry is in the future."""
    default_code = "account_locked"
    status_code = 403

    def __init__(self, remaining_minutes: int, **kwargs):
        self.remaining_minutes = remaining_minutes
        message = kwargs.pop(
            "message",
            f"Account is locked. Please try again in {remaining_minutes} minutes",
        )
        super().__init__(message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["remaining_minutes"] = self.remaining_minutes
        return data


class AccountDisabledError(AuthBaseError):
    default_code = "account_disabled"
    default_message = "Account is inactive"
    status_code = 403


class CaptchaRejectedError(AuthBaseError):
    default_code = "captcha_failed"
    default_message = "Captcha validation failed"
    status_code = 403


class NotFoundError(AuthBaseError):
    default_code = "not_found"
    default_message = "Resource not found"
    status_code = 404


class InfrastructureError(AuthBaseError):
    """Store, hashing, signing or mail transport failure."""
    default_code = "internal_error"
    default_message = "An internal error occurred. Please try again later."
    status_code = 500


class CredentialHashError(InfrastructureError):
    default_code = "hash_failed"
    default_message = "Failed to hash password"


class MailNotConfiguredError(InfrastructureError):
    default_code = "mail_not_configured"
    default_message = "Mail service not configured"


class MailDeliveryError(InfrastructureError):
    default_code = "mail_delivery_failed"
    default_message = "Failed to send email"
