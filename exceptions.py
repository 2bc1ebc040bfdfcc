"""
Custom Exceptions for Homie-Do
==============================

Services raise these; ``main.py`` renders them as
``{"message", "code", "details"}`` with the matching HTTP status.

Usage:
    from exceptions import SubjectNotFoundError

    if not subject:
        raise SubjectNotFoundError(subject_id)
"""

from typing import Any, Dict, Optional


class HomieDoError(Exception):
    """Base exception for all Homie-Do errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


# ============================================
# Validation Errors (400)
# ============================================

class ValidationError(HomieDoError):
    """Missing or malformed input"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field} if field else None,
        )


class DuplicateEmailError(HomieDoError):
    """Registration with an email that already exists"""

    status_code = 400

    def __init__(self, email: str):
        super().__init__("User already exists", code="USER_EXISTS", details={"email": email})


class InvalidResetTokenError(HomieDoError):
    """Password reset token unknown or expired"""

    status_code = 400

    def __init__(self):
        super().__init__("Token is invalid or has expired", code="INVALID_RESET_TOKEN")


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(HomieDoError):
    """User authentication failed"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", code: str = "AUTH_FAILED"):
        super().__init__(message, code=code)


class InvalidCredentialsError(AuthenticationError):
    def __init__(self):
        super().__init__("Invalid credentials", code="INVALID_CREDENTIALS")


class TokenExpiredError(AuthenticationError):
    """JWT token has expired"""

    def __init__(self):
        super().__init__("Token expired", code="TOKEN_EXPIRED")


class InvalidTokenError(AuthenticationError):
    """JWT token is invalid"""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message, code="INVALID_TOKEN")


class AuthorizationError(HomieDoError):
    """User not authorized for this action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="NOT_AUTHORIZED")


# ============================================
# Resource Errors (404)
# ============================================

class ResourceNotFoundError(HomieDoError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class UserNotFoundError(ResourceNotFoundError):
    def __init__(self, user_id: Any):
        super().__init__("User", user_id)


class SubjectNotFoundError(ResourceNotFoundError):
    """Subject absent or not owned by the caller"""

    def __init__(self, subject_id: Any):
        super().__init__("Subject", subject_id)


class EntityNotFoundError(ResourceNotFoundError):
    """A unit, chapter, lecture, reading, assignment, note or attachment"""

    def __init__(self, kind: str, entity_id: Any):
        super().__init__(kind.capitalize(), entity_id)


# ============================================
# Concurrency Errors (409)
# ============================================

class ConflictError(HomieDoError):
    """Concurrent modification could not be reconciled"""

    status_code = 409

    def __init__(self, message: str = "Subject was modified concurrently, please retry"):
        super().__init__(message, code="CONFLICT")


# ============================================
# External Service Errors
# ============================================

class ExternalServiceError(HomieDoError):
    """A downstream service (SMTP, Google, AI provider) failed"""

    status_code = 502

    def __init__(self, service: str, message: str):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR", details={"service": service})


class EmailDeliveryError(ExternalServiceError):
    status_code = 500

    def __init__(self, message: str = "Error sending password reset email"):
        super().__init__("email", message)
        self.code = "EMAIL_DELIVERY_FAILED"
