"""
Custom exception hierarchy for type-safe error handling

Provides a structured exception hierarchy that maps to HTTP status codes
and enables consistent error responses across the application.

Usage:
    from app.error_handlers.exceptions import ValidationException

    def parse_range(start, end):
        if start > end:
            raise ValidationException('startDate must be on or before endDate')

Exception Hierarchy:
    AppException (base)
    ├── ValidationException (400)
    ├── ResourceNotFoundException (404)
    ├── InvalidStateTransitionException (409)
    ├── BusinessRuleException (422)
    ├── DatabaseException (500)
    └── ConfigurationException (500)
"""
from typing import Dict, Any, Optional


class AppException(Exception):
    """
    Base exception for all application errors

    Attributes:
        status_code: HTTP status code for the error
        error_type: String identifier for the error type
        message: Human-readable error message
        details: Additional context about the error
    """
    status_code = 500
    error_type = 'ApplicationError'

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to JSON-serializable dictionary

        Returns:
            Dictionary suitable for JSON response
        """
        result = {
            'error': self.error_type,
            'message': self.message,
            'status_code': self.status_code
        }

        if self.details:
            result['details'] = self.details

        return result

    def __str__(self) -> str:
        return f"{self.error_type}: {self.message}"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}('{self.message}', status_code={self.status_code})>"


class ValidationException(AppException):
    """
    Validation errors (HTTP 400)

    Raised when request data fails validation checks, before anything
    is written.

    Example:
        >>> if status not in ConflictStatus.values():
        ...     raise ValidationException(f'Invalid status: {status}')
    """
    status_code = 400
    error_type = 'ValidationError'


class ResourceNotFoundException(AppException):
    """
    Resource not found (HTTP 404)

    Example:
        >>> conflict = session.get(DetectedConflict, conflict_id)
        >>> if not conflict:
        ...     raise ResourceNotFoundException(f'Conflict {conflict_id} not found')
    """
    status_code = 404
    error_type = 'NotFound'


class InvalidStateTransitionException(AppException):
    """
    Lifecycle violations (HTTP 409)

    Raised when a conflict status change is not allowed from the
    current status, or a displacement run has already been undone.
    """
    status_code = 409
    error_type = 'InvalidStateTransition'


class BusinessRuleException(AppException):
    """
    Business rule violations (HTTP 422)

    Raised when a request is well formed but cannot be honoured, e.g.
    undoing a displacement whose slots were since removed.
    """
    status_code = 422
    error_type = 'BusinessRuleViolation'


class DatabaseException(AppException):
    """
    Database operation errors (HTTP 500)

    Raised when database operations fail.
    """
    status_code = 500
    error_type = 'DatabaseError'


class ConfigurationException(AppException):
    """
    Configuration errors (HTTP 500)

    Example:
        >>> if backend not in ('celery', 'memory'):
        ...     raise ConfigurationException(f'Unknown notifier backend: {backend}')
    """
    status_code = 500
    error_type = 'ConfigurationError'
