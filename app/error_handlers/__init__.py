"""
Unified Error Handling System

Provides centralized, consistent error handling across the application:
an exception hierarchy mapped to HTTP status codes, a decorator that turns
those exceptions into JSON responses, and logging setup.

Usage:
    from app.error_handlers import handle_errors
    from app.error_handlers.exceptions import ValidationException

    @conflicts_bp.route('/detect', methods=['POST'])
    @handle_errors
    def detect():
        if not valid:
            raise ValidationException('Invalid date range')
        return jsonify({'success': True})
"""
from .exceptions import (
    AppException,
    ValidationException,
    ResourceNotFoundException,
    InvalidStateTransitionException,
    BusinessRuleException,
    DatabaseException,
    ConfigurationException
)
from .decorators import handle_errors
from .logging import run_logger


__all__ = [
    # Exceptions
    'AppException',
    'ValidationException',
    'ResourceNotFoundException',
    'InvalidStateTransitionException',
    'BusinessRuleException',
    'DatabaseException',
    'ConfigurationException',
    # Decorators
    'handle_errors',
    # Logging
    'run_logger',
    'setup_logging',
    'register_error_handlers',
]


def setup_logging(app):
    """Configure application logging"""
    from app.error_handlers import logging as eh_logging
    return eh_logging.setup_logging(app)


def register_error_handlers(app):
    """Register global error handlers for the Flask app"""
    from app.error_handlers import logging as eh_logging
    eh_logging.register_error_handlers(app)
