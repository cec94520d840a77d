"""
Error handling and logging utilities for the CNC scheduling engine
Provides centralized error handling, logging, and run tracing
"""
import logging
import traceback
from datetime import datetime
from logging.handlers import RotatingFileHandler
from flask import jsonify, request
import os


def setup_logging(app):
    """Configure application logging"""
    log_level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO').upper())
    log_file = app.config.get('LOG_FILE', 'cnc_scheduler.log')

    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )

    # Tests keep logging in memory
    if not app.config.get('TESTING'):
        # Make log file path absolute if it's not
        if not os.path.isabs(log_file):
            basedir = os.path.abspath(os.path.dirname(os.path.dirname(os.path.dirname(__file__))))
            log_file = os.path.join(basedir, log_file)

        os.makedirs(os.path.dirname(log_file), exist_ok=True)

        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        app.logger.addHandler(file_handler)
        logging.getLogger('app').addHandler(file_handler)

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    app.logger.setLevel(log_level)
    app.logger.addHandler(console_handler)

    # Service modules log under the 'app' package logger
    package_logger = logging.getLogger('app')
    package_logger.setLevel(log_level)

    werkzeug_logger = logging.getLogger('werkzeug')
    werkzeug_logger.setLevel(log_level)

    return app.logger


def register_error_handlers(app):
    """Register global error handlers for the Flask app"""

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(f"Bad request from {request.remote_addr}: {request.url}")
        return jsonify({
            'error': 'Bad Request',
            'message': 'The request could not be understood by the server',
            'status_code': 400
        }), 400

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.info(f"404 Not Found: {request.url} from {request.remote_addr}")
        return jsonify({
            'error': 'Not Found',
            'message': 'The requested resource was not found',
            'status_code': 404
        }), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        app.logger.warning(f"Method not allowed: {request.method} {request.url} from {request.remote_addr}")
        return jsonify({
            'error': 'Method Not Allowed',
            'message': f'The {request.method} method is not allowed for this endpoint',
            'status_code': 405
        }), 405

    @app.errorhandler(429)
    def rate_limited_error(error):
        app.logger.warning(f"Rate limit exceeded: {request.url} from {request.remote_addr}")
        return jsonify({
            'error': 'Too Many Requests',
            'message': str(getattr(error, 'description', 'Rate limit exceeded')),
            'status_code': 429
        }), 429

    @app.errorhandler(500)
    def internal_error(error):
        error_id = datetime.utcnow().strftime('%Y%m%d_%H%M%S_%f')
        app.logger.error(f"Internal Server Error [{error_id}]: {str(error)}")
        app.logger.error(f"Traceback [{error_id}]: {traceback.format_exc()}")
        app.logger.error(f"Request details [{error_id}]: {request.method} {request.url}")

        return jsonify({
            'error': 'Internal Server Error',
            'message': 'An unexpected error occurred',
            'error_id': error_id,
            'status_code': 500
        }), 500


def handle_run_error(operation, error, context=None):
    """Centralized error handling for detection and displacement runs"""
    logger = logging.getLogger('engine')
    error_id = datetime.utcnow().strftime('%Y%m%d_%H%M%S_%f')

    log_message = f"RUN ERROR [{error_id}] in {operation}: {str(error)}"
    if context:
        log_message += f" | Context: {context}"

    logger.error(log_message)
    logger.debug(f"RUN ERROR TRACEBACK [{error_id}]: {traceback.format_exc()}")

    return {
        'error_id': error_id,
        'operation': operation,
        'error_message': str(error),
        'context': context or {},
        'timestamp': datetime.utcnow().isoformat()
    }


class RunLogger:
    """Specialized logger for detection and displacement runs"""

    def __init__(self, name='engine'):
        self.logger = logging.getLogger(name)

    def run_started(self, operation, details=None):
        message = f"Started: {operation}"
        if details:
            message += f" | {details}"
        self.logger.info(message)

    def run_completed(self, operation, stats=None):
        message = f"Completed: {operation}"
        if stats:
            message += f" | Stats: {stats}"
        self.logger.info(message)

    def run_failed(self, operation, error, context=None):
        """Log a failure inside a run and return the error record"""
        return handle_run_error(operation, error, context)

    def run_warning(self, operation, message):
        self.logger.warning(f"{operation}: {message}")


# Global run logger instance
run_logger = RunLogger()
