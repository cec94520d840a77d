"""
Error handling decorators

Turns the AppException hierarchy into JSON responses for API endpoints.
"""
from functools import wraps
from flask import jsonify, current_app, request
from datetime import datetime
from .exceptions import AppException


def _rollback():
    sqlalchemy = current_app.extensions.get('sqlalchemy')
    if sqlalchemy is not None:
        sqlalchemy.session.rollback()


def handle_errors(f):
    """
    Error handler decorator for API endpoints

    AppException subclasses become their own status code and JSON body.
    Anything else rolls back the session, is logged with an error id and
    returns a generic 500 so internals are not exposed.

    Usage:
        @conflicts_bp.route('/<int:conflict_id>')
        @handle_errors
        def get_conflict(conflict_id):
            raise ResourceNotFoundException('Conflict not found')
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except AppException as e:
            current_app.logger.warning(
                f"{e.error_type} on {request.method} {request.path}: {e.message}",
                extra={'details': e.details} if e.details else {}
            )
            return jsonify(e.to_dict()), e.status_code

        except Exception as e:
            error_id = datetime.utcnow().strftime('%Y%m%d_%H%M%S_%f')
            _rollback()

            current_app.logger.error(
                f"Unexpected error [{error_id}] in {f.__name__} ({request.method} {request.path}): {str(e)}",
                exc_info=True
            )

            return jsonify({
                'error': 'InternalError',
                'message': 'An unexpected error occurred',
                'error_id': error_id,
                'status_code': 500
            }), 500

    return decorated
