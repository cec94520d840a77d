"""
Conflict detection API
On-demand detection, conflict queries and the resolution lifecycle
"""
import logging

from flask import Blueprint, current_app, jsonify, request

from app.error_handlers import handle_errors
from app.extensions import db
from app.models import get_models
from app.services.conflict_ledger import ConflictLedger, detect_and_record, suggest_resolutions
from app.utils.validators import (
    get_json_body,
    validate_bool_param,
    validate_date_param,
    validate_date_range,
    validate_int_param,
)

logger = logging.getLogger(__name__)

conflicts_bp = Blueprint('conflicts', __name__, url_prefix='/api/conflicts')


def _ledger():
    return ConflictLedger(
        db.session, get_models(),
        default_limit=current_app.config.get('CONFLICT_LIST_DEFAULT_LIMIT', 100),
        max_limit=current_app.config.get('CONFLICT_LIST_MAX_LIMIT', 1000),
    )


@conflicts_bp.route('/detect', methods=['POST'])
@handle_errors
def detect_conflicts():
    """
    POST /api/conflicts/detect - Run all detectors and record the run

    Request Body (JSON, all optional):
        {
            "startDate": "2025-08-01",
            "endDate": "2025-08-31",
            "jobId": 12,
            "includeResolved": false
        }
    """
    data = get_json_body(request)
    start_date = validate_date_param(data.get('startDate'), 'startDate')
    end_date = validate_date_param(data.get('endDate'), 'endDate')
    validate_date_range(start_date, end_date)
    job_id = validate_int_param(data.get('jobId'), 'jobId')
    include_resolved = validate_bool_param(data.get('includeResolved'), 'includeResolved') or False

    result = detect_and_record(
        db.session, get_models(), current_app.config,
        start_date=start_date,
        end_date=end_date,
        job_id=job_id,
        include_resolved=include_resolved,
        triggered_by='api',
    )
    return jsonify(result), 200


@conflicts_bp.route('', methods=['GET'])
@handle_errors
def list_conflicts():
    """GET /api/conflicts - Recorded conflicts, most severe first"""
    start_date = validate_date_param(request.args.get('startDate'), 'startDate')
    end_date = validate_date_param(request.args.get('endDate'), 'endDate')
    limit = validate_int_param(request.args.get('limit'), 'limit')

    conflicts = _ledger().list_conflicts(
        start_date=start_date,
        end_date=end_date,
        severity=request.args.get('severity'),
        status=request.args.get('status'),
        conflict_type=request.args.get('conflictType'),
        limit=limit,
    )
    return jsonify({
        'conflicts': [c.to_dict() for c in conflicts],
        'count': len(conflicts),
    }), 200


@conflicts_bp.route('/<int:conflict_id>', methods=['GET'])
@handle_errors
def get_conflict(conflict_id):
    conflict = _ledger().get_conflict(conflict_id)
    return jsonify(conflict.to_dict(include_attempts=True)), 200


@conflicts_bp.route('/<int:conflict_id>/status', methods=['PUT'])
@handle_errors
def update_conflict_status(conflict_id):
    """
    PUT /api/conflicts/<id>/status - Move a conflict through its lifecycle

    Request Body (JSON):
        {
            "status": "acknowledged",
            "resolution_action": "reschedule_later",
            "resolution_notes": "Moved job 2 to Thursday",
            "resolved_by": "planner1"
        }
    """
    data = get_json_body(request)
    conflict = _ledger().update_status(
        conflict_id,
        data.get('status'),
        resolution_action=data.get('resolution_action'),
        resolution_notes=data.get('resolution_notes'),
        resolved_by=data.get('resolved_by'),
    )
    return jsonify({
        'success': True,
        'conflict': conflict.to_dict(include_attempts=True),
    }), 200


@conflicts_bp.route('/dashboard', methods=['GET'])
@handle_errors
def dashboard():
    return jsonify(_ledger().get_dashboard()), 200


@conflicts_bp.route('/stats/overview', methods=['GET'])
@handle_errors
def stats_overview():
    start_date = validate_date_param(request.args.get('startDate'), 'startDate')
    end_date = validate_date_param(request.args.get('endDate'), 'endDate')
    return jsonify(_ledger().get_stats(start_date, end_date)), 200


@conflicts_bp.route('/suggestions/<conflict_type>', methods=['GET'])
@handle_errors
def suggestions(conflict_type):
    return jsonify({
        'conflict_type': conflict_type,
        'suggestions': suggest_resolutions(conflict_type),
    }), 200
