"""
Displacement API
Time-off trigger, displacement planning, history, undo and system alerts
"""
import logging
from datetime import datetime, time

from flask import Blueprint, current_app, jsonify, request

from app.error_handlers import handle_errors
from app.extensions import db
from app.models import get_models
from app.services.displacement_engine import DEFAULT_REQUIRED_HOURS, DisplacementEngine
from app.services.displacement_history import AlertService, DisplacementHistory
from app.services.displacement_undo import DisplacementUndoService
from app.services.reschedule_notifier import get_notifier
from app.utils.validators import (
    get_json_body,
    validate_bool_param,
    validate_date_param,
    validate_float_param,
    validate_int_param,
    validate_required_fields,
)

logger = logging.getLogger(__name__)

displacement_bp = Blueprint('displacement', __name__, url_prefix='/api/displacement')


def _limits():
    return {
        'default_limit': current_app.config.get('CONFLICT_LIST_DEFAULT_LIMIT', 100),
        'max_limit': current_app.config.get('CONFLICT_LIST_MAX_LIMIT', 1000),
    }


@displacement_bp.route('/time-off', methods=['POST'])
@handle_errors
def time_off():
    """
    POST /api/displacement/time-off - Record time off and displace affected work

    Request Body (JSON):
        {
            "employeeId": 7,
            "startDate": "2025-08-12",
            "endDate": "2025-08-14",
            "reason": "Vacation",
            "exceptionType": "vacation"
        }

    Response (JSON):
        Run summary with displacement_log_id and per-rule counts
    """
    data = get_json_body(request)
    validate_required_fields(data, ['employeeId', 'startDate', 'endDate'])
    employee_id = validate_int_param(data.get('employeeId'), 'employeeId', required=True)
    start_date = validate_date_param(data.get('startDate'), 'startDate', required=True)
    end_date = validate_date_param(data.get('endDate'), 'endDate', required=True)

    engine = DisplacementEngine.from_config(db.session, get_models(), current_app.config, notifier=get_notifier())
    result = engine.record_time_off(
        employee_id,
        start_date,
        end_date,
        reason=data.get('reason'),
        exception_type=data.get('exceptionType') or 'vacation',
    )
    return jsonify({'success': True, **result.to_dict()}), 201


def _planning_params():
    start_date = validate_date_param(request.args.get('startDate'), 'startDate')
    required_hours = validate_float_param(request.args.get('requiredHours'), 'requiredHours')
    if required_hours is None:
        required_hours = DEFAULT_REQUIRED_HOURS
    required_start = datetime.combine(start_date, time.min) if start_date else None
    return required_start, required_hours


@displacement_bp.route('/opportunities/<int:job_id>', methods=['GET'])
@handle_errors
def opportunities(job_id):
    """
    GET /api/displacement/opportunities/<job_id> - Lower-priority work the job could take over

    Query Parameters:
        startDate: Earliest start, YYYY-MM-DD (default: today)
        requiredHours: Machine hours needed (default: 8)

    Nothing is changed; use this to plan before rescheduling.
    """
    required_start, required_hours = _planning_params()
    engine = DisplacementEngine.from_config(db.session, get_models(), current_app.config)
    found = engine.find_displacement_opportunities(job_id, required_start, required_hours)
    return jsonify({'success': True, 'job_id': job_id, **found}), 200


@displacement_bp.route('/impact/<int:job_id>', methods=['GET'])
@handle_errors
def impact(job_id):
    """GET /api/displacement/impact/<job_id> - What-if summary for displacing work"""
    required_start, required_hours = _planning_params()
    engine = DisplacementEngine.from_config(db.session, get_models(), current_app.config)
    summary = engine.impact(job_id, required_start=required_start, required_hours=required_hours)
    return jsonify({'success': True, **summary}), 200


@displacement_bp.route('/history', methods=['GET'])
@handle_errors
def history():
    employee_id = validate_int_param(request.args.get('employeeId'), 'employeeId')
    start_date = validate_date_param(request.args.get('startDate'), 'startDate')
    end_date = validate_date_param(request.args.get('endDate'), 'endDate')
    limit = validate_int_param(request.args.get('limit'), 'limit')

    runs = DisplacementHistory(db.session, get_models(), **_limits()).list_runs(
        employee_id=employee_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return jsonify({
        'runs': [run.to_dict() for run in runs],
        'count': len(runs),
    }), 200


@displacement_bp.route('/details/<int:log_id>', methods=['GET'])
@handle_errors
def details(log_id):
    log = DisplacementHistory(db.session, get_models(), **_limits()).get_run(log_id)
    result = log.to_dict(include_details=True)
    result['notification_payload'] = log.notification_payload
    return jsonify(result), 200


@displacement_bp.route('/analytics', methods=['GET'])
@handle_errors
def analytics():
    start_date = validate_date_param(request.args.get('startDate'), 'startDate')
    end_date = validate_date_param(request.args.get('endDate'), 'endDate')
    return jsonify(DisplacementHistory(db.session, get_models()).analytics(start_date, end_date)), 200


@displacement_bp.route('/undo/<int:log_id>', methods=['POST'])
@handle_errors
def undo(log_id):
    data = get_json_body(request)
    summary = DisplacementUndoService(db.session, get_models()).undo_run(log_id, undone_by=data.get('undone_by'))
    return jsonify({'success': True, **summary}), 200


@displacement_bp.route('/alerts', methods=['GET'])
@handle_errors
def list_alerts():
    acknowledged = validate_bool_param(request.args.get('acknowledged'), 'acknowledged')
    limit = validate_int_param(request.args.get('limit'), 'limit')

    alerts = AlertService(db.session, get_models(), **_limits()).list_alerts(
        acknowledged=acknowledged,
        severity=request.args.get('severity'),
        limit=limit,
    )
    return jsonify({
        'alerts': [alert.to_dict() for alert in alerts],
        'count': len(alerts),
    }), 200


@displacement_bp.route('/alerts/<int:alert_id>/acknowledge', methods=['POST'])
@handle_errors
def acknowledge_alert(alert_id):
    data = get_json_body(request)
    alert = AlertService(db.session, get_models()).acknowledge_alert(
        alert_id,
        acknowledged_by=data.get('acknowledged_by'),
    )
    return jsonify({'success': True, 'alert': alert.to_dict()}), 200
