"""
Health Check and Monitoring Endpoints
Provides endpoints for application health monitoring, readiness checks, and metrics.
"""
from flask import Blueprint, jsonify, current_app
from datetime import datetime
from sqlalchemy import text
import sys
import psutil
import os

from app.extensions import db

health_bp = Blueprint('health', __name__, url_prefix='/health')


@health_bp.route('/ping', methods=['GET'])
def ping():
    """
    Simple ping endpoint for basic connectivity checks.
    Returns: 200 OK with pong message
    """
    return jsonify({
        'status': 'ok',
        'message': 'pong',
        'timestamp': datetime.utcnow().isoformat()
    }), 200


@health_bp.route('/live', methods=['GET'])
def liveness():
    """
    Liveness check - checks if application is running.
    Used by orchestrators (Kubernetes, Docker) to determine if container should be restarted.
    """
    return jsonify({
        'status': 'alive',
        'timestamp': datetime.utcnow().isoformat()
    }), 200


@health_bp.route('/ready', methods=['GET'])
def readiness():
    """
    Readiness check - checks if application is ready to serve traffic.

    Returns:
        200: Database reachable
        503: Application is not ready
    """
    checks = {'database': False}
    errors = []

    try:
        db.session.execute(text('SELECT 1'))
        checks['database'] = True
    except Exception as e:
        errors.append(f"Database: {str(e)}")

    all_checks_passed = all(checks.values())
    response = {
        'status': 'ready' if all_checks_passed else 'not_ready',
        'checks': checks,
        'timestamp': datetime.utcnow().isoformat()
    }
    if errors:
        response['errors'] = errors

    return jsonify(response), 200 if all_checks_passed else 503


@health_bp.route('/status', methods=['GET'])
def status():
    """
    Detailed application status and metrics.
    Provides information about application health, system resources, and configuration.
    """
    try:
        process = psutil.Process()
        memory_info = process.memory_info()
        cpu_percent = process.cpu_percent(interval=0.1)
        disk_usage = psutil.disk_usage('/')

        status_info = {
            'status': 'operational',
            'timestamp': datetime.utcnow().isoformat(),
            'application': {
                'name': 'CNC Schedule Engine',
                'version': current_app.config.get('APP_VERSION', '1.0.0'),
                'environment': current_app.config.get('ENV_NAME', 'unknown'),
                'debug': current_app.debug,
            },
            'system': {
                'python_version': sys.version,
                'platform': sys.platform,
                'process_id': os.getpid(),
            },
            'resources': {
                'memory': {
                    'used_mb': round(memory_info.rss / 1024 / 1024, 2),
                    'percent': round(process.memory_percent(), 2),
                },
                'cpu': {
                    'percent': round(cpu_percent, 2),
                },
                'disk': {
                    'total_gb': round(disk_usage.total / 1024 / 1024 / 1024, 2),
                    'free_gb': round(disk_usage.free / 1024 / 1024 / 1024, 2),
                    'percent': disk_usage.percent,
                }
            },
            'database': {
                'type': 'sqlite' if 'sqlite' in current_app.config.get('SQLALCHEMY_DATABASE_URI', '') else 'postgresql',
            },
            'background': {
                'scheduled_detection': current_app.config.get('SCHEDULED_DETECTION_ENABLED', False),
                'notification_sweep': current_app.config.get('NOTIFICATION_SWEEP_ENABLED', False),
                'reschedule_notifier': current_app.config.get('RESCHEDULE_NOTIFIER'),
            },
        }

        return jsonify(status_info), 200

    except Exception as e:
        return jsonify({
            'status': 'error',
            'error': str(e),
            'timestamp': datetime.utcnow().isoformat()
        }), 500


@health_bp.route('/metrics', methods=['GET'])
def metrics():
    """
    Scheduling metrics in Prometheus text format.

    Returns:
        200: Open conflicts, undelivered notifications and unacknowledged alerts
    """
    from app.models import get_models

    try:
        models = get_models()
        DetectedConflict = models['DetectedConflict']
        DisplacementLog = models['DisplacementLog']
        SystemAlert = models['SystemAlert']

        metrics_data = []

        for severity, count in db.session.query(
            DetectedConflict.severity, db.func.count(DetectedConflict.id)
        ).filter(
            DetectedConflict.status.notin_(('resolved', 'ignored'))
        ).group_by(DetectedConflict.severity).all():
            metrics_data.append(f'cnc_open_conflicts{{severity="{severity}"}} {count}')

        pending = db.session.query(DisplacementLog).filter(
            DisplacementLog.execution_status == DisplacementLog.STATUS_COMPLETED,
            DisplacementLog.notification_sent.is_(False)
        ).count()
        metrics_data.append(f'cnc_pending_reschedule_notifications {pending}')

        unacknowledged = db.session.query(SystemAlert).filter(SystemAlert.acknowledged.is_(False)).count()
        metrics_data.append(f'cnc_unacknowledged_alerts {unacknowledged}')

        process = psutil.Process()
        metrics_data.append(f'cnc_memory_bytes {process.memory_info().rss}')

        return '\n'.join(metrics_data) + '\n', 200, {'Content-Type': 'text/plain; charset=utf-8'}

    except Exception as e:
        return f'# Error: {str(e)}\n', 500, {'Content-Type': 'text/plain; charset=utf-8'}
