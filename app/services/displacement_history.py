"""
Displacement history, analytics and alerts

Read side of the displacement audit trail plus alert acknowledgement.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from app.error_handlers.exceptions import (
    DatabaseException,
    InvalidStateTransitionException,
    ResourceNotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)


def _check_limit(limit, default_limit, max_limit):
    if limit is None:
        return default_limit
    if not 1 <= limit <= max_limit:
        raise ValidationException(
            f'limit must be between 1 and {max_limit}',
            details={'field': 'limit', 'value': limit}
        )
    return limit


def _check_range(start_date, end_date):
    if start_date and end_date and start_date > end_date:
        raise ValidationException('startDate must be on or before endDate')


class DisplacementHistory:
    """Queries over displacement logs and their detail rows"""

    def __init__(self, db_session, models, default_limit=100, max_limit=1000):
        self.db = db_session
        self.DisplacementLog = models['DisplacementLog']
        self.DisplacementDetail = models['DisplacementDetail']
        self.default_limit = default_limit
        self.max_limit = max_limit

    def _filtered_logs(self, employee_id=None, start_date: Optional[date] = None, end_date: Optional[date] = None):
        Log = self.DisplacementLog
        query = self.db.query(Log)
        if employee_id is not None:
            query = query.filter(Log.employee_id == employee_id)
        if start_date:
            query = query.filter(Log.created_at >= datetime.combine(start_date, datetime.min.time()))
        if end_date:
            query = query.filter(Log.created_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))
        return query

    def list_runs(self, employee_id=None, start_date=None, end_date=None, limit=None):
        """Newest displacement runs first"""
        _check_range(start_date, end_date)
        limit = _check_limit(limit, self.default_limit, self.max_limit)
        Log = self.DisplacementLog
        return self._filtered_logs(employee_id, start_date, end_date).order_by(
            Log.created_at.desc(), Log.id.desc()
        ).limit(limit).all()

    def get_run(self, log_id: int):
        log = self.db.get(self.DisplacementLog, log_id)
        if log is None:
            raise ResourceNotFoundException(
                f'Displacement log {log_id} not found',
                details={'log_id': log_id}
            )
        return log

    def analytics(self, start_date=None, end_date=None) -> Dict[str, Any]:
        """
        Aggregate displacement activity

        Returns:
            dict with run counts, decisions per rule, average jobs per run,
            the most displaced jobs and the employees with most runs
        """
        _check_range(start_date, end_date)
        Log = self.DisplacementLog
        Detail = self.DisplacementDetail

        runs = self._filtered_logs(start_date=start_date, end_date=end_date).all()
        run_ids = [run.id for run in runs]
        total_affected = sum(run.affected_jobs or 0 for run in runs)

        by_rule = {
            Detail.RULE_PUSH: 0,
            Detail.RULE_SUBSTITUTION: 0,
            Detail.RULE_NO_SUBSTITUTE: 0,
        }
        most_displaced = []
        if run_ids:
            for rule, count in self.db.query(Detail.rule_applied, func.count(Detail.id)).filter(
                Detail.log_id.in_(run_ids)
            ).group_by(Detail.rule_applied).all():
                by_rule[rule] = count

            most_displaced = [
                {'job_id': job_id, 'job_number': job_number, 'times_displaced': count}
                for job_id, job_number, count in self.db.query(
                    Detail.job_id, Detail.job_number, func.count(Detail.id)
                ).filter(
                    Detail.log_id.in_(run_ids)
                ).group_by(Detail.job_id, Detail.job_number).order_by(
                    func.count(Detail.id).desc(), Detail.job_id
                ).limit(10).all()
            ]

        by_employee: Dict[int, int] = {}
        for run in runs:
            by_employee[run.employee_id] = by_employee.get(run.employee_id, 0) + 1

        return {
            'date_range': {
                'start': start_date.isoformat() if start_date else None,
                'end': end_date.isoformat() if end_date else None,
            },
            'total_runs': len(runs),
            'completed_runs': sum(1 for run in runs if run.execution_status == Log.STATUS_COMPLETED),
            'undone_runs': sum(1 for run in runs if run.undone_at is not None),
            'total_jobs_affected': total_affected,
            'avg_jobs_per_run': round(total_affected / len(runs), 2) if runs else 0,
            'decisions_by_rule': by_rule,
            'most_displaced_jobs': most_displaced,
            'runs_by_employee': [
                {'employee_id': employee_id, 'runs': count}
                for employee_id, count in sorted(by_employee.items(), key=lambda item: (-item[1], item[0]))
            ],
            'pending_notifications': sum(
                1 for run in runs
                if run.execution_status == Log.STATUS_COMPLETED and not run.notification_sent
            ),
        }


class AlertService:
    """Listing and acknowledging system alerts"""

    def __init__(self, db_session, models, default_limit=100, max_limit=1000):
        self.db = db_session
        self.SystemAlert = models['SystemAlert']
        self.default_limit = default_limit
        self.max_limit = max_limit

    def list_alerts(self, acknowledged: Optional[bool] = None, severity: Optional[str] = None, limit=None):
        Alert = self.SystemAlert
        if severity is not None and severity not in Alert.VALID_SEVERITIES:
            raise ValidationException(
                f'Invalid severity: {severity}',
                details={'field': 'severity', 'allowed': Alert.VALID_SEVERITIES}
            )
        limit = _check_limit(limit, self.default_limit, self.max_limit)

        query = self.db.query(Alert)
        if acknowledged is not None:
            query = query.filter(Alert.acknowledged.is_(acknowledged))
        if severity is not None:
            query = query.filter(Alert.severity == severity)
        return query.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit).all()

    def acknowledge_alert(self, alert_id: int, acknowledged_by: Optional[str] = None):
        alert = self.db.get(self.SystemAlert, alert_id)
        if alert is None:
            raise ResourceNotFoundException(
                f'Alert {alert_id} not found',
                details={'alert_id': alert_id}
            )
        if alert.acknowledged:
            raise InvalidStateTransitionException(
                f'Alert {alert_id} is already acknowledged',
                details={'alert_id': alert_id, 'acknowledged_by': alert.acknowledged_by}
            )

        try:
            alert.acknowledged = True
            alert.acknowledged_by = acknowledged_by
            alert.acknowledged_at = datetime.utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to acknowledge alert {alert_id}: {e}")
            raise DatabaseException('Failed to acknowledge alert', details={'alert_id': alert_id})

        logger.info(f"Alert {alert_id} acknowledged by {acknowledged_by}")
        return alert
