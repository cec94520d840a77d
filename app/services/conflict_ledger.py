"""
Conflict Ledger

Persists detection runs with their conflicts and manages the resolution
lifecycle of each conflict:

    detected -> acknowledged -> resolving -> resolved
        any non-terminal status -> ignored

Every run is written as new rows; earlier runs are never updated, so a
conflict found again later is a new record.
"""
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from app.error_handlers.exceptions import (
    DatabaseException,
    InvalidStateTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from app.services.conflict_types import (
    ALLOWED_TRANSITIONS,
    CLOSED_STATUSES,
    ConflictSeverity,
    ConflictStatus,
    ConflictType,
    DetectionResult,
    SEVERITY_RANK,
    can_transition,
)

logger = logging.getLogger(__name__)


SUGGESTED_RESOLUTIONS = {
    ConflictType.MACHINE: [
        {'action': 'reschedule_later', 'description': 'Move the lower-priority job to the next free window on this machine'},
        {'action': 'reschedule_different_machine', 'description': 'Move one operation to another machine in the same group'},
        {'action': 'split_operation', 'description': 'Split the operation into smaller runs around the other job'},
    ],
    ConflictType.OPERATOR: [
        {'action': 'assign_different_operator', 'description': 'Assign a qualified operator who is free in this window'},
        {'action': 'reschedule_sequential', 'description': 'Run the two operations one after the other'},
        {'action': 'cross_train_operator', 'description': 'Qualify another operator on this machine'},
    ],
    ConflictType.SEQUENCE: [
        {'action': 'reorder_operations', 'description': 'Move the later step after the earlier step finishes'},
        {'action': 'expedite_prerequisite', 'description': 'Pull the earlier step forward'},
    ],
    ConflictType.CAPACITY: [
        {'action': 'distribute_workload', 'description': 'Move work to operators with spare hours that day'},
        {'action': 'reschedule_overtime', 'description': 'Move the excess work to the next working day'},
        {'action': 'extend_timeline', 'description': 'Extend the job timeline to spread the work'},
    ],
    ConflictType.SHIFT: [
        {'action': 'reschedule_within_shift', 'description': "Move the slot inside the operator's working hours"},
        {'action': 'assign_shift_operator', 'description': 'Assign an operator who works during this window'},
        {'action': 'approve_overtime', 'description': 'Approve overtime for the operator'},
    ],
}

DEFAULT_SUGGESTIONS = [
    {'action': 'manual_review', 'description': 'Review the conflict and resolve it manually'},
]


def suggest_resolutions(conflict_type) -> List[Dict[str, str]]:
    """Fixed resolution suggestions for a conflict type"""
    try:
        conflict_type = ConflictType(conflict_type)
    except ValueError:
        return [dict(s) for s in DEFAULT_SUGGESTIONS]
    return [dict(s) for s in SUGGESTED_RESOLUTIONS.get(conflict_type, DEFAULT_SUGGESTIONS)]


def _validate_choice(value, allowed, field_name):
    if value is not None and value not in allowed:
        raise ValidationException(
            f'Invalid {field_name}: {value}',
            details={'field': field_name, 'allowed': list(allowed)}
        )


def _day_key(value) -> str:
    # func.date() returns a string on SQLite and a date on PostgreSQL
    return value if isinstance(value, str) else value.isoformat()


class ConflictLedger:
    """
    Storage and lifecycle for detected conflicts

    Usage:
        ledger = ConflictLedger(db.session, models)
        run_id = ledger.record_run(result)
        ledger.update_status(conflict_id, 'acknowledged', resolved_by='planner')
    """

    def __init__(self, db_session, models, default_limit=100, max_limit=1000):
        self.db = db_session
        self.ConflictDetectionRun = models['ConflictDetectionRun']
        self.DetectedConflict = models['DetectedConflict']
        self.ConflictResolution = models['ConflictResolution']
        self.default_limit = default_limit
        self.max_limit = max_limit

    def record_run(self, result: DetectionResult, run_duration_ms: Optional[int] = None,
                   triggered_by: str = 'api') -> int:
        """
        Persist a detection run and all of its conflicts in one transaction

        Returns:
            The new run id
        """
        try:
            run = self.ConflictDetectionRun(
                detection_date=result.detected_at,
                date_range_start=result.start_date,
                date_range_end=result.end_date,
                job_filter=result.job_id,
                include_resolved=result.include_resolved,
                total_conflicts_found=len(result.conflicts),
                summary=result.summary,
                run_metadata=result.metadata,
                run_duration_ms=run_duration_ms,
                triggered_by=triggered_by,
            )
            self.db.add(run)
            self.db.flush()

            for conflict in result.conflicts:
                self.db.add(self.DetectedConflict(
                    detection_run_id=run.id,
                    conflict_type=conflict.conflict_type.value,
                    severity=conflict.severity.value,
                    fingerprint=conflict.fingerprint,
                    affected_job_ids=list(conflict.job_ids),
                    affected_employee_ids=list(conflict.employee_ids),
                    affected_machine_ids=list(conflict.machine_ids),
                    conflict_data=conflict.to_dict(),
                    suggested_resolutions=suggest_resolutions(conflict.conflict_type),
                    status=ConflictStatus.DETECTED.value,
                ))

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record detection run: {e}", exc_info=True)
            raise DatabaseException('Failed to record detection run', details={'reason': str(e)})

        logger.info(f"Recorded detection run {run.id} with {len(result.conflicts)} conflicts")
        return run.id

    def _severity_order(self):
        return case(
            *[(self.DetectedConflict.severity == name, rank) for name, rank in SEVERITY_RANK.items()],
            else_=len(SEVERITY_RANK) + 1
        )

    def list_conflicts(self, start_date: Optional[date] = None, end_date: Optional[date] = None,
                       severity: Optional[str] = None, status: Optional[str] = None,
                       conflict_type: Optional[str] = None, limit: Optional[int] = None):
        """
        Query recorded conflicts, most severe and newest first

        Raises:
            ValidationException: unknown filter value or limit out of range
        """
        _validate_choice(severity, [s.value for s in ConflictSeverity], 'severity')
        _validate_choice(status, ConflictStatus.values(), 'status')
        _validate_choice(conflict_type, [t.value for t in ConflictType], 'conflictType')
        if start_date and end_date and start_date > end_date:
            raise ValidationException('startDate must be on or before endDate')

        if limit is None:
            limit = self.default_limit
        if not 1 <= limit <= self.max_limit:
            raise ValidationException(
                f'limit must be between 1 and {self.max_limit}',
                details={'field': 'limit', 'value': limit}
            )

        DC = self.DetectedConflict
        query = self.db.query(DC)
        if start_date:
            query = query.filter(DC.created_at >= datetime.combine(start_date, datetime.min.time()))
        if end_date:
            query = query.filter(DC.created_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))
        if severity:
            query = query.filter(DC.severity == severity)
        if status:
            query = query.filter(DC.status == status)
        if conflict_type:
            query = query.filter(DC.conflict_type == conflict_type)

        return query.order_by(
            self._severity_order(),
            DC.created_at.desc(),
            DC.id.desc()
        ).limit(limit).all()

    def get_conflict(self, conflict_id: int):
        conflict = self.db.get(self.DetectedConflict, conflict_id)
        if conflict is None:
            raise ResourceNotFoundException(
                f'Conflict {conflict_id} not found',
                details={'conflict_id': conflict_id}
            )
        return conflict

    def update_status(self, conflict_id: int, status: str, resolution_action: Optional[str] = None,
                      resolution_notes: Optional[str] = None, resolved_by: Optional[str] = None):
        """
        Move a conflict along its lifecycle

        resolved_at is stamped only when the new status is resolved. Each
        update also appends a resolution attempt to the conflict's history.

        Raises:
            ValidationException: status is not a known value
            ResourceNotFoundException: no conflict with this id
            InvalidStateTransitionException: change not allowed from the current status
        """
        _validate_choice(status, ConflictStatus.values(), 'status')
        if status is None:
            raise ValidationException('status is required', details={'field': 'status'})

        conflict = self.get_conflict(conflict_id)
        if not can_transition(conflict.status, status):
            allowed = sorted(s.value for s in ALLOWED_TRANSITIONS[ConflictStatus(conflict.status)])
            raise InvalidStateTransitionException(
                f'Cannot change conflict {conflict_id} from {conflict.status} to {status}',
                details={'current_status': conflict.status, 'requested_status': status, 'allowed': allowed}
            )

        previous = conflict.status
        try:
            conflict.status = status
            if resolution_action is not None:
                conflict.resolution_action = resolution_action
            if resolution_notes is not None:
                conflict.resolution_notes = resolution_notes
            if resolved_by is not None:
                conflict.resolved_by = resolved_by
            if status == ConflictStatus.RESOLVED.value:
                conflict.resolved_at = datetime.utcnow()

            self.db.add(self.ConflictResolution(
                conflict_id=conflict.id,
                resolution_type=resolution_action or f'status_{status}',
                status_after=status,
                success=True,
                notes=resolution_notes,
                attempted_by=resolved_by,
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update conflict {conflict_id}: {e}", exc_info=True)
            raise DatabaseException('Failed to update conflict status', details={'conflict_id': conflict_id})

        logger.info(f"Conflict {conflict_id} status {previous} -> {status} by {resolved_by or 'unknown'}")
        return conflict

    def get_stats(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> Dict[str, Any]:
        """Daily trend, type and severity breakdown over a created_at range (default: last 30 days)"""
        end_date = end_date or date.today()
        start_date = start_date or end_date - timedelta(days=30)
        if start_date > end_date:
            raise ValidationException('startDate must be on or before endDate')

        DC = self.DetectedConflict
        range_filter = (
            DC.created_at >= datetime.combine(start_date, datetime.min.time()),
            DC.created_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()),
        )
        is_critical = func.sum(case((DC.severity == 'critical', 1), else_=0))
        is_resolved = func.sum(case((DC.status == 'resolved', 1), else_=0))
        day = func.date(DC.created_at)

        daily_rows = self.db.query(
            day.label('day'), func.count(DC.id), is_critical, is_resolved
        ).filter(*range_filter).group_by(day).order_by(day).all()

        type_rows = self.db.query(
            DC.conflict_type, func.count(DC.id), is_resolved
        ).filter(*range_filter).group_by(DC.conflict_type).all()

        severity_rows = self.db.query(
            DC.severity, func.count(DC.id)
        ).filter(*range_filter).group_by(DC.severity).all()

        status_rows = self.db.query(
            DC.status, func.count(DC.id)
        ).filter(*range_filter).group_by(DC.status).all()

        days = (end_date - start_date).days + 1
        total = sum(row[1] for row in type_rows)
        by_status = {s: 0 for s in ConflictStatus.values()}
        by_status.update({row[0]: row[1] for row in status_rows})
        resolved = by_status[ConflictStatus.RESOLVED.value]

        return {
            'date_range': {'start': start_date.isoformat(), 'end': end_date.isoformat()},
            'daily_trends': [
                {
                    'date': _day_key(row[0]),
                    'total_conflicts': row[1],
                    'critical_conflicts': int(row[2] or 0),
                    'resolved_conflicts': int(row[3] or 0),
                }
                for row in daily_rows
            ],
            'type_breakdown': sorted(
                [
                    {
                        'conflict_type': row[0],
                        'total': row[1],
                        'resolved': int(row[2] or 0),
                        'avg_per_day': round(row[1] / days, 2),
                    }
                    for row in type_rows
                ],
                key=lambda item: (-item['total'], item['conflict_type'])
            ),
            'severity_breakdown': {
                **{s.value: 0 for s in ConflictSeverity},
                **{row[0]: row[1] for row in severity_rows},
            },
            'overall_summary': {
                'total_conflicts': total,
                'by_status': by_status,
                'resolved_conflicts': resolved,
                'resolution_rate': round(resolved / total * 100, 1) if total else 0.0,
                'avg_conflicts_per_day': round(total / days, 2),
            },
        }

    def get_dashboard(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Open conflicts with their age, plus the most recent run"""
        now = now or datetime.utcnow()
        DC = self.DetectedConflict

        open_conflicts = self.db.query(DC).filter(
            DC.status.notin_(CLOSED_STATUSES)
        ).order_by(self._severity_order(), DC.created_at.desc(), DC.id.desc()).all()

        by_severity = {s.value: 0 for s in ConflictSeverity}
        by_type = defaultdict(int)
        by_age = {'new': 0, 'recent': 0, 'old': 0}
        items = []
        for conflict in open_conflicts:
            age = now - conflict.created_at
            if age < timedelta(hours=1):
                age_category = 'new'
            elif age < timedelta(hours=24):
                age_category = 'recent'
            else:
                age_category = 'old'
            by_severity[conflict.severity] += 1
            by_type[conflict.conflict_type] += 1
            by_age[age_category] += 1

            item = conflict.to_dict()
            item['age_category'] = age_category
            item['age_hours'] = round(age.total_seconds() / 3600, 1)
            items.append(item)

        latest_run = self.db.query(self.ConflictDetectionRun).order_by(
            self.ConflictDetectionRun.id.desc()
        ).first()

        return {
            'open_conflicts': items,
            'summary': {
                'total_open': len(items),
                'by_severity': by_severity,
                'by_type': dict(sorted(by_type.items())),
                'by_age': by_age,
            },
            'latest_run': latest_run.to_dict() if latest_run else None,
        }


def detect_and_record(db_session, models, app_config, start_date: Optional[date] = None,
                      end_date: Optional[date] = None, job_id: Optional[int] = None,
                      include_resolved: bool = False, triggered_by: str = 'api') -> Dict[str, Any]:
    """
    Run detection and persist the run

    Missing dates default to today .. today + DEFAULT_DETECTION_WINDOW_DAYS.

    Returns:
        The detection result dict plus detection_run_id and run_duration_ms
    """
    from app.services.conflict_detection import ConflictDetectionService

    start_date = start_date or date.today()
    end_date = end_date or start_date + timedelta(days=app_config.get('DEFAULT_DETECTION_WINDOW_DAYS', 30))

    started = datetime.utcnow()
    service = ConflictDetectionService.from_config(db_session, models, app_config)
    result = service.detect_all(start_date, end_date, job_id=job_id, include_resolved=include_resolved)
    run_duration_ms = int((datetime.utcnow() - started).total_seconds() * 1000)

    ledger = ConflictLedger(
        db_session, models,
        default_limit=app_config.get('CONFLICT_LIST_DEFAULT_LIMIT', 100),
        max_limit=app_config.get('CONFLICT_LIST_MAX_LIMIT', 1000),
    )
    run_id = ledger.record_run(result, run_duration_ms=run_duration_ms, triggered_by=triggered_by)

    response = result.to_dict()
    response['detection_run_id'] = run_id
    response['run_duration_ms'] = run_duration_ms
    return response
