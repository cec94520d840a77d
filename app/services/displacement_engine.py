"""
Displacement Engine

Reacts to an operator losing availability (time off, sickness) by walking
that operator's active slots in the absence window and applying exactly
one rule per slot:

- Rule A (in-progress push): a started slot moves to the return date at the
  same time of day; later steps of the job are flagged for rescheduling.
  This overrides the firm-zone protection.
- Rule B (operator substitution): a qualified operator whose own slot covers
  the affected window, on a job at most 85% as important, takes over; their
  slot is deleted and its step flagged for rescheduling.
- Rule C (no substitute): the slot and any downstream slots of the job are
  deleted and the step plus every later step is flagged for rescheduling.

Each decision is committed together with its DisplacementDetail row and
alerts. A slot whose processing fails falls back to Rule C. Runs for the
same employee are serialized; a finished run publishes one
"rescheduling required" notification.

find_displacement_opportunities() and impact() answer the reverse question
for planners: which lower-priority work a job could take over. They only read.
"""
import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import and_, exists
from sqlalchemy.exc import SQLAlchemyError

from app.error_handlers.exceptions import (
    DatabaseException,
    ResourceNotFoundException,
    ValidationException,
)
from app.error_handlers.logging import run_logger
from app.services.priority import (
    SubstituteCandidate,
    can_displace,
    in_firm_zone,
    is_high_priority,
    meets_substitution_threshold,
    opportunity_order_key,
    order_for_displacement,
    pick_substitute,
)
from app.services.reschedule_notifier import RescheduleNotifier, mark_sent

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_HOURS = 8.0
# Rough rescheduling delay per displaced job
ESTIMATED_DELAY_DAYS_PER_JOB = 0.5


# One lock per employee id, shared by every engine instance in the process
_employee_locks: Dict[int, threading.Lock] = {}
_locks_guard = threading.Lock()


def employee_lock(employee_id: int) -> threading.Lock:
    """Lock serializing displacement work for one employee"""
    with _locks_guard:
        lock = _employee_locks.get(employee_id)
        if lock is None:
            lock = threading.Lock()
            _employee_locks[employee_id] = lock
        return lock


@dataclass
class _SlotOutcome:
    rule: str
    job_id: int
    job_number: str
    priority_score: float
    reschedule_jobs: List[Dict[str, Any]] = field(default_factory=list)
    firm_zone_override: bool = False


@dataclass
class DisplacementResult:
    """Outcome of one displacement run"""
    log_id: int
    employee_id: int
    return_date: date
    slots_affected: int = 0
    jobs_pushed: int = 0
    jobs_substituted: int = 0
    jobs_needing_reschedule: int = 0
    reschedule_jobs: Dict[int, Dict[str, Any]] = field(default_factory=dict)
    firm_zone_overrides: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    skipped_slots: List[int] = field(default_factory=list)
    notification_sent: bool = False
    affected_job_ids: Set[int] = field(default_factory=set)

    @property
    def jobs_affected(self) -> int:
        """Distinct jobs touched by the run; slots_affected counts decisions"""
        return len(self.affected_job_ids)

    def record(self, outcome: _SlotOutcome):
        self.slots_affected += 1
        self.affected_job_ids.add(outcome.job_id)
        if outcome.rule == 'in_progress_push':
            self.jobs_pushed += 1
        elif outcome.rule == 'operator_substitution':
            self.jobs_substituted += 1
        else:
            self.jobs_needing_reschedule += 1
        for job in outcome.reschedule_jobs:
            self.reschedule_jobs[job['job_id']] = job
        if outcome.firm_zone_override:
            self.firm_zone_overrides.append(outcome.job_number)

    def reschedule_list(self) -> List[Dict[str, Any]]:
        return sorted(self.reschedule_jobs.values(), key=lambda j: (-j['priority_score'], j['job_id']))

    def to_dict(self):
        return {
            'displacement_log_id': self.log_id,
            'employee_id': self.employee_id,
            'return_date': self.return_date.isoformat(),
            'jobs_affected': self.jobs_affected,
            'slots_affected': self.slots_affected,
            'jobs_pushed': self.jobs_pushed,
            'jobs_substituted': self.jobs_substituted,
            'jobs_needing_reschedule': self.jobs_needing_reschedule,
            'jobs_flagged_for_reschedule': self.reschedule_list(),
            'firm_zone_overrides': self.firm_zone_overrides,
            'errors': self.errors,
            'skipped_slots': self.skipped_slots,
            'notification_sent': self.notification_sent,
        }


def _append_note(existing: Optional[str], note: str) -> str:
    return f"{existing}\n{note}" if existing else note


def _job_entry(job) -> Dict[str, Any]:
    return {
        'job_id': job.id,
        'job_number': job.job_number,
        'priority_score': float(job.priority_score or 0),
    }


class DisplacementEngine:
    """
    Priority-based displacement for operator availability loss

    Usage:
        engine = DisplacementEngine(db.session, models, notifier=get_notifier())
        result = engine.handle_availability_loss(7, date(2025, 8, 12), date(2025, 8, 14), 'vacation')
    """

    ALERT_IN_PROGRESS_PUSHED = 'in_progress_job_pushed'
    ALERT_SUBSTITUTION = 'operator_substitution'
    ALERT_NO_SUBSTITUTE = 'high_priority_no_substitute'

    def __init__(self, db_session, models, notifier: Optional[RescheduleNotifier] = None,
                 high_priority_threshold=700, substitution_ratio='0.85', firm_zone_days=14, today=None):
        self.db = db_session
        self.ScheduleSlot = models['ScheduleSlot']
        self.Job = models['Job']
        self.JobRouting = models['JobRouting']
        self.Employee = models['Employee']
        self.OperatorMachineQualification = models['OperatorMachineQualification']
        self.EmployeeAvailabilityException = models['EmployeeAvailabilityException']
        self.DisplacementLog = models['DisplacementLog']
        self.DisplacementDetail = models['DisplacementDetail']
        self.SystemAlert = models['SystemAlert']
        self.notifier = notifier
        self.high_priority_threshold = high_priority_threshold
        self.substitution_ratio = substitution_ratio
        self.firm_zone_days = firm_zone_days
        self._today = today

    @classmethod
    def from_config(cls, db_session, models, config, notifier=None):
        return cls(
            db_session, models,
            notifier=notifier,
            high_priority_threshold=config.get('HIGH_PRIORITY_THRESHOLD', 700),
            substitution_ratio=config.get('SUBSTITUTION_PRIORITY_RATIO', '0.85'),
            firm_zone_days=config.get('FIRM_ZONE_DAYS', 14),
        )

    @property
    def today(self) -> date:
        return self._today or date.today()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def record_time_off(self, employee_id: int, start_date: date, end_date: date, reason: Optional[str] = None,
                        exception_type: str = 'vacation') -> DisplacementResult:
        """Store a full-day availability exception, then displace the affected work"""
        if exception_type not in self.EmployeeAvailabilityException.VALID_TYPES:
            raise ValidationException(
                f'Invalid exceptionType: {exception_type}',
                details={'allowed': self.EmployeeAvailabilityException.VALID_TYPES}
            )
        self._validate_request(employee_id, start_date, end_date)

        try:
            self.db.add(self.EmployeeAvailabilityException(
                employee_id=employee_id,
                start_date=start_date,
                end_date=end_date,
                exception_type=exception_type,
                reason=reason,
            ))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException('Failed to record time off', details={'reason': str(e)})

        return self.handle_availability_loss(employee_id, start_date, end_date, reason)

    def handle_availability_loss(self, employee_id: int, start_date: date, end_date: date,
                                 reason: Optional[str] = None, trigger_type: str = 'time_off') -> DisplacementResult:
        """
        Displace the employee's active work between start_date and end_date

        Args:
            employee_id: Operator who is unavailable
            start_date: First day of absence (inclusive)
            end_date: Last day of absence (inclusive)
            reason: Free-text reason stored on the log
            trigger_type: Kind of availability change

        Returns:
            DisplacementResult with the aggregate counts of the completed run
        """
        self._validate_request(employee_id, start_date, end_date)
        return_date = end_date + timedelta(days=1)

        with employee_lock(employee_id):
            log_id = self._open_log(employee_id, start_date, end_date, return_date, reason, trigger_type)
            result = DisplacementResult(log_id=log_id, employee_id=employee_id, return_date=return_date)
            run_logger.run_started(
                'displacement',
                f'log={log_id} employee={employee_id} {start_date} to {end_date}'
            )

            for slot_id in self._select_slot_ids(employee_id, start_date, end_date):
                self._process_slot(log_id, slot_id, employee_id, return_date, result)

            self._finalize(log_id, result, trigger_type)

        run_logger.run_completed('displacement', result.to_dict())
        return result

    def _validate_request(self, employee_id, start_date, end_date):
        if start_date is None or end_date is None:
            raise ValidationException('startDate and endDate are required')
        if start_date > end_date:
            raise ValidationException(
                'startDate must be on or before endDate',
                details={'start_date': start_date.isoformat(), 'end_date': end_date.isoformat()}
            )
        if self.db.get(self.Employee, employee_id) is None:
            raise ResourceNotFoundException(
                f'Employee {employee_id} not found',
                details={'employee_id': employee_id}
            )

    # ------------------------------------------------------------------
    # Read-only planning
    # ------------------------------------------------------------------

    def find_displacement_opportunities(self, job_id: int, required_start: Optional[datetime] = None,
                                        required_hours: float = DEFAULT_REQUIRED_HOURS) -> Dict[str, Any]:
        """
        Lower-priority scheduled work a job could take over, without changing anything

        Slots starting at or after required_start are walked lowest priority
        first. Each must pass can_displace(); the walk stops once the freed
        hours cover required_hours.

        Args:
            job_id: Job that needs machine time
            required_start: Earliest start the job needs (default: start of today)
            required_hours: Hours of machine time needed

        Returns:
            Dictionary with the accepted opportunities, the rejected slots and
            whether the freed hours are sufficient
        """
        if required_start is None:
            required_start = datetime.combine(self.today, time.min)
        if required_hours is None or required_hours <= 0:
            raise ValidationException(
                'requiredHours must be greater than 0',
                details={'required_hours': required_hours}
            )
        job = self.db.get(self.Job, job_id)
        if job is None:
            raise ResourceNotFoundException(f'Job {job_id} not found', details={'job_id': job_id})

        Slot = self.ScheduleSlot
        slots = self.db.query(Slot).join(self.Job, Slot.job_id == self.Job.id).filter(
            Slot.job_id != job.id,
            Slot.start_datetime >= required_start,
            Slot.status == Slot.STATUS_SCHEDULED,
            Slot.locked.is_(False),
            self.Job.priority_score < job.priority_score,
        ).all()

        opportunities = []
        rejected = []
        hours_available = 0.0
        for slot in sorted(slots, key=opportunity_order_key):
            allowed, reason = can_displace(job, slot.job, self.today, self.substitution_ratio, self.firm_zone_days)
            if not allowed:
                rejected.append({'slot_id': slot.id, 'job_id': slot.job_id,
                                 'job_number': slot.job.job_number, 'reason': reason})
                continue

            hours = slot.duration_minutes / 60
            opportunities.append({
                'slot_id': slot.id,
                'job_id': slot.job_id,
                'job_number': slot.job.job_number,
                'customer_name': slot.job.customer_name,
                'priority_score': float(slot.job.priority_score or 0),
                'promised_date': slot.job.promised_date.isoformat() if slot.job.promised_date else None,
                'machine_id': slot.machine_id,
                'machine_name': slot.machine.name if slot.machine else None,
                'employee_id': slot.employee_id,
                'start_datetime': slot.start_datetime.isoformat(),
                'end_datetime': slot.end_datetime.isoformat(),
                'hours_freed': round(hours, 2),
                'reason': reason,
            })
            hours_available += hours
            if hours_available >= required_hours:
                break

        return {
            'job': {
                'job_id': job.id,
                'job_number': job.job_number,
                'priority_score': float(job.priority_score or 0),
                'promised_date': job.promised_date.isoformat() if job.promised_date else None,
            },
            'required_start': required_start.isoformat(),
            'required_hours': required_hours,
            'total_hours_available': round(hours_available, 2),
            'sufficient': hours_available >= required_hours,
            'opportunities': opportunities,
            'rejected': rejected,
        }

    def impact(self, job_id: int, required_start: Optional[datetime] = None,
               required_hours: float = DEFAULT_REQUIRED_HOURS) -> Dict[str, Any]:
        """What-if summary of displacing work for job_id from required_start"""
        found = self.find_displacement_opportunities(job_id, required_start, required_hours)
        opportunities = found['opportunities']

        affected_jobs = {o['job_id'] for o in opportunities}
        return {
            'job_id': job_id,
            'can_displace': found['sufficient'],
            'jobs_affected': len(affected_jobs),
            'slots_affected': len(opportunities),
            'total_hours_freed': found['total_hours_available'],
            'required_hours': required_hours,
            'customers': sorted({o['customer_name'] for o in opportunities if o['customer_name']}),
            'machines': sorted({o['machine_name'] for o in opportunities if o['machine_name']}),
            'estimated_delay_days': math.ceil(len(affected_jobs) * ESTIMATED_DELAY_DAYS_PER_JOB),
        }

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    def _open_log(self, employee_id, start_date, end_date, return_date, reason, trigger_type) -> int:
        try:
            log = self.DisplacementLog(
                trigger_type=trigger_type,
                employee_id=employee_id,
                trigger_details={
                    'employee_id': employee_id,
                    'start_date': start_date.isoformat(),
                    'end_date': end_date.isoformat(),
                    'return_date': return_date.isoformat(),
                    'reason': reason,
                },
                execution_status=self.DisplacementLog.STATUS_PROCESSING,
            )
            self.db.add(log)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseException('Failed to open displacement log', details={'reason': str(e)})
        return log.id

    def _select_slot_ids(self, employee_id, start_date, end_date) -> List[int]:
        Slot = self.ScheduleSlot
        slots = self.db.query(Slot).join(self.Job, Slot.job_id == self.Job.id).filter(
            Slot.employee_id == employee_id,
            Slot.status.in_(Slot.ACTIVE_STATUSES),
            Slot.slot_date >= start_date,
            Slot.slot_date <= end_date,
        ).all()
        return [slot.id for slot in order_for_displacement(slots)]

    def _finalize(self, log_id: int, result: DisplacementResult, trigger_type: str):
        payload = {
            'trigger': trigger_type,
            'employee_id': result.employee_id,
            'displacement_log_id': log_id,
            'jobs_affected': result.jobs_affected,
            'jobs_needing_reschedule': result.reschedule_list(),
            'return_date': result.return_date.isoformat(),
        }
        try:
            log = self.db.get(self.DisplacementLog, log_id)
            log.affected_jobs = result.jobs_affected
            log.jobs_pushed = result.jobs_pushed
            log.jobs_substituted = result.jobs_substituted
            log.jobs_needing_reschedule = result.jobs_needing_reschedule
            log.execution_details = {
                'operator_return_date': result.return_date.isoformat(),
                'total_jobs_affected': result.jobs_affected,
                'total_slots_affected': result.slots_affected,
                'jobs_pushed_to_return': result.jobs_pushed,
                'jobs_with_substitutes': result.jobs_substituted,
                'jobs_needing_reschedule': result.jobs_needing_reschedule,
                'jobs_flagged_for_reschedule': result.reschedule_list(),
                'firm_zone_overrides': result.firm_zone_overrides,
                'skipped_slots': result.skipped_slots,
                'errors': result.errors,
            }
            log.notification_payload = payload
            log.execution_status = self.DisplacementLog.STATUS_COMPLETED
            log.completed_at = datetime.utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to finalize displacement log {log_id}: {e}", exc_info=True)
            raise DatabaseException('Failed to finalize displacement run', details={'log_id': log_id})

        self._publish(log, payload, result)

    def _publish(self, log, payload, result: DisplacementResult):
        if self.notifier is None:
            logger.warning(f"No reschedule notifier configured; log {log.id} left for the outbox sweep")
            return
        try:
            self.notifier.publish(payload)
        except Exception as e:
            # Left unsent; republish_pending_notifications() retries it
            logger.warning(f"Reschedule notification for log {log.id} failed: {e}")
            return
        try:
            mark_sent(log)
            self.db.commit()
        except SQLAlchemyError as e:
            # Published but not marked; the sweep may deliver it again
            self.db.rollback()
            logger.error(
                f"Failed to mark reschedule notification for log {payload['displacement_log_id']} as sent: {e}",
                exc_info=True
            )
            return
        result.notification_sent = True

    # ------------------------------------------------------------------
    # Per-slot processing
    # ------------------------------------------------------------------

    def _process_slot(self, log_id, slot_id, employee_id, return_date, result: DisplacementResult):
        slot = self.db.get(self.ScheduleSlot, slot_id)
        if slot is None or not slot.is_active or slot.employee_id != employee_id:
            # Removed or changed by an earlier decision in this run
            logger.info(f"Displacement log {log_id}: slot {slot_id} no longer affected, skipping")
            result.skipped_slots.append(slot_id)
            return

        try:
            if slot.status == self.ScheduleSlot.STATUS_IN_PROGRESS:
                outcome = self._apply_push(log_id, slot, return_date)
            else:
                candidate = self._find_substitute(slot)
                if candidate is not None:
                    outcome = self._apply_substitution(log_id, slot, candidate)
                else:
                    outcome = self._apply_no_substitute(log_id, slot)
            self.db.commit()
            result.record(outcome)
            return
        except Exception as e:
            self.db.rollback()
            error = run_logger.run_failed('displacement_slot', e, {'log_id': log_id, 'slot_id': slot_id})
            logger.error(f"Displacement log {log_id}: slot {slot_id} failed, falling back to no-substitute", exc_info=True)
            result.errors.append({'slot_id': slot_id, 'error': str(e), 'error_id': error['error_id']})
            failure = str(e)

        try:
            slot = self.db.get(self.ScheduleSlot, slot_id)
            if slot is None:
                return
            outcome = self._apply_no_substitute(log_id, slot, failure=failure)
            self.db.commit()
            result.record(outcome)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Displacement log {log_id}: fallback for slot {slot_id} failed", exc_info=True)
            result.errors.append({'slot_id': slot_id, 'error': str(e), 'fallback_failed': True})

    def _flag_routings(self, job_id, min_sequence, inclusive):
        """Mark routing steps at or after min_sequence as needs_rescheduling"""
        JobRouting = self.JobRouting
        sequence_filter = (
            JobRouting.sequence_order >= min_sequence if inclusive
            else JobRouting.sequence_order > min_sequence
        )
        routings = self.db.query(JobRouting).filter(
            JobRouting.job_id == job_id,
            sequence_filter,
            JobRouting.routing_status != JobRouting.STATUS_COMPLETED,
        ).order_by(JobRouting.sequence_order).all()

        previous = []
        for routing in routings:
            previous.append({'routing_id': routing.id, 'previous_status': routing.routing_status})
            routing.routing_status = JobRouting.STATUS_NEEDS_RESCHEDULING
        return previous

    def _alert(self, log_id, alert_type, severity, message, details):
        self.db.add(self.SystemAlert(
            alert_type=alert_type,
            severity=severity,
            message=message,
            details=details,
            displacement_log_id=log_id,
        ))

    def _detail(self, log_id, slot, original, rule, reason, original_state, **placement):
        return self.DisplacementDetail(
            log_id=log_id,
            job_id=slot.job_id,
            job_number=slot.job.job_number,
            slot_id=original['id'],
            routing_id=original['routing_id'],
            rule_applied=rule,
            priority_score=float(slot.job.priority_score or 0),
            original_start=datetime.fromisoformat(original['start_datetime']),
            original_end=datetime.fromisoformat(original['end_datetime']),
            original_employee_id=original['employee_id'],
            original_machine_id=original['machine_id'],
            original_state=original_state,
            displacement_reason=reason,
            **placement
        )

    def _apply_push(self, log_id, slot, return_date) -> _SlotOutcome:
        """Rule A: move a started slot to the return date"""
        job = slot.job
        original = slot.snapshot()
        new_start = datetime.combine(return_date, slot.start_datetime.time())
        new_end = new_start + (slot.end_datetime - slot.start_datetime)

        routing_state = self._flag_routings(job.id, slot.routing.sequence_order, inclusive=False)
        firm_zone = in_firm_zone(job.promised_date, self.today, self.firm_zone_days)

        slot.set_window(new_start, new_end)
        slot.notes = _append_note(slot.notes, f'Pushed to {return_date.isoformat()} due to operator absence')

        reason = f'In-progress operation pushed to operator return date {return_date.isoformat()}'
        if firm_zone:
            reason += ' (firm zone overridden)'
        self.db.add(self._detail(
            log_id, slot, original, self.DisplacementDetail.RULE_PUSH, reason,
            {'slot': original, 'routings': routing_state},
            new_start=new_start,
            new_end=new_end,
            new_employee_id=slot.employee_id,
        ))
        self._alert(
            log_id, self.ALERT_IN_PROGRESS_PUSHED, 'critical',
            f'In-progress job {job.job_number} pushed to {return_date.isoformat()} due to operator absence',
            {
                'job_id': job.id,
                'job_number': job.job_number,
                'slot_id': slot.id,
                'original_start': original['start_datetime'],
                'new_start': new_start.isoformat(),
                'return_date': return_date.isoformat(),
                'firm_zone_overridden': firm_zone,
                'downstream_operations_flagged': len(routing_state),
            }
        )
        self.db.flush()

        return _SlotOutcome(
            rule=self.DisplacementDetail.RULE_PUSH,
            job_id=job.id,
            job_number=job.job_number,
            priority_score=float(job.priority_score or 0),
            reschedule_jobs=[_job_entry(job)] if routing_state else [],
            firm_zone_override=firm_zone,
        )

    def _find_substitute(self, slot) -> Optional[SubstituteCandidate]:
        """
        Rule B search: qualified operator on a meaningfully lower-priority job covering the window

        The covering slot may start on an earlier day, e.g. an overnight run.
        """
        Slot = self.ScheduleSlot
        Job = self.Job
        Employee = self.Employee
        Qualification = self.OperatorMachineQualification
        Exception_ = self.EmployeeAvailabilityException

        day_off = exists().where(and_(
            Exception_.employee_id == Slot.employee_id,
            Exception_.start_date <= slot.slot_date,
            Exception_.end_date >= slot.slot_date,
            Exception_.start_time.is_(None),
        ))

        rows = self.db.query(Slot, Job, Employee, Qualification).join(
            Job, Slot.job_id == Job.id
        ).join(
            Employee, Slot.employee_id == Employee.id
        ).join(
            Qualification, and_(
                Qualification.employee_id == Slot.employee_id,
                Qualification.machine_id == slot.machine_id,
                Qualification.is_active.is_(True),
            )
        ).filter(
            Slot.id != slot.id,
            Slot.employee_id != slot.employee_id,
            Slot.job_id != slot.job_id,
            Slot.status == Slot.STATUS_SCHEDULED,
            Slot.locked.is_(False),
            Job.schedule_locked.is_(False),
            Employee.is_active.is_(True),
            Slot.start_datetime <= slot.start_datetime,
            Slot.end_datetime >= slot.end_datetime,
            ~day_off,
        ).all()

        affected_priority = slot.job.priority_score
        candidates = [
            SubstituteCandidate(
                slot_id=candidate_slot.id,
                employee_id=employee.id,
                employee_name=employee.name,
                job_id=job.id,
                job_number=job.job_number,
                routing_id=candidate_slot.routing_id,
                priority_score=float(job.priority_score or 0),
                proficiency_level=qualification.proficiency_level,
                preference_rank=qualification.preference_rank,
                start_datetime=candidate_slot.start_datetime,
            )
            for candidate_slot, job, employee, qualification in rows
            if meets_substitution_threshold(affected_priority, job.priority_score, self.substitution_ratio)
        ]
        return pick_substitute(candidates)

    def _apply_substitution(self, log_id, slot, candidate: SubstituteCandidate) -> _SlotOutcome:
        """Rule B: hand the slot to the substitute and drop the substitute's own slot"""
        job = slot.job
        absent_name = slot.employee.name if slot.employee else str(slot.employee_id)
        bumped = self.db.get(self.ScheduleSlot, candidate.slot_id)
        bumped_job = bumped.job
        bumped_snapshot = bumped.snapshot()

        original = slot.snapshot()
        routing_state = [{'routing_id': bumped.routing.id, 'previous_status': bumped.routing.routing_status}]
        bumped.routing.routing_status = self.JobRouting.STATUS_NEEDS_RESCHEDULING

        slot.employee_id = candidate.employee_id
        slot.notes = _append_note(
            slot.notes,
            f'Reassigned from {absent_name} to {candidate.employee_name} due to operator absence'
        )
        self.db.delete(bumped)

        reason = (
            f'Operator substitution: {candidate.employee_name} moved from job {candidate.job_number} '
            f'(priority {candidate.priority_score:g}) to job {job.job_number} (priority {float(job.priority_score or 0):g})'
        )
        self.db.add(self._detail(
            log_id, slot, original, self.DisplacementDetail.RULE_SUBSTITUTION, reason,
            {'slot': original, 'bumped_slot': bumped_snapshot, 'routings': routing_state},
            new_start=slot.start_datetime,
            new_end=slot.end_datetime,
            new_employee_id=candidate.employee_id,
            substitute_job_id=candidate.job_id,
            substitute_job_number=candidate.job_number,
            substitute_priority_score=candidate.priority_score,
        ))
        self._alert(
            log_id, self.ALERT_SUBSTITUTION, 'medium',
            f'{candidate.employee_name} reassigned from job {candidate.job_number} to higher-priority job {job.job_number}',
            {
                'high_priority_job': job.job_number,
                'high_priority_score': float(job.priority_score or 0),
                'displaced_job': candidate.job_number,
                'displaced_priority': candidate.priority_score,
                'substitute_operator': candidate.employee_name,
                'substitute_employee_id': candidate.employee_id,
                'absent_employee_id': original['employee_id'],
                'slot_id': slot.id,
                'bumped_slot_id': candidate.slot_id,
            }
        )
        self.db.flush()

        return _SlotOutcome(
            rule=self.DisplacementDetail.RULE_SUBSTITUTION,
            job_id=job.id,
            job_number=job.job_number,
            priority_score=float(job.priority_score or 0),
            reschedule_jobs=[_job_entry(bumped_job)],
        )

    def _apply_no_substitute(self, log_id, slot, failure: Optional[str] = None) -> _SlotOutcome:
        """Rule C: drop the slot and its downstream slots, flag the remaining steps"""
        Slot = self.ScheduleSlot
        job = slot.job
        sequence_order = slot.routing.sequence_order
        original = slot.snapshot()

        routing_state = self._flag_routings(job.id, sequence_order, inclusive=True)

        # Downstream slots that have not started; started work stays in place
        downstream = self.db.query(Slot).join(
            self.JobRouting, Slot.routing_id == self.JobRouting.id
        ).filter(
            Slot.job_id == job.id,
            Slot.id != slot.id,
            self.JobRouting.sequence_order > sequence_order,
            Slot.status.in_((Slot.STATUS_SCHEDULED, Slot.STATUS_CANCELLED)),
        ).order_by(Slot.id).all()
        cascade = [s.snapshot() for s in downstream]

        if failure:
            reason = f'Processing failed ({failure}); slot removed and flagged for rescheduling'
        else:
            reason = 'No qualified substitute available; slot removed and flagged for rescheduling'

        detail = self._detail(
            log_id, slot, original, self.DisplacementDetail.RULE_NO_SUBSTITUTE, reason,
            {'slot': original, 'cascade_slots': cascade, 'routings': routing_state},
        )
        for downstream_slot in downstream:
            self.db.delete(downstream_slot)
        self.db.delete(slot)
        self.db.add(detail)

        if is_high_priority(job.priority_score, self.high_priority_threshold):
            self._alert(
                log_id, self.ALERT_NO_SUBSTITUTE, 'high',
                f'High-priority job {job.job_number} lost its operator and needs rescheduling',
                {
                    'job_id': job.id,
                    'job_number': job.job_number,
                    'priority_score': float(job.priority_score or 0),
                    'slot_id': original['id'],
                    'original_start': original['start_datetime'],
                    'downstream_slots_removed': len(cascade),
                    'failure': failure,
                }
            )
        self.db.flush()

        return _SlotOutcome(
            rule=self.DisplacementDetail.RULE_NO_SUBSTITUTE,
            job_id=job.id,
            job_number=job.job_number,
            priority_score=float(job.priority_score or 0),
            reschedule_jobs=[_job_entry(job)],
        )
