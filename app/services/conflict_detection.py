"""
Conflict Detection Service

Scans active schedule slots (scheduled/in_progress) in a date range and
reports every way the schedule breaks its constraints. Detection is
read-only: the schedule is loaded once into a ScheduleSnapshot and six
detectors run over that snapshot in a fixed order.

1. Machine double-booking
2. Operator double-booking
3. Sequence violation
4. Capacity exceeded
5. Dependency conflicts (extension point, always empty)
6. Shift violation
"""
import logging
import time as time_module
from abc import ABC, abstractmethod
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.error_handlers.exceptions import ValidationException
from app.error_handlers.logging import run_logger
from app.services.conflict_types import (
    ConflictCandidate,
    ConflictSeverity,
    ConflictType,
    DetectionResult,
    CLOSED_STATUSES,
    capacity_severity,
    overlap_severity,
    sequence_severity,
)
from app.services.working_hours import WorkingHours, WorkingHoursError, WorkingHoursResolver, skipped_entry

logger = logging.getLogger(__name__)

ACTIVE_SLOT_STATUSES = ('scheduled', 'in_progress')


@dataclass(frozen=True)
class SlotView:
    """Read-only copy of an active slot and the names needed for reporting"""
    id: int
    job_id: int
    job_number: str
    priority_score: float
    routing_id: int
    sequence_order: int
    operation_name: str
    machine_id: int
    machine_name: str
    employee_id: Optional[int]
    employee_name: Optional[str]
    start: datetime
    end: datetime
    slot_date: date
    duration_minutes: int
    status: str

    def brief(self) -> Dict[str, Any]:
        return {
            'slot_id': self.id,
            'job_id': self.job_id,
            'job_number': self.job_number,
            'operation_name': self.operation_name,
            'machine_name': self.machine_name,
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'duration_minutes': self.duration_minutes,
        }


def overlap_minutes(first: SlotView, second: SlotView) -> float:
    """Length of the intersection of two windows, 0 when they do not intersect"""
    start = max(first.start, second.start)
    end = min(first.end, second.end)
    if end <= start:
        return 0.0
    return (end - start).total_seconds() / 60


def _unique(values) -> Tuple:
    return tuple(sorted(set(v for v in values if v is not None)))


@dataclass
class ScheduleSnapshot:
    """
    Everything one detection run reads, loaded in a single pass

    slots holds active slots whose windows touch the date range (so
    overlaps across the range boundary are seen). job_slots holds every
    active slot of each job found, for sequence checks.
    """
    start_date: date
    end_date: date
    slots: List[SlotView]
    job_slots: Dict[int, List[SlotView]]
    hours: WorkingHoursResolver
    job_id: Optional[int] = None

    def in_range(self, slot: SlotView) -> bool:
        return self.start_date <= slot.slot_date <= self.end_date

    def matches_job(self, *slots: SlotView) -> bool:
        if self.job_id is None:
            return True
        return any(slot.job_id == self.job_id for slot in slots)

    @classmethod
    def load(cls, db_session, models, start_date: date, end_date: date,
             job_id: Optional[int] = None, **hours_defaults) -> 'ScheduleSnapshot':
        ScheduleSlot = models['ScheduleSlot']

        window_start = datetime.combine(start_date, time.min)
        window_end = datetime.combine(end_date + timedelta(days=1), time.min)

        rows = _slot_query(db_session, models).filter(
            ScheduleSlot.start_datetime < window_end,
            ScheduleSlot.end_datetime > window_start,
        ).all()
        slots = [_to_view(*row) for row in rows]

        job_slots = defaultdict(list)
        job_ids = sorted(set(slot.job_id for slot in slots))
        if job_ids:
            for row in _slot_query(db_session, models).filter(ScheduleSlot.job_id.in_(job_ids)).all():
                view = _to_view(*row)
                job_slots[view.job_id].append(view)

        hours = WorkingHoursResolver.load(
            db_session, models,
            [slot.employee_id for slot in slots],
            start_date, end_date,
            **hours_defaults
        )
        return cls(start_date, end_date, slots, dict(job_slots), hours, job_id)


def _slot_query(db_session, models):
    ScheduleSlot = models['ScheduleSlot']
    Job = models['Job']
    JobRouting = models['JobRouting']
    Machine = models['Machine']
    Employee = models['Employee']

    return db_session.query(ScheduleSlot, Job, JobRouting, Machine, Employee).join(
        Job, ScheduleSlot.job_id == Job.id
    ).join(
        JobRouting, ScheduleSlot.routing_id == JobRouting.id
    ).join(
        Machine, ScheduleSlot.machine_id == Machine.id
    ).outerjoin(
        Employee, ScheduleSlot.employee_id == Employee.id
    ).filter(
        ScheduleSlot.status.in_(ACTIVE_SLOT_STATUSES)
    ).order_by(ScheduleSlot.id)


def _to_view(slot, job, routing, machine, employee) -> SlotView:
    return SlotView(
        id=slot.id,
        job_id=job.id,
        job_number=job.job_number,
        priority_score=job.priority_score or 0.0,
        routing_id=routing.id,
        sequence_order=routing.sequence_order,
        operation_name=routing.operation_name,
        machine_id=machine.id,
        machine_name=machine.name,
        employee_id=slot.employee_id,
        employee_name=employee.name if employee else None,
        start=slot.start_datetime,
        end=slot.end_datetime,
        slot_date=slot.slot_date,
        duration_minutes=slot.duration_minutes,
        status=slot.status,
    )


@dataclass
class DetectionReport:
    """Omissions collected while detectors run"""
    skipped: List[Dict[str, Any]] = field(default_factory=list)
    detector_errors: List[Dict[str, Any]] = field(default_factory=list)

    def skip(self, error: WorkingHoursError, detector: ConflictType):
        run_logger.run_warning(f'conflict_detection.{detector.value}', f'skipped {error}')
        entry = skipped_entry(error, detector.value)
        if entry not in self.skipped:
            self.skipped.append(entry)


class ConflictDetector(ABC):
    """One analyzer in the detection pipeline"""

    conflict_type: ConflictType

    @abstractmethod
    def detect(self, snapshot: ScheduleSnapshot, report: DetectionReport) -> List[ConflictCandidate]:
        """Return the conflicts of this detector's type found in the snapshot"""
        pass


class _DoubleBookingDetector(ConflictDetector):
    """Pairwise overlap check among active slots sharing a resource"""

    resource_attr: str

    def detect(self, snapshot, report):
        groups = defaultdict(list)
        for slot in snapshot.slots:
            key = getattr(slot, self.resource_attr)
            if key is not None:
                groups[key].append(slot)

        conflicts = []
        for key in sorted(groups):
            slots = sorted(groups[key], key=lambda s: (s.start, s.id))
            for index, first in enumerate(slots):
                for second in slots[index + 1:]:
                    # Sorted by start, so nothing later can overlap first either
                    if second.start >= first.end:
                        break
                    if not (snapshot.in_range(first) or snapshot.in_range(second)):
                        continue
                    if not snapshot.matches_job(first, second):
                        continue
                    conflicts.append(self._conflict(first, second, overlap_minutes(first, second)))
        return conflicts

    def _pair_details(self, first: SlotView, second: SlotView, minutes: float) -> Dict[str, Any]:
        return {
            'slot1_id': first.id,
            'slot2_id': second.id,
            'job1_id': first.job_id,
            'job1_number': first.job_number,
            'job2_id': second.job_id,
            'job2_number': second.job_number,
            'operation1': first.operation_name,
            'operation2': second.operation_name,
            'slot1_start': first.start.isoformat(),
            'slot1_end': first.end.isoformat(),
            'slot2_start': second.start.isoformat(),
            'slot2_end': second.end.isoformat(),
            'overlap_minutes': round(minutes, 2),
        }

    def _conflict(self, first, second, minutes) -> ConflictCandidate:
        raise NotImplementedError


class MachineDoubleBookingDetector(_DoubleBookingDetector):
    conflict_type = ConflictType.MACHINE
    resource_attr = 'machine_id'

    def _conflict(self, first, second, minutes):
        details = self._pair_details(first, second, minutes)
        details.update({
            'machine_id': first.machine_id,
            'machine_name': first.machine_name,
        })
        return ConflictCandidate(
            conflict_type=self.conflict_type,
            severity=overlap_severity(minutes),
            identity=(first.id, second.id) if first.id < second.id else (second.id, first.id),
            job_ids=_unique([first.job_id, second.job_id]),
            employee_ids=_unique([first.employee_id, second.employee_id]),
            machine_ids=(first.machine_id,),
            details=details,
            job_numbers=_unique([first.job_number, second.job_number]),
            operator_names=_unique([first.employee_name, second.employee_name]),
            machine_names=(first.machine_name,),
        )


class OperatorDoubleBookingDetector(_DoubleBookingDetector):
    conflict_type = ConflictType.OPERATOR
    resource_attr = 'employee_id'

    def _conflict(self, first, second, minutes):
        details = self._pair_details(first, second, minutes)
        details.update({
            'employee_id': first.employee_id,
            'operator_name': first.employee_name,
            'machine1_name': first.machine_name,
            'machine2_name': second.machine_name,
        })
        return ConflictCandidate(
            conflict_type=self.conflict_type,
            severity=overlap_severity(minutes),
            identity=(first.id, second.id) if first.id < second.id else (second.id, first.id),
            job_ids=_unique([first.job_id, second.job_id]),
            employee_ids=(first.employee_id,),
            machine_ids=_unique([first.machine_id, second.machine_id]),
            details=details,
            job_numbers=_unique([first.job_number, second.job_number]),
            operator_names=_unique([first.employee_name]),
            machine_names=_unique([first.machine_name, second.machine_name]),
        )


class SequenceViolationDetector(ConflictDetector):
    """A later routing step starting before an earlier step of the same job ends"""

    conflict_type = ConflictType.SEQUENCE

    def detect(self, snapshot, report):
        conflicts = []
        for job_id in sorted(snapshot.job_slots):
            if snapshot.job_id is not None and job_id != snapshot.job_id:
                continue
            slots = sorted(snapshot.job_slots[job_id], key=lambda s: (s.sequence_order, s.start, s.id))
            for earlier in slots:
                for later in slots:
                    if later.sequence_order <= earlier.sequence_order:
                        continue
                    if later.start >= earlier.end:
                        continue
                    if not (snapshot.in_range(earlier) or snapshot.in_range(later)):
                        continue
                    conflicts.append(self._conflict(earlier, later))
        return conflicts

    def _conflict(self, earlier: SlotView, later: SlotView) -> ConflictCandidate:
        gap = later.sequence_order - earlier.sequence_order
        return ConflictCandidate(
            conflict_type=self.conflict_type,
            severity=sequence_severity(gap),
            identity=(earlier.id, later.id),
            job_ids=(later.job_id,),
            employee_ids=_unique([earlier.employee_id, later.employee_id]),
            machine_ids=_unique([earlier.machine_id, later.machine_id]),
            details={
                'job_id': later.job_id,
                'job_number': later.job_number,
                'current_slot_id': later.id,
                'current_sequence': later.sequence_order,
                'current_operation': later.operation_name,
                'current_start': later.start.isoformat(),
                'current_end': later.end.isoformat(),
                'conflicting_slot_id': earlier.id,
                'conflicting_sequence': earlier.sequence_order,
                'conflicting_operation': earlier.operation_name,
                'conflicting_start': earlier.start.isoformat(),
                'conflicting_end': earlier.end.isoformat(),
                'sequence_gap': gap,
            },
            job_numbers=(later.job_number,),
            operator_names=_unique([earlier.employee_name, later.employee_name]),
            machine_names=_unique([earlier.machine_name, later.machine_name]),
        )


class CapacityDetector(ConflictDetector):
    """Operator days whose scheduled minutes exceed their working hours"""

    conflict_type = ConflictType.CAPACITY

    def detect(self, snapshot, report):
        groups = defaultdict(list)
        for slot in snapshot.slots:
            if slot.employee_id is not None and snapshot.in_range(slot):
                groups[(slot.employee_id, slot.slot_date)].append(slot)

        conflicts = []
        for employee_id, work_date in sorted(groups):
            day_slots = sorted(groups[(employee_id, work_date)], key=lambda s: (s.start, s.id))
            if not snapshot.matches_job(*day_slots):
                continue
            try:
                hours = snapshot.hours.resolve(employee_id, work_date)
            except WorkingHoursError as e:
                report.skip(e, self.conflict_type)
                continue

            scheduled = sum(slot.duration_minutes for slot in day_slots)
            capacity = hours.capacity_minutes
            if scheduled <= capacity:
                continue
            conflicts.append(self._conflict(employee_id, work_date, day_slots, scheduled, hours))
        return conflicts

    def _conflict(self, employee_id, work_date, day_slots, scheduled, hours: WorkingHours):
        capacity = hours.capacity_minutes
        return ConflictCandidate(
            conflict_type=self.conflict_type,
            severity=capacity_severity(scheduled, capacity),
            identity=(employee_id, work_date.isoformat()),
            job_ids=_unique(s.job_id for s in day_slots),
            employee_ids=(employee_id,),
            machine_ids=_unique(s.machine_id for s in day_slots),
            details={
                'employee_id': employee_id,
                'operator_name': day_slots[0].employee_name,
                'slot_date': work_date.isoformat(),
                'total_minutes_scheduled': scheduled,
                'daily_capacity_minutes': capacity,
                'overtime_minutes': scheduled - capacity,
                'utilization': round(scheduled / capacity, 3) if capacity else None,
                'is_working_day': hours.is_working_day,
                'scheduled_slots': [s.brief() for s in day_slots],
            },
            job_numbers=_unique(s.job_number for s in day_slots),
            operator_names=_unique([day_slots[0].employee_name]),
            machine_names=_unique(s.machine_name for s in day_slots),
        )


class DependencyDetector(ConflictDetector):
    """
    Material and setup prerequisite checks

    No prerequisite data is modelled yet, so this detector reports nothing.
    It stays in the pipeline so results always carry a dependency list.
    """

    conflict_type = ConflictType.DEPENDENCY

    def detect(self, snapshot, report):
        return []


NON_WORKING_DAY = 'Scheduled on non-working day'
STARTS_BEFORE_SHIFT = 'Starts before shift'
ENDS_AFTER_SHIFT = 'Ends after shift'
OUTSIDE_OVERNIGHT_SHIFT = 'Outside overnight shift hours'
OTHER_SHIFT_VIOLATION = 'Other shift violation'


def shift_violation(slot: SlotView, hours: WorkingHours) -> Optional[Tuple[ConflictSeverity, str]]:
    """
    Compare a slot with its operator's working hours on the slot date

    Returns (severity, reason) for a violation, None when the slot fits.
    """
    if not hours.is_working_day:
        return ConflictSeverity.CRITICAL, NON_WORKING_DAY

    if not hours.is_overnight:
        if slot.start < hours.window_start:
            return ConflictSeverity.HIGH, STARTS_BEFORE_SHIFT
        if slot.end > hours.window_end:
            return ConflictSeverity.HIGH, ENDS_AFTER_SHIFT
        return None

    start_of_day = slot.start.time()
    if not hours.contains_time(start_of_day):
        return ConflictSeverity.HIGH, OUTSIDE_OVERNIGHT_SHIFT

    # The slot starts inside the shift; it must also end by the end of that shift
    if start_of_day >= hours.start_time:
        shift_end = datetime.combine(slot.start.date() + timedelta(days=1), hours.end_time)
    else:
        shift_end = datetime.combine(slot.start.date(), hours.end_time)
    if slot.end > shift_end:
        return ConflictSeverity.MEDIUM, OTHER_SHIFT_VIOLATION
    return None


class ShiftViolationDetector(ConflictDetector):
    """Slots placed outside their operator's working hours"""

    conflict_type = ConflictType.SHIFT

    def detect(self, snapshot, report):
        conflicts = []
        slots = sorted(
            (s for s in snapshot.slots if s.employee_id is not None and snapshot.in_range(s)),
            key=lambda s: (s.start, s.id)
        )
        for slot in slots:
            if not snapshot.matches_job(slot):
                continue
            try:
                hours = snapshot.hours.resolve(slot.employee_id, slot.slot_date)
            except WorkingHoursError as e:
                report.skip(e, self.conflict_type)
                continue

            violation = shift_violation(slot, hours)
            if violation is None:
                continue
            severity, reason = violation
            details = {
                'slot_id': slot.id,
                'job_id': slot.job_id,
                'job_number': slot.job_number,
                'employee_id': slot.employee_id,
                'operator_name': slot.employee_name,
                'machine_id': slot.machine_id,
                'machine_name': slot.machine_name,
                'slot_start': slot.start.isoformat(),
                'slot_end': slot.end.isoformat(),
                'slot_date': slot.slot_date.isoformat(),
                'violation_reason': reason,
            }
            details.update(hours.to_dict())
            conflicts.append(ConflictCandidate(
                conflict_type=self.conflict_type,
                severity=severity,
                identity=(slot.id,),
                job_ids=(slot.job_id,),
                employee_ids=(slot.employee_id,),
                machine_ids=(slot.machine_id,),
                details=details,
                job_numbers=(slot.job_number,),
                operator_names=_unique([slot.employee_name]),
                machine_names=(slot.machine_name,),
            ))
        return conflicts


DETECTOR_PIPELINE = (
    MachineDoubleBookingDetector,
    OperatorDoubleBookingDetector,
    SequenceViolationDetector,
    CapacityDetector,
    DependencyDetector,
    ShiftViolationDetector,
)


def _frequency_table(counter: Counter) -> Dict[str, int]:
    return dict(sorted(counter.items(), key=lambda item: (-item[1], item[0])))


def build_summary(conflicts: Sequence[ConflictCandidate]) -> Dict[str, Any]:
    """Counts by type and severity plus most-affected jobs, operators and machines"""
    by_type = {conflict_type.result_key: 0 for conflict_type in ConflictType}
    by_severity = {severity.value: 0 for severity in ConflictSeverity}
    jobs, operators, machines = Counter(), Counter(), Counter()

    for conflict in conflicts:
        by_type[conflict.conflict_type.result_key] += 1
        by_severity[conflict.severity.value] += 1
        jobs.update(conflict.job_numbers)
        operators.update(conflict.operator_names)
        machines.update(conflict.machine_names)

    return {
        'total_conflicts': len(conflicts),
        'by_type': by_type,
        'by_severity': by_severity,
        'most_affected_jobs': _frequency_table(jobs),
        'most_affected_operators': _frequency_table(operators),
        'most_affected_machines': _frequency_table(machines),
    }


class ConflictDetectionService:
    """
    Runs the detector pipeline over one snapshot of the schedule

    Usage:
        service = ConflictDetectionService(db.session, models)
        result = service.detect_all(date(2025, 8, 1), date(2025, 8, 31))
    """

    def __init__(self, db_session, models, default_shift_start='06:00', default_shift_end='18:00',
                 default_working_days=(1, 2, 3, 4, 5), detectors=None):
        self.db = db_session
        self.models = models
        self.DetectedConflict = models['DetectedConflict']
        self.hours_defaults = {
            'default_start': default_shift_start,
            'default_end': default_shift_end,
            'default_working_days': tuple(default_working_days),
        }
        self.detectors = [cls() for cls in (detectors or DETECTOR_PIPELINE)]

    @classmethod
    def from_config(cls, db_session, models, config):
        return cls(
            db_session, models,
            default_shift_start=config.get('DEFAULT_SHIFT_START', '06:00'),
            default_shift_end=config.get('DEFAULT_SHIFT_END', '18:00'),
            default_working_days=config.get('DEFAULT_WORKING_DAYS', (1, 2, 3, 4, 5)),
        )

    def detect_all(self, start_date: date, end_date: date, job_id: Optional[int] = None,
                   include_resolved: bool = False) -> DetectionResult:
        """
        Run every detector over [start_date, end_date]

        Args:
            start_date: First slot date scanned (inclusive)
            end_date: Last slot date scanned (inclusive)
            job_id: Only report conflicts involving this job
            include_resolved: Also report conflicts users already marked
                resolved or ignored in an earlier run

        Returns:
            DetectionResult with conflicts in pipeline order
        """
        if start_date > end_date:
            raise ValidationException(
                'startDate must be on or before endDate',
                details={'start_date': start_date.isoformat(), 'end_date': end_date.isoformat()}
            )

        started = time_module.monotonic()
        detected_at = datetime.utcnow()
        snapshot = ScheduleSnapshot.load(
            self.db, self.models, start_date, end_date, job_id, **self.hours_defaults
        )
        report = DetectionReport()

        conflicts: List[ConflictCandidate] = []
        for detector in self.detectors:
            try:
                conflicts.extend(detector.detect(snapshot, report))
            except Exception as e:
                error = run_logger.run_failed(f'conflict_detection.{detector.conflict_type.value}', e)
                report.detector_errors.append({
                    'detector': detector.conflict_type.value,
                    'error': str(e),
                    'error_id': error['error_id'],
                })

        suppressed = 0
        if not include_resolved:
            conflicts, suppressed = self._suppress_closed(conflicts)

        metadata = {
            'slots_scanned': sum(1 for s in snapshot.slots if snapshot.in_range(s)),
            'skipped': report.skipped,
            'detector_errors': report.detector_errors,
            'suppressed_closed_conflicts': suppressed,
        }
        result = DetectionResult(
            start_date=start_date,
            end_date=end_date,
            detected_at=detected_at,
            conflicts=conflicts,
            summary=build_summary(conflicts),
            metadata=metadata,
            job_id=job_id,
            include_resolved=include_resolved,
        )

        elapsed_ms = int((time_module.monotonic() - started) * 1000)
        logger.info(
            f"Conflict detection {start_date} to {end_date}: {len(conflicts)} conflicts, "
            f"{len(report.skipped)} skipped, {suppressed} suppressed in {elapsed_ms}ms"
        )
        return result

    def _suppress_closed(self, conflicts: List[ConflictCandidate]):
        """Drop conflicts whose fingerprint a user already resolved or ignored"""
        if not conflicts:
            return conflicts, 0

        fingerprints = {c.fingerprint for c in conflicts}
        closed = {
            row[0] for row in self.db.query(self.DetectedConflict.fingerprint).filter(
                self.DetectedConflict.fingerprint.in_(fingerprints),
                self.DetectedConflict.status.in_(CLOSED_STATUSES)
            ).distinct().all()
        }
        if not closed:
            return conflicts, 0

        kept = [c for c in conflicts if c.fingerprint not in closed]
        return kept, len(conflicts) - len(kept)
