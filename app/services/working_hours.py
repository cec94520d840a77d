"""
Working-hours resolution for operators

Resolves the effective shift window of an employee on a date. Used by the
capacity and shift-violation detectors. Resolution order:

1. An availability exception covering the date without explicit times
   makes the day non-working.
2. An availability exception covering the date with explicit start/end
   times replaces the weekly schedule with that window.
3. The employee's weekly schedule row for the ISO weekday.
4. The configured default shift (06:00-18:00, Monday-Friday).

A window whose start equals its end is treated as a malformed record and
raises WorkingHoursError; callers skip that employee/date.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)

SOURCE_EXCEPTION = 'availability_exception'
SOURCE_WEEKLY = 'weekly_schedule'
SOURCE_DEFAULT = 'default_shift'


class WorkingHoursError(ValueError):
    """Raised when an employee's working-hours record cannot be used"""

    def __init__(self, employee_id: int, work_date: date, reason: str):
        super().__init__(f"Employee {employee_id} on {work_date.isoformat()}: {reason}")
        self.employee_id = employee_id
        self.work_date = work_date
        self.reason = reason


def parse_time(value) -> time:
    """Accept a time or an 'HH:MM' string"""
    if isinstance(value, time):
        return value
    return datetime.strptime(value, '%H:%M').time()


@dataclass(frozen=True)
class WorkingHours:
    """Effective working window of one employee on one date"""
    work_date: date
    is_working_day: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    source: str = SOURCE_WEEKLY

    @property
    def is_overnight(self) -> bool:
        return self.is_working_day and self.end_time < self.start_time

    @property
    def window_start(self) -> Optional[datetime]:
        if not self.is_working_day:
            return None
        return datetime.combine(self.work_date, self.start_time)

    @property
    def window_end(self) -> Optional[datetime]:
        if not self.is_working_day:
            return None
        end_date = self.work_date + timedelta(days=1) if self.is_overnight else self.work_date
        return datetime.combine(end_date, self.end_time)

    @property
    def capacity_minutes(self) -> float:
        if not self.is_working_day:
            return 0
        return (self.window_end - self.window_start).total_seconds() / 60

    def contains_time(self, moment: time) -> bool:
        """Check a time of day against the [start, end) window, wrapping past midnight"""
        if not self.is_working_day:
            return False
        if self.is_overnight:
            return moment >= self.start_time or moment < self.end_time
        return self.start_time <= moment < self.end_time

    def to_dict(self):
        return {
            'work_date': self.work_date.isoformat(),
            'is_working_day': self.is_working_day,
            'shift_start': self.start_time.strftime('%H:%M') if self.start_time else None,
            'shift_end': self.end_time.strftime('%H:%M') if self.end_time else None,
            'is_overnight': self.is_overnight,
            'source': self.source,
        }


@dataclass(frozen=True)
class _WeeklyRow:
    start_time: time
    end_time: time
    is_working_day: bool


@dataclass(frozen=True)
class _ExceptionRow:
    id: int
    start_date: date
    end_date: date
    exception_type: str
    start_time: Optional[time]
    end_time: Optional[time]


class WorkingHoursResolver:
    """
    Resolves WorkingHours from records loaded up front

    The resolver never touches the database after load(), so every lookup
    in one detection run sees the same data.
    """

    def __init__(
        self,
        weekly: Dict[int, Dict[int, _WeeklyRow]],
        exceptions: Dict[int, List[_ExceptionRow]],
        default_start='06:00',
        default_end='18:00',
        default_working_days: Sequence[int] = (1, 2, 3, 4, 5),
    ):
        self.weekly = weekly
        self.exceptions = exceptions
        self.default_start = parse_time(default_start)
        self.default_end = parse_time(default_end)
        self.default_working_days = frozenset(default_working_days)

    @classmethod
    def load(cls, db_session, models, employee_ids: Iterable[int], start_date: date, end_date: date, **defaults):
        """Read weekly schedules and overlapping exceptions for the given employees"""
        EmployeeWorkSchedule = models['EmployeeWorkSchedule']
        EmployeeAvailabilityException = models['EmployeeAvailabilityException']

        employee_ids = sorted(set(e for e in employee_ids if e is not None))
        weekly = defaultdict(dict)
        exceptions = defaultdict(list)
        if not employee_ids:
            return cls(weekly, exceptions, **defaults)

        schedule_rows = db_session.query(EmployeeWorkSchedule).filter(
            EmployeeWorkSchedule.employee_id.in_(employee_ids)
        ).all()
        for row in schedule_rows:
            weekly[row.employee_id][row.day_of_week] = _WeeklyRow(
                start_time=row.start_time,
                end_time=row.end_time,
                is_working_day=row.is_working_day,
            )

        exception_rows = db_session.query(EmployeeAvailabilityException).filter(
            EmployeeAvailabilityException.employee_id.in_(employee_ids),
            EmployeeAvailabilityException.start_date <= end_date,
            EmployeeAvailabilityException.end_date >= start_date,
        ).order_by(
            EmployeeAvailabilityException.start_date,
            EmployeeAvailabilityException.id
        ).all()
        for row in exception_rows:
            exceptions[row.employee_id].append(_ExceptionRow(
                id=row.id,
                start_date=row.start_date,
                end_date=row.end_date,
                exception_type=row.exception_type,
                start_time=row.start_time,
                end_time=row.end_time,
            ))

        logger.debug(
            f"Loaded working hours for {len(employee_ids)} employees: "
            f"{len(schedule_rows)} weekly rows, {len(exception_rows)} exceptions"
        )
        return cls(weekly, exceptions, **defaults)

    def resolve(self, employee_id: int, work_date: date) -> WorkingHours:
        """
        Effective working hours of an employee on a date

        Raises:
            WorkingHoursError: the applicable record is malformed
        """
        covering = [
            exc for exc in self.exceptions.get(employee_id, [])
            if exc.start_date <= work_date <= exc.end_date
        ]
        if covering:
            return self._from_exceptions(employee_id, work_date, covering)

        row = self.weekly.get(employee_id, {}).get(work_date.isoweekday())
        if row is not None:
            if not row.is_working_day:
                return WorkingHours(work_date, False, source=SOURCE_WEEKLY)
            return self._window(employee_id, work_date, row.start_time, row.end_time, SOURCE_WEEKLY)

        if work_date.isoweekday() not in self.default_working_days:
            return WorkingHours(work_date, False, source=SOURCE_DEFAULT)
        return self._window(employee_id, work_date, self.default_start, self.default_end, SOURCE_DEFAULT)

    def _from_exceptions(self, employee_id, work_date, covering: List[_ExceptionRow]) -> WorkingHours:
        # A full-day exception wins over partial-day ones
        for exc in covering:
            if exc.start_time is None and exc.end_time is None:
                return WorkingHours(work_date, False, source=SOURCE_EXCEPTION)

        exc = covering[0]
        if exc.start_time is None or exc.end_time is None:
            raise WorkingHoursError(
                employee_id, work_date,
                f'availability exception {exc.id} has only one of start_time/end_time'
            )
        return self._window(employee_id, work_date, exc.start_time, exc.end_time, SOURCE_EXCEPTION)

    @staticmethod
    def _window(employee_id, work_date, start: time, end: time, source: str) -> WorkingHours:
        if start == end:
            raise WorkingHoursError(employee_id, work_date, f'zero-length shift {start.strftime("%H:%M")}-{end.strftime("%H:%M")}')
        return WorkingHours(work_date, True, start, end, source)


def skipped_entry(error: WorkingHoursError, detector: str) -> Dict[str, object]:
    """Run-metadata record for an employee/date a detector had to skip"""
    return {
        'detector': detector,
        'employee_id': error.employee_id,
        'date': error.work_date.isoformat(),
        'reason': error.reason,
    }
