"""
Unit tests for working-hours resolution
"""
import pytest
from datetime import date, time

from app.services.working_hours import (
    SOURCE_DEFAULT,
    SOURCE_EXCEPTION,
    SOURCE_WEEKLY,
    WorkingHoursError,
    WorkingHoursResolver,
)

TUESDAY = date(2025, 8, 12)
SATURDAY = date(2025, 8, 16)


def _resolver(db, models, employee, **defaults):
    return WorkingHoursResolver.load(db.session, models, [employee.id], TUESDAY, SATURDAY, **defaults)


@pytest.mark.unit
class TestWorkingHoursResolver:

    def test_weekly_row(self, db, models, employee_factory, work_schedule_factory):
        employee = employee_factory()
        work_schedule_factory(employee, day_of_week=2, start='08:00', end='16:30')

        hours = _resolver(db, models, employee).resolve(employee.id, TUESDAY)

        assert hours.is_working_day
        assert hours.start_time == time(8, 0)
        assert hours.end_time == time(16, 30)
        assert hours.capacity_minutes == 510
        assert hours.source == SOURCE_WEEKLY

    def test_weekly_non_working_day(self, db, models, employee_factory, work_schedule_factory):
        employee = employee_factory()
        work_schedule_factory(employee, day_of_week=2, is_working_day=False)

        hours = _resolver(db, models, employee).resolve(employee.id, TUESDAY)

        assert not hours.is_working_day
        assert hours.capacity_minutes == 0

    def test_default_shift(self, db, models, employee_factory):
        employee = employee_factory()
        resolver = _resolver(db, models, employee)

        weekday = resolver.resolve(employee.id, TUESDAY)
        assert weekday.source == SOURCE_DEFAULT
        assert weekday.capacity_minutes == 720

        weekend = resolver.resolve(employee.id, SATURDAY)
        assert not weekend.is_working_day

    def test_configured_default_shift(self, db, models, employee_factory):
        employee = employee_factory()
        resolver = _resolver(
            db, models, employee,
            default_start='07:00', default_end='15:00', default_working_days=(1, 2, 3, 4, 5, 6)
        )

        assert resolver.resolve(employee.id, TUESDAY).capacity_minutes == 480
        assert resolver.resolve(employee.id, SATURDAY).is_working_day

    def test_full_day_exception_wins(self, db, models, employee_factory, work_schedule_factory,
                                     availability_exception_factory):
        employee = employee_factory()
        work_schedule_factory(employee, day_of_week=2)
        availability_exception_factory(employee, TUESDAY, TUESDAY, start='10:00', end='12:00', exception_type='training')
        availability_exception_factory(employee, date(2025, 8, 11), date(2025, 8, 13))

        hours = _resolver(db, models, employee).resolve(employee.id, TUESDAY)

        assert not hours.is_working_day
        assert hours.source == SOURCE_EXCEPTION

    def test_exception_with_hours_replaces_weekly(self, db, models, employee_factory, work_schedule_factory,
                                                  availability_exception_factory):
        employee = employee_factory()
        work_schedule_factory(employee, day_of_week=2, start='06:00', end='14:00')
        availability_exception_factory(employee, TUESDAY, TUESDAY, start='10:00', end='12:00', exception_type='training')

        hours = _resolver(db, models, employee).resolve(employee.id, TUESDAY)

        assert hours.source == SOURCE_EXCEPTION
        assert hours.start_time == time(10, 0)
        assert hours.capacity_minutes == 120

    def test_zero_length_window_raises(self, db, models, employee_factory, work_schedule_factory):
        employee = employee_factory()
        work_schedule_factory(employee, day_of_week=2, start='08:00', end='08:00')

        with pytest.raises(WorkingHoursError) as exc_info:
            _resolver(db, models, employee).resolve(employee.id, TUESDAY)
        assert exc_info.value.employee_id == employee.id
        assert exc_info.value.work_date == TUESDAY

    def test_overnight_shift(self, db, models, employee_factory, work_schedule_factory):
        employee = employee_factory()
        work_schedule_factory(employee, day_of_week=2, start='22:00', end='06:00')

        hours = _resolver(db, models, employee).resolve(employee.id, TUESDAY)

        assert hours.is_overnight
        assert hours.capacity_minutes == 480
        assert hours.window_end.date() == date(2025, 8, 13)
        assert hours.contains_time(time(23, 30))
        assert hours.contains_time(time(2, 0))
        assert not hours.contains_time(time(6, 0))
        assert not hours.contains_time(time(12, 0))
