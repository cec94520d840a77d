"""
Unit tests for database models.

Tests cover:
- Model creation and field defaults
- Model methods and computed properties
- Relationships between models
- Table constraints
"""
import pytest
from datetime import datetime, date, time

from sqlalchemy.exc import IntegrityError


class TestMachineModel:
    """Tests for the Machine model."""

    @pytest.mark.unit
    def test_machine_defaults(self, machine_factory):
        """Test that a machine is active with nominal efficiency."""
        machine = machine_factory(name='Okuma LB3000')

        assert machine.status == 'active'
        assert machine.is_available is True
        assert machine.efficiency_modifier == 1.0
        assert machine.to_dict()['name'] == 'Okuma LB3000'

    @pytest.mark.unit
    def test_machine_group(self, models, db, machine_factory):
        """Test grouping interchangeable machines."""
        group = models['MachineGroup'](name='5-axis mills')
        db.session.add(group)
        db.session.commit()
        machine_factory(machine_group_id=group.id)
        machine_factory(machine_group_id=group.id)

        assert len(group.machines) == 2

    @pytest.mark.unit
    def test_invalid_status_rejected(self, models, db):
        """Test the machine status check constraint."""
        db.session.add(models['Machine'](name='Broken', status='exploded'))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()


class TestJobModel:
    """Tests for Job and JobRouting."""

    @pytest.mark.unit
    def test_routings_ordered_by_sequence(self, job_factory):
        """Test routings come back in sequence order."""
        job = job_factory(operations=3)

        assert [r.sequence_order for r in job.routings] == [1, 2, 3]
        assert job.routings[0].routing_status == 'scheduled'

    @pytest.mark.unit
    def test_duplicate_sequence_rejected(self, models, db, job_factory):
        """Test that a job cannot have two steps with the same sequence."""
        job = job_factory(operations=1)
        db.session.add(models['JobRouting'](job_id=job.id, sequence_order=1, operation_name='Deburr'))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    @pytest.mark.unit
    def test_assembly_children(self, job_factory):
        """Test the parent/child link between assembly jobs."""
        parent = job_factory()
        child = job_factory(parent_job_id=parent.id)

        assert child.parent.id == parent.id
        assert [c.id for c in parent.children] == [child.id]

    @pytest.mark.unit
    def test_job_to_dict(self, job_factory):
        """Test job serialization."""
        job = job_factory(priority_score=875, promised_date=date(2025, 9, 1))
        data = job.to_dict()

        assert data['priority_score'] == 875
        assert data['promised_date'] == '2025-09-01'
        assert data['schedule_locked'] is False


class TestScheduleSlotModel:
    """Tests for the ScheduleSlot model."""

    @pytest.mark.unit
    def test_set_window_derives_date_and_duration(self, job_factory, slot_factory):
        """Test that slot_date and duration follow the window."""
        slot = slot_factory(job_factory(), datetime(2025, 8, 12, 22, 0), datetime(2025, 8, 13, 1, 30))

        assert slot.slot_date == date(2025, 8, 12)
        assert slot.duration_minutes == 210
        assert slot.is_active is True

    @pytest.mark.unit
    def test_snapshot(self, job_factory, employee_factory, slot_factory):
        """Test the snapshot holds what is needed to recreate the slot."""
        employee = employee_factory()
        slot = slot_factory(job_factory(), datetime(2025, 8, 12, 9), datetime(2025, 8, 12, 11),
                            employee=employee, notes='First article')

        snapshot = slot.snapshot()

        assert snapshot['id'] == slot.id
        assert snapshot['employee_id'] == employee.id
        assert snapshot['start_datetime'] == '2025-08-12T09:00:00'
        assert snapshot['notes'] == 'First article'
        assert snapshot['locked'] is False

    @pytest.mark.unit
    def test_empty_window_rejected(self, models, db, job_factory, machine_factory):
        """Test the end-after-start check constraint."""
        job = job_factory()
        slot = models['ScheduleSlot'](
            job_id=job.id,
            routing_id=job.routings[0].id,
            machine_id=machine_factory().id,
        )
        slot.set_window(datetime(2025, 8, 12, 9), datetime(2025, 8, 12, 9))
        db.session.add(slot)
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    @pytest.mark.unit
    def test_completed_slot_is_inactive(self, job_factory, slot_factory):
        """Test is_active for finished work."""
        slot = slot_factory(job_factory(), datetime(2025, 8, 12, 9), datetime(2025, 8, 12, 10), status='completed')

        assert slot.is_active is False


class TestEmployeeModels:
    """Tests for employees, schedules, qualifications and exceptions."""

    @pytest.mark.unit
    def test_one_schedule_row_per_weekday(self, employee_factory, work_schedule_factory, db):
        """Test the unique employee/day constraint."""
        employee = employee_factory()
        work_schedule_factory(employee, day_of_week=1)
        with pytest.raises(IntegrityError):
            work_schedule_factory(employee, day_of_week=1)
        db.session.rollback()

    @pytest.mark.unit
    def test_qualification_relationship(self, employee_factory, machine_factory, qualification_factory):
        """Test qualifications hang off the employee."""
        employee = employee_factory()
        machine = machine_factory()
        qualification_factory(employee, machine, proficiency_level=5)

        assert employee.qualifications[0].machine.id == machine.id
        assert employee.qualifications[0].proficiency_level == 5

    @pytest.mark.unit
    def test_exception_coverage(self, employee_factory, availability_exception_factory):
        """Test exception date coverage and serialization."""
        employee = employee_factory()
        exception = availability_exception_factory(
            employee, date(2025, 8, 12), date(2025, 8, 14), start='10:00', end='12:00', exception_type='training'
        )

        assert exception.covers(date(2025, 8, 13))
        assert not exception.covers(date(2025, 8, 15))
        assert exception.has_explicit_hours
        assert exception.start_time == time(10, 0)
        assert exception.to_dict()['start_time'] == '10:00'

    @pytest.mark.unit
    def test_exception_range_constraint(self, employee_factory, availability_exception_factory, db):
        """Test that an exception cannot end before it starts."""
        employee = employee_factory()
        with pytest.raises(IntegrityError):
            availability_exception_factory(employee, date(2025, 8, 14), date(2025, 8, 12))
        db.session.rollback()


class TestLedgerModels:
    """Tests for conflict and alert models."""

    @pytest.mark.unit
    def test_conflict_severity_constraint(self, models, db):
        """Test that unknown severities are rejected."""
        run = models['ConflictDetectionRun'](date_range_start=date(2025, 8, 1), date_range_end=date(2025, 8, 2))
        db.session.add(run)
        db.session.flush()
        db.session.add(models['DetectedConflict'](
            detection_run_id=run.id,
            conflict_type='machine_double_booking',
            severity='urgent',
            fingerprint='x' * 64,
            conflict_data={},
        ))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    @pytest.mark.unit
    def test_alert_defaults(self, models, db):
        """Test that a new alert is unacknowledged."""
        alert = models['SystemAlert'](alert_type='operator_substitution', severity='medium', message='Reassigned')
        db.session.add(alert)
        db.session.commit()

        data = alert.to_dict()
        assert data['acknowledged'] is False
        assert data['acknowledged_at'] is None
        assert data['displacement_log_id'] is None
