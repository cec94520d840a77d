"""
Pytest configuration and fixtures for the CNC scheduling engine tests.

This module provides shared fixtures for:
- Flask application with test configuration
- Database setup and teardown
- Model factories for creating test data
- Service instances wired to the test session
"""
import pytest
from datetime import datetime, date

from app import create_app
from app.extensions import db as _db


@pytest.fixture(scope='session')
def app():
    """
    Create application for the tests.

    Uses TestingConfig with in-memory SQLite database and the in-memory
    reschedule notifier. Scope is 'session' to reuse the same app.
    """
    app = create_app('testing')
    app.config.update({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'RATELIMIT_ENABLED': False,
    })

    return app


@pytest.fixture(scope='function')
def db(app):
    """
    Create database for the tests.

    Creates all tables before each test function and drops them after.
    This ensures test isolation.
    """
    with app.app_context():
        _db.create_all()
        yield _db
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope='function')
def client(app, db):
    """Create a test client for the app."""
    with app.test_client() as client:
        yield client


@pytest.fixture(scope='function')
def models(app, db):
    """Model classes from the model registry."""
    from app.models import get_models
    return get_models()


@pytest.fixture(scope='function')
def notifier(app):
    """In-memory reschedule notifier registered by create_app()."""
    from app.services.reschedule_notifier import get_notifier
    notifier = get_notifier(app)
    notifier.sent.clear()
    yield notifier
    notifier.sent.clear()


# =============================================================================
# Model Factories
# =============================================================================

@pytest.fixture
def machine_factory(models, db):
    """
    Factory for creating Machine instances.

    Usage:
        machine = machine_factory(name="Haas VF-2")
    """
    counter = [0]

    def _create_machine(**kwargs):
        Machine = models['Machine']
        counter[0] += 1
        defaults = {
            'name': f'Machine {counter[0]}',
            'machine_type': 'mill',
        }
        defaults.update(kwargs)
        machine = Machine(**defaults)
        db.session.add(machine)
        db.session.commit()
        return machine

    return _create_machine


@pytest.fixture
def employee_factory(models, db):
    """
    Factory for creating Employee (operator) instances.

    Usage:
        employee = employee_factory(name="Alice")
    """
    counter = [0]

    def _create_employee(**kwargs):
        Employee = models['Employee']
        counter[0] += 1
        defaults = {
            'employee_code': f'OP{counter[0]:03d}',
            'name': f'Operator {counter[0]}',
            'is_active': True,
        }
        defaults.update(kwargs)
        employee = Employee(**defaults)
        db.session.add(employee)
        db.session.commit()
        return employee

    return _create_employee


@pytest.fixture
def job_factory(models, db):
    """
    Factory for creating a Job with its routing steps.

    Usage:
        job = job_factory(priority_score=900, operations=3)
        job.routings[0].sequence_order == 1
    """
    counter = [0]

    def _create_job(operations=1, **kwargs):
        Job = models['Job']
        JobRouting = models['JobRouting']
        counter[0] += 1
        defaults = {
            'job_number': f'J-{counter[0]:04d}',
            'customer_name': 'Acme Tooling',
            'priority_score': 500.0,
            'status': 'scheduled',
        }
        defaults.update(kwargs)
        job = Job(**defaults)
        db.session.add(job)
        db.session.flush()

        for sequence in range(1, operations + 1):
            db.session.add(JobRouting(
                job_id=job.id,
                sequence_order=sequence,
                operation_name=f'Op {sequence * 10}',
                estimated_hours=2.0,
                routing_status=JobRouting.STATUS_SCHEDULED,
            ))
        db.session.commit()
        return job

    return _create_job


@pytest.fixture
def slot_factory(models, db, machine_factory):
    """
    Factory for creating ScheduleSlot instances.

    Usage:
        slot = slot_factory(job, start=datetime(2025, 8, 12, 9), end=datetime(2025, 8, 12, 11),
                            machine=mill, employee=alice, sequence=1)
    """
    def _create_slot(job, start, end, machine=None, employee=None, sequence=1, **kwargs):
        ScheduleSlot = models['ScheduleSlot']
        JobRouting = models['JobRouting']
        routing = db.session.query(JobRouting).filter_by(job_id=job.id, sequence_order=sequence).one()
        if machine is None:
            machine = machine_factory()

        defaults = {
            'job_id': job.id,
            'routing_id': routing.id,
            'machine_id': machine.id,
            'employee_id': employee.id if employee is not None else None,
            'status': ScheduleSlot.STATUS_SCHEDULED,
        }
        defaults.update(kwargs)
        slot = ScheduleSlot(**defaults)
        slot.set_window(start, end)
        db.session.add(slot)
        db.session.commit()
        return slot

    return _create_slot


@pytest.fixture
def work_schedule_factory(models, db):
    """
    Factory for EmployeeWorkSchedule rows.

    Usage:
        work_schedule_factory(employee, day_of_week=2, start='22:00', end='06:00')
    """
    def _create_work_schedule(employee, day_of_week, start='06:00', end='14:00', is_working_day=True):
        EmployeeWorkSchedule = models['EmployeeWorkSchedule']
        row = EmployeeWorkSchedule(
            employee_id=employee.id,
            day_of_week=day_of_week,
            start_time=datetime.strptime(start, '%H:%M').time(),
            end_time=datetime.strptime(end, '%H:%M').time(),
            is_working_day=is_working_day,
        )
        db.session.add(row)
        db.session.commit()
        return row

    return _create_work_schedule


@pytest.fixture
def availability_exception_factory(models, db):
    """Factory for EmployeeAvailabilityException rows (full day unless times are given)."""
    def _create_exception(employee, start_date, end_date, start=None, end=None, exception_type='vacation'):
        EmployeeAvailabilityException = models['EmployeeAvailabilityException']
        row = EmployeeAvailabilityException(
            employee_id=employee.id,
            start_date=start_date,
            end_date=end_date,
            exception_type=exception_type,
            start_time=datetime.strptime(start, '%H:%M').time() if start else None,
            end_time=datetime.strptime(end, '%H:%M').time() if end else None,
        )
        db.session.add(row)
        db.session.commit()
        return row

    return _create_exception


@pytest.fixture
def qualification_factory(models, db):
    """Factory for OperatorMachineQualification rows."""
    def _create_qualification(employee, machine, proficiency_level=3, preference_rank=1, is_active=True):
        OperatorMachineQualification = models['OperatorMachineQualification']
        row = OperatorMachineQualification(
            employee_id=employee.id,
            machine_id=machine.id,
            proficiency_level=proficiency_level,
            preference_rank=preference_rank,
            is_active=is_active,
        )
        db.session.add(row)
        db.session.commit()
        return row

    return _create_qualification


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def detection_service(models, db):
    from app.services.conflict_detection import ConflictDetectionService
    return ConflictDetectionService(db.session, models)


@pytest.fixture
def ledger(models, db):
    from app.services.conflict_ledger import ConflictLedger
    return ConflictLedger(db.session, models)


@pytest.fixture
def engine(models, db, notifier):
    """Displacement engine with a fixed 'today' so firm-zone checks are stable."""
    from app.services.displacement_engine import DisplacementEngine
    return DisplacementEngine(db.session, models, notifier=notifier, today=date(2025, 8, 1))
