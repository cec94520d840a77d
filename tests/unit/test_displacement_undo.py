"""
Unit tests for undoing displacement runs
"""
import pytest
from datetime import date, datetime

from app.error_handlers.exceptions import (
    BusinessRuleException,
    InvalidStateTransitionException,
    ResourceNotFoundException,
)
from app.services.displacement_undo import DisplacementUndoService

DAY = date(2025, 8, 12)


def at(hour, minute=0, day=DAY):
    return datetime(day.year, day.month, day.day, hour, minute)


def routing_statuses(db, models, job_id):
    JobRouting = models['JobRouting']
    rows = db.session.query(JobRouting).filter_by(job_id=job_id).order_by(JobRouting.sequence_order).all()
    return [r.routing_status for r in rows]


@pytest.fixture
def undo_service(db, models):
    return DisplacementUndoService(db.session, models)


@pytest.fixture
def absent(employee_factory):
    return employee_factory(name='Absent Operator')


@pytest.mark.unit
class TestUndo:

    def test_push_is_reverted(self, engine, undo_service, db, models, absent, job_factory, slot_factory):
        job = job_factory(operations=2)
        slot_id = slot_factory(job, at(9), at(11), employee=absent, status='in_progress').id
        log_id = engine.handle_availability_loss(absent.id, DAY, DAY).log_id

        summary = undo_service.undo_run(log_id, undone_by='supervisor')

        slot = db.session.get(models['ScheduleSlot'], slot_id)
        assert summary['pushes_reverted'] == 1
        assert summary['routings_restored'] == 1
        assert slot.start_datetime == at(9)
        assert slot.slot_date == DAY
        assert slot.notes is None
        assert routing_statuses(db, models, job.id) == ['scheduled', 'scheduled']

    def test_substitution_is_reverted(self, engine, undo_service, db, models, absent, employee_factory,
                                      machine_factory, job_factory, slot_factory, qualification_factory):
        substitute = employee_factory()
        mill = machine_factory()
        hot = job_factory(priority_score=1000)
        low = job_factory(priority_score=500)
        slot_id = slot_factory(hot, at(9), at(11), machine=mill, employee=absent).id
        bumped_id = slot_factory(low, at(8), at(12), employee=substitute).id
        qualification_factory(substitute, mill)
        log_id = engine.handle_availability_loss(absent.id, DAY, DAY).log_id

        summary = undo_service.undo_run(log_id)

        ScheduleSlot = models['ScheduleSlot']
        assert summary['substitutions_reverted'] == 1
        assert summary['slots_recreated'] == 1
        assert db.session.get(ScheduleSlot, slot_id).employee_id == absent.id

        recreated = db.session.get(ScheduleSlot, summary['recreated_slot_ids'][str(bumped_id)])
        assert recreated.job_id == low.id
        assert recreated.employee_id == substitute.id
        assert recreated.start_datetime == at(8)
        assert recreated.end_datetime == at(12)
        assert routing_statuses(db, models, low.id) == ['scheduled']

    def test_no_substitute_is_reverted(self, engine, undo_service, db, models, absent, employee_factory,
                                       job_factory, slot_factory):
        other = employee_factory()
        job = job_factory(operations=3, priority_score=900)
        slot_factory(job, at(9), at(11), employee=absent, sequence=1)
        slot_factory(job, at(13), at(15), employee=other, sequence=2)
        log_id = engine.handle_availability_loss(absent.id, DAY, DAY).log_id

        summary = undo_service.undo_run(log_id)

        ScheduleSlot = models['ScheduleSlot']
        slots = db.session.query(ScheduleSlot).filter_by(job_id=job.id).order_by(ScheduleSlot.start_datetime).all()
        assert summary['slots_recreated'] == 2
        assert summary['routings_restored'] == 3
        assert [(s.employee_id, s.start_datetime) for s in slots] == [(absent.id, at(9)), (other.id, at(13))]
        assert all(s.status == 'scheduled' for s in slots)
        assert routing_statuses(db, models, job.id) == ['scheduled'] * 3

    def test_log_marked_and_alert_raised(self, engine, undo_service, db, models, absent, job_factory, slot_factory):
        slot_factory(job_factory(), at(9), at(11), employee=absent)
        log_id = engine.handle_availability_loss(absent.id, DAY, DAY).log_id

        undo_service.undo_run(log_id, undone_by='supervisor')

        log = db.session.get(models['DisplacementLog'], log_id)
        alert = db.session.query(models['SystemAlert']).filter_by(alert_type='displacement_undone').one()
        assert log.undone_at is not None
        assert log.undone_by == 'supervisor'
        assert alert.severity == 'low'
        assert alert.displacement_log_id == log_id
        assert len(log.details) == 1

    def test_second_undo_is_rejected(self, engine, undo_service, absent, job_factory, slot_factory):
        slot_factory(job_factory(), at(9), at(11), employee=absent)
        log_id = engine.handle_availability_loss(absent.id, DAY, DAY).log_id
        undo_service.undo_run(log_id)

        with pytest.raises(InvalidStateTransitionException):
            undo_service.undo_run(log_id)

    def test_processing_run_cannot_be_undone(self, undo_service, db, models, absent):
        log = models['DisplacementLog'](
            employee_id=absent.id,
            trigger_details={'employee_id': absent.id},
            execution_status='processing',
        )
        db.session.add(log)
        db.session.commit()

        with pytest.raises(InvalidStateTransitionException):
            undo_service.undo_run(log.id)

    def test_missing_log(self, undo_service):
        with pytest.raises(ResourceNotFoundException):
            undo_service.undo_run(999)

    def test_missing_slot_aborts_without_changes(self, engine, undo_service, db, models, absent, job_factory,
                                                 slot_factory):
        job = job_factory(operations=2)
        pushed_id = slot_factory(job, at(9), at(11), employee=absent, status='in_progress').id
        log_id = engine.handle_availability_loss(absent.id, DAY, DAY).log_id
        db.session.delete(db.session.get(models['ScheduleSlot'], pushed_id))
        db.session.commit()

        with pytest.raises(BusinessRuleException):
            undo_service.undo_run(log_id)

        assert db.session.get(models['DisplacementLog'], log_id).undone_at is None
        assert routing_statuses(db, models, job.id) == ['scheduled', 'needs_rescheduling']
