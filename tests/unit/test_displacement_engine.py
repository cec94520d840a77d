"""
Unit tests for the displacement engine

Scenarios run on Tuesday 2025-08-12; the engine fixture pins "today" to
2025-08-01 so firm-zone checks are stable.
"""
import threading
import pytest
from datetime import date, datetime

from sqlalchemy.exc import SQLAlchemyError

from app.error_handlers.exceptions import ResourceNotFoundException, ValidationException
from app.models import ImmutableRecordError
from app.services.displacement_engine import DisplacementEngine, employee_lock
from app.services.reschedule_notifier import republish_pending_notifications

DAY = date(2025, 8, 12)
RETURN_DAY = date(2025, 8, 15)


def at(hour, minute=0, day=DAY):
    return datetime(day.year, day.month, day.day, hour, minute)


def routing_statuses(db, models, job_id):
    JobRouting = models['JobRouting']
    rows = db.session.query(JobRouting).filter_by(job_id=job_id).order_by(JobRouting.sequence_order).all()
    return [r.routing_status for r in rows]


def alerts_of(db, models, alert_type):
    return db.session.query(models['SystemAlert']).filter_by(alert_type=alert_type).all()


class FailingNotifier:
    def publish(self, payload):
        raise ConnectionError('broker unavailable')


@pytest.fixture
def absent(employee_factory):
    return employee_factory(name='Absent Operator')


@pytest.fixture
def substitute(employee_factory):
    return employee_factory(name='Sam Substitute')


@pytest.mark.unit
class TestInProgressPush:

    def test_slot_moves_to_return_date(self, engine, db, models, absent, job_factory, slot_factory):
        job = job_factory(operations=3, priority_score=400)
        slot_id = slot_factory(job, at(9), at(11), employee=absent, status='in_progress').id

        result = engine.handle_availability_loss(absent.id, DAY, date(2025, 8, 14), reason='Vacation')

        slot = db.session.get(models['ScheduleSlot'], slot_id)
        assert result.return_date == RETURN_DAY
        assert result.jobs_pushed == 1
        assert result.jobs_affected == 1
        assert slot.start_datetime == at(9, day=RETURN_DAY)
        assert slot.end_datetime == at(11, day=RETURN_DAY)
        assert slot.slot_date == RETURN_DAY
        assert slot.employee_id == absent.id
        assert 'Pushed to 2025-08-15' in slot.notes

    def test_downstream_steps_flagged(self, engine, db, models, absent, job_factory, slot_factory):
        job = job_factory(operations=3)
        slot_factory(job, at(9), at(11), employee=absent, status='in_progress')

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        assert routing_statuses(db, models, job.id) == ['scheduled', 'needs_rescheduling', 'needs_rescheduling']
        assert [j['job_id'] for j in result.reschedule_list()] == [job.id]

    def test_completed_steps_are_not_flagged(self, engine, db, models, absent, job_factory, slot_factory):
        job = job_factory(operations=3)
        JobRouting = models['JobRouting']
        last = db.session.query(JobRouting).filter_by(job_id=job.id, sequence_order=3).one()
        last.routing_status = JobRouting.STATUS_COMPLETED
        db.session.commit()
        slot_factory(job, at(9), at(11), employee=absent, status='in_progress')

        engine.handle_availability_loss(absent.id, DAY, DAY)

        assert routing_statuses(db, models, job.id) == ['scheduled', 'needs_rescheduling', 'completed']

    def test_critical_alert_and_firm_zone_override(self, engine, db, models, absent, job_factory, slot_factory):
        job = job_factory(promised_date=date(2025, 8, 10))
        slot_factory(job, at(9), at(11), employee=absent, status='in_progress')

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        alert = alerts_of(db, models, DisplacementEngine.ALERT_IN_PROGRESS_PUSHED)[0]
        detail = db.session.query(models['DisplacementDetail']).one()
        assert alert.severity == 'critical'
        assert alert.details['firm_zone_overridden'] is True
        assert result.firm_zone_overrides == [job.job_number]
        assert detail.rule_applied == 'in_progress_push'
        assert detail.displacement_reason.endswith('(firm zone overridden)')
        assert detail.new_start == at(9, day=date(2025, 8, 13))


@pytest.mark.unit
class TestOperatorSubstitution:

    def test_qualified_lower_priority_operator_takes_over(self, engine, db, models, absent, substitute,
                                                          machine_factory, job_factory, slot_factory,
                                                          qualification_factory):
        mill = machine_factory()
        hot = job_factory(priority_score=1000)
        low = job_factory(priority_score=800)
        slot_id = slot_factory(hot, at(9), at(11), machine=mill, employee=absent).id
        bumped_id = slot_factory(low, at(8), at(12), employee=substitute).id
        qualification_factory(substitute, mill, proficiency_level=4)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        ScheduleSlot = models['ScheduleSlot']
        slot = db.session.get(ScheduleSlot, slot_id)
        assert result.jobs_substituted == 1
        assert result.jobs_needing_reschedule == 0
        assert slot.employee_id == substitute.id
        assert slot.start_datetime == at(9)
        assert db.session.get(ScheduleSlot, bumped_id) is None
        assert routing_statuses(db, models, low.id) == ['needs_rescheduling']
        assert routing_statuses(db, models, hot.id) == ['scheduled']
        assert [j['job_number'] for j in result.reschedule_list()] == [low.job_number]

        detail = db.session.query(models['DisplacementDetail']).one()
        assert detail.rule_applied == 'operator_substitution'
        assert detail.new_employee_id == substitute.id
        assert detail.substitute_job_number == low.job_number
        assert detail.substitute_priority_score == 800.0

        alert = alerts_of(db, models, DisplacementEngine.ALERT_SUBSTITUTION)[0]
        assert alert.severity == 'medium'
        assert alert.details['substitute_operator'] == 'Sam Substitute'

    def test_boundary_priority_is_eligible(self, engine, absent, substitute, machine_factory, job_factory,
                                           slot_factory, qualification_factory):
        mill = machine_factory()
        slot_factory(job_factory(priority_score=1000), at(9), at(11), machine=mill, employee=absent)
        slot_factory(job_factory(priority_score=850), at(9), at(11), employee=substitute)
        qualification_factory(substitute, mill)

        assert engine.handle_availability_loss(absent.id, DAY, DAY).jobs_substituted == 1

    def test_too_close_in_priority_falls_to_no_substitute(self, engine, db, models, absent, substitute,
                                                          machine_factory, job_factory, slot_factory,
                                                          qualification_factory):
        mill = machine_factory()
        slot_factory(job_factory(priority_score=1000), at(9), at(11), machine=mill, employee=absent)
        candidate_id = slot_factory(job_factory(priority_score=900), at(8), at(12), employee=substitute).id
        qualification_factory(substitute, mill)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        assert result.jobs_substituted == 0
        assert result.jobs_needing_reschedule == 1
        assert db.session.get(models['ScheduleSlot'], candidate_id) is not None

    def test_lowest_priority_candidate_is_bumped(self, engine, db, models, absent, employee_factory,
                                                 machine_factory, job_factory, slot_factory, qualification_factory):
        mill = machine_factory()
        first, second = employee_factory(), employee_factory()
        slot_factory(job_factory(priority_score=1000), at(9), at(11), machine=mill, employee=absent)
        keep_id = slot_factory(job_factory(priority_score=850), at(8), at(12), employee=first).id
        bump_id = slot_factory(job_factory(priority_score=800), at(8), at(12), employee=second).id
        qualification_factory(first, mill)
        qualification_factory(second, mill)

        engine.handle_availability_loss(absent.id, DAY, DAY)

        ScheduleSlot = models['ScheduleSlot']
        assert db.session.get(ScheduleSlot, keep_id) is not None
        assert db.session.get(ScheduleSlot, bump_id) is None

    @pytest.mark.parametrize('case', ['unqualified', 'inactive_qualification', 'locked_slot', 'locked_job',
                                      'day_off', 'partial_cover', 'inactive_employee'])
    def test_ineligible_candidates(self, case, engine, db, models, absent, substitute, machine_factory,
                                   job_factory, slot_factory, qualification_factory,
                                   availability_exception_factory):
        mill = machine_factory()
        slot_factory(job_factory(priority_score=1000), at(9), at(11), machine=mill, employee=absent)

        low = job_factory(priority_score=300, schedule_locked=(case == 'locked_job'))
        start = at(10) if case == 'partial_cover' else at(8)
        slot_factory(low, start, at(12), employee=substitute, locked=(case == 'locked_slot'))
        if case != 'unqualified':
            qualification_factory(substitute, mill, is_active=(case != 'inactive_qualification'))
        if case == 'day_off':
            availability_exception_factory(substitute, DAY, DAY)
        if case == 'inactive_employee':
            substitute.is_active = False
            db.session.commit()

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        assert result.jobs_substituted == 0
        assert result.jobs_needing_reschedule == 1

    def test_overnight_slot_from_previous_day_can_cover(self, engine, db, models, absent, substitute,
                                                        machine_factory, job_factory, slot_factory,
                                                        qualification_factory):
        mill = machine_factory()
        hot = job_factory(priority_score=1000)
        low = job_factory(priority_score=600)
        slot_id = slot_factory(hot, at(9), at(11), machine=mill, employee=absent).id
        bumped_id = slot_factory(low, at(22, day=date(2025, 8, 11)), at(12), employee=substitute).id
        qualification_factory(substitute, mill)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        assert result.jobs_substituted == 1
        assert db.session.get(models['ScheduleSlot'], slot_id).employee_id == substitute.id
        assert db.session.get(models['ScheduleSlot'], bumped_id) is None


@pytest.mark.unit
class TestNoSubstitute:

    def test_slot_and_downstream_removed(self, engine, db, models, absent, employee_factory, job_factory,
                                         slot_factory):
        other = employee_factory()
        job = job_factory(operations=3, priority_score=900)
        slot_id = slot_factory(job, at(9), at(11), employee=absent, sequence=1).id
        downstream_id = slot_factory(job, at(13), at(15), employee=other, sequence=2).id
        started_id = slot_factory(job, at(8, day=date(2025, 8, 13)), at(10, day=date(2025, 8, 13)),
                                  employee=other, sequence=3, status='in_progress').id

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        ScheduleSlot = models['ScheduleSlot']
        assert result.jobs_needing_reschedule == 1
        assert db.session.get(ScheduleSlot, slot_id) is None
        assert db.session.get(ScheduleSlot, downstream_id) is None
        assert db.session.get(ScheduleSlot, started_id) is not None
        assert routing_statuses(db, models, job.id) == ['needs_rescheduling'] * 3

        detail = db.session.query(models['DisplacementDetail']).one()
        assert detail.rule_applied == 'no_substitute'
        assert detail.new_start is None
        assert [s['id'] for s in detail.original_state['cascade_slots']] == [downstream_id]

    @pytest.mark.parametrize('priority,alerts', [(900, 1), (701, 1), (700, 0), (500, 0)])
    def test_alert_only_above_threshold(self, priority, alerts, engine, db, models, absent, job_factory,
                                        slot_factory):
        slot_factory(job_factory(priority_score=priority), at(9), at(11), employee=absent)

        engine.handle_availability_loss(absent.id, DAY, DAY)

        raised = alerts_of(db, models, DisplacementEngine.ALERT_NO_SUBSTITUTE)
        assert len(raised) == alerts
        if raised:
            assert raised[0].severity == 'high'

    def test_removed_downstream_slot_is_skipped(self, engine, absent, job_factory, slot_factory):
        job = job_factory(operations=2)
        slot_factory(job, at(9), at(10), employee=absent, sequence=1)
        second_id = slot_factory(job, at(10), at(11), employee=absent, sequence=2).id

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        assert result.jobs_affected == 1
        assert result.skipped_slots == [second_id]


@pytest.mark.unit
class TestRunBehaviour:

    def test_jobs_affected_counts_distinct_jobs(self, engine, db, models, absent, job_factory, slot_factory):
        job = job_factory(operations=2)
        slot_factory(job, at(9), at(10), employee=absent, sequence=1, status='in_progress')
        slot_factory(job, at(10), at(11), employee=absent, sequence=2)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        log = db.session.get(models['DisplacementLog'], result.log_id)
        assert result.slots_affected == 2
        assert result.jobs_affected == 1
        assert result.jobs_pushed == 1
        assert result.jobs_needing_reschedule == 1
        assert log.affected_jobs == 1
        assert log.execution_details['total_slots_affected'] == 2
        assert result.to_dict()['slots_affected'] == 2

    def test_slots_outside_window_or_inactive_are_untouched(self, engine, db, models, absent, job_factory,
                                                            slot_factory):
        before_id = slot_factory(job_factory(), at(9, day=date(2025, 8, 11)), at(11, day=date(2025, 8, 11)),
                                 employee=absent).id
        done_id = slot_factory(job_factory(), at(9), at(11), employee=absent, status='completed').id

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        ScheduleSlot = models['ScheduleSlot']
        assert result.jobs_affected == 0
        assert db.session.get(ScheduleSlot, before_id) is not None
        assert db.session.get(ScheduleSlot, done_id) is not None

    def test_higher_priority_gets_the_only_substitute(self, engine, db, models, absent, substitute,
                                                      machine_factory, job_factory, slot_factory,
                                                      qualification_factory):
        mill, lathe = machine_factory(), machine_factory()
        first = job_factory(priority_score=1000)
        second = job_factory(priority_score=900)
        first_slot = slot_factory(first, at(9), at(10), machine=mill, employee=absent).id
        slot_factory(second, at(10), at(11), machine=lathe, employee=absent)
        slot_factory(job_factory(priority_score=100), at(8), at(12), employee=substitute)
        qualification_factory(substitute, mill)
        qualification_factory(substitute, lathe)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        assert result.jobs_substituted == 1
        assert result.jobs_needing_reschedule == 1
        assert db.session.get(models['ScheduleSlot'], first_slot).employee_id == substitute.id

    def test_in_progress_processed_first(self, engine, db, models, absent, job_factory, slot_factory):
        slot_factory(job_factory(priority_score=950), at(8), at(9), employee=absent)
        slot_factory(job_factory(priority_score=100), at(13), at(14), employee=absent, status='in_progress')

        engine.handle_availability_loss(absent.id, DAY, DAY)

        DisplacementDetail = models['DisplacementDetail']
        rules = [d.rule_applied for d in db.session.query(DisplacementDetail).order_by(DisplacementDetail.id)]
        assert rules == ['in_progress_push', 'no_substitute']

    def test_log_matches_details(self, engine, db, models, absent, substitute, machine_factory, job_factory,
                                 slot_factory, qualification_factory):
        mill = machine_factory()
        slot_factory(job_factory(), at(7), at(8), employee=absent, status='in_progress')
        slot_factory(job_factory(priority_score=1000), at(9), at(11), machine=mill, employee=absent)
        slot_factory(job_factory(priority_score=200), at(8), at(12), employee=substitute)
        qualification_factory(substitute, mill)
        slot_factory(job_factory(priority_score=600), at(13), at(14), employee=absent)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        log = db.session.get(models['DisplacementLog'], result.log_id)
        by_rule = {}
        for detail in log.details:
            by_rule[detail.rule_applied] = by_rule.get(detail.rule_applied, 0) + 1
        assert log.execution_status == 'completed'
        assert log.completed_at is not None
        assert log.affected_jobs == len(log.details) == 3
        assert log.jobs_pushed == by_rule['in_progress_push'] == 1
        assert log.jobs_substituted == by_rule['operator_substitution'] == 1
        assert log.jobs_needing_reschedule == by_rule['no_substitute'] == 1
        assert log.execution_details['operator_return_date'] == '2025-08-13'
        assert log.trigger_details['employee_id'] == absent.id

    def test_details_are_immutable(self, engine, db, models, absent, job_factory, slot_factory):
        slot_factory(job_factory(), at(9), at(11), employee=absent)
        engine.handle_availability_loss(absent.id, DAY, DAY)
        detail = db.session.query(models['DisplacementDetail']).one()

        detail.displacement_reason = 'rewritten'
        with pytest.raises(ImmutableRecordError):
            db.session.commit()
        db.session.rollback()

        db.session.delete(db.session.query(models['DisplacementDetail']).one())
        with pytest.raises(ImmutableRecordError):
            db.session.commit()
        db.session.rollback()

        assert db.session.query(models['DisplacementDetail']).one().displacement_reason.startswith('No qualified')


@pytest.mark.unit
class TestFallback:

    def test_processing_error_falls_back_to_no_substitute(self, engine, db, models, absent, job_factory,
                                                          slot_factory, monkeypatch):
        slot_id = slot_factory(job_factory(), at(9), at(11), employee=absent).id

        def broken(slot):
            raise RuntimeError('qualification lookup failed')
        monkeypatch.setattr(engine, '_find_substitute', broken)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        assert result.jobs_needing_reschedule == 1
        assert result.errors[0]['slot_id'] == slot_id
        assert 'qualification lookup failed' in result.errors[0]['error']
        assert db.session.get(models['ScheduleSlot'], slot_id) is None
        detail = db.session.query(models['DisplacementDetail']).one()
        assert detail.displacement_reason.startswith('Processing failed (qualification lookup failed)')

    def test_failed_substitution_write_is_rolled_back(self, engine, db, models, absent, substitute,
                                                      machine_factory, job_factory, slot_factory,
                                                      qualification_factory, monkeypatch):
        mill = machine_factory()
        hot = job_factory(priority_score=1000)
        low = job_factory(priority_score=500)
        slot_id = slot_factory(hot, at(9), at(11), machine=mill, employee=absent).id
        bumped_id = slot_factory(low, at(8), at(12), employee=substitute).id
        qualification_factory(substitute, mill)

        build_detail = engine._detail

        def dangling_log(log_id, slot, original, rule, *args, **kwargs):
            # Detail row pointing at a missing log fails on flush
            if rule == 'operator_substitution':
                log_id = 99999
            return build_detail(log_id, slot, original, rule, *args, **kwargs)
        monkeypatch.setattr(engine, '_detail', dangling_log)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        ScheduleSlot = models['ScheduleSlot']
        bumped = db.session.get(ScheduleSlot, bumped_id)
        assert bumped is not None
        assert bumped.employee_id == substitute.id
        assert routing_statuses(db, models, low.id) == ['scheduled']
        assert db.session.get(ScheduleSlot, slot_id) is None

        details = db.session.query(models['DisplacementDetail']).filter_by(log_id=result.log_id).all()
        assert [d.rule_applied for d in details] == ['no_substitute']
        assert result.jobs_substituted == 0
        assert result.jobs_needing_reschedule == 1
        assert result.errors[0]['slot_id'] == slot_id
        assert alerts_of(db, models, DisplacementEngine.ALERT_SUBSTITUTION) == []

    def test_failed_fallback_is_recorded_and_run_completes(self, engine, db, models, absent, job_factory,
                                                           slot_factory, monkeypatch):
        slot_id = slot_factory(job_factory(), at(9), at(11), employee=absent).id

        def broken(*args, **kwargs):
            raise RuntimeError('boom')
        monkeypatch.setattr(engine, '_find_substitute', broken)
        monkeypatch.setattr(engine, '_apply_no_substitute', broken)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        log = db.session.get(models['DisplacementLog'], result.log_id)
        assert result.jobs_affected == 0
        assert result.errors[-1]['fallback_failed'] is True
        assert log.execution_status == 'completed'
        assert log.details == []
        assert db.session.get(models['ScheduleSlot'], slot_id).employee_id == absent.id


@pytest.mark.unit
class TestNotification:

    def test_payload_published_once(self, engine, notifier, db, models, absent, job_factory, slot_factory):
        job = job_factory(priority_score=750)
        slot_factory(job, at(9), at(11), employee=absent)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        log = db.session.get(models['DisplacementLog'], result.log_id)
        assert len(notifier.sent) == 1
        payload = notifier.sent[0]
        assert payload == log.notification_payload
        assert payload['trigger'] == 'time_off'
        assert payload['displacement_log_id'] == result.log_id
        assert payload['return_date'] == '2025-08-13'
        assert payload['jobs_needing_reschedule'] == [
            {'job_id': job.id, 'job_number': job.job_number, 'priority_score': 750.0}
        ]
        assert log.notification_sent is True
        assert result.notification_sent is True

    def test_failed_publish_left_for_sweep(self, db, models, notifier, absent, job_factory, slot_factory):
        slot_factory(job_factory(), at(9), at(11), employee=absent)
        engine = DisplacementEngine(db.session, models, notifier=FailingNotifier(), today=date(2025, 8, 1))

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        log = db.session.get(models['DisplacementLog'], result.log_id)
        assert result.notification_sent is False
        assert log.execution_status == 'completed'
        assert log.notification_sent is False

        assert republish_pending_notifications(db.session, models, notifier) == 1
        assert notifier.sent[0]['displacement_log_id'] == result.log_id
        assert db.session.get(models['DisplacementLog'], result.log_id).notification_sent is True
        assert republish_pending_notifications(db.session, models, notifier) == 0

    def test_failed_mark_sent_left_for_sweep(self, engine, notifier, db, models, absent, job_factory,
                                             slot_factory, monkeypatch):
        slot_factory(job_factory(), at(9), at(11), employee=absent)

        def broken_mark_sent(log):
            raise SQLAlchemyError('database is locked')
        monkeypatch.setattr('app.services.displacement_engine.mark_sent', broken_mark_sent)

        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        log = db.session.get(models['DisplacementLog'], result.log_id)
        assert len(notifier.sent) == 1
        assert result.notification_sent is False
        assert log.execution_status == 'completed'
        assert log.notification_sent is False

        assert republish_pending_notifications(db.session, models, notifier) == 1
        assert len(notifier.sent) == 2
        assert db.session.get(models['DisplacementLog'], result.log_id).notification_sent is True

    def test_empty_run_still_notifies(self, engine, notifier, absent):
        result = engine.handle_availability_loss(absent.id, DAY, DAY)

        assert result.jobs_affected == 0
        assert notifier.sent[0]['jobs_needing_reschedule'] == []


@pytest.mark.unit
class TestRequests:

    def test_record_time_off_stores_exception(self, engine, db, models, absent, job_factory, slot_factory):
        slot_factory(job_factory(), at(9), at(11), employee=absent)

        result = engine.record_time_off(absent.id, DAY, date(2025, 8, 14), reason='Surgery', exception_type='sick')

        exception = db.session.query(models['EmployeeAvailabilityException']).one()
        log = db.session.get(models['DisplacementLog'], result.log_id)
        assert exception.exception_type == 'sick'
        assert exception.start_time is None
        assert log.trigger_details['reason'] == 'Surgery'
        assert result.jobs_affected == 1

    def test_invalid_exception_type(self, engine, db, models, absent):
        with pytest.raises(ValidationException):
            engine.record_time_off(absent.id, DAY, DAY, exception_type='holiday')
        assert db.session.query(models['EmployeeAvailabilityException']).count() == 0

    def test_reversed_range(self, engine, absent):
        with pytest.raises(ValidationException):
            engine.handle_availability_loss(absent.id, date(2025, 8, 14), DAY)

    def test_unknown_employee(self, engine, db, models):
        with pytest.raises(ResourceNotFoundException):
            engine.handle_availability_loss(4242, DAY, DAY)
        assert db.session.query(models['DisplacementLog']).count() == 0


@pytest.mark.unit
class TestEmployeeLock:

    def test_one_lock_per_employee(self):
        assert employee_lock(11) is employee_lock(11)
        assert employee_lock(11) is not employee_lock(12)

    def test_lock_is_held_during_run(self):
        lock = employee_lock(13)
        with lock:
            assert not employee_lock(13).acquire(blocking=False)
        assert employee_lock(13).acquire(blocking=False)
        employee_lock(13).release()

    def test_second_run_waits_for_first(self, absent):
        lock = employee_lock(absent.id)
        lock.acquire()
        done = threading.Event()

        def contender():
            with employee_lock(absent.id):
                done.set()

        worker = threading.Thread(target=contender)
        worker.start()
        assert not done.wait(0.1)
        lock.release()
        worker.join(timeout=2)
        assert done.is_set()


@pytest.mark.unit
class TestDisplacementOpportunities:

    @pytest.fixture
    def incoming(self, job_factory):
        return job_factory(priority_score=1000)

    def test_rules_filter_candidates(self, engine, db, models, incoming, job_factory, slot_factory):
        open_job = job_factory(priority_score=500)
        close_job = job_factory(priority_score=900)
        firm = job_factory(priority_score=400, promised_date=date(2025, 8, 10))
        locked_job = job_factory(priority_score=300, schedule_locked=True)
        slot_factory(open_job, at(9), at(13))
        slot_factory(close_job, at(9), at(11))
        slot_factory(firm, at(9), at(11))
        slot_factory(locked_job, at(9), at(11))
        slot_factory(job_factory(priority_score=200), at(9), at(11), locked=True)
        slot_factory(job_factory(priority_score=100), at(9, day=date(2025, 8, 11)), at(11, day=date(2025, 8, 11)))
        slot_factory(job_factory(priority_score=1100), at(9), at(11))

        found = engine.find_displacement_opportunities(incoming.id, at(0), 8)

        assert [o['job_id'] for o in found['opportunities']] == [open_job.id]
        opportunity = found['opportunities'][0]
        assert opportunity['hours_freed'] == 4.0
        assert opportunity['reason'] == 'Priority difference: 50.0%'
        assert opportunity['customer_name'] == 'Acme Tooling'
        assert [r['job_id'] for r in found['rejected']] == [locked_job.id, firm.id, close_job.id]
        assert 'schedule locked' in found['rejected'][0]['reason']
        assert 'firm zone' in found['rejected'][1]['reason']
        assert found['rejected'][2]['reason'].startswith('Insufficient priority difference')
        assert found['total_hours_available'] == 4.0
        assert found['sufficient'] is False

    def test_stops_once_hours_are_covered(self, engine, incoming, job_factory, slot_factory):
        first = job_factory(priority_score=100)
        second = job_factory(priority_score=200)
        slot_factory(job_factory(priority_score=300), at(8), at(12))
        slot_factory(second, at(8), at(12))
        slot_factory(first, at(13), at(17))

        found = engine.find_displacement_opportunities(incoming.id, at(0), 6)

        assert [o['job_id'] for o in found['opportunities']] == [first.id, second.id]
        assert found['total_hours_available'] == 8.0
        assert found['sufficient'] is True

    def test_nothing_is_changed(self, engine, db, models, incoming, job_factory, slot_factory):
        slot_id = slot_factory(job_factory(priority_score=100), at(9), at(11)).id

        engine.find_displacement_opportunities(incoming.id, at(0), 2)
        engine.impact(incoming.id)

        assert db.session.get(models['ScheduleSlot'], slot_id) is not None
        assert db.session.query(models['DisplacementLog']).count() == 0
        assert db.session.query(models['SystemAlert']).count() == 0

    def test_impact_summary(self, engine, incoming, job_factory, slot_factory, machine_factory):
        lathe, mill = machine_factory(name='Lathe 1'), machine_factory(name='Mill 1')
        two_ops = job_factory(operations=2, priority_score=200)
        other = job_factory(priority_score=300, customer_name='Bolt Works')
        slot_factory(two_ops, at(8), at(12), machine=mill, sequence=1)
        slot_factory(two_ops, at(13), at(17), machine=mill, sequence=2)
        slot_factory(other, at(8), at(10), machine=lathe)

        impact = engine.impact(incoming.id, required_hours=20)

        assert impact['can_displace'] is False
        assert impact['jobs_affected'] == 2
        assert impact['slots_affected'] == 3
        assert impact['total_hours_freed'] == 10.0
        assert impact['customers'] == ['Acme Tooling', 'Bolt Works']
        assert impact['machines'] == ['Lathe 1', 'Mill 1']
        assert impact['estimated_delay_days'] == 1

    def test_invalid_requests(self, engine, incoming):
        with pytest.raises(ResourceNotFoundException):
            engine.find_displacement_opportunities(4242, at(0))
        with pytest.raises(ValidationException):
            engine.find_displacement_opportunities(incoming.id, at(0), 0)
