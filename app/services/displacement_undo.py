"""
Displacement undo

Reverses a completed displacement run using the original_state snapshots
stored on its detail rows. Decisions are replayed newest first inside one
transaction; if any of them cannot be reversed nothing is changed. Detail
rows are never touched; the log records when and by whom it was undone.
"""
import logging
from datetime import datetime
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError

from app.error_handlers.exceptions import (
    AppException,
    BusinessRuleException,
    DatabaseException,
    InvalidStateTransitionException,
    ResourceNotFoundException,
)
from app.services.displacement_engine import employee_lock

logger = logging.getLogger(__name__)


class DisplacementUndoService:
    """Restore the schedule as it was before a displacement run"""

    def __init__(self, db_session, models):
        self.db = db_session
        self.ScheduleSlot = models['ScheduleSlot']
        self.JobRouting = models['JobRouting']
        self.DisplacementLog = models['DisplacementLog']
        self.DisplacementDetail = models['DisplacementDetail']
        self.SystemAlert = models['SystemAlert']

    def undo_run(self, log_id: int, undone_by: str = None) -> Dict[str, Any]:
        """
        Undo one displacement run

        Raises:
            ResourceNotFoundException: No such log
            InvalidStateTransitionException: Run still processing or already undone
            BusinessRuleException: A slot changed by the run no longer exists
        """
        log = self.db.get(self.DisplacementLog, log_id)
        if log is None:
            raise ResourceNotFoundException(
                f'Displacement log {log_id} not found',
                details={'log_id': log_id}
            )
        if log.execution_status != self.DisplacementLog.STATUS_COMPLETED:
            raise InvalidStateTransitionException(
                f'Displacement log {log_id} is still {log.execution_status}',
                details={'log_id': log_id, 'execution_status': log.execution_status}
            )
        if log.undone_at is not None:
            raise InvalidStateTransitionException(
                f'Displacement log {log_id} was already undone',
                details={'log_id': log_id, 'undone_at': log.undone_at.isoformat()}
            )

        summary = {
            'displacement_log_id': log_id,
            'pushes_reverted': 0,
            'substitutions_reverted': 0,
            'slots_recreated': 0,
            'routings_restored': 0,
            'recreated_slot_ids': {},
        }

        with employee_lock(log.employee_id):
            try:
                for detail in reversed(log.details):
                    self._revert(detail, summary)

                log.undone_at = datetime.utcnow()
                log.undone_by = undone_by
                self.db.add(self.SystemAlert(
                    alert_type='displacement_undone',
                    severity='low',
                    message=f'Displacement run {log_id} was undone',
                    details={k: v for k, v in summary.items() if k != 'recreated_slot_ids'},
                    displacement_log_id=log_id,
                ))
                self.db.commit()
            except AppException:
                self.db.rollback()
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Undo of displacement log {log_id} failed: {e}", exc_info=True)
                raise DatabaseException('Failed to undo displacement run', details={'log_id': log_id})

        logger.info(f"Displacement log {log_id} undone by {undone_by}: {summary}")
        return summary

    def _revert(self, detail, summary):
        state = detail.original_state or {}
        rule = detail.rule_applied

        if rule == self.DisplacementDetail.RULE_PUSH:
            slot = self._existing_slot(detail.slot_id, detail)
            slot.set_window(detail.original_start, detail.original_end)
            slot.notes = state['slot'].get('notes')
            summary['pushes_reverted'] += 1

        elif rule == self.DisplacementDetail.RULE_SUBSTITUTION:
            slot = self._existing_slot(detail.slot_id, detail)
            slot.employee_id = detail.original_employee_id
            slot.notes = state['slot'].get('notes')
            self._recreate(state['bumped_slot'], summary)
            summary['substitutions_reverted'] += 1

        else:
            self._recreate(state['slot'], summary)
            for snapshot in state.get('cascade_slots', []):
                self._recreate(snapshot, summary)

        for entry in state.get('routings', []):
            routing = self.db.get(self.JobRouting, entry['routing_id'])
            if routing is not None:
                routing.routing_status = entry['previous_status']
                summary['routings_restored'] += 1

    def _existing_slot(self, slot_id, detail):
        slot = self.db.get(self.ScheduleSlot, slot_id)
        if slot is None:
            raise BusinessRuleException(
                f'Slot {slot_id} changed by this run no longer exists',
                details={'slot_id': slot_id, 'detail_id': detail.id, 'job_number': detail.job_number}
            )
        return slot

    def _recreate(self, snapshot, summary):
        slot = self.ScheduleSlot(
            job_id=snapshot['job_id'],
            routing_id=snapshot['routing_id'],
            machine_id=snapshot['machine_id'],
            employee_id=snapshot['employee_id'],
            status=snapshot['status'],
            locked=snapshot['locked'],
            notes=snapshot.get('notes'),
        )
        slot.set_window(
            datetime.fromisoformat(snapshot['start_datetime']),
            datetime.fromisoformat(snapshot['end_datetime'])
        )
        self.db.add(slot)
        self.db.flush()
        summary['slots_recreated'] += 1
        summary['recreated_slot_ids'][str(snapshot['id'])] = slot.id
