"""
Displacement audit models
One log row per availability-loss event, one detail row per decision
"""
from datetime import datetime
from sqlalchemy import event


class ImmutableRecordError(Exception):
    """Raised when code tries to change a written displacement detail"""
    pass


def create_displacement_models(db):
    """Factory function to create displacement audit models with db instance"""

    class DisplacementLog(db.Model):
        """
        Audit record of one displacement run

        execution_status moves from processing to completed; the aggregate
        counts always equal the per-rule counts of the run's detail rows.
        notification_payload/notification_sent form an outbox for the
        "rescheduling required" event so an unsent payload can be re-published.
        """
        __tablename__ = 'displacement_logs'

        STATUS_PROCESSING = 'processing'
        STATUS_COMPLETED = 'completed'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        trigger_type = db.Column(db.String(50), nullable=False, default='time_off')
        employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'), nullable=False, index=True)
        trigger_details = db.Column(db.JSON, nullable=False)
        execution_status = db.Column(db.String(20), nullable=False, default=STATUS_PROCESSING)

        # Aggregates
        affected_jobs = db.Column(db.Integer, nullable=False, default=0)
        jobs_pushed = db.Column(db.Integer, nullable=False, default=0)
        jobs_substituted = db.Column(db.Integer, nullable=False, default=0)
        jobs_needing_reschedule = db.Column(db.Integer, nullable=False, default=0)
        execution_details = db.Column(db.JSON)

        # Outbox
        notification_payload = db.Column(db.JSON(none_as_null=True))
        notification_sent = db.Column(db.Boolean, nullable=False, default=False)
        notification_sent_at = db.Column(db.DateTime)

        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
        completed_at = db.Column(db.DateTime)
        undone_at = db.Column(db.DateTime)
        undone_by = db.Column(db.String(100))

        details = db.relationship(
            'DisplacementDetail',
            backref='log',
            lazy=True,
            order_by='DisplacementDetail.id'
        )
        employee = db.relationship('Employee', lazy=True)

        def to_dict(self, include_details=False):
            result = {
                'id': self.id,
                'trigger_type': self.trigger_type,
                'employee_id': self.employee_id,
                'employee_name': self.employee.name if self.employee else None,
                'trigger_details': self.trigger_details,
                'execution_status': self.execution_status,
                'affected_jobs': self.affected_jobs,
                'jobs_pushed': self.jobs_pushed,
                'jobs_substituted': self.jobs_substituted,
                'jobs_needing_reschedule': self.jobs_needing_reschedule,
                'execution_details': self.execution_details,
                'notification_sent': self.notification_sent,
                'created_at': self.created_at.isoformat() if self.created_at else None,
                'completed_at': self.completed_at.isoformat() if self.completed_at else None,
                'undone_at': self.undone_at.isoformat() if self.undone_at else None,
                'undone_by': self.undone_by,
            }
            if include_details:
                result['details'] = [d.to_dict() for d in self.details]
            return result

        def __repr__(self):
            return f'<DisplacementLog {self.id}: employee {self.employee_id} ({self.execution_status})>'

    class DisplacementDetail(db.Model):
        """
        One displacement decision for one schedule slot

        rule_applied is in_progress_push, operator_substitution or
        no_substitute. original_state holds the slot and routing state needed
        to undo the decision. Rows are write-once.
        """
        __tablename__ = 'displacement_details'

        RULE_PUSH = 'in_progress_push'
        RULE_SUBSTITUTION = 'operator_substitution'
        RULE_NO_SUBSTITUTE = 'no_substitute'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        log_id = db.Column(db.Integer, db.ForeignKey('displacement_logs.id', ondelete='CASCADE'), nullable=False, index=True)
        job_id = db.Column(db.Integer, db.ForeignKey('jobs.id'), nullable=False, index=True)
        job_number = db.Column(db.String(50), nullable=False)
        slot_id = db.Column(db.Integer, nullable=False)
        routing_id = db.Column(db.Integer, nullable=True)
        rule_applied = db.Column(db.String(30), nullable=False)
        priority_score = db.Column(db.Float, nullable=False)

        # Placement before and after
        original_start = db.Column(db.DateTime, nullable=False)
        original_end = db.Column(db.DateTime, nullable=False)
        original_employee_id = db.Column(db.Integer)
        original_machine_id = db.Column(db.Integer)
        new_start = db.Column(db.DateTime)
        new_end = db.Column(db.DateTime)
        new_employee_id = db.Column(db.Integer)

        # Substitution partner
        substitute_job_id = db.Column(db.Integer)
        substitute_job_number = db.Column(db.String(50))
        substitute_priority_score = db.Column(db.Float)

        original_state = db.Column(db.JSON, nullable=False)
        displacement_reason = db.Column(db.Text, nullable=False)
        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

        __table_args__ = (
            db.CheckConstraint(
                "rule_applied IN ('in_progress_push', 'operator_substitution', 'no_substitute')",
                name='check_displacement_rule'
            ),
        )

        def to_dict(self):
            return {
                'id': self.id,
                'log_id': self.log_id,
                'job_id': self.job_id,
                'job_number': self.job_number,
                'slot_id': self.slot_id,
                'routing_id': self.routing_id,
                'rule_applied': self.rule_applied,
                'priority_score': self.priority_score,
                'original_start': self.original_start.isoformat(),
                'original_end': self.original_end.isoformat(),
                'original_employee_id': self.original_employee_id,
                'original_machine_id': self.original_machine_id,
                'new_start': self.new_start.isoformat() if self.new_start else None,
                'new_end': self.new_end.isoformat() if self.new_end else None,
                'new_employee_id': self.new_employee_id,
                'substitute_job_id': self.substitute_job_id,
                'substitute_job_number': self.substitute_job_number,
                'substitute_priority_score': self.substitute_priority_score,
                'displacement_reason': self.displacement_reason,
                'created_at': self.created_at.isoformat() if self.created_at else None,
            }

        def __repr__(self):
            return f'<DisplacementDetail {self.id}: job {self.job_number} {self.rule_applied}>'

    @event.listens_for(DisplacementDetail, 'before_update')
    def reject_detail_update(mapper, connection, target):
        raise ImmutableRecordError(f'Displacement detail {target.id} is immutable')

    @event.listens_for(DisplacementDetail, 'before_delete')
    def reject_detail_delete(mapper, connection, target):
        raise ImmutableRecordError(f'Displacement detail {target.id} cannot be deleted')

    return DisplacementLog, DisplacementDetail
