"""
Schedule slot model - places one operation on one machine for a time window
"""
from datetime import datetime


def create_schedule_slot_model(db):
    """Factory function to create ScheduleSlot model with db instance"""

    class ScheduleSlot(db.Model):
        """
        Concrete placement of an operation on a machine

        employee_id is nullable for unattended or outsourced operations.
        Active slots (scheduled/in_progress) must not overlap on the same
        machine or the same employee; the conflict detector reports any
        that do. slot_date is the calendar date of start_datetime.
        """
        __tablename__ = 'schedule_slots'

        STATUS_SCHEDULED = 'scheduled'
        STATUS_IN_PROGRESS = 'in_progress'
        STATUS_COMPLETED = 'completed'
        STATUS_CANCELLED = 'cancelled'
        VALID_STATUSES = [STATUS_SCHEDULED, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED]
        ACTIVE_STATUSES = (STATUS_SCHEDULED, STATUS_IN_PROGRESS)

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        job_id = db.Column(db.Integer, db.ForeignKey('jobs.id'), nullable=False)
        routing_id = db.Column(db.Integer, db.ForeignKey('job_routings.id'), nullable=False)
        machine_id = db.Column(db.Integer, db.ForeignKey('machines.id'), nullable=False)
        employee_id = db.Column(db.Integer, db.ForeignKey('employees.id'), nullable=True)
        start_datetime = db.Column(db.DateTime, nullable=False)
        end_datetime = db.Column(db.DateTime, nullable=False)
        slot_date = db.Column(db.Date, nullable=False)
        duration_minutes = db.Column(db.Integer, nullable=False)
        status = db.Column(db.String(20), nullable=False, default=STATUS_SCHEDULED)
        locked = db.Column(db.Boolean, nullable=False, default=False)
        notes = db.Column(db.Text)
        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
        updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

        __table_args__ = (
            db.Index('idx_slots_machine_time', 'machine_id', 'start_datetime', 'end_datetime'),
            db.Index('idx_slots_employee_date', 'employee_id', 'slot_date'),
            db.Index('idx_slots_job', 'job_id'),
            db.CheckConstraint('end_datetime > start_datetime', name='check_slot_window'),
            db.CheckConstraint(
                "status IN ('scheduled', 'in_progress', 'completed', 'cancelled')",
                name='check_slot_status'
            ),
        )

        # Relationships
        job = db.relationship('Job', backref='slots', lazy=True)
        routing = db.relationship('JobRouting', backref='slots', lazy=True)
        machine = db.relationship('Machine', backref='slots', lazy=True)
        employee = db.relationship('Employee', backref='slots', lazy=True)

        @property
        def is_active(self):
            return self.status in self.ACTIVE_STATUSES

        def set_window(self, start, end):
            """Move the slot, keeping slot_date and duration_minutes in step"""
            self.start_datetime = start
            self.end_datetime = end
            self.slot_date = start.date()
            self.duration_minutes = int((end - start).total_seconds() // 60)

        def snapshot(self):
            """Column values needed to recreate this slot after deletion"""
            return {
                'id': self.id,
                'job_id': self.job_id,
                'routing_id': self.routing_id,
                'machine_id': self.machine_id,
                'employee_id': self.employee_id,
                'start_datetime': self.start_datetime.isoformat(),
                'end_datetime': self.end_datetime.isoformat(),
                'status': self.status,
                'locked': self.locked,
                'notes': self.notes,
            }

        def to_dict(self):
            return {
                'id': self.id,
                'job_id': self.job_id,
                'job_number': self.job.job_number if self.job else None,
                'routing_id': self.routing_id,
                'machine_id': self.machine_id,
                'employee_id': self.employee_id,
                'start_datetime': self.start_datetime.isoformat(),
                'end_datetime': self.end_datetime.isoformat(),
                'slot_date': self.slot_date.isoformat(),
                'duration_minutes': self.duration_minutes,
                'status': self.status,
                'locked': self.locked,
                'notes': self.notes,
            }

        def __repr__(self):
            return f'<ScheduleSlot {self.id}: job {self.job_id} on machine {self.machine_id} {self.start_datetime}>'

    return ScheduleSlot
