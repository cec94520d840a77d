"""
Job and routing models
A job is a production order; its routing is the ordered list of operations
"""
from datetime import datetime


def create_job_models(db):
    """
    Factory function to create Job and JobRouting models with database instance

    Args:
        db: SQLAlchemy database instance

    Returns:
        tuple: (Job, JobRouting) model classes
    """

    class Job(db.Model):
        """
        A production order

        priority_score ranks urgency (higher = more urgent) and decides which
        job may preempt another. schedule_locked becomes true once any
        operation of the job has started; locked jobs are never bumped.
        """
        __tablename__ = 'jobs'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        job_number = db.Column(db.String(50), nullable=False, unique=True, index=True)
        customer_name = db.Column(db.String(200))
        part_number = db.Column(db.String(100))
        quantity = db.Column(db.Integer, nullable=False, default=1)
        priority_score = db.Column(db.Float, nullable=False, default=0.0, index=True)
        promised_date = db.Column(db.Date, nullable=True)
        schedule_locked = db.Column(db.Boolean, nullable=False, default=False)
        status = db.Column(db.String(20), nullable=False, default='pending')
        # Assembly link: child jobs feed a parent assembly
        parent_job_id = db.Column(db.Integer, db.ForeignKey('jobs.id'), nullable=True)
        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
        updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

        routings = db.relationship(
            'JobRouting',
            backref='job',
            lazy=True,
            order_by='JobRouting.sequence_order'
        )
        children = db.relationship('Job', backref=db.backref('parent', remote_side=[id]), lazy=True)

        __table_args__ = (
            db.CheckConstraint(
                "status IN ('pending', 'scheduled', 'in_progress', 'completed', 'on_hold', 'cancelled')",
                name='check_job_status'
            ),
        )

        def to_dict(self):
            return {
                'id': self.id,
                'job_number': self.job_number,
                'customer_name': self.customer_name,
                'part_number': self.part_number,
                'quantity': self.quantity,
                'priority_score': self.priority_score,
                'promised_date': self.promised_date.isoformat() if self.promised_date else None,
                'schedule_locked': self.schedule_locked,
                'status': self.status,
                'parent_job_id': self.parent_job_id,
            }

        def __repr__(self):
            return f'<Job {self.job_number} priority={self.priority_score}>'

    class JobRouting(db.Model):
        """
        One operation (routing step) of a job

        sequence_order is unique per job and defines precedence: step N must
        finish before any step with a larger sequence_order starts.
        Outsourced steps carry vendor data instead of a machine.
        """
        __tablename__ = 'job_routings'

        STATUS_OPEN = 'open'
        STATUS_SCHEDULED = 'scheduled'
        STATUS_NEEDS_RESCHEDULING = 'needs_rescheduling'
        STATUS_COMPLETED = 'completed'
        VALID_STATUSES = [STATUS_OPEN, STATUS_SCHEDULED, STATUS_NEEDS_RESCHEDULING, STATUS_COMPLETED]

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        job_id = db.Column(db.Integer, db.ForeignKey('jobs.id', ondelete='CASCADE'), nullable=False, index=True)
        sequence_order = db.Column(db.Integer, nullable=False)
        operation_name = db.Column(db.String(200), nullable=False)
        machine_id = db.Column(db.Integer, db.ForeignKey('machines.id'), nullable=True)
        machine_group_id = db.Column(db.Integer, db.ForeignKey('machine_groups.id'), nullable=True)
        estimated_hours = db.Column(db.Float, nullable=False, default=0.0)
        routing_status = db.Column(db.String(30), nullable=False, default=STATUS_OPEN)

        # Outsourced operations
        is_outsourced = db.Column(db.Boolean, nullable=False, default=False)
        vendor_name = db.Column(db.String(200))
        vendor_lead_days = db.Column(db.Integer)

        machine = db.relationship('Machine', lazy=True)

        __table_args__ = (
            db.UniqueConstraint('job_id', 'sequence_order', name='unique_job_sequence'),
            db.CheckConstraint(
                "routing_status IN ('open', 'scheduled', 'needs_rescheduling', 'completed')",
                name='check_routing_status'
            ),
        )

        def to_dict(self):
            return {
                'id': self.id,
                'job_id': self.job_id,
                'sequence_order': self.sequence_order,
                'operation_name': self.operation_name,
                'machine_id': self.machine_id,
                'machine_group_id': self.machine_group_id,
                'estimated_hours': self.estimated_hours,
                'routing_status': self.routing_status,
                'is_outsourced': self.is_outsourced,
                'vendor_name': self.vendor_name,
                'vendor_lead_days': self.vendor_lead_days,
            }

        def __repr__(self):
            return f'<JobRouting job={self.job_id} seq={self.sequence_order} {self.operation_name}>'

    return Job, JobRouting
