"""
Employee availability exceptions
Dated overrides of the recurring weekly work schedule
"""
from datetime import datetime


def create_availability_model(db):
    """Factory function to create the availability exception model with db instance"""

    class EmployeeAvailabilityException(db.Model):
        """
        A dated exception to an employee's weekly schedule

        Without start_time/end_time the employee does not work on any day of
        the range. With both times set, that window replaces the weekly
        schedule for each day of the range.
        """
        __tablename__ = 'employee_availability_exceptions'

        TYPE_VACATION = 'vacation'
        TYPE_SICK = 'sick'
        TYPE_UNAVAILABLE = 'unavailable'
        TYPE_TRAINING = 'training'
        VALID_TYPES = [TYPE_VACATION, TYPE_SICK, TYPE_UNAVAILABLE, TYPE_TRAINING]

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        employee_id = db.Column(db.Integer, db.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
        start_date = db.Column(db.Date, nullable=False)
        end_date = db.Column(db.Date, nullable=False)
        exception_type = db.Column(db.String(20), nullable=False, default=TYPE_UNAVAILABLE)
        start_time = db.Column(db.Time, nullable=True)
        end_time = db.Column(db.Time, nullable=True)
        reason = db.Column(db.String(500))
        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

        employee = db.relationship('Employee', backref='availability_exceptions', lazy=True)

        __table_args__ = (
            db.Index('idx_availability_exception_dates', 'employee_id', 'start_date', 'end_date'),
            db.CheckConstraint('end_date >= start_date', name='check_exception_date_range'),
            db.CheckConstraint(
                "exception_type IN ('vacation', 'sick', 'unavailable', 'training')",
                name='check_exception_type'
            ),
        )

        @property
        def has_explicit_hours(self):
            return self.start_time is not None and self.end_time is not None

        def covers(self, check_date):
            return self.start_date <= check_date <= self.end_date

        def to_dict(self):
            return {
                'id': self.id,
                'employee_id': self.employee_id,
                'start_date': self.start_date.isoformat(),
                'end_date': self.end_date.isoformat(),
                'exception_type': self.exception_type,
                'start_time': self.start_time.strftime('%H:%M') if self.start_time else None,
                'end_time': self.end_time.strftime('%H:%M') if self.end_time else None,
                'reason': self.reason,
                'created_at': self.created_at.isoformat() if self.created_at else None,
            }

        def __repr__(self):
            return f'<EmployeeAvailabilityException {self.employee_id}: {self.start_date} to {self.end_date} ({self.exception_type})>'

    return EmployeeAvailabilityException
