"""
Employee (operator) models
Operators, their recurring weekly schedule and their machine qualifications
"""
from datetime import datetime


def create_employee_models(db):
    """Factory function to create employee models with db instance"""

    class Employee(db.Model):
        """
        Machine operator

        Working hours come from EmployeeWorkSchedule rows, overridden per date
        by EmployeeAvailabilityException rows.
        """
        __tablename__ = 'employees'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        employee_code = db.Column(db.String(50), unique=True)
        name = db.Column(db.String(100), nullable=False)
        email = db.Column(db.String(120))
        is_active = db.Column(db.Boolean, nullable=False, default=True)
        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

        work_schedules = db.relationship('EmployeeWorkSchedule', backref='employee', lazy=True)
        qualifications = db.relationship('OperatorMachineQualification', backref='employee', lazy=True)

        def to_dict(self):
            return {
                'id': self.id,
                'employee_code': self.employee_code,
                'name': self.name,
                'email': self.email,
                'is_active': self.is_active,
            }

        def __repr__(self):
            return f'<Employee {self.id}: {self.name}>'

    class EmployeeWorkSchedule(db.Model):
        """
        Recurring working hours for one day of the week

        day_of_week uses ISO numbering (1=Monday .. 7=Sunday). An end_time
        earlier than start_time describes an overnight shift that ends on
        the following calendar day.
        """
        __tablename__ = 'employee_work_schedules'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        employee_id = db.Column(db.Integer, db.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
        day_of_week = db.Column(db.Integer, nullable=False)
        start_time = db.Column(db.Time, nullable=False)
        end_time = db.Column(db.Time, nullable=False)
        is_working_day = db.Column(db.Boolean, nullable=False, default=True)

        __table_args__ = (
            db.UniqueConstraint('employee_id', 'day_of_week', name='unique_employee_work_day'),
            db.CheckConstraint('day_of_week BETWEEN 1 AND 7', name='check_work_day_of_week'),
        )

        def __repr__(self):
            return f'<EmployeeWorkSchedule {self.employee_id} day={self.day_of_week} {self.start_time}-{self.end_time}>'

    class OperatorMachineQualification(db.Model):
        """
        Records that an operator may run a machine

        proficiency_level runs 1 (trainee) to 5 (expert); preference_rank 1 is
        the operator's preferred machine. Used when searching for substitutes.
        """
        __tablename__ = 'operator_machine_qualifications'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        employee_id = db.Column(db.Integer, db.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
        machine_id = db.Column(db.Integer, db.ForeignKey('machines.id', ondelete='CASCADE'), nullable=False)
        proficiency_level = db.Column(db.Integer, nullable=False, default=3)
        preference_rank = db.Column(db.Integer, nullable=False, default=1)
        is_active = db.Column(db.Boolean, nullable=False, default=True)

        machine = db.relationship('Machine', lazy=True)

        __table_args__ = (
            db.UniqueConstraint('employee_id', 'machine_id', name='unique_operator_machine'),
            db.CheckConstraint('proficiency_level BETWEEN 1 AND 5', name='check_proficiency_level'),
        )

        def __repr__(self):
            return f'<OperatorMachineQualification emp={self.employee_id} machine={self.machine_id}>'

    return Employee, EmployeeWorkSchedule, OperatorMachineQualification
