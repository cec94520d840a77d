"""
Machine models
Machines are the physical resources schedule slots are placed on
"""
from datetime import datetime


def create_machine_models(db):
    """Factory function to create machine models with db instance"""

    class MachineGroup(db.Model):
        """
        Capability group of interchangeable machines (e.g. all 5-axis mills)
        Operations may require a group instead of a specific machine
        """
        __tablename__ = 'machine_groups'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        name = db.Column(db.String(100), nullable=False, unique=True)
        description = db.Column(db.Text)

        machines = db.relationship('Machine', backref='group', lazy=True)

        def __repr__(self):
            return f'<MachineGroup {self.name}>'

    class Machine(db.Model):
        """
        A CNC machine or work center

        Status values: active, maintenance, inactive, retired.
        efficiency_modifier scales estimated durations (1.0 = nominal).
        """
        __tablename__ = 'machines'

        STATUS_ACTIVE = 'active'
        STATUS_MAINTENANCE = 'maintenance'
        STATUS_INACTIVE = 'inactive'
        STATUS_RETIRED = 'retired'
        VALID_STATUSES = [STATUS_ACTIVE, STATUS_MAINTENANCE, STATUS_INACTIVE, STATUS_RETIRED]

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        name = db.Column(db.String(100), nullable=False, unique=True)
        machine_type = db.Column(db.String(50))
        machine_group_id = db.Column(db.Integer, db.ForeignKey('machine_groups.id'), nullable=True)
        status = db.Column(db.String(20), nullable=False, default=STATUS_ACTIVE)
        efficiency_modifier = db.Column(db.Float, nullable=False, default=1.0)
        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

        __table_args__ = (
            db.CheckConstraint(
                "status IN ('active', 'maintenance', 'inactive', 'retired')",
                name='check_machine_status'
            ),
        )

        @property
        def is_available(self):
            return self.status == self.STATUS_ACTIVE

        def to_dict(self):
            return {
                'id': self.id,
                'name': self.name,
                'machine_type': self.machine_type,
                'machine_group_id': self.machine_group_id,
                'status': self.status,
                'efficiency_modifier': self.efficiency_modifier,
            }

        def __repr__(self):
            return f'<Machine {self.id}: {self.name} ({self.status})>'

    return MachineGroup, Machine
