"""
System alert model
Operator-facing alerts raised by the displacement engine
"""
from datetime import datetime


def create_system_alert_model(db):
    """Factory function to create SystemAlert model with db instance"""

    class SystemAlert(db.Model):
        """
        Alert shown to supervisors until acknowledged

        alert_type examples: in_progress_job_pushed, operator_substitution,
        high_priority_no_substitute.
        """
        __tablename__ = 'system_alerts'

        VALID_SEVERITIES = ['low', 'medium', 'high', 'critical']

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        alert_type = db.Column(db.String(50), nullable=False, index=True)
        severity = db.Column(db.String(20), nullable=False, index=True)
        message = db.Column(db.Text, nullable=False)
        details = db.Column(db.JSON)
        displacement_log_id = db.Column(
            db.Integer,
            db.ForeignKey('displacement_logs.id', ondelete='SET NULL'),
            nullable=True,
            index=True
        )
        acknowledged = db.Column(db.Boolean, nullable=False, default=False, index=True)
        acknowledged_by = db.Column(db.String(100))
        acknowledged_at = db.Column(db.DateTime)
        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

        __table_args__ = (
            db.CheckConstraint(
                "severity IN ('low', 'medium', 'high', 'critical')",
                name='check_alert_severity'
            ),
        )

        def to_dict(self):
            return {
                'id': self.id,
                'alert_type': self.alert_type,
                'severity': self.severity,
                'message': self.message,
                'details': self.details,
                'displacement_log_id': self.displacement_log_id,
                'acknowledged': self.acknowledged,
                'acknowledged_by': self.acknowledged_by,
                'acknowledged_at': self.acknowledged_at.isoformat() if self.acknowledged_at else None,
                'created_at': self.created_at.isoformat() if self.created_at else None,
            }

        def __repr__(self):
            return f'<SystemAlert {self.id}: {self.alert_type} ({self.severity})>'

    return SystemAlert
