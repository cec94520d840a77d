"""
Conflict ledger models
Detection runs, the conflicts each run found, and resolution attempts
"""
from datetime import datetime


def create_conflict_models(db):
    """
    Factory function to create conflict ledger models with database instance

    Args:
        db: SQLAlchemy database instance

    Returns:
        tuple: (ConflictDetectionRun, DetectedConflict, ConflictResolution)
    """

    class ConflictDetectionRun(db.Model):
        """
        One execution of all conflict detectors over a date range

        Runs are immutable once recorded. run_metadata lists anything the
        detectors had to skip (malformed working hours, detector errors)
        and how many previously resolved conflicts were suppressed.
        """
        __tablename__ = 'conflict_detection_runs'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        detection_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
        date_range_start = db.Column(db.Date, nullable=False)
        date_range_end = db.Column(db.Date, nullable=False)
        job_filter = db.Column(db.Integer, nullable=True)
        include_resolved = db.Column(db.Boolean, nullable=False, default=False)
        total_conflicts_found = db.Column(db.Integer, nullable=False, default=0)
        summary = db.Column(db.JSON)
        run_metadata = db.Column(db.JSON)
        run_duration_ms = db.Column(db.Integer)
        triggered_by = db.Column(db.String(50), nullable=False, default='api')

        conflicts = db.relationship('DetectedConflict', backref='detection_run', lazy=True)

        def to_dict(self):
            return {
                'id': self.id,
                'detection_date': self.detection_date.isoformat() if self.detection_date else None,
                'date_range': {
                    'start': self.date_range_start.isoformat(),
                    'end': self.date_range_end.isoformat(),
                },
                'job_filter': self.job_filter,
                'include_resolved': self.include_resolved,
                'total_conflicts_found': self.total_conflicts_found,
                'summary': self.summary,
                'metadata': self.run_metadata,
                'run_duration_ms': self.run_duration_ms,
                'triggered_by': self.triggered_by,
            }

        def __repr__(self):
            return f'<ConflictDetectionRun {self.id}: {self.total_conflicts_found} conflicts>'

    class DetectedConflict(db.Model):
        """
        A single conflict found by a detection run

        Lifecycle: detected -> acknowledged -> resolving -> resolved | ignored.
        resolved_at is stamped only when the status becomes resolved.
        fingerprint identifies the same logical conflict across runs.
        """
        __tablename__ = 'detected_conflicts'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        detection_run_id = db.Column(
            db.Integer,
            db.ForeignKey('conflict_detection_runs.id', ondelete='CASCADE'),
            nullable=False,
            index=True
        )
        conflict_type = db.Column(db.String(50), nullable=False, index=True)
        severity = db.Column(db.String(20), nullable=False, index=True)
        fingerprint = db.Column(db.String(64), nullable=False, index=True)
        affected_job_ids = db.Column(db.JSON, nullable=False, default=list)
        affected_employee_ids = db.Column(db.JSON, nullable=False, default=list)
        affected_machine_ids = db.Column(db.JSON, nullable=False, default=list)
        conflict_data = db.Column(db.JSON, nullable=False)
        suggested_resolutions = db.Column(db.JSON)

        # Resolution tracking
        status = db.Column(db.String(20), nullable=False, default='detected', index=True)
        resolution_action = db.Column(db.String(100))
        resolution_notes = db.Column(db.Text)
        resolved_by = db.Column(db.String(100))
        resolved_at = db.Column(db.DateTime)

        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
        updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

        resolution_attempts = db.relationship(
            'ConflictResolution',
            backref='conflict',
            lazy=True,
            order_by='ConflictResolution.created_at'
        )

        __table_args__ = (
            db.CheckConstraint(
                "severity IN ('critical', 'high', 'medium', 'low')",
                name='check_conflict_severity'
            ),
            db.CheckConstraint(
                "status IN ('detected', 'acknowledged', 'resolving', 'resolved', 'ignored')",
                name='check_conflict_status'
            ),
        )

        def to_dict(self, include_attempts=False):
            result = {
                'id': self.id,
                'detection_run_id': self.detection_run_id,
                'conflict_type': self.conflict_type,
                'severity': self.severity,
                'fingerprint': self.fingerprint,
                'affected_job_ids': self.affected_job_ids,
                'affected_employee_ids': self.affected_employee_ids,
                'affected_machine_ids': self.affected_machine_ids,
                'conflict_data': self.conflict_data,
                'suggested_resolutions': self.suggested_resolutions,
                'status': self.status,
                'resolution_action': self.resolution_action,
                'resolution_notes': self.resolution_notes,
                'resolved_by': self.resolved_by,
                'resolved_at': self.resolved_at.isoformat() if self.resolved_at else None,
                'created_at': self.created_at.isoformat() if self.created_at else None,
                'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            }
            if include_attempts:
                result['resolution_attempts'] = [a.to_dict() for a in self.resolution_attempts]
            return result

        def __repr__(self):
            return f'<DetectedConflict {self.id}: {self.conflict_type} ({self.severity}, {self.status})>'

    class ConflictResolution(db.Model):
        """Resolution attempt made against a detected conflict"""
        __tablename__ = 'conflict_resolutions'

        id = db.Column(db.Integer, primary_key=True, autoincrement=True)
        conflict_id = db.Column(
            db.Integer,
            db.ForeignKey('detected_conflicts.id', ondelete='CASCADE'),
            nullable=False,
            index=True
        )
        resolution_type = db.Column(db.String(100), nullable=False)
        status_after = db.Column(db.String(20), nullable=False)
        success = db.Column(db.Boolean, nullable=False, default=True)
        notes = db.Column(db.Text)
        error_message = db.Column(db.Text)
        attempted_by = db.Column(db.String(100))
        created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

        def to_dict(self):
            return {
                'id': self.id,
                'conflict_id': self.conflict_id,
                'resolution_type': self.resolution_type,
                'status_after': self.status_after,
                'success': self.success,
                'notes': self.notes,
                'error_message': self.error_message,
                'attempted_by': self.attempted_by,
                'created_at': self.created_at.isoformat() if self.created_at else None,
            }

        def __repr__(self):
            return f'<ConflictResolution {self.id}: conflict {self.conflict_id} {self.resolution_type}>'

    return ConflictDetectionRun, DetectedConflict, ConflictResolution
