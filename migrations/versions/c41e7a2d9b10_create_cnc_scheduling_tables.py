"""create_cnc_scheduling_tables

Revision ID: c41e7a2d9b10
Revises:
Create Date: 2025-08-04 09:12:44.103511

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c41e7a2d9b10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Use inspection to skip tables that create_all() already built
    from sqlalchemy import inspect
    conn = op.get_bind()
    existing_tables = inspect(conn).get_table_names()

    if 'machine_groups' not in existing_tables:
        op.create_table(
            'machine_groups',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('description', sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name')
        )

    if 'machines' not in existing_tables:
        op.create_table(
            'machines',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('machine_type', sa.String(length=50), nullable=True),
            sa.Column('machine_group_id', sa.Integer(), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False),
            sa.Column('efficiency_modifier', sa.Float(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint("status IN ('active', 'maintenance', 'inactive', 'retired')", name='check_machine_status'),
            sa.ForeignKeyConstraint(['machine_group_id'], ['machine_groups.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('name')
        )

    if 'jobs' not in existing_tables:
        op.create_table(
            'jobs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('job_number', sa.String(length=50), nullable=False),
            sa.Column('customer_name', sa.String(length=200), nullable=True),
            sa.Column('part_number', sa.String(length=100), nullable=True),
            sa.Column('quantity', sa.Integer(), nullable=False),
            sa.Column('priority_score', sa.Float(), nullable=False),
            sa.Column('promised_date', sa.Date(), nullable=True),
            sa.Column('schedule_locked', sa.Boolean(), nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False),
            sa.Column('parent_job_id', sa.Integer(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint(
                "status IN ('pending', 'scheduled', 'in_progress', 'completed', 'on_hold', 'cancelled')",
                name='check_job_status'
            ),
            sa.ForeignKeyConstraint(['parent_job_id'], ['jobs.id']),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_jobs_job_number', 'jobs', ['job_number'], unique=True)
        op.create_index('ix_jobs_priority_score', 'jobs', ['priority_score'], unique=False)

    if 'job_routings' not in existing_tables:
        op.create_table(
            'job_routings',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('job_id', sa.Integer(), nullable=False),
            sa.Column('sequence_order', sa.Integer(), nullable=False),
            sa.Column('operation_name', sa.String(length=200), nullable=False),
            sa.Column('machine_id', sa.Integer(), nullable=True),
            sa.Column('machine_group_id', sa.Integer(), nullable=True),
            sa.Column('estimated_hours', sa.Float(), nullable=False),
            sa.Column('routing_status', sa.String(length=30), nullable=False),
            sa.Column('is_outsourced', sa.Boolean(), nullable=False),
            sa.Column('vendor_name', sa.String(length=200), nullable=True),
            sa.Column('vendor_lead_days', sa.Integer(), nullable=True),
            sa.CheckConstraint(
                "routing_status IN ('open', 'scheduled', 'needs_rescheduling', 'completed')",
                name='check_routing_status'
            ),
            sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['machine_id'], ['machines.id']),
            sa.ForeignKeyConstraint(['machine_group_id'], ['machine_groups.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('job_id', 'sequence_order', name='unique_job_sequence')
        )
        op.create_index('ix_job_routings_job_id', 'job_routings', ['job_id'], unique=False)

    if 'employees' not in existing_tables:
        op.create_table(
            'employees',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('employee_code', sa.String(length=50), nullable=True),
            sa.Column('name', sa.String(length=100), nullable=False),
            sa.Column('email', sa.String(length=120), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('employee_code')
        )

    if 'employee_work_schedules' not in existing_tables:
        op.create_table(
            'employee_work_schedules',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('employee_id', sa.Integer(), nullable=False),
            sa.Column('day_of_week', sa.Integer(), nullable=False),
            sa.Column('start_time', sa.Time(), nullable=False),
            sa.Column('end_time', sa.Time(), nullable=False),
            sa.Column('is_working_day', sa.Boolean(), nullable=False),
            sa.CheckConstraint('day_of_week BETWEEN 1 AND 7', name='check_work_day_of_week'),
            sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('employee_id', 'day_of_week', name='unique_employee_work_day')
        )

    if 'operator_machine_qualifications' not in existing_tables:
        op.create_table(
            'operator_machine_qualifications',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('employee_id', sa.Integer(), nullable=False),
            sa.Column('machine_id', sa.Integer(), nullable=False),
            sa.Column('proficiency_level', sa.Integer(), nullable=False),
            sa.Column('preference_rank', sa.Integer(), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False),
            sa.CheckConstraint('proficiency_level BETWEEN 1 AND 5', name='check_proficiency_level'),
            sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['machine_id'], ['machines.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('employee_id', 'machine_id', name='unique_operator_machine')
        )

    if 'employee_availability_exceptions' not in existing_tables:
        op.create_table(
            'employee_availability_exceptions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('employee_id', sa.Integer(), nullable=False),
            sa.Column('start_date', sa.Date(), nullable=False),
            sa.Column('end_date', sa.Date(), nullable=False),
            sa.Column('exception_type', sa.String(length=20), nullable=False),
            sa.Column('start_time', sa.Time(), nullable=True),
            sa.Column('end_time', sa.Time(), nullable=True),
            sa.Column('reason', sa.String(length=500), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint('end_date >= start_date', name='check_exception_date_range'),
            sa.CheckConstraint(
                "exception_type IN ('vacation', 'sick', 'unavailable', 'training')",
                name='check_exception_type'
            ),
            sa.ForeignKeyConstraint(['employee_id'], ['employees.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(
            'idx_availability_exception_dates', 'employee_availability_exceptions',
            ['employee_id', 'start_date', 'end_date'], unique=False
        )

    if 'schedule_slots' not in existing_tables:
        op.create_table(
            'schedule_slots',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('job_id', sa.Integer(), nullable=False),
            sa.Column('routing_id', sa.Integer(), nullable=False),
            sa.Column('machine_id', sa.Integer(), nullable=False),
            sa.Column('employee_id', sa.Integer(), nullable=True),
            sa.Column('start_datetime', sa.DateTime(), nullable=False),
            sa.Column('end_datetime', sa.DateTime(), nullable=False),
            sa.Column('slot_date', sa.Date(), nullable=False),
            sa.Column('duration_minutes', sa.Integer(), nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False),
            sa.Column('locked', sa.Boolean(), nullable=False),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint('end_datetime > start_datetime', name='check_slot_window'),
            sa.CheckConstraint(
                "status IN ('scheduled', 'in_progress', 'completed', 'cancelled')",
                name='check_slot_status'
            ),
            sa.ForeignKeyConstraint(['job_id'], ['jobs.id']),
            sa.ForeignKeyConstraint(['routing_id'], ['job_routings.id']),
            sa.ForeignKeyConstraint(['machine_id'], ['machines.id']),
            sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_slots_machine_time', 'schedule_slots', ['machine_id', 'start_datetime', 'end_datetime'], unique=False)
        op.create_index('idx_slots_employee_date', 'schedule_slots', ['employee_id', 'slot_date'], unique=False)
        op.create_index('idx_slots_job', 'schedule_slots', ['job_id'], unique=False)

    if 'conflict_detection_runs' not in existing_tables:
        op.create_table(
            'conflict_detection_runs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('detection_date', sa.DateTime(), nullable=False),
            sa.Column('date_range_start', sa.Date(), nullable=False),
            sa.Column('date_range_end', sa.Date(), nullable=False),
            sa.Column('job_filter', sa.Integer(), nullable=True),
            sa.Column('include_resolved', sa.Boolean(), nullable=False),
            sa.Column('total_conflicts_found', sa.Integer(), nullable=False),
            sa.Column('summary', sa.JSON(), nullable=True),
            sa.Column('run_metadata', sa.JSON(), nullable=True),
            sa.Column('run_duration_ms', sa.Integer(), nullable=True),
            sa.Column('triggered_by', sa.String(length=50), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_conflict_detection_runs_detection_date', 'conflict_detection_runs', ['detection_date'], unique=False)

    if 'detected_conflicts' not in existing_tables:
        op.create_table(
            'detected_conflicts',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('detection_run_id', sa.Integer(), nullable=False),
            sa.Column('conflict_type', sa.String(length=50), nullable=False),
            sa.Column('severity', sa.String(length=20), nullable=False),
            sa.Column('fingerprint', sa.String(length=64), nullable=False),
            sa.Column('affected_job_ids', sa.JSON(), nullable=False),
            sa.Column('affected_employee_ids', sa.JSON(), nullable=False),
            sa.Column('affected_machine_ids', sa.JSON(), nullable=False),
            sa.Column('conflict_data', sa.JSON(), nullable=False),
            sa.Column('suggested_resolutions', sa.JSON(), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False),
            sa.Column('resolution_action', sa.String(length=100), nullable=True),
            sa.Column('resolution_notes', sa.Text(), nullable=True),
            sa.Column('resolved_by', sa.String(length=100), nullable=True),
            sa.Column('resolved_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('updated_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint("severity IN ('critical', 'high', 'medium', 'low')", name='check_conflict_severity'),
            sa.CheckConstraint(
                "status IN ('detected', 'acknowledged', 'resolving', 'resolved', 'ignored')",
                name='check_conflict_status'
            ),
            sa.ForeignKeyConstraint(['detection_run_id'], ['conflict_detection_runs.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_detected_conflicts_detection_run_id', 'detected_conflicts', ['detection_run_id'], unique=False)
        op.create_index('ix_detected_conflicts_conflict_type', 'detected_conflicts', ['conflict_type'], unique=False)
        op.create_index('ix_detected_conflicts_severity', 'detected_conflicts', ['severity'], unique=False)
        op.create_index('ix_detected_conflicts_fingerprint', 'detected_conflicts', ['fingerprint'], unique=False)
        op.create_index('ix_detected_conflicts_status', 'detected_conflicts', ['status'], unique=False)
        op.create_index('ix_detected_conflicts_created_at', 'detected_conflicts', ['created_at'], unique=False)

    if 'conflict_resolutions' not in existing_tables:
        op.create_table(
            'conflict_resolutions',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('conflict_id', sa.Integer(), nullable=False),
            sa.Column('resolution_type', sa.String(length=100), nullable=False),
            sa.Column('status_after', sa.String(length=20), nullable=False),
            sa.Column('success', sa.Boolean(), nullable=False),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('attempted_by', sa.String(length=100), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(['conflict_id'], ['detected_conflicts.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_conflict_resolutions_conflict_id', 'conflict_resolutions', ['conflict_id'], unique=False)

    if 'displacement_logs' not in existing_tables:
        op.create_table(
            'displacement_logs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('trigger_type', sa.String(length=50), nullable=False),
            sa.Column('employee_id', sa.Integer(), nullable=False),
            sa.Column('trigger_details', sa.JSON(), nullable=False),
            sa.Column('execution_status', sa.String(length=20), nullable=False),
            sa.Column('affected_jobs', sa.Integer(), nullable=False),
            sa.Column('jobs_pushed', sa.Integer(), nullable=False),
            sa.Column('jobs_substituted', sa.Integer(), nullable=False),
            sa.Column('jobs_needing_reschedule', sa.Integer(), nullable=False),
            sa.Column('execution_details', sa.JSON(), nullable=True),
            sa.Column('notification_payload', sa.JSON(none_as_null=True), nullable=True),
            sa.Column('notification_sent', sa.Boolean(), nullable=False),
            sa.Column('notification_sent_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.Column('completed_at', sa.DateTime(), nullable=True),
            sa.Column('undone_at', sa.DateTime(), nullable=True),
            sa.Column('undone_by', sa.String(length=100), nullable=True),
            sa.ForeignKeyConstraint(['employee_id'], ['employees.id']),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_displacement_logs_employee_id', 'displacement_logs', ['employee_id'], unique=False)
        op.create_index('ix_displacement_logs_created_at', 'displacement_logs', ['created_at'], unique=False)

    if 'displacement_details' not in existing_tables:
        op.create_table(
            'displacement_details',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('log_id', sa.Integer(), nullable=False),
            sa.Column('job_id', sa.Integer(), nullable=False),
            sa.Column('job_number', sa.String(length=50), nullable=False),
            sa.Column('slot_id', sa.Integer(), nullable=False),
            sa.Column('routing_id', sa.Integer(), nullable=True),
            sa.Column('rule_applied', sa.String(length=30), nullable=False),
            sa.Column('priority_score', sa.Float(), nullable=False),
            sa.Column('original_start', sa.DateTime(), nullable=False),
            sa.Column('original_end', sa.DateTime(), nullable=False),
            sa.Column('original_employee_id', sa.Integer(), nullable=True),
            sa.Column('original_machine_id', sa.Integer(), nullable=True),
            sa.Column('new_start', sa.DateTime(), nullable=True),
            sa.Column('new_end', sa.DateTime(), nullable=True),
            sa.Column('new_employee_id', sa.Integer(), nullable=True),
            sa.Column('substitute_job_id', sa.Integer(), nullable=True),
            sa.Column('substitute_job_number', sa.String(length=50), nullable=True),
            sa.Column('substitute_priority_score', sa.Float(), nullable=True),
            sa.Column('original_state', sa.JSON(), nullable=False),
            sa.Column('displacement_reason', sa.Text(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint(
                "rule_applied IN ('in_progress_push', 'operator_substitution', 'no_substitute')",
                name='check_displacement_rule'
            ),
            sa.ForeignKeyConstraint(['log_id'], ['displacement_logs.id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['job_id'], ['jobs.id']),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_displacement_details_log_id', 'displacement_details', ['log_id'], unique=False)
        op.create_index('ix_displacement_details_job_id', 'displacement_details', ['job_id'], unique=False)

    if 'system_alerts' not in existing_tables:
        op.create_table(
            'system_alerts',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('alert_type', sa.String(length=50), nullable=False),
            sa.Column('severity', sa.String(length=20), nullable=False),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('details', sa.JSON(), nullable=True),
            sa.Column('displacement_log_id', sa.Integer(), nullable=True),
            sa.Column('acknowledged', sa.Boolean(), nullable=False),
            sa.Column('acknowledged_by', sa.String(length=100), nullable=True),
            sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.CheckConstraint("severity IN ('low', 'medium', 'high', 'critical')", name='check_alert_severity'),
            sa.ForeignKeyConstraint(['displacement_log_id'], ['displacement_logs.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_system_alerts_alert_type', 'system_alerts', ['alert_type'], unique=False)
        op.create_index('ix_system_alerts_severity', 'system_alerts', ['severity'], unique=False)
        op.create_index('ix_system_alerts_displacement_log_id', 'system_alerts', ['displacement_log_id'], unique=False)
        op.create_index('ix_system_alerts_acknowledged', 'system_alerts', ['acknowledged'], unique=False)
        op.create_index('ix_system_alerts_created_at', 'system_alerts', ['created_at'], unique=False)


def downgrade():
    for table in (
        'system_alerts',
        'displacement_details',
        'displacement_logs',
        'conflict_resolutions',
        'detected_conflicts',
        'conflict_detection_runs',
        'schedule_slots',
        'employee_availability_exceptions',
        'operator_machine_qualifications',
        'employee_work_schedules',
        'employees',
        'job_routings',
        'jobs',
        'machines',
        'machine_groups',
    ):
        op.drop_table(table)
