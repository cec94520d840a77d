"""
Database models for the CNC scheduling engine
Centralizes all SQLAlchemy model imports using factory pattern
"""
from .machine import create_machine_models
from .job import create_job_models
from .employee import create_employee_models
from .availability import create_availability_model
from .schedule import create_schedule_slot_model
from .conflict import create_conflict_models
from .displacement import create_displacement_models, ImmutableRecordError
from .alert import create_system_alert_model

# Models are declared once per SQLAlchemy instance; a second create_app()
# in the same process reuses them instead of redefining the tables.
_initialized = {}


def init_models(db):
    """
    Initialize all models with the database instance

    Args:
        db: SQLAlchemy database instance

    Returns:
        dict: Dictionary containing all model classes
    """
    if id(db) in _initialized:
        return _initialized[id(db)]

    MachineGroup, Machine = create_machine_models(db)
    Job, JobRouting = create_job_models(db)
    Employee, EmployeeWorkSchedule, OperatorMachineQualification = create_employee_models(db)
    EmployeeAvailabilityException = create_availability_model(db)
    ScheduleSlot = create_schedule_slot_model(db)
    ConflictDetectionRun, DetectedConflict, ConflictResolution = create_conflict_models(db)
    DisplacementLog, DisplacementDetail = create_displacement_models(db)
    SystemAlert = create_system_alert_model(db)

    models = {
        'MachineGroup': MachineGroup,
        'Machine': Machine,
        'Job': Job,
        'JobRouting': JobRouting,
        'Employee': Employee,
        'EmployeeWorkSchedule': EmployeeWorkSchedule,
        'OperatorMachineQualification': OperatorMachineQualification,
        'EmployeeAvailabilityException': EmployeeAvailabilityException,
        'ScheduleSlot': ScheduleSlot,
        'ConflictDetectionRun': ConflictDetectionRun,
        'DetectedConflict': DetectedConflict,
        'ConflictResolution': ConflictResolution,
        'DisplacementLog': DisplacementLog,
        'DisplacementDetail': DisplacementDetail,
        'SystemAlert': SystemAlert,
    }
    _initialized[id(db)] = models
    return models


__all__ = [
    'init_models',
    'create_machine_models',
    'create_job_models',
    'create_employee_models',
    'create_availability_model',
    'create_schedule_slot_model',
    'create_conflict_models',
    'create_displacement_models',
    'create_system_alert_model',
    'ImmutableRecordError',
    # Model registry exports
    'model_registry',
    'get_models',
    'get_db'
]

# Import registry for convenience
from .registry import model_registry, get_models, get_db
