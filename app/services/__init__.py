"""
Services package for conflict detection and priority-based displacement
"""

from .conflict_types import (
    ConflictType,
    ConflictSeverity,
    ConflictStatus,
    ConflictCandidate,
    DetectionResult,
)

from .working_hours import WorkingHours, WorkingHoursResolver, WorkingHoursError
from .conflict_detection import ConflictDetectionService
from .conflict_ledger import ConflictLedger, detect_and_record
from .displacement_engine import DisplacementEngine, DisplacementResult
from .displacement_undo import DisplacementUndoService
from .displacement_history import DisplacementHistory, AlertService

__all__ = [
    # Conflict types
    'ConflictType',
    'ConflictSeverity',
    'ConflictStatus',
    'ConflictCandidate',
    'DetectionResult',
    # Services
    'WorkingHours',
    'WorkingHoursResolver',
    'WorkingHoursError',
    'ConflictDetectionService',
    'ConflictLedger',
    'detect_and_record',
    'DisplacementEngine',
    'DisplacementResult',
    'DisplacementUndoService',
    'DisplacementHistory',
    'AlertService',
]
