"""
Conflict types, severities and result containers for conflict detection
"""
import hashlib
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum


class ConflictType(str, Enum):
    """Kinds of schedule conflicts, one per detector"""
    MACHINE = "machine_double_booking"
    OPERATOR = "operator_double_booking"
    SEQUENCE = "sequence_violation"
    CAPACITY = "capacity_exceeded"
    DEPENDENCY = "dependency_conflict"
    SHIFT = "shift_violation"

    @property
    def result_key(self) -> str:
        """Key of this type's list in a detection response"""
        return RESULT_KEYS[self]


RESULT_KEYS = {
    ConflictType.MACHINE: 'machine_conflicts',
    ConflictType.OPERATOR: 'operator_conflicts',
    ConflictType.SEQUENCE: 'sequence_conflicts',
    ConflictType.CAPACITY: 'capacity_conflicts',
    ConflictType.DEPENDENCY: 'dependency_conflicts',
    ConflictType.SHIFT: 'shift_conflicts',
}


class ConflictSeverity(str, Enum):
    """Severity levels for conflicts"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, critical first"""
        return SEVERITY_RANK[self.value]


SEVERITY_RANK = {'critical': 1, 'high': 2, 'medium': 3, 'low': 4}


class ConflictStatus(str, Enum):
    """Resolution lifecycle of a recorded conflict"""
    DETECTED = "detected"
    ACKNOWLEDGED = "acknowledged"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    IGNORED = "ignored"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


ALLOWED_TRANSITIONS = {
    ConflictStatus.DETECTED: {ConflictStatus.ACKNOWLEDGED, ConflictStatus.IGNORED},
    ConflictStatus.ACKNOWLEDGED: {ConflictStatus.RESOLVING, ConflictStatus.IGNORED},
    ConflictStatus.RESOLVING: {ConflictStatus.RESOLVED, ConflictStatus.IGNORED},
    ConflictStatus.RESOLVED: set(),
    ConflictStatus.IGNORED: set(),
}

CLOSED_STATUSES = (ConflictStatus.RESOLVED.value, ConflictStatus.IGNORED.value)


def can_transition(current: str, new: str) -> bool:
    """Check a status change against the conflict lifecycle"""
    return ConflictStatus(new) in ALLOWED_TRANSITIONS[ConflictStatus(current)]


# Severity thresholds
OVERLAP_CRITICAL_MINUTES = 480
OVERLAP_HIGH_MINUTES = 120
OVERLAP_MEDIUM_MINUTES = 30

CAPACITY_CRITICAL_RATIO = 1.5
CAPACITY_HIGH_RATIO = 1.25
CAPACITY_MEDIUM_RATIO = 1.1


def overlap_severity(overlap_minutes: float) -> ConflictSeverity:
    """Severity of a double booking from the length of the overlap"""
    if overlap_minutes > OVERLAP_CRITICAL_MINUTES:
        return ConflictSeverity.CRITICAL
    if overlap_minutes > OVERLAP_HIGH_MINUTES:
        return ConflictSeverity.HIGH
    if overlap_minutes > OVERLAP_MEDIUM_MINUTES:
        return ConflictSeverity.MEDIUM
    return ConflictSeverity.LOW


def sequence_severity(sequence_gap: int) -> ConflictSeverity:
    """Severity of a sequence violation from the distance between steps"""
    if sequence_gap > 2:
        return ConflictSeverity.CRITICAL
    if sequence_gap > 1:
        return ConflictSeverity.HIGH
    return ConflictSeverity.MEDIUM


def capacity_severity(scheduled_minutes: float, capacity_minutes: float) -> ConflictSeverity:
    """Severity of an over-capacity day; any work on a zero-capacity day is critical"""
    if capacity_minutes <= 0:
        return ConflictSeverity.CRITICAL
    ratio = scheduled_minutes / capacity_minutes
    if ratio > CAPACITY_CRITICAL_RATIO:
        return ConflictSeverity.CRITICAL
    if ratio > CAPACITY_HIGH_RATIO:
        return ConflictSeverity.HIGH
    if ratio > CAPACITY_MEDIUM_RATIO:
        return ConflictSeverity.MEDIUM
    return ConflictSeverity.LOW


@dataclass(frozen=True)
class ConflictCandidate:
    """
    A conflict produced by one detector

    identity names the logical conflict (e.g. the pair of slot ids) and is
    hashed into the fingerprint used to match conflicts across runs.
    """
    conflict_type: ConflictType
    severity: ConflictSeverity
    identity: Tuple[Any, ...]
    job_ids: Tuple[int, ...]
    employee_ids: Tuple[int, ...]
    machine_ids: Tuple[int, ...]
    details: Dict[str, Any] = field(default_factory=dict)
    job_numbers: Tuple[str, ...] = ()
    operator_names: Tuple[str, ...] = ()
    machine_names: Tuple[str, ...] = ()

    @property
    def fingerprint(self) -> str:
        key_str = '|'.join([self.conflict_type.value] + [str(part) for part in self.identity])
        return hashlib.sha256(key_str.encode()).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'conflict_type': self.conflict_type.value,
            'severity': self.severity.value,
            'fingerprint': self.fingerprint,
            'affected_job_ids': list(self.job_ids),
            'affected_employee_ids': list(self.employee_ids),
            'affected_machine_ids': list(self.machine_ids),
        }
        result.update(self.details)
        return result


@dataclass
class DetectionResult:
    """Everything one detection run produced, before it is recorded"""
    start_date: date
    end_date: date
    detected_at: datetime
    conflicts: List[ConflictCandidate] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    job_id: Optional[int] = None
    include_resolved: bool = False

    def conflicts_by_type(self) -> Dict[str, List[Dict[str, Any]]]:
        grouped = {key: [] for key in RESULT_KEYS.values()}
        for conflict in self.conflicts:
            grouped[conflict.conflict_type.result_key].append(conflict.to_dict())
        return grouped

    def to_dict(self) -> Dict[str, Any]:
        return {
            'conflicts': self.conflicts_by_type(),
            'summary': self.summary,
            'detected_at': self.detected_at.isoformat(),
            'date_range': {
                'start': self.start_date.isoformat(),
                'end': self.end_date.isoformat(),
            },
            'job_filter': self.job_id,
            'include_resolved': self.include_resolved,
            'metadata': self.metadata,
        }
