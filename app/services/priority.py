"""
Priority comparators used by the displacement engine

Ordering rules live here as sort keys so tie-breaks are explicit:

- Affected slots: in-progress first, then job priority descending, then
  earlier start, then lower slot id.
- Substitute candidates: lowest job priority first, then higher
  proficiency on the machine, then better preference rank, then earlier
  start, then lower slot id.
- Displacement opportunities: lowest job priority first, then earlier
  start, then lower slot id.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional

IN_PROGRESS_STATUS = 'in_progress'
DEFAULT_SUBSTITUTION_RATIO = '0.85'
DEFAULT_HIGH_PRIORITY_THRESHOLD = 700
DEFAULT_FIRM_ZONE_DAYS = 14


def _priority(value) -> float:
    return float(value) if value is not None else 0.0


def displacement_order_key(slot):
    """Sort key for slots walked by a displacement run"""
    in_progress_rank = 0 if slot.status == IN_PROGRESS_STATUS else 1
    return (in_progress_rank, -_priority(slot.job.priority_score), slot.start_datetime, slot.id)


def order_for_displacement(slots: Iterable) -> List:
    return sorted(slots, key=displacement_order_key)


@dataclass(frozen=True)
class SubstituteCandidate:
    """A slot whose operator could take over an affected slot"""
    slot_id: int
    employee_id: int
    employee_name: str
    job_id: int
    job_number: str
    routing_id: int
    priority_score: float
    proficiency_level: int
    preference_rank: int
    start_datetime: datetime


def substitute_order_key(candidate: SubstituteCandidate):
    """Sort key for substitute candidates, best candidate first"""
    return (
        _priority(candidate.priority_score),
        -candidate.proficiency_level,
        candidate.preference_rank,
        candidate.start_datetime,
        candidate.slot_id,
    )


def pick_substitute(candidates: Iterable[SubstituteCandidate]) -> Optional[SubstituteCandidate]:
    ordered = sorted(candidates, key=substitute_order_key)
    return ordered[0] if ordered else None


def meets_substitution_threshold(affected_priority, candidate_priority, ratio=DEFAULT_SUBSTITUTION_RATIO) -> bool:
    """
    The 15% rule: a job may only be bumped when its priority is at most
    ratio times the affected job's priority.

    Compared in Decimal so a boundary such as 850 vs 1000 * 0.85 holds exactly.
    """
    affected = Decimal(str(_priority(affected_priority)))
    candidate = Decimal(str(_priority(candidate_priority)))
    return candidate <= affected * Decimal(str(ratio))


def is_high_priority(priority_score, threshold=DEFAULT_HIGH_PRIORITY_THRESHOLD) -> bool:
    return _priority(priority_score) > float(threshold)


def in_firm_zone(promised_date: Optional[date], today: date, firm_zone_days=DEFAULT_FIRM_ZONE_DAYS) -> bool:
    """Jobs promised within firm_zone_days of today are normally not rescheduled"""
    if promised_date is None:
        return False
    return (promised_date - today).days <= firm_zone_days


def opportunity_order_key(slot):
    """Sort key for slots a higher-priority job could take over"""
    return (_priority(slot.job.priority_score), slot.start_datetime, slot.id)


def priority_gap_percent(incoming_priority, existing_priority) -> float:
    """How far below the incoming job's priority the existing job sits, in percent"""
    incoming = _priority(incoming_priority)
    if incoming <= 0:
        return 0.0
    return (incoming - _priority(existing_priority)) / incoming * 100


def can_displace(incoming_job, existing_job, today: date, ratio=DEFAULT_SUBSTITUTION_RATIO,
                 firm_zone_days=DEFAULT_FIRM_ZONE_DAYS):
    """
    Whether incoming_job may take over time scheduled for existing_job

    Rules, checked in order:
    1. existing_job passes the 15% rule against incoming_job
    2. existing_job is not in the firm zone
    3. existing_job is not schedule-locked

    Returns:
        (allowed, reason) tuple
    """
    gap = priority_gap_percent(incoming_job.priority_score, existing_job.priority_score)
    if _priority(existing_job.priority_score) >= _priority(incoming_job.priority_score) or \
            not meets_substitution_threshold(incoming_job.priority_score, existing_job.priority_score, ratio):
        return False, f'Insufficient priority difference: {gap:.1f}%'

    if in_firm_zone(existing_job.promised_date, today, firm_zone_days):
        return False, f'Job {existing_job.job_number} is in firm zone ({firm_zone_days} days from promise date)'

    if existing_job.schedule_locked:
        return False, f'Job {existing_job.job_number} is schedule locked'

    return True, f'Priority difference: {gap:.1f}%'
