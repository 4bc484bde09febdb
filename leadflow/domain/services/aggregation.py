"""
Lead Aggregation
Counts and group-bys over the working set for dashboard cards,
report charts and the team performance view.
"""
import math
from datetime import date
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from leadflow.domain.models.lead import DealStatus, InterestLevel, Lead


class ChartSlice(BaseModel):
    """Single data point for a pie or bar chart"""
    name: str
    value: int


class AssigneeCount(BaseModel):
    """Leads held by one staff member"""
    name: str
    leads: int


class DashboardStats(BaseModel):
    """Headline numbers for the dashboard cards"""
    total_leads: int
    active_leads: int
    converted_leads: int
    todays_followups: int


class EmployeeStats(BaseModel):
    """Performance summary for one employee"""
    name: str
    total_leads: int
    active_leads: int
    closed_leads: int
    dropped_leads: int
    todays_followups: int
    conversion_rate: float
    drop_rate: float
    score: int


def _field_value(lead: Lead, field_name: str) -> str:
    value = getattr(lead, field_name)
    return value.value if hasattr(value, "value") else str(value)


def count_by(leads: Sequence[Lead], field_name: str) -> Dict[str, int]:
    """Count leads per observed value of field_name, in first-seen order"""
    counts: Dict[str, int] = {}
    for lead in leads:
        key = _field_value(lead, field_name)
        counts[key] = counts.get(key, 0) + 1
    return counts


def status_breakdown(leads: Sequence[Lead]) -> List[ChartSlice]:
    """Leads per deal status; statuses with no leads are omitted"""
    return [ChartSlice(name=k, value=v) for k, v in count_by(leads, "deal_status").items()]


def interest_breakdown(leads: Sequence[Lead]) -> List[ChartSlice]:
    return [ChartSlice(name=k, value=v) for k, v in count_by(leads, "interest_level").items()]


def area_breakdown(leads: Sequence[Lead], top: int = 5) -> List[ChartSlice]:
    """Most popular preferred areas, highest count first"""
    counts = count_by(leads, "preferred_area")
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [ChartSlice(name=k, value=v) for k, v in ranked[:top]]


def assignee_breakdown(leads: Sequence[Lead]) -> List[AssigneeCount]:
    return [AssigneeCount(name=k, leads=v) for k, v in count_by(leads, "assigned_to").items()]


def group_by_assignee(leads: Sequence[Lead]) -> Dict[str, List[Lead]]:
    groups: Dict[str, List[Lead]] = {}
    for lead in leads:
        groups.setdefault(lead.assigned_to, []).append(lead)
    return groups


def conversion_rate(total_leads: int, closed_leads: int) -> float:
    """Closed leads as a percentage of all leads (0 when there are none)"""
    if total_leads == 0:
        return 0.0
    return closed_leads / total_leads * 100


def calculate_score(total_leads: int, closed_leads: int) -> int:
    """
    0-10 performance score for one staff member.
    
    Up to 7 points for conversion rate and up to 3 for volume, where
    20 leads earns the full volume share. Halves round up.
    """
    rate = conversion_rate(total_leads, closed_leads)
    raw = min(7, rate / 100 * 7) + min(3, total_leads / 20 * 3)
    return int(math.floor(raw + 0.5))


def is_followup_due(lead: Lead, today: date) -> bool:
    return lead.next_followup_date == today


def todays_followups(
    leads: Sequence[Lead],
    today: date,
    assignee: Optional[str] = None,
) -> List[Lead]:
    """
    Leads whose next follow-up is today, ordered by assignee.
    
    Args:
        leads: Working set
        today: Current calendar date
        assignee: Restrict to this staff member's leads (None for everyone)
    """
    due = [
        lead for lead in leads
        if is_followup_due(lead, today) and (assignee is None or lead.assigned_to == assignee)
    ]
    return sorted(due, key=lambda lead: lead.assigned_to)


def dashboard_stats(
    leads: Sequence[Lead],
    today: date,
    assignee: Optional[str] = None,
) -> DashboardStats:
    """
    Dashboard card numbers.
    
    Totals cover every lead; only today's follow-ups are scoped to
    assignee (pass None for a CEO).
    """
    return DashboardStats(
        total_leads=len(leads),
        active_leads=sum(1 for lead in leads if lead.deal_status != DealStatus.CLOSED),
        converted_leads=sum(
            1 for lead in leads
            if lead.deal_status == DealStatus.CLOSED and lead.interest_level == InterestLevel.GREEN
        ),
        todays_followups=len(todays_followups(leads, today, assignee)),
    )


def recent_leads(leads: Sequence[Lead], limit: int = 5) -> List[Lead]:
    """Newest leads first; leads without a timestamp sort last"""
    dated = [lead for lead in leads if lead.created_at is not None]
    undated = [lead for lead in leads if lead.created_at is None]
    dated.sort(key=lambda lead: lead.created_at, reverse=True)
    return (dated + undated)[:limit]


def employee_stats(name: str, leads: Sequence[Lead], today: date) -> EmployeeStats:
    """Statistics for the leads assigned to name"""
    own = [lead for lead in leads if lead.assigned_to == name]
    total = len(own)
    closed = sum(1 for lead in own if lead.deal_status == DealStatus.CLOSED)
    dropped = sum(1 for lead in own if lead.deal_status == DealStatus.DROPPED)
    
    return EmployeeStats(
        name=name,
        total_leads=total,
        active_leads=total - closed - dropped,
        closed_leads=closed,
        dropped_leads=dropped,
        todays_followups=sum(1 for lead in own if is_followup_due(lead, today)),
        conversion_rate=conversion_rate(total, closed),
        drop_rate=conversion_rate(total, dropped),
        score=calculate_score(total, closed),
    )
