"""
Dashboard Endpoints
Headline cards, recent leads and today's follow-ups
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from leadflow.api.v1.dependencies import get_workspace
from leadflow.domain.models.lead import Lead
from leadflow.domain.services.aggregation import (
    DashboardStats,
    dashboard_stats,
    recent_leads,
    todays_followups,
)
from leadflow.domain.services.workspace_manager import LeadWorkspace

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class DashboardSummary(BaseModel):
    """Dashboard summary response"""
    stats: DashboardStats
    recent_leads: List[Lead]
    todays_followups: List[Lead]


@router.get("/summary", response_model=DashboardSummary)
async def get_dashboard_summary(
    today: Optional[date] = Query(None, description="Defaults to the server's current date"),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """
    Get aggregated dashboard metrics.
    
    Totals cover the whole working set. Follow-ups are everyone's for the
    CEO and the actor's own for an employee.
    """
    today = today or date.today()
    leads = workspace.repository.leads
    assignee = None if workspace.session.is_ceo else workspace.session.actor_name
    
    return DashboardSummary(
        stats=dashboard_stats(leads, today, assignee),
        recent_leads=recent_leads(leads),
        todays_followups=todays_followups(leads, today, assignee),
    )
