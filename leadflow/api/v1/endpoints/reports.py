"""
Report Endpoints
Chart breakdowns and the downloadable report workbook
"""
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel

from leadflow.api.v1.dependencies import get_workspace
from leadflow.core.config import ConfigManager
from leadflow.domain.errors import CRMError
from leadflow.domain.services import access_policy
from leadflow.domain.services.access_policy import Capability
from leadflow.domain.services.aggregation import (
    AssigneeCount,
    ChartSlice,
    area_breakdown,
    assignee_breakdown,
    interest_breakdown,
    status_breakdown,
)
from leadflow.domain.services.workspace_manager import LeadWorkspace
from leadflow.infrastructure.spreadsheets import (
    REPORT_LEAD_COLUMNS,
    SheetSpec,
    build_workbook,
    export_filename,
    export_rows,
    summary_sheet,
)
from leadflow.utils.error_mapping import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ReportSummary(BaseModel):
    total_leads: int
    status: List[ChartSlice]
    interest: List[ChartSlice]
    areas: List[ChartSlice]
    assignees: List[AssigneeCount]


def build_summary(workspace: LeadWorkspace, config: Optional[ConfigManager] = None) -> ReportSummary:
    config = config or ConfigManager()
    leads = workspace.repository.leads
    return ReportSummary(
        total_leads=len(leads),
        status=status_breakdown(leads),
        interest=interest_breakdown(leads),
        areas=area_breakdown(leads, top=config.get_int("reports.top_areas", 5)),
        assignees=assignee_breakdown(leads),
    )


@router.get("/summary", response_model=ReportSummary)
async def get_report_summary(workspace: LeadWorkspace = Depends(get_workspace)):
    """Breakdowns for the report charts (CEO only)"""
    try:
        access_policy.require(workspace.session, Capability.GENERATE_REPORTS)
    except CRMError as e:
        raise to_http_exception(e)
    return build_summary(workspace)


@router.get("/export")
async def export_report(
    today: Optional[date] = Query(None),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """
    Download the report workbook.
    
    Sheets: Leads, Status Summary, Interest Summary, Area Summary and
    Assignee Summary.
    """
    try:
        access_policy.require(workspace.session, Capability.GENERATE_REPORTS)
        
        config = ConfigManager()
        summary = build_summary(workspace, config)
        leads_sheet = SheetSpec(
            "Leads",
            [header for _, header in REPORT_LEAD_COLUMNS],
            export_rows(
                workspace.repository.leads,
                human=True,
                columns=REPORT_LEAD_COLUMNS,
                currency_symbol=config.get("export.currency_symbol", "₹"),
            ),
        )
        content = build_workbook([
            leads_sheet,
            summary_sheet("Status Summary", summary.status),
            summary_sheet("Interest Summary", summary.interest),
            summary_sheet("Area Summary", summary.areas),
            summary_sheet("Assignee Summary", summary.assignees),
        ])
    except CRMError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Report generation failed: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to generate report: {str(e)}")
    
    filename = export_filename("Lead_Report", "xlsx", today)
    logger.info(f"Report generated by {workspace.session.actor_name}: {filename}")
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
