"""
Spreadsheet Endpoints
Bulk lead import from .xlsx/.xls/.csv and export of the visible lists
"""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends, UploadFile, File, Query
from fastapi.responses import Response
from pydantic import BaseModel

from leadflow.api.v1.dependencies import get_workspace
from leadflow.core.config import ConfigManager
from leadflow.domain.errors import CRMError, ParseError
from leadflow.domain.services import access_policy
from leadflow.domain.services.access_policy import Capability
from leadflow.domain.services.workspace_manager import LeadWorkspace
from leadflow.infrastructure.spreadsheets import (
    check_extension,
    export_filename,
    map_rows,
    parse_spreadsheet,
    to_csv,
    to_xlsx,
)
from leadflow.utils.error_mapping import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/spreadsheets", tags=["spreadsheets"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ImportResponse(BaseModel):
    """Bulk import response"""
    total_rows: int
    imported: int
    skipped: int
    error: Optional[str] = None


def _download(content, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import", response_model=ImportResponse)
async def import_leads(
    file: UploadFile = File(..., description="Spreadsheet with one lead per row"),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """
    Bulk import leads (CEO only).
    
    Rows without a customer name or email are skipped, not reported as
    failures. When a batch fails the rows inserted before it are kept and
    the error is returned alongside the count.
    
    Accepted columns (human or machine names):
        Customer Name / customer_name, Email / email, Mobile / mobile_number,
        Project / project_name, Budget / budget, Area / preferred_area, ...
    """
    try:
        access_policy.require(workspace.session, Capability.IMPORT_LEADS)
        check_extension(file.filename)
        
        content = await file.read()
        rows = parse_spreadsheet(content, file.filename)
        mapped = map_rows(rows)
        if not mapped.leads:
            raise ParseError("No rows found with a customer name and email")
        
        result = await workspace.repository.bulk_create(mapped.leads)
    except CRMError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Import failed: {e}")
        raise HTTPException(status_code=500, detail=f"Import failed: {str(e)}")
    
    logger.info(
        f"Import of {file.filename}: {len(rows)} rows, {result.inserted} imported, "
        f"{mapped.dropped + result.skipped} skipped"
    )
    return ImportResponse(
        total_rows=len(rows),
        imported=result.inserted,
        skipped=mapped.dropped + result.skipped,
        error=result.error,
    )


@router.get("/export")
async def export_leads(
    file_format: str = Query("xlsx", alias="format", pattern="^(xlsx|csv)$"),
    human: bool = Query(False, description="Render budgets as currency"),
    today: Optional[date] = Query(None),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """Download the currently filtered lead list"""
    leads = workspace.leads_view.filtered
    symbol = ConfigManager().get("export.currency_symbol", "₹")
    
    if file_format == "csv":
        filename = export_filename("Leads", "csv", today)
        content = to_csv(leads, human=human, currency_symbol=symbol)
        return _download(content, "text/csv", filename)
    
    filename = export_filename("Leads", "xlsx", today)
    return _download(to_xlsx(leads, human=human, currency_symbol=symbol), XLSX_MEDIA_TYPE, filename)


@router.get("/export/closed")
async def export_closed_deals(
    today: Optional[date] = Query(None),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """Download the currently filtered closed deals"""
    filename = export_filename("Closed_Deals", "xlsx", today)
    content = to_xlsx(
        workspace.closed_view.filtered,
        sheet_name="Closed Deals",
        human=True,
        currency_symbol=ConfigManager().get("export.currency_symbol", "₹"),
    )
    return _download(content, XLSX_MEDIA_TYPE, filename)
