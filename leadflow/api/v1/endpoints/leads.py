"""
Lead Endpoints
CRUD over the session's working set plus the filtered, paginated lists
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status
from pydantic import BaseModel

from leadflow.api.v1.dependencies import get_workspace
from leadflow.domain.errors import CRMError
from leadflow.domain.models.lead import Lead, LeadFields, LeadUpdate
from leadflow.domain.services.lead_filter import BUDGET_CHOICES, LeadListView
from leadflow.domain.services.workspace_manager import LeadWorkspace
from leadflow.utils.error_mapping import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leads", tags=["leads"])


class FilterSummary(BaseModel):
    search: str
    budget: str
    status: str
    area: str


class LeadPageResponse(BaseModel):
    """One page of a filtered lead list"""
    items: List[Lead]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    filters: FilterSummary
    areas: List[str]
    budget_choices: List[str]


class DeleteAllRequest(BaseModel):
    password: str


class DeleteAllResponse(BaseModel):
    deleted: bool
    message: str


class PendingMutationResponse(BaseModel):
    mutation_id: str
    kind: str
    lead_id: Optional[str] = None
    state: str
    error: Optional[str] = None


def _page_response(view: LeadListView) -> LeadPageResponse:
    page = view.page()
    return LeadPageResponse(
        items=page.items,
        page=page.page,
        page_size=page.page_size,
        total_items=page.total_items,
        total_pages=page.total_pages,
        filters=FilterSummary(
            search=view.state.search_term,
            budget=view.state.budget,
            status=view.state.status,
            area=view.state.area,
        ),
        areas=view.areas(),
        budget_choices=list(BUDGET_CHOICES),
    )


@router.get("", response_model=LeadPageResponse)
async def list_leads(
    search: Optional[str] = Query(None, description="Case-insensitive match on name, email or area"),
    budget: Optional[str] = Query(None, description="'all', 'min-max' or 'min-'"),
    status_filter: Optional[str] = Query(None, alias="status"),
    area: Optional[str] = Query(None),
    page: Optional[int] = Query(None, description="1-based page; out-of-range pages are ignored"),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """
    Filtered, paginated leads.
    
    Filter parameters that differ from the current state reset the view
    to page 1. Omitted parameters keep their current value.
    """
    view = workspace.leads_view
    try:
        view.update_filters(search_term=search, budget=budget, status=status_filter, area=area)
    except CRMError as e:
        raise to_http_exception(e)
    if page is not None:
        view.paginate(page)
    return _page_response(view)


@router.post("/filters/reset", response_model=LeadPageResponse)
async def reset_filters(workspace: LeadWorkspace = Depends(get_workspace)):
    workspace.leads_view.reset_filters()
    return _page_response(workspace.leads_view)


@router.post("/refresh", response_model=LeadPageResponse)
async def refresh_leads(workspace: LeadWorkspace = Depends(get_workspace)):
    """Reload the working set from the backend and return the first page"""
    try:
        await workspace.repository.list_all()
    except CRMError as e:
        raise to_http_exception(e)
    return _page_response(workspace.leads_view)


@router.get("/closed", response_model=LeadPageResponse)
async def list_closed_deals(
    search: Optional[str] = Query(None, description="Also matches the assignee"),
    page: Optional[int] = Query(None),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    view = workspace.closed_view
    view.update_filters(search_term=search)
    if page is not None:
        view.paginate(page)
    return _page_response(view)


@router.get("/pending", response_model=List[PendingMutationResponse])
async def list_pending_mutations(workspace: LeadWorkspace = Depends(get_workspace)):
    """Writes that have been applied locally but not yet confirmed"""
    return [
        PendingMutationResponse(
            mutation_id=m.mutation_id,
            kind=m.kind.value,
            lead_id=m.lead_id,
            state=m.state.value,
            error=m.error,
        )
        for m in workspace.repository.pending_mutations()
    ]


@router.get("/{lead_id}", response_model=Lead)
async def get_lead(lead_id: str, workspace: LeadWorkspace = Depends(get_workspace)):
    try:
        return await workspace.repository.get(lead_id)
    except CRMError as e:
        raise to_http_exception(e)


@router.post("", response_model=Lead, status_code=status.HTTP_201_CREATED)
async def create_lead(fields: LeadFields, workspace: LeadWorkspace = Depends(get_workspace)):
    """Add a lead (CEO only). The assignee must be an active employee."""
    try:
        eligible = await workspace.profiles.assignee_names() if fields.assigned_to else None
        return await workspace.repository.create(fields, eligible_assignees=eligible)
    except CRMError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error creating lead: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to add lead: {str(e)}")


@router.patch("/{lead_id}", response_model=Lead)
async def update_lead(
    lead_id: str,
    changes: LeadUpdate,
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """
    Apply a partial update.
    
    Employees may only edit leads assigned to them. Every changed field is
    recorded in the activity log.
    """
    try:
        eligible = None
        if "assigned_to" in changes.model_fields_set and changes.assigned_to:
            eligible = await workspace.profiles.assignee_names()
        return await workspace.repository.update(lead_id, changes, eligible_assignees=eligible)
    except CRMError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error updating lead {lead_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to update lead: {str(e)}")


@router.delete("/{lead_id}")
async def delete_lead(lead_id: str, workspace: LeadWorkspace = Depends(get_workspace)):
    try:
        await workspace.repository.delete(lead_id)
    except CRMError as e:
        raise to_http_exception(e)
    return {"message": "Lead deleted successfully", "id": lead_id}


@router.post("/delete-all", response_model=DeleteAllResponse)
async def delete_all_leads(
    request: DeleteAllRequest,
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """Remove every lead after re-checking the CEO's password"""
    try:
        deleted = await workspace.repository.delete_all(request.password)
    except CRMError as e:
        raise to_http_exception(e)
    
    if not deleted:
        return DeleteAllResponse(deleted=False, message="Incorrect password. No leads were deleted.")
    return DeleteAllResponse(deleted=True, message="All leads deleted successfully")
