"""
Activity Endpoints
The CEO's change log: recent edits, dismissal and one-click revert
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from leadflow.api.v1.dependencies import get_workspace
from leadflow.domain.errors import CRMError
from leadflow.domain.models.activity import LeadActivity
from leadflow.domain.models.lead import Lead
from leadflow.domain.services.workspace_manager import LeadWorkspace
from leadflow.utils.error_mapping import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/activities", tags=["activities"])


@router.get("", response_model=List[LeadActivity])
async def list_activities(
    now: Optional[datetime] = Query(None, description="Reference time for the recency window"),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """Non-dismissed changes from the last few hours, newest first"""
    try:
        return await workspace.activities.list_recent(now)
    except CRMError as e:
        raise to_http_exception(e)


@router.post("/{activity_id}/dismiss", response_model=LeadActivity)
async def dismiss_activity(activity_id: str, workspace: LeadWorkspace = Depends(get_workspace)):
    try:
        return await workspace.activities.dismiss(activity_id)
    except CRMError as e:
        raise to_http_exception(e)


@router.post("/{activity_id}/revert", response_model=Lead)
async def revert_activity(activity_id: str, workspace: LeadWorkspace = Depends(get_workspace)):
    """
    Put the field back to its recorded old value.
    
    The revert is itself an edit, so it shows up in the log as a new
    activity; the reverted entry is dismissed.
    """
    try:
        return await workspace.activities.revert(activity_id, workspace.repository)
    except CRMError as e:
        raise to_http_exception(e)
