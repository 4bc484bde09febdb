"""
Team Endpoints
Staff profiles and per-employee performance
"""
import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Depends, Query, status

from leadflow.api.v1.dependencies import get_workspace
from leadflow.domain.errors import CRMError
from leadflow.domain.models.profile import Profile, ProfileCreate, ProfileUpdate, Role
from leadflow.domain.services import access_policy
from leadflow.domain.services.access_policy import Capability
from leadflow.domain.services.aggregation import EmployeeStats, employee_stats
from leadflow.domain.services.workspace_manager import LeadWorkspace
from leadflow.utils.error_mapping import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/team", tags=["team"])


def _require_manage(workspace: LeadWorkspace) -> None:
    try:
        access_policy.require(workspace.session, Capability.MANAGE_PROFILES)
    except CRMError as e:
        raise to_http_exception(e)


@router.get("/profiles/me", response_model=Profile)
async def get_own_profile(workspace: LeadWorkspace = Depends(get_workspace)):
    return workspace.session.profile


@router.get("/profiles", response_model=List[Profile])
async def list_profiles(
    role: Optional[Role] = Query(None),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    _require_manage(workspace)
    try:
        return await workspace.profiles.list_profiles(role)
    except CRMError as e:
        raise to_http_exception(e)


@router.get("/assignees", response_model=List[str])
async def list_assignees(workspace: LeadWorkspace = Depends(get_workspace)):
    """Names of active employees who can be given leads"""
    try:
        return sorted(await workspace.profiles.assignee_names())
    except CRMError as e:
        raise to_http_exception(e)


@router.post("/profiles", response_model=Profile, status_code=status.HTTP_201_CREATED)
async def create_profile(
    payload: ProfileCreate,
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """Create a staff member and their sign-in account (CEO only)"""
    try:
        return await workspace.profiles.create_profile(payload)
    except CRMError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unexpected error creating profile: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to create profile: {str(e)}")


@router.patch("/profiles/{profile_id}", response_model=Profile)
async def update_profile(
    profile_id: str,
    payload: ProfileUpdate,
    workspace: LeadWorkspace = Depends(get_workspace),
):
    try:
        return await workspace.profiles.update_profile(profile_id, payload)
    except CRMError as e:
        raise to_http_exception(e)


@router.post("/profiles/{profile_id}/terminate", response_model=Profile)
async def terminate_profile(
    profile_id: str,
    today: Optional[date] = Query(None),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """Soft-terminate; the profile keeps its history and can no longer sign in"""
    try:
        return await workspace.profiles.terminate_profile(profile_id, today)
    except CRMError as e:
        raise to_http_exception(e)


@router.get("/profiles/{profile_id}/stats", response_model=EmployeeStats)
async def get_profile_stats(
    profile_id: str,
    today: Optional[date] = Query(None),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    try:
        return await workspace.profiles.stats(
            profile_id, workspace.repository.leads, today or date.today()
        )
    except CRMError as e:
        raise to_http_exception(e)


@router.get("/stats", response_model=List[EmployeeStats])
async def get_team_stats(
    today: Optional[date] = Query(None),
    workspace: LeadWorkspace = Depends(get_workspace),
):
    """Performance of every active employee, best score first"""
    _require_manage(workspace)
    today = today or date.today()
    try:
        employees = await workspace.profiles.list_profiles(Role.EMPLOYEE)
    except CRMError as e:
        raise to_http_exception(e)
    
    leads = workspace.repository.leads
    stats = [
        employee_stats(profile.name, leads, today)
        for profile in employees if not profile.is_terminated
    ]
    return sorted(stats, key=lambda s: s.score, reverse=True)
