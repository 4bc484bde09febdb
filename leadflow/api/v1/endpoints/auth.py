"""
Authentication Endpoints
Email + password sign-in through Supabase Auth
"""
import logging
from fastapi import APIRouter, HTTPException, Depends, status
from pydantic import BaseModel, EmailStr
from typing import Optional
from supabase import Client

from leadflow.api.v1.dependencies import (
    get_auth_gateway,
    get_current_user,
    get_supabase,
    get_workspace_manager,
    load_profile,
)
from leadflow.domain.models.profile import Profile
from leadflow.domain.models.session import SessionContext
from leadflow.domain.services.access_policy import capabilities_for
from leadflow.domain.services.workspace_manager import WorkspaceManager
from leadflow.infrastructure.auth_gateway import AuthenticationError, AuthGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ============================================
# Request/Response Models
# ============================================

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    """Tokens plus the profile the client should route on"""
    access_token: str
    refresh_token: str
    profile: Profile
    capabilities: list[str]


class MeResponse(BaseModel):
    profile: Profile
    capabilities: list[str]


class ReverifyRequest(BaseModel):
    password: str


class ReverifyResponse(BaseModel):
    verified: bool


def _capability_names(session: SessionContext) -> list[str]:
    return sorted(capability.value for capability in capabilities_for(session))


# ============================================
# Endpoints
# ============================================

@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    supabase: Client = Depends(get_supabase),
    auth: AuthGateway = Depends(get_auth_gateway),
    manager: WorkspaceManager = Depends(get_workspace_manager),
):
    """
    Sign in with email and password and open the session's workspace.
    
    Terminated staff are rejected even when their password is correct.
    """
    try:
        tokens = await auth.sign_in(request.email, request.password)
    except AuthenticationError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message)
    
    try:
        profile = load_profile(supabase, tokens.user_id)
    except Exception as e:
        logger.error(f"Failed to load profile for {request.email}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to load profile: {str(e)}")
    
    if profile is None or profile.is_terminated:
        await auth.sign_out(tokens.access_token)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="This account cannot sign in"
        )
    
    session = SessionContext(profile=profile, access_token=tokens.access_token)
    manager.open_workspace(supabase, session, auth=auth)
    logger.info(f"Signed in: {profile.name} ({profile.role.value})")
    
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        profile=profile,
        capabilities=_capability_names(session),
    )


@router.post("/logout")
async def logout(
    current_user: SessionContext = Depends(get_current_user),
    auth: AuthGateway = Depends(get_auth_gateway),
    manager: WorkspaceManager = Depends(get_workspace_manager),
):
    """Close the workspace and revoke the token"""
    manager.close_workspace(current_user.access_token)
    await auth.sign_out(current_user.access_token)
    logger.info(f"Signed out: {current_user.actor_name}")
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=MeResponse)
async def get_me(current_user: SessionContext = Depends(get_current_user)):
    return MeResponse(profile=current_user.profile, capabilities=_capability_names(current_user))


@router.post("/reverify", response_model=ReverifyResponse)
async def reverify(
    request: ReverifyRequest,
    current_user: SessionContext = Depends(get_current_user),
    auth: AuthGateway = Depends(get_auth_gateway),
):
    """Step-up password check before destructive actions"""
    verified = await auth.verify_password(current_user.profile.email, request.password)
    if not verified:
        logger.warning(f"Re-verification failed for {current_user.actor_name}")
    return ReverifyResponse(verified=verified)
