"""
API Dependencies
Shared dependencies for authentication, Supabase access and the
per-session lead workspace
"""
import os
from typing import Optional
from fastapi import Depends, HTTPException, status, Header
from supabase import create_client, acreate_client, Client, AsyncClient
from dotenv import load_dotenv

from leadflow.domain.errors import CRMError
from leadflow.domain.models.profile import Profile
from leadflow.domain.models.session import SessionContext
from leadflow.domain.services.workspace_manager import LeadWorkspace, WorkspaceManager
from leadflow.infrastructure.auth_gateway import AuthGateway
from leadflow.utils.error_mapping import to_http_exception

load_dotenv()

PROFILES_TABLE = "profiles"


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(
            f"{name} is not configured. "
            f"Set {name} environment variable."
        )
    return value


def get_supabase() -> Client:
    """
    Get Supabase client with validation.
    
    Raises:
        RuntimeError: If Supabase URL or SERVICE_KEY is not configured
    """
    return create_client(_require_env("SUPABASE_URL"), _require_env("SUPABASE_SERVICE_KEY"))


async def get_async_supabase() -> AsyncClient:
    """Async Supabase client, used for realtime channels"""
    return await acreate_client(_require_env("SUPABASE_URL"), _require_env("SUPABASE_SERVICE_KEY"))


def get_auth_gateway() -> AuthGateway:
    """
    Password sign-in goes through the anon key so the service client's
    session is never replaced.
    """
    url = _require_env("SUPABASE_URL")
    service_key = _require_env("SUPABASE_SERVICE_KEY")
    return AuthGateway(url, os.getenv("SUPABASE_ANON_KEY") or service_key, service_key=service_key)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def parse_bearer(authorization: Optional[str]) -> str:
    if not authorization:
        raise _unauthorized("Authorization header missing")
    
    # Extract token from "Bearer <token>"
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _unauthorized("Invalid authorization header format. Use: Bearer <token>")
    return parts[1]


def load_profile(supabase: Client, user_id: str) -> Optional[Profile]:
    response = supabase.table(PROFILES_TABLE).select("*").eq("id", user_id).limit(1).execute()
    if not response.data:
        return None
    return Profile.model_validate(response.data[0])


def resolve_session(token: str, supabase: Client) -> SessionContext:
    """
    Verify a bearer token and load the actor's profile.
    
    Raises:
        HTTPException: 401 for an invalid token, a missing profile or a
            terminated profile
    """
    try:
        user_response = supabase.auth.get_user(token)
        
        if not user_response or not user_response.user:
            raise _unauthorized("Invalid or expired token")
        
        profile = load_profile(supabase, str(user_response.user.id))
    except HTTPException:
        raise
    except Exception as e:
        raise _unauthorized(f"Token validation failed: {str(e)}")
    
    if profile is None:
        raise _unauthorized("No profile found for this account")
    if profile.is_terminated:
        raise _unauthorized("This account has been terminated")
    
    return SessionContext(profile=profile, access_token=token)


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    supabase: Client = Depends(get_supabase)
) -> SessionContext:
    """
    Dependency to get the current actor from the bearer token.
    
    Returns:
        SessionContext with the actor's profile
    
    Raises:
        HTTPException: If token is invalid or the profile cannot sign in
    """
    return resolve_session(parse_bearer(authorization), supabase)


async def require_ceo(
    current_user: SessionContext = Depends(get_current_user)
) -> SessionContext:
    """
    Dependency to require the CEO role.
    
    Raises:
        HTTPException: If user is not the CEO
    """
    if not current_user.is_ceo:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="CEO access required"
        )
    return current_user


async def get_workspace_manager() -> WorkspaceManager:
    return await WorkspaceManager.get_instance()


async def get_workspace(
    current_user: SessionContext = Depends(get_current_user),
    supabase: Client = Depends(get_supabase),
    auth: AuthGateway = Depends(get_auth_gateway),
    manager: WorkspaceManager = Depends(get_workspace_manager),
) -> LeadWorkspace:
    """
    The actor's workspace with its working set loaded.
    
    Raises:
        HTTPException: 502 if the initial load fails
    """
    workspace = manager.open_workspace(supabase, current_user, auth=auth)
    try:
        await workspace.repository.ensure_loaded()
    except CRMError as e:
        raise to_http_exception(e)
    return workspace
