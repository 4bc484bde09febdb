"""
Workspace Manager
Owns the per-session lead workspaces (repository and derived views)
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from supabase import Client

from leadflow.core.config import ConfigManager
from leadflow.domain.models.lead import DealStatus
from leadflow.domain.models.session import SessionContext
from leadflow.domain.services.activity_service import ActivityService
from leadflow.domain.services.lead_filter import (
    CLOSED_DEAL_SEARCH_FIELDS,
    DEFAULT_PAGE_SIZE,
    FilterState,
    LeadListView,
)
from leadflow.domain.services.lead_repository import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_FETCH_TIMEOUT,
    DEFAULT_MAX_AGE,
    LeadRepository,
)
from leadflow.domain.services.profile_service import ProfileService

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LeadWorkspace:
    """Everything one signed-in session works with"""
    session: SessionContext
    repository: LeadRepository
    activities: ActivityService
    profiles: ProfileService
    leads_view: LeadListView
    closed_view: LeadListView
    created_at: datetime = field(default_factory=_utcnow)
    last_seen: datetime = field(default_factory=_utcnow)
    
    def touch(self) -> None:
        self.last_seen = _utcnow()
    
    def is_stale(self, timeout_seconds: float) -> bool:
        return (_utcnow() - self.last_seen).total_seconds() > timeout_seconds
    
    def rebind(self, session: SessionContext) -> None:
        """Adopt the latest resolved session (renames, role or termination changes)"""
        self.session = session
        self.repository.session = session
        self.activities.session = session
        self.profiles.session = session
    
    def close(self) -> None:
        self.repository.close()


def build_workspace(
    supabase: Client,
    session: SessionContext,
    auth: Optional[Any] = None,
    config: Optional[ConfigManager] = None,
) -> LeadWorkspace:
    """Wire a repository to its views and services"""
    config = config or ConfigManager()
    page_size = config.get_int("leads.page_size", DEFAULT_PAGE_SIZE)
    
    activities = ActivityService(
        supabase,
        session,
        recency_hours=config.get_float("activity.recency_hours", 3),
    )
    repository = LeadRepository(
        supabase,
        session,
        activities=activities,
        auth=auth,
        batch_size=config.get_int("import.batch_size", DEFAULT_BATCH_SIZE),
        fetch_timeout=config.get_float("leads.fetch_timeout_seconds", DEFAULT_FETCH_TIMEOUT),
        max_age=config.get_float("leads.max_age_seconds", DEFAULT_MAX_AGE),
    )
    leads_view = LeadListView(lambda: repository.leads, page_size=page_size)
    closed_view = LeadListView(
        lambda: repository.leads,
        page_size=page_size,
        search_fields=CLOSED_DEAL_SEARCH_FIELDS,
        base_state=FilterState(status=DealStatus.CLOSED.value),
    )
    repository.subscribe(leads_view.refresh)
    repository.subscribe(closed_view.refresh)
    
    return LeadWorkspace(
        session=session,
        repository=repository,
        activities=activities,
        profiles=ProfileService(supabase, session),
        leads_view=leads_view,
        closed_view=closed_view,
    )


class WorkspaceManager:
    """
    Singleton registry of open workspaces, keyed by access token.
    
    A workspace is opened at sign-in (or lazily on the first request that
    carries a valid token) and closed at sign-out, after going idle, or at
    shutdown.
    """
    
    _instance: Optional["WorkspaceManager"] = None
    _lock = asyncio.Lock()
    
    def __init__(self):
        """Private constructor - use get_instance()"""
        self._workspaces: Dict[str, LeadWorkspace] = {}
        self._cleanup_task: Optional[asyncio.Task] = None
        self._config = ConfigManager()
        self.idle_timeout = self._config.get_int("workspace.idle_timeout_seconds", 3600)
    
    @classmethod
    async def get_instance(cls) -> "WorkspaceManager":
        """Get singleton instance (async factory pattern)"""
        if cls._instance is None:
            async with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
                    cls._instance._start()
        return cls._instance
    
    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None
    
    def _start(self) -> None:
        self._cleanup_task = asyncio.create_task(self._periodic_cleanup())
        logger.info(f"WorkspaceManager initialized (idle timeout {self.idle_timeout}s)")
    
    def open_workspace(
        self,
        supabase: Client,
        session: SessionContext,
        auth: Optional[Any] = None,
    ) -> LeadWorkspace:
        """
        Return the session's workspace, creating it if needed.
        
        An existing workspace adopts the freshly resolved session, so
        policy checks always see the current profile.
        """
        workspace = self._workspaces.get(session.access_token)
        if workspace is None:
            workspace = build_workspace(supabase, session, auth=auth, config=self._config)
            self._workspaces[session.access_token] = workspace
            logger.info(f"Opened workspace for {session.actor_name}")
        elif workspace.session != session:
            workspace.rebind(session)
        workspace.touch()
        return workspace
    
    def get_workspace(self, access_token: str) -> Optional[LeadWorkspace]:
        workspace = self._workspaces.get(access_token)
        if workspace:
            workspace.touch()
        return workspace
    
    def close_workspace(self, access_token: str, reason: str = "logout") -> bool:
        workspace = self._workspaces.pop(access_token, None)
        if workspace is None:
            return False
        workspace.close()
        logger.info(f"Closed workspace for {workspace.session.actor_name} (reason: {reason})")
        return True
    
    def cleanup_stale_workspaces(self, timeout_seconds: Optional[float] = None) -> int:
        timeout_seconds = self.idle_timeout if timeout_seconds is None else timeout_seconds
        stale = [
            token for token, workspace in self._workspaces.items()
            if workspace.is_stale(timeout_seconds)
        ]
        for token in stale:
            logger.warning("Cleaning up idle workspace")
            self.close_workspace(token, reason="timeout")
        return len(stale)
    
    async def _periodic_cleanup(self):
        while True:
            try:
                await asyncio.sleep(60)
                self.cleanup_stale_workspaces()
            except asyncio.CancelledError:
                logger.info("Workspace cleanup task cancelled")
                break
            except Exception as e:
                logger.error(f"Error in workspace cleanup: {e}")
    
    async def shutdown(self):
        """Close every open workspace"""
        logger.info("Shutting down WorkspaceManager...")
        
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
        
        for token in list(self._workspaces.keys()):
            self.close_workspace(token, reason="shutdown")
        
        logger.info("WorkspaceManager shutdown complete")
    
    def get_active_workspace_count(self) -> int:
        return len(self._workspaces)
    
    def get_workspace_stats(self) -> dict:
        return {
            "active_workspaces": len(self._workspaces),
            "actors": sorted(w.session.actor_name for w in self._workspaces.values()),
            "pending_mutations": sum(
                len(w.repository.pending_mutations()) for w in self._workspaces.values()
            ),
        }
