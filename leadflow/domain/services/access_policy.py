"""
Access Policy
Role-based capability checks for CEO and Employee actors.

Every mutating operation calls into this module at the point of
invocation, so hiding an action in the UI is never the only guard.
"""
import logging
from enum import Enum
from typing import FrozenSet

from leadflow.domain.errors import PermissionDeniedError
from leadflow.domain.models.lead import Lead
from leadflow.domain.models.profile import Role
from leadflow.domain.models.session import SessionContext

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Actions gated by role"""
    CREATE_LEAD = "create_lead"
    DELETE_LEAD = "delete_lead"
    DELETE_ALL_LEADS = "delete_all_leads"
    EDIT_ANY_LEAD = "edit_any_lead"
    IMPORT_LEADS = "import_leads"
    MANAGE_PROFILES = "manage_profiles"
    VIEW_ACTIVITY_LOG = "view_activity_log"
    GENERATE_REPORTS = "generate_reports"


ROLE_CAPABILITIES = {
    Role.CEO: frozenset(Capability),
    Role.EMPLOYEE: frozenset(),
}


def capabilities_for(session: SessionContext) -> FrozenSet[Capability]:
    if session.profile.is_terminated:
        return frozenset()
    return ROLE_CAPABILITIES.get(session.profile.role, frozenset())


def can(session: SessionContext, capability: Capability) -> bool:
    return capability in capabilities_for(session)


def require(session: SessionContext, capability: Capability) -> None:
    """
    Raise PermissionDeniedError unless the actor holds capability.
    
    Args:
        session: Current actor
        capability: The capability the operation needs
    """
    if not can(session, capability):
        logger.warning(
            f"Denied {capability.value} for {session.profile.email} ({session.profile.role.value})"
        )
        raise PermissionDeniedError(capability.value)


def can_edit_lead(session: SessionContext, lead: Lead) -> bool:
    """CEOs edit anything; employees only leads assigned to them by name"""
    if can(session, Capability.EDIT_ANY_LEAD):
        return True
    if session.profile.is_terminated:
        return False
    return bool(lead.assigned_to) and lead.assigned_to == session.actor_name


def require_edit(session: SessionContext, lead: Lead) -> None:
    if not can_edit_lead(session, lead):
        logger.warning(f"Denied edit of lead {lead.id} for {session.profile.email}")
        raise PermissionDeniedError(
            "edit_lead",
            "You can only edit leads assigned to you.",
        )
