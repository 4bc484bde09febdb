"""Domain models"""

# Lead models
from .lead import (
    DealStatus,
    InterestLevel,
    PropertyType,
    LeadFields,
    Lead,
    LeadUpdate,
    REQUIRED_FIELDS,
    IDENTITY_FIELDS,
)

# Staff models
from .profile import (
    Role,
    Profile,
    ProfileCreate,
    ProfileUpdate,
)

from .activity import (
    LeadActivity,
)

from .mutation import (
    MutationState,
    MutationKind,
    PendingMutation,
)

from .session import (
    SessionContext,
)

__all__ = [
    "DealStatus",
    "InterestLevel",
    "PropertyType",
    "LeadFields",
    "Lead",
    "LeadUpdate",
    "REQUIRED_FIELDS",
    "IDENTITY_FIELDS",
    "Role",
    "Profile",
    "ProfileCreate",
    "ProfileUpdate",
    "LeadActivity",
    "MutationState",
    "MutationKind",
    "PendingMutation",
    "SessionContext",
]
