"""
Session Models
The authenticated actor, passed explicitly to every component
"""
from dataclasses import dataclass

from leadflow.domain.models.profile import Profile


@dataclass(frozen=True)
class SessionContext:
    """
    Resolved identity of the current actor.
    
    Created at sign-in (or per request from a bearer token) and
    invalidated at sign-out. Never stored globally.
    """
    profile: Profile
    access_token: str
    
    @property
    def is_ceo(self) -> bool:
        return self.profile.is_ceo
    
    @property
    def actor_name(self) -> str:
        return self.profile.name
    
    @property
    def user_id(self) -> str:
        return self.profile.id
