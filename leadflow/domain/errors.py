"""
Domain Errors
Failure taxonomy shared by the repository, adapters and services
"""
from typing import Dict, Optional


class CRMError(Exception):
    """Base class for every failure surfaced to the caller"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(CRMError):
    """Client-detected field problem; not retryable until corrected."""
    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        self.fields = fields or {}
        super().__init__(message)


class PermissionDeniedError(CRMError):
    """Access policy rejected the operation."""
    def __init__(self, capability: str, message: Optional[str] = None):
        self.capability = capability
        super().__init__(message or f"You do not have permission to {capability.replace('_', ' ')}.")


class NotFoundError(CRMError):
    """Referenced entity no longer exists."""
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} no longer exists. Please refresh.")


class PersistenceError(CRMError):
    """Backend round-trip failed (network or server side)."""


class FetchError(PersistenceError):
    """Loading the working set failed; the previous set is kept."""


class ParseError(CRMError):
    """Malformed import file."""


class MutationInProgressError(CRMError):
    """An identical mutation is still in flight."""
    def __init__(self, key: str):
        self.key = key
        super().__init__("This change is already being saved. Please wait.")
