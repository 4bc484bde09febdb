"""
Mutation Tracking Models
Two-phase (local patch, then reconcile) state of in-flight writes
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class MutationState(str, Enum):
    """Lifecycle of a single optimistic mutation"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class MutationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DELETE_ALL = "delete_all"
    BULK_CREATE = "bulk_create"


@dataclass
class PendingMutation:
    """An in-flight write against the working set"""
    kind: MutationKind
    lead_id: Optional[str] = None
    target: Optional[str] = None
    state: MutationState = MutationState.PENDING
    error: Optional[str] = None
    mutation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=datetime.utcnow)
    
    @property
    def key(self) -> str:
        """Identifies 'the same' mutation for double-submit detection"""
        return f"{self.kind.value}:{self.lead_id or self.target or '*'}"
    
    def confirm(self, lead_id: Optional[str] = None) -> None:
        if lead_id:
            self.lead_id = lead_id
        self.state = MutationState.CONFIRMED
    
    def fail(self, error: str) -> None:
        self.state = MutationState.FAILED
        self.error = error
