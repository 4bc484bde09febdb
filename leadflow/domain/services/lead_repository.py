"""
Lead Repository
Sole path for reading and writing leads; owns the in-memory working set.

Single-record writes follow a two-phase sequence: a local patch is applied
and tracked as a PendingMutation, then overwritten with the backend's row
(confirmed) or rolled back (failed). Bulk import and delete-all re-fetch
the full working set instead.

Concurrent edits by two actors are last-write-wins at the backend; there
is no version column to detect conflicts.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import pydantic
from supabase import Client

from leadflow.domain.errors import (
    FetchError,
    MutationInProgressError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from leadflow.domain.models.lead import (
    IDENTITY_FIELDS,
    REQUIRED_FIELDS,
    Lead,
    LeadFields,
    LeadUpdate,
)
from leadflow.domain.models.mutation import MutationKind, MutationState, PendingMutation
from leadflow.domain.models.session import SessionContext
from leadflow.domain.services import access_policy
from leadflow.domain.services.access_policy import Capability

logger = logging.getLogger(__name__)

LEADS_TABLE = "leads"
DEFAULT_BATCH_SIZE = 50
DEFAULT_FETCH_TIMEOUT = 15.0
DEFAULT_MAX_AGE = 30.0
# Supabase refuses an unfiltered delete; no row carries the nil UUID
NIL_UUID = "00000000-0000-0000-0000-000000000000"
MAX_TRACKED_MUTATIONS = 100


@dataclass
class BulkCreateResult:
    """Outcome of a batched insert"""
    inserted: int
    skipped: int
    error: Optional[str] = None
    
    @property
    def ok(self) -> bool:
        return self.error is None


def to_validation_error(exc: pydantic.ValidationError, prefix: str = "") -> ValidationError:
    """Flatten a pydantic error into field -> message"""
    fields = {}
    for err in exc.errors():
        name = ".".join(str(part) for part in err["loc"]) or "__root__"
        fields[f"{prefix}{name}"] = err["msg"]
    summary = "; ".join(f"{k}: {v}" for k, v in fields.items())
    return ValidationError(f"Invalid lead data - {summary}", fields)


class LeadRepository:
    """
    Working set of leads for one session.
    
    Responsibilities:
    - Load the full working set (with a bounded wait)
    - Create, update and delete single leads through the access policy
    - Batched import and password-confirmed delete-all
    - Record one activity per changed field on update
    - Notify derived views whenever the working set changes
    """
    
    def __init__(
        self,
        supabase: Client,
        session: SessionContext,
        activities: Optional[Any] = None,
        auth: Optional[Any] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        max_age: Optional[float] = DEFAULT_MAX_AGE,
    ):
        self.supabase = supabase
        self.session = session
        self.activities = activities
        self.auth = auth
        self.batch_size = max(1, batch_size)
        self.fetch_timeout = fetch_timeout
        self.max_age = max_age
        
        self._leads: List[Lead] = []
        self._listeners: List[Callable[[], None]] = []
        self._inflight: Set[str] = set()
        self._fetch_seq = 0
        self._closed = False
        self.loaded = False
        self._loaded_at: Optional[float] = None
        self.mutations: Dict[str, PendingMutation] = {}
    
    # ------------------------------------------------------------------
    # Working set
    # ------------------------------------------------------------------
    
    @property
    def leads(self) -> Tuple[Lead, ...]:
        return tuple(self._leads)
    
    def subscribe(self, listener: Callable[[], None]) -> None:
        """Register a callback run after every working-set change"""
        self._listeners.append(listener)
    
    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()
    
    def _set_leads(self, leads: Iterable[Lead]) -> None:
        self._leads = list(leads)
        self._notify()
    
    def _index_of(self, lead_id: str) -> Optional[int]:
        for index, lead in enumerate(self._leads):
            if lead.id == lead_id:
                return index
        return None
    
    def _replace(self, lead: Lead) -> None:
        index = self._index_of(lead.id)
        if index is None:
            self._leads.append(lead)
        else:
            self._leads[index] = lead
        self._notify()
    
    def _remove(self, lead_id: str) -> Optional[Tuple[int, Lead]]:
        index = self._index_of(lead_id)
        if index is None:
            return None
        removed = self._leads.pop(index)
        self._notify()
        return index, removed
    
    def close(self) -> None:
        """Stop applying responses; pending fetches are discarded"""
        self._closed = True
        self._listeners.clear()
    
    # ------------------------------------------------------------------
    # Backend round-trips
    # ------------------------------------------------------------------
    
    async def _execute(self, query: Any, timeout: Optional[float] = None) -> Any:
        """Run a blocking Supabase query without stalling the event loop"""
        if timeout is None:
            return await asyncio.to_thread(query.execute)
        return await asyncio.wait_for(asyncio.to_thread(query.execute), timeout=timeout)
    
    def _begin(self, kind: MutationKind, lead_id: Optional[str] = None, target: Optional[str] = None) -> PendingMutation:
        mutation = PendingMutation(kind=kind, lead_id=lead_id, target=target)
        if mutation.key in self._inflight:
            logger.warning(f"Rejected duplicate {mutation.key} while the first is in flight")
            raise MutationInProgressError(mutation.key)
        
        self._inflight.add(mutation.key)
        self.mutations[mutation.mutation_id] = mutation
        if len(self.mutations) > MAX_TRACKED_MUTATIONS:
            oldest = next(iter(self.mutations))
            del self.mutations[oldest]
        return mutation
    
    def _end(self, mutation: PendingMutation) -> None:
        self._inflight.discard(mutation.key)
    
    def pending_mutations(self) -> List[PendingMutation]:
        return [m for m in self.mutations.values() if m.state == MutationState.PENDING]
    
    async def list_all(self) -> Tuple[Lead, ...]:
        """
        Fetch the complete working set.
        
        Raises:
            FetchError: On transport/auth failure or timeout; the previous
                working set is left untouched
        """
        self._fetch_seq += 1
        seq = self._fetch_seq
        
        try:
            response = await self._execute(
                self.supabase.table(LEADS_TABLE).select("*"),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Lead fetch timed out after {self.fetch_timeout}s")
            raise FetchError("Timed out while loading leads. Please try again.")
        except Exception as e:
            logger.error(f"Lead fetch failed: {e}")
            raise FetchError(f"Failed to fetch leads: {str(e)}")
        
        if self._closed or seq != self._fetch_seq:
            logger.info(f"Discarding stale lead fetch #{seq}")
            return self.leads
        
        leads = []
        for row in response.data or []:
            try:
                leads.append(Lead.model_validate(row))
            except pydantic.ValidationError as e:
                logger.warning(f"Skipping malformed lead row {row.get('id')}: {e}")
        
        self.loaded = True
        self._loaded_at = time.monotonic()
        self._set_leads(leads)
        logger.info(f"Loaded {len(leads)} leads for {self.session.profile.email}")
        return self.leads
    
    @property
    def is_stale(self) -> bool:
        """True once the working set is older than max_age seconds"""
        if self.max_age is None or self._loaded_at is None:
            return False
        return time.monotonic() - self._loaded_at > self.max_age
    
    async def ensure_loaded(self) -> Tuple[Lead, ...]:
        """
        Load the working set on first use and reload it once stale.
    
        A failed reload keeps serving the previous working set; only the
        first load raises.
        """
        if not self.loaded:
            return await self.list_all()
        if self.is_stale:
            try:
                return await self.list_all()
            except FetchError as e:
                logger.warning(f"Serving cached leads, reload failed: {e.message}")
        return self.leads
    
    async def get(self, lead_id: str) -> Lead:
        """
        Look a lead up in the working set, falling back to the backend.
        
        Raises:
            NotFoundError: If the lead no longer exists
        """
        index = self._index_of(lead_id)
        if index is not None:
            return self._leads[index]
        
        try:
            response = await self._execute(
                self.supabase.table(LEADS_TABLE).select("*").eq("id", lead_id)
            )
        except Exception as e:
            raise PersistenceError(f"Failed to fetch lead: {str(e)}")
        
        if not response.data:
            raise NotFoundError("Lead", lead_id)
        
        lead = Lead.model_validate(response.data[0])
        self._replace(lead)
        return lead
    
    async def _load_current(self, lead_id: str) -> Lead:
        """
        Read the backend's row for lead_id and sync the working set to it.
    
        Writes are policy-checked against this row, never against the
        cached copy, so reassignments and deletions by other actors apply.
        """
        try:
            response = await self._execute(
                self.supabase.table(LEADS_TABLE).select("*").eq("id", lead_id)
            )
        except Exception as e:
            logger.error(f"Failed to re-read lead {lead_id}: {e}")
            raise PersistenceError(f"Failed to fetch lead: {str(e)}")
    
        if not response.data:
            if self._remove(lead_id):
                logger.info(f"Lead {lead_id} was deleted elsewhere")
            raise NotFoundError("Lead", lead_id)
    
        lead = Lead.model_validate(response.data[0])
        index = self._index_of(lead_id)
        if index is None or self._leads[index] != lead:
            self._replace(lead)
        return lead
    
    def closed_deals(self) -> List[Lead]:
        return [lead for lead in self._leads if lead.is_closed]
    
    # ------------------------------------------------------------------
    # Single-record writes
    # ------------------------------------------------------------------
    
    @staticmethod
    def _check_assignee(assigned_to: str, eligible: Optional[Set[str]]) -> None:
        if eligible is None or not assigned_to:
            return
        if assigned_to not in eligible:
            raise ValidationError(
                f"{assigned_to} cannot be assigned new leads",
                {"assigned_to": "Not an active employee"},
            )
    
    async def create(
        self,
        fields: Union[LeadFields, Mapping[str, Any]],
        eligible_assignees: Optional[Set[str]] = None,
    ) -> Lead:
        """
        Create a lead from manually entered fields.
        
        Raises:
            PermissionDeniedError: Actor may not create leads
            ValidationError: Required field blank, bad enum or negative budget
            PersistenceError: Backend insert failed
        """
        access_policy.require(self.session, Capability.CREATE_LEAD)
        
        try:
            lead_fields = fields if isinstance(fields, LeadFields) else LeadFields.model_validate(fields)
        except pydantic.ValidationError as e:
            raise to_validation_error(e)
        
        missing = lead_fields.missing_fields(REQUIRED_FIELDS)
        if missing:
            raise ValidationError(
                f"Required fields missing: {', '.join(missing)}",
                {name: "This field is required" for name in missing},
            )
        self._check_assignee(lead_fields.assigned_to, eligible_assignees)
        
        mutation = self._begin(MutationKind.CREATE, target=lead_fields.email.lower())
        try:
            response = await self._execute(
                self.supabase.table(LEADS_TABLE).insert(lead_fields.to_row())
            )
            if not response.data:
                raise PersistenceError("Backend returned no row for the new lead")
            lead = Lead.model_validate(response.data[0])
        except Exception as e:
            mutation.fail(str(e))
            logger.error(f"Failed to create lead for {lead_fields.customer_name}: {e}")
            if isinstance(e, PersistenceError):
                raise
            raise PersistenceError(f"Failed to add lead: {str(e)}")
        finally:
            self._end(mutation)
        
        mutation.confirm(lead.id)
        self._replace(lead)
        logger.info(f"Lead {lead.id} created by {self.session.actor_name}")
        return lead
    
    def _parse_update(self, changes: Union[LeadUpdate, Mapping[str, Any]]) -> Dict[str, Any]:
        try:
            update = changes if isinstance(changes, LeadUpdate) else LeadUpdate.model_validate(changes)
        except pydantic.ValidationError as e:
            raise to_validation_error(e)
        
        values = update.changes()
        for name in LeadUpdate.NON_NULLABLE:
            if name in values and values[name] is None:
                raise ValidationError(f"{name} cannot be empty", {name: "This field is required"})
        blank = [name for name in REQUIRED_FIELDS if name in values and not values[name]]
        if blank:
            raise ValidationError(
                f"Required fields missing: {', '.join(blank)}",
                {name: "This field is required" for name in blank},
            )
        return values
    
    async def update(
        self,
        lead_id: str,
        changes: Union[LeadUpdate, Mapping[str, Any]],
        eligible_assignees: Optional[Set[str]] = None,
    ) -> Lead:
        """
        Merge changes into a lead.
        
        Each field whose value actually changes produces one activity record
        attributed to the current actor. The backend update is a single
        statement, so other readers never see a partial write.
        
        Raises:
            NotFoundError: Lead no longer exists
            PermissionDeniedError: Access policy rejects the edit
            ValidationError: Invalid field values
            PersistenceError: Backend update failed (local patch rolled back)
        """
        current = await self._load_current(lead_id)
        access_policy.require_edit(self.session, current)
        values = self._parse_update(changes)
        
        before = current.to_row()
        diff = {name: (before.get(name), new) for name, new in values.items() if before.get(name) != new}
        if not diff:
            return current
        if "assigned_to" in diff:
            self._check_assignee(values["assigned_to"], eligible_assignees)
        
        mutation = self._begin(MutationKind.UPDATE, lead_id=lead_id)
        try:
            patched = Lead.model_validate({**current.model_dump(mode="json"), **values})
            self._replace(patched)
            
            try:
                response = await self._execute(
                    self.supabase.table(LEADS_TABLE)
                    .update({name: new for name, (_, new) in diff.items()})
                    .eq("id", lead_id)
                )
            except Exception as e:
                self._replace(current)
                mutation.fail(str(e))
                logger.error(f"Failed to update lead {lead_id}: {e}")
                raise PersistenceError(f"Failed to update lead: {str(e)}")
            
            if not response.data:
                self._remove(lead_id)
                mutation.fail("not found")
                raise NotFoundError("Lead", lead_id)
            
            confirmed = Lead.model_validate(response.data[0])
            self._replace(confirmed)
            mutation.confirm()
        finally:
            self._end(mutation)
        
        logger.info(f"Lead {lead_id} updated by {self.session.actor_name}: {', '.join(diff)}")
        if self.activities is not None:
            await self.activities.record_changes(current, diff)
        return confirmed
    
    async def delete(self, lead_id: str) -> None:
        """
        Delete one lead (CEO only).
        
        Raises:
            PermissionDeniedError: Actor may not delete leads
            NotFoundError: Lead no longer exists
            PersistenceError: Backend delete failed (lead restored locally)
        """
        access_policy.require(self.session, Capability.DELETE_LEAD)
        await self._load_current(lead_id)
        
        mutation = self._begin(MutationKind.DELETE, lead_id=lead_id)
        try:
            removed = self._remove(lead_id)
            try:
                await self._execute(
                    self.supabase.table(LEADS_TABLE).delete().eq("id", lead_id)
                )
            except Exception as e:
                if removed:
                    index, lead = removed
                    self._leads.insert(index, lead)
                    self._notify()
                mutation.fail(str(e))
                logger.error(f"Failed to delete lead {lead_id}: {e}")
                raise PersistenceError(f"Failed to delete lead: {str(e)}")
            mutation.confirm()
        finally:
            self._end(mutation)
        
        logger.info(f"Lead {lead_id} deleted by {self.session.actor_name}")
    
    # ------------------------------------------------------------------
    # Bulk writes
    # ------------------------------------------------------------------
    
    async def delete_all(self, reauth_password: str) -> bool:
        """
        Wipe every lead after re-verifying the actor's password.
        
        Irreversible. Not mirrored into the activity log.
        
        Returns:
            False if the password did not verify (nothing deleted),
            True once every lead is gone
        
        Raises:
            PermissionDeniedError: Actor may not delete all leads
            PersistenceError: Backend delete failed
        """
        access_policy.require(self.session, Capability.DELETE_ALL_LEADS)
        
        if self.auth is None or not reauth_password:
            return False
        verified = await self.auth.verify_password(self.session.profile.email, reauth_password)
        if not verified:
            logger.warning(f"Delete-all refused for {self.session.profile.email}: password mismatch")
            return False
        
        mutation = self._begin(MutationKind.DELETE_ALL)
        try:
            await self._execute(
                self.supabase.table(LEADS_TABLE).delete().neq("id", NIL_UUID)
            )
        except Exception as e:
            mutation.fail(str(e))
            logger.error(f"Delete-all failed: {e}")
            raise PersistenceError(f"Failed to delete leads: {str(e)}")
        finally:
            self._end(mutation)
        
        mutation.confirm()
        count = len(self._leads)
        self._set_leads([])
        logger.warning(f"All leads ({count} loaded) deleted by {self.session.actor_name}")
        
        await self._refetch_quietly()
        return True
    
    async def bulk_create(self, rows: Sequence[Union[LeadFields, Mapping[str, Any]]]) -> BulkCreateResult:
        """
        Insert leads in fixed-size batches.
        
        Rows without a customer name or email are dropped before insertion
        and reported as skipped, not as failures. A failing batch stops the
        remaining batches; rows from earlier batches stay inserted.
        
        Raises:
            PermissionDeniedError: Actor may not import leads
            ValidationError: A row has an invalid enum, budget or date
        """
        access_policy.require(self.session, Capability.IMPORT_LEADS)
        
        records: List[Dict[str, Any]] = []
        skipped = 0
        for index, row in enumerate(rows):
            try:
                fields = row if isinstance(row, LeadFields) else LeadFields.model_validate(row)
            except pydantic.ValidationError as e:
                raise to_validation_error(e, prefix=f"row {index + 1}.")
            if fields.missing_fields(IDENTITY_FIELDS):
                skipped += 1
                continue
            records.append(fields.to_row())
        
        mutation = self._begin(MutationKind.BULK_CREATE)
        inserted = 0
        error = None
        try:
            for start in range(0, len(records), self.batch_size):
                chunk = records[start:start + self.batch_size]
                try:
                    await self._execute(self.supabase.table(LEADS_TABLE).insert(chunk))
                except Exception as e:
                    error = f"Batch starting at row {start + 1} failed: {str(e)}"
                    logger.error(f"Bulk insert failed for chunk {start}-{start + len(chunk)}: {e}")
                    break
                inserted += len(chunk)
        finally:
            self._end(mutation)
        
        if error:
            mutation.fail(error)
        else:
            mutation.confirm()
        
        logger.info(f"Bulk import by {self.session.actor_name}: {inserted} inserted, {skipped} skipped")
        if inserted:
            await self._refetch_quietly()
        return BulkCreateResult(inserted=inserted, skipped=skipped, error=error)
    
    async def _refetch_quietly(self) -> None:
        """Reconcile after a bulk write; the write itself already succeeded"""
        try:
            await self.list_all()
        except FetchError as e:
            logger.warning(f"Could not refresh leads after bulk write: {e.message}")
