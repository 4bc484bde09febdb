"""
Unit tests for LeadRepository against a mocked Supabase client
"""
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from leadflow.domain.errors import (
    FetchError,
    MutationInProgressError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from leadflow.domain.models.lead import DealStatus
from leadflow.domain.models.mutation import MutationKind, MutationState
from leadflow.domain.services.lead_repository import NIL_UUID, LeadRepository

from conftest import build_lead, serve_rows, supabase_with


def row(lead_id="lead-1", **overrides):
    return build_lead(lead_id, **overrides).model_dump(mode="json")


@pytest.fixture
def leads_table():
    return MagicMock()


@pytest.fixture
def supabase(leads_table):
    return supabase_with({"leads": leads_table})


def make_repo(supabase, session, **kwargs):
    kwargs.setdefault("activities", AsyncMock())
    return LeadRepository(supabase, session, **kwargs)


class TestListAll:
    
    @pytest.mark.asyncio
    async def test_loads_working_set_and_skips_malformed_rows(self, supabase, leads_table, ceo_session):
        leads_table.select.return_value.execute.return_value.data = [
            row("1"),
            row("2", deal_status="Closed"),
            {"id": "3", "deal_status": "Negotiating"},
        ]
        repo = make_repo(supabase, ceo_session)
        
        leads = await repo.list_all()
        
        assert [l.id for l in leads] == ["1", "2"]
        assert repo.loaded
    
    @pytest.mark.asyncio
    async def test_failure_keeps_previous_working_set(self, supabase, leads_table, ceo_session):
        leads_table.select.return_value.execute.return_value.data = [row("1")]
        repo = make_repo(supabase, ceo_session)
        await repo.list_all()
        
        leads_table.select.return_value.execute.side_effect = Exception("connection reset")
        with pytest.raises(FetchError):
            await repo.list_all()
        
        assert [l.id for l in repo.leads] == ["1"]
    
    @pytest.mark.asyncio
    async def test_timeout_raises_fetch_error(self, supabase, leads_table, ceo_session):
        def slow_execute():
            time.sleep(0.3)
            return MagicMock(data=[row("1")])
        
        leads_table.select.return_value.execute.side_effect = slow_execute
        repo = make_repo(supabase, ceo_session, fetch_timeout=0.05)
        
        with pytest.raises(FetchError) as exc_info:
            await repo.list_all()
        
        assert "Timed out" in exc_info.value.message
        assert repo.leads == ()
    
    @pytest.mark.asyncio
    async def test_response_after_close_is_discarded(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session)
        
        def execute_then_close():
            repo.close()
            return MagicMock(data=[row("1")])
        
        leads_table.select.return_value.execute.side_effect = execute_then_close
        await repo.list_all()
        
        assert repo.leads == ()
        assert not repo.loaded


class TestEnsureLoaded:
    
    @pytest.mark.asyncio
    async def test_fresh_working_set_is_reused(self, supabase, leads_table, ceo_session):
        serve_rows(leads_table, build_lead("1"))
        repo = make_repo(supabase, ceo_session, max_age=60)
        
        await repo.ensure_loaded()
        await repo.ensure_loaded()
        
        assert leads_table.select.return_value.execute.call_count == 1
    
    @pytest.mark.asyncio
    async def test_stale_working_set_is_reloaded(self, supabase, leads_table, ceo_session):
        serve_rows(leads_table, build_lead("1", assigned_to="Ravi"))
        repo = make_repo(supabase, ceo_session, max_age=30)
        await repo.ensure_loaded()
        
        serve_rows(leads_table, build_lead("1", assigned_to="Priya"), build_lead("2"))
        repo._loaded_at = time.monotonic() - 31
        leads = await repo.ensure_loaded()
        
        assert [(l.id, l.assigned_to) for l in leads] == [("1", "Priya"), ("2", "Ravi")]
        assert not repo.is_stale
    
    @pytest.mark.asyncio
    async def test_failed_reload_serves_cached_leads(self, supabase, leads_table, ceo_session):
        serve_rows(leads_table, build_lead("1"))
        repo = make_repo(supabase, ceo_session, max_age=30)
        await repo.ensure_loaded()
        
        leads_table.select.return_value.execute.side_effect = Exception("connection reset")
        repo._loaded_at = time.monotonic() - 31
        
        assert [l.id for l in await repo.ensure_loaded()] == ["1"]


class TestCreate:
    
    @pytest.mark.asyncio
    async def test_employee_cannot_create(self, supabase, leads_table, employee_session):
        repo = make_repo(supabase, employee_session)
        
        with pytest.raises(PermissionDeniedError):
            await repo.create({"customer_name": "A", "email": "a@example.com"})
        
        leads_table.insert.assert_not_called()
    
    @pytest.mark.asyncio
    async def test_missing_required_fields(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session)
        
        with pytest.raises(ValidationError) as exc_info:
            await repo.create({"customer_name": "Meera", "email": "meera@example.com"})
        
        assert set(exc_info.value.fields) == {"mobile_number", "project_name", "preferred_area"}
        leads_table.insert.assert_not_called()
    
    @pytest.mark.asyncio
    async def test_negative_budget_rejected(self, supabase, ceo_session):
        repo = make_repo(supabase, ceo_session)
        fields = {k: v for k, v in row().items() if k not in ("id", "created_at")}
        fields["budget"] = -1
        
        with pytest.raises(ValidationError) as exc_info:
            await repo.create(fields)
        assert "budget" in exc_info.value.fields
    
    @pytest.mark.asyncio
    async def test_unknown_status_rejected(self, supabase, ceo_session):
        repo = make_repo(supabase, ceo_session)
        fields = {k: v for k, v in row().items() if k not in ("id", "created_at")}
        fields["deal_status"] = "Negotiating"
        
        with pytest.raises(ValidationError):
            await repo.create(fields)
    
    @pytest.mark.asyncio
    async def test_ineligible_assignee_rejected(self, supabase, ceo_session):
        repo = make_repo(supabase, ceo_session)
        fields = {k: v for k, v in row().items() if k not in ("id", "created_at")}
        
        with pytest.raises(ValidationError) as exc_info:
            await repo.create(fields, eligible_assignees={"Priya"})
        assert "assigned_to" in exc_info.value.fields
    
    @pytest.mark.asyncio
    async def test_created_lead_joins_working_set(self, supabase, leads_table, ceo_session):
        leads_table.insert.return_value.execute.return_value.data = [row("new-1")]
        repo = make_repo(supabase, ceo_session)
        listener = MagicMock()
        repo.subscribe(listener)
        fields = {k: v for k, v in row().items() if k not in ("id", "created_at")}
        
        lead = await repo.create(fields, eligible_assignees={"Ravi"})
        
        assert lead.id == "new-1"
        assert lead.deal_status == DealStatus.NOT_CONTACTED
        assert [l.id for l in repo.leads] == ["new-1"]
        listener.assert_called()
        confirmed = [m for m in repo.mutations.values() if m.state == MutationState.CONFIRMED]
        assert confirmed[0].lead_id == "new-1"
    
    @pytest.mark.asyncio
    async def test_backend_failure_raises_persistence_error(self, supabase, leads_table, ceo_session):
        leads_table.insert.return_value.execute.side_effect = Exception("500")
        repo = make_repo(supabase, ceo_session)
        fields = {k: v for k, v in row().items() if k not in ("id", "created_at")}
        
        with pytest.raises(PersistenceError):
            await repo.create(fields)
        assert repo.leads == ()


class TestUpdate:
    
    @pytest.mark.asyncio
    async def test_employee_cannot_edit_others_lead(self, supabase, leads_table, employee_session):
        repo = make_repo(supabase, employee_session)
        repo._set_leads([build_lead("1", assigned_to="Priya")])
        serve_rows(leads_table, build_lead("1", assigned_to="Priya"))
        
        with pytest.raises(PermissionDeniedError):
            await repo.update("1", {"deal_status": "Closed"})
        leads_table.update.assert_not_called()
    
    @pytest.mark.asyncio
    async def test_only_changed_fields_are_written_and_logged(self, supabase, leads_table, employee_session):
        leads_table.update.return_value.eq.return_value.execute.return_value.data = [
            row("1", deal_status="Closed")
        ]
        repo = make_repo(supabase, employee_session)
        current = build_lead("1")
        repo._set_leads([current])
        serve_rows(leads_table, current)
        
        updated = await repo.update("1", {"deal_status": "Closed", "customer_name": "Meera Iyer"})
        
        assert updated.deal_status == DealStatus.CLOSED
        leads_table.update.assert_called_once_with({"deal_status": "Closed"})
        repo.activities.record_changes.assert_awaited_once_with(
            current, {"deal_status": ("Not Contacted", "Closed")}
        )
    
    @pytest.mark.asyncio
    async def test_no_change_skips_backend(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session)
        repo._set_leads([build_lead("1")])
        serve_rows(leads_table, build_lead("1"))
        
        await repo.update("1", {"budget": 75000})
        
        leads_table.update.assert_not_called()
        repo.activities.record_changes.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_failure_rolls_back_local_patch(self, supabase, leads_table, ceo_session):
        leads_table.update.return_value.eq.return_value.execute.side_effect = Exception("timeout")
        repo = make_repo(supabase, ceo_session)
        repo._set_leads([build_lead("1")])
        serve_rows(leads_table, build_lead("1"))
        
        with pytest.raises(PersistenceError):
            await repo.update("1", {"interest_level": "Green"})
        
        assert repo.leads[0].interest_level.value == "Yellow"
        failed = [m for m in repo.mutations.values() if m.state == MutationState.FAILED]
        assert len(failed) == 1
    
    @pytest.mark.asyncio
    async def test_null_for_required_enum_rejected(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session)
        repo._set_leads([build_lead("1")])
        serve_rows(leads_table, build_lead("1"))
        
        with pytest.raises(ValidationError):
            await repo.update("1", {"deal_status": None})
    
    @pytest.mark.asyncio
    async def test_blank_required_field_rejected(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session)
        repo._set_leads([build_lead("1")])
        serve_rows(leads_table, build_lead("1"))
        
        with pytest.raises(ValidationError):
            await repo.update("1", {"email": "  "})
    
    @pytest.mark.asyncio
    async def test_deleted_lead_is_not_found(self, supabase, leads_table, ceo_session):
        leads_table.select.return_value.eq.return_value.execute.return_value.data = []
        repo = make_repo(supabase, ceo_session)
        
        with pytest.raises(NotFoundError) as exc_info:
            await repo.update("gone", {"comments": "hello"})
        assert "Please refresh" in exc_info.value.message
    
    @pytest.mark.asyncio
    async def test_row_vanishing_during_update(self, supabase, leads_table, ceo_session):
        leads_table.update.return_value.eq.return_value.execute.return_value.data = []
        repo = make_repo(supabase, ceo_session)
        repo._set_leads([build_lead("1")])
        serve_rows(leads_table, build_lead("1"))
        
        with pytest.raises(NotFoundError):
            await repo.update("1", {"comments": "called twice"})
        assert repo.leads == ()
    
    @pytest.mark.asyncio
    async def test_duplicate_submit_rejected(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session)
        repo._set_leads([build_lead("1")])
        serve_rows(leads_table, build_lead("1"))
        repo._begin(MutationKind.UPDATE, lead_id="1")
        
        with pytest.raises(MutationInProgressError):
            await repo.update("1", {"comments": "again"})
    
    @pytest.mark.asyncio
    async def test_reassigned_lead_is_checked_against_backend_row(self, supabase, leads_table, employee_session):
        repo = make_repo(supabase, employee_session)
        repo._set_leads([build_lead("1", assigned_to="Ravi")])
        serve_rows(leads_table, build_lead("1", assigned_to="Priya"))
        
        with pytest.raises(PermissionDeniedError):
            await repo.update("1", {"comments": "still mine?"})
        
        leads_table.update.assert_not_called()
        assert repo.leads[0].assigned_to == "Priya"
    
    @pytest.mark.asyncio
    async def test_lead_assigned_elsewhere_to_actor_becomes_editable(self, supabase, leads_table, employee_session):
        leads_table.update.return_value.eq.return_value.execute.return_value.data = [
            row("1", assigned_to="Ravi", comments="on it")
        ]
        repo = make_repo(supabase, employee_session)
        repo._set_leads([build_lead("1", assigned_to="Priya")])
        serve_rows(leads_table, build_lead("1", assigned_to="Ravi"))
        
        updated = await repo.update("1", {"comments": "on it"})
        
        assert updated.comments == "on it"
    
    @pytest.mark.asyncio
    async def test_lead_deleted_elsewhere_leaves_working_set(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session)
        repo._set_leads([build_lead("1"), build_lead("2")])
        serve_rows(leads_table, build_lead("2"))
        
        with pytest.raises(NotFoundError):
            await repo.update("1", {"comments": "hello"})
        
        assert [l.id for l in repo.leads] == ["2"]
        leads_table.update.assert_not_called()


class TestDelete:
    
    @pytest.mark.asyncio
    async def test_employee_cannot_delete(self, supabase, leads_table, employee_session):
        repo = make_repo(supabase, employee_session)
        repo._set_leads([build_lead("1")])
        serve_rows(leads_table, build_lead("1"))
        
        with pytest.raises(PermissionDeniedError):
            await repo.delete("1")
        leads_table.delete.assert_not_called()
    
    @pytest.mark.asyncio
    async def test_failure_restores_lead_in_place(self, supabase, leads_table, ceo_session):
        leads_table.delete.return_value.eq.return_value.execute.side_effect = Exception("503")
        repo = make_repo(supabase, ceo_session)
        repo._set_leads([build_lead("1"), build_lead("2"), build_lead("3")])
        serve_rows(leads_table, build_lead("1"), build_lead("2"), build_lead("3"))
        
        with pytest.raises(PersistenceError):
            await repo.delete("2")
        
        assert [l.id for l in repo.leads] == ["1", "2", "3"]
    
    @pytest.mark.asyncio
    async def test_delete_removes_lead(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session)
        repo._set_leads([build_lead("1"), build_lead("2")])
        serve_rows(leads_table, build_lead("1"), build_lead("2"))
        
        await repo.delete("1")
        
        assert [l.id for l in repo.leads] == ["2"]
        leads_table.delete.return_value.eq.assert_called_once_with("id", "1")
    
    @pytest.mark.asyncio
    async def test_lead_deleted_elsewhere_is_not_found(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session)
        repo._set_leads([build_lead("1")])
        serve_rows(leads_table)
        
        with pytest.raises(NotFoundError):
            await repo.delete("1")
        
        assert repo.leads == ()
        leads_table.delete.assert_not_called()


class TestDeleteAll:
    
    @pytest.mark.asyncio
    async def test_wrong_password_deletes_nothing(self, supabase, leads_table, ceo_session):
        auth = AsyncMock()
        auth.verify_password.return_value = False
        repo = make_repo(supabase, ceo_session, auth=auth)
        repo._set_leads([build_lead("1")])
        
        assert await repo.delete_all("wrong") is False
        
        leads_table.delete.assert_not_called()
        assert len(repo.leads) == 1
    
    @pytest.mark.asyncio
    async def test_empty_password_deletes_nothing(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session, auth=AsyncMock())
        
        assert await repo.delete_all("") is False
        repo.auth.verify_password.assert_not_awaited()
    
    @pytest.mark.asyncio
    async def test_employee_cannot_delete_all(self, supabase, employee_session):
        repo = make_repo(supabase, employee_session, auth=AsyncMock())
        
        with pytest.raises(PermissionDeniedError):
            await repo.delete_all("secret")
    
    @pytest.mark.asyncio
    async def test_verified_delete_all_clears_working_set(self, supabase, leads_table, ceo_session):
        auth = AsyncMock()
        auth.verify_password.return_value = True
        leads_table.select.return_value.execute.return_value.data = []
        repo = make_repo(supabase, ceo_session, auth=auth)
        repo._set_leads([build_lead("1"), build_lead("2")])
        
        assert await repo.delete_all("secret") is True
        
        auth.verify_password.assert_awaited_once_with("anita@example.com", "secret")
        leads_table.delete.return_value.neq.assert_called_once_with("id", NIL_UUID)
        assert repo.leads == ()


class TestBulkCreate:
    
    @pytest.mark.asyncio
    async def test_rows_without_identity_are_skipped(self, supabase, leads_table, ceo_session):
        leads_table.select.return_value.execute.return_value.data = [row("1")]
        repo = make_repo(supabase, ceo_session)
        
        result = await repo.bulk_create([
            {"customer_name": "Meera", "email": "meera@example.com"},
            {"customer_name": "No Email"},
        ])
        
        assert result.inserted == 1
        assert result.skipped == 1
        assert result.ok
        inserted_rows = leads_table.insert.call_args[0][0]
        assert len(inserted_rows) == 1
        assert inserted_rows[0]["deal_status"] == "Not Contacted"
        assert [l.id for l in repo.leads] == ["1"]
    
    @pytest.mark.asyncio
    async def test_failed_batch_keeps_earlier_batches(self, supabase, leads_table, ceo_session):
        leads_table.insert.return_value.execute.side_effect = [MagicMock(data=[]), Exception("network")]
        leads_table.select.return_value.execute.return_value.data = []
        repo = make_repo(supabase, ceo_session, batch_size=2)
        rows = [{"customer_name": f"Lead {i}", "email": f"l{i}@example.com"} for i in range(5)]
        
        result = await repo.bulk_create(rows)
        
        assert result.inserted == 2
        assert not result.ok
        assert "row 3" in result.error
        assert leads_table.insert.call_count == 2
    
    @pytest.mark.asyncio
    async def test_invalid_row_names_row_number(self, supabase, leads_table, ceo_session):
        repo = make_repo(supabase, ceo_session)
        
        with pytest.raises(ValidationError) as exc_info:
            await repo.bulk_create([
                {"customer_name": "A", "email": "a@example.com"},
                {"customer_name": "B", "email": "b@example.com", "budget": -10},
            ])
        
        assert "row 2.budget" in exc_info.value.fields
        leads_table.insert.assert_not_called()
    
    @pytest.mark.asyncio
    async def test_employee_cannot_import(self, supabase, employee_session):
        repo = make_repo(supabase, employee_session)
        
        with pytest.raises(PermissionDeniedError):
            await repo.bulk_create([{"customer_name": "A", "email": "a@example.com"}])
