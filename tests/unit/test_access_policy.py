"""
Unit tests for role capabilities and lead edit rights
"""
import pytest

from leadflow.domain.errors import PermissionDeniedError
from leadflow.domain.models.profile import Role
from leadflow.domain.models.session import SessionContext
from leadflow.domain.services import access_policy
from leadflow.domain.services.access_policy import Capability


class TestCapabilities:
    
    def test_ceo_holds_every_capability(self, ceo_session):
        assert access_policy.capabilities_for(ceo_session) == frozenset(Capability)
    
    def test_employee_holds_none(self, employee_session):
        for capability in Capability:
            assert not access_policy.can(employee_session, capability)
    
    def test_terminated_ceo_holds_none(self, make_profile):
        profile = make_profile("Anita", Role.CEO, is_terminated=True)
        session = SessionContext(profile=profile, access_token="t")
        assert access_policy.capabilities_for(session) == frozenset()
    
    def test_require_names_missing_capability(self, employee_session):
        with pytest.raises(PermissionDeniedError) as exc_info:
            access_policy.require(employee_session, Capability.DELETE_ALL_LEADS)
        
        assert exc_info.value.capability == "delete_all_leads"
        assert "delete all leads" in exc_info.value.message
    
    def test_require_passes_for_ceo(self, ceo_session):
        access_policy.require(ceo_session, Capability.IMPORT_LEADS)


class TestLeadEditRights:
    
    def test_employee_edits_own_lead(self, employee_session, make_lead):
        assert access_policy.can_edit_lead(employee_session, make_lead(assigned_to="Ravi"))
    
    def test_employee_cannot_edit_others_lead(self, employee_session, make_lead):
        lead = make_lead(assigned_to="Priya")
        assert not access_policy.can_edit_lead(employee_session, lead)
        
        with pytest.raises(PermissionDeniedError) as exc_info:
            access_policy.require_edit(employee_session, lead)
        assert exc_info.value.message == "You can only edit leads assigned to you."
    
    def test_employee_cannot_edit_unassigned_lead(self, employee_session, make_lead):
        assert not access_policy.can_edit_lead(employee_session, make_lead(assigned_to=""))
    
    def test_ceo_edits_any_lead(self, ceo_session, make_lead):
        assert access_policy.can_edit_lead(ceo_session, make_lead(assigned_to="Priya"))
        assert access_policy.can_edit_lead(ceo_session, make_lead(assigned_to=""))
