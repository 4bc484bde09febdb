"""
Shared fixtures: actors, leads and fake Supabase clients
"""
import os
from typing import Dict
from unittest.mock import MagicMock

import pytest

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")

from leadflow.domain.models.lead import Lead
from leadflow.domain.models.profile import Profile, Role
from leadflow.domain.models.session import SessionContext


def build_profile(name: str = "Ravi", role: Role = Role.EMPLOYEE, **overrides) -> Profile:
    data = {
        "id": f"{name.lower()}-id",
        "name": name,
        "email": f"{name.lower()}@example.com",
        "role": role,
    }
    data.update(overrides)
    return Profile(**data)


def build_lead(lead_id: str = "lead-1", **overrides) -> Lead:
    data = {
        "id": lead_id,
        "customer_name": "Meera Iyer",
        "email": "meera@example.com",
        "mobile_number": "9876543210",
        "project_name": "Palm Grove",
        "budget": 75000,
        "preferred_area": "Whitefield",
        "assigned_to": "Ravi",
    }
    data.update(overrides)
    return Lead(**data)


def supabase_with(tables: Dict[str, MagicMock]) -> MagicMock:
    """Supabase client whose table(name) returns the matching mock"""
    client = MagicMock()
    client.table.side_effect = lambda name: tables.setdefault(name, MagicMock())
    return client


@pytest.fixture
def ceo_session() -> SessionContext:
    return SessionContext(profile=build_profile("Anita", Role.CEO), access_token="ceo-token")


@pytest.fixture
def employee_session() -> SessionContext:
    return SessionContext(profile=build_profile("Ravi"), access_token="ravi-token")


@pytest.fixture
def make_lead():
    return build_lead


@pytest.fixture
def make_profile():
    return build_profile


def serve_rows(table: MagicMock, *leads: Lead) -> MagicMock:
    """Back a leads table mock: full selects and id lookups return these leads"""
    rows = {lead.id: lead.model_dump(mode="json") for lead in leads}
    
    def by_id(column, value):
        query = MagicMock()
        query.execute.return_value.data = [rows[value]] if value in rows else []
        return query
    
    table.select.return_value.execute.return_value.data = list(rows.values())
    table.select.return_value.eq.side_effect = by_id
    return table
