"""
Basic Tests for Core Functionality
Tests health endpoint, workspace manager, configuration and validation
"""
import pytest
from httpx import AsyncClient, ASGITransport

from leadflow.core.config import ConfigManager
from leadflow.core.validation import ConfigValidator, validate_config_on_startup
from leadflow.domain.services.workspace_manager import WorkspaceManager


@pytest.fixture(autouse=True)
def fresh_workspace_manager():
    WorkspaceManager.reset_instance()
    yield
    WorkspaceManager.reset_instance()


class TestHealthEndpoint:
    """Tests for the /health endpoint."""
    
    @pytest.mark.asyncio
    async def test_health_endpoint_returns_healthy(self):
        """Test that /api/v1/health returns healthy status."""
        from leadflow.main import app
        
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/v1/health")
        
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["active_workspaces"] == 0
    
    @pytest.mark.asyncio
    async def test_root_endpoint_returns_running(self):
        from leadflow.main import app
        
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/")
        
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert "LeadFlow" in data["message"]


class TestWorkspaceManager:
    """Basic tests for WorkspaceManager."""
    
    @pytest.mark.asyncio
    async def test_workspace_manager_singleton(self):
        manager1 = await WorkspaceManager.get_instance()
        manager2 = await WorkspaceManager.get_instance()
        
        assert manager1 is manager2
        await manager1.shutdown()
    
    @pytest.mark.asyncio
    async def test_open_and_close_workspace(self, ceo_session):
        from unittest.mock import MagicMock
        
        manager = await WorkspaceManager.get_instance()
        workspace = manager.open_workspace(MagicMock(), ceo_session)
        
        assert manager.open_workspace(MagicMock(), ceo_session) is workspace
        assert manager.get_workspace("ceo-token") is workspace
        assert manager.get_workspace_stats()["actors"] == ["Anita"]
        
        assert manager.close_workspace("ceo-token")
        assert manager.get_workspace("ceo-token") is None
        assert not manager.close_workspace("ceo-token")
        await manager.shutdown()
    
    @pytest.mark.asyncio
    async def test_stale_workspaces_are_closed(self, ceo_session, employee_session):
        from unittest.mock import MagicMock
        
        manager = await WorkspaceManager.get_instance()
        manager.open_workspace(MagicMock(), ceo_session)
        manager.open_workspace(MagicMock(), employee_session)
        
        assert manager.cleanup_stale_workspaces(timeout_seconds=-1) == 2
        assert manager.get_active_workspace_count() == 0
        await manager.shutdown()
    
    @pytest.mark.asyncio
    async def test_views_follow_repository_changes(self, ceo_session, make_lead):
        from unittest.mock import MagicMock
        from leadflow.domain.models.lead import DealStatus
        
        manager = await WorkspaceManager.get_instance()
        workspace = manager.open_workspace(MagicMock(), ceo_session)
        
        workspace.repository._set_leads([
            make_lead("1"),
            make_lead("2", deal_status=DealStatus.CLOSED),
        ])
        
        assert len(workspace.leads_view.filtered) == 2
        assert [l.id for l in workspace.closed_view.filtered] == ["2"]
        await manager.shutdown()
    
    @pytest.mark.asyncio
    async def test_reopened_workspace_adopts_latest_session(self, employee_session):
        from unittest.mock import MagicMock
        from leadflow.domain.models.session import SessionContext
        from conftest import build_profile
        
        manager = await WorkspaceManager.get_instance()
        workspace = manager.open_workspace(MagicMock(), employee_session)
        
        renamed = SessionContext(profile=build_profile("Ravi Kumar"), access_token="ravi-token")
        assert manager.open_workspace(MagicMock(), renamed) is workspace
        
        assert workspace.session is renamed
        assert workspace.repository.session is renamed
        assert workspace.activities.session is renamed
        assert workspace.profiles.session is renamed
        await manager.shutdown()


class TestConfigManager:
    
    def test_environment_overrides_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_ANON_KEY", "anon-123")
        (tmp_path / "default.yaml").write_text(
            "leads:\n  page_size: 10\n  fetch_timeout_seconds: 15\n"
            "supabase:\n  anon_key: ${TEST_ANON_KEY}\n",
            encoding="utf-8",
        )
        (tmp_path / "staging.yaml").write_text("leads:\n  page_size: 25\n", encoding="utf-8")
        
        config = ConfigManager(env="staging", config_dir=tmp_path)
        
        assert config.get_int("leads.page_size", 10) == 25
        assert config.get_float("leads.fetch_timeout_seconds", 1.0) == 15.0
        assert config.get("supabase.anon_key") == "anon-123"
        assert config.get("missing.key", "fallback") == "fallback"
    
    def test_bad_values_fall_back(self, tmp_path):
        (tmp_path / "default.yaml").write_text("import:\n  batch_size: lots\n", encoding="utf-8")
        config = ConfigManager(env="test", config_dir=tmp_path)
        assert config.get_int("import.batch_size", 50) == 50
    
    def test_shipped_defaults(self):
        config = ConfigManager(env="development")
        assert config.get_int("leads.page_size", 0) == 10
        assert config.get_int("import.batch_size", 0) == 50
        assert config.get_float("activity.recency_hours", 0) == 3


class TestConfigValidation:
    """Tests for startup configuration validation."""
    
    def test_validator_reports_missing_supabase(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_SERVICE_KEY", raising=False)
        
        all_valid, results = ConfigValidator(strict=False).validate_all()
        
        assert not all_valid
        assert {r.setting for r in results if not r.is_valid} == {"SUPABASE_URL", "SUPABASE_SERVICE_KEY"}
    
    def test_missing_anon_key_is_warning(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "test-service-key")
        monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
        
        all_valid, _ = ConfigValidator(strict=False).validate_all()
        assert all_valid
        
        strict_valid, _ = ConfigValidator(strict=True).validate_all()
        assert not strict_valid
    
    def test_startup_raises_when_invalid(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        
        with pytest.raises(RuntimeError) as exc_info:
            validate_config_on_startup(strict=False)
        assert "SUPABASE_URL" in str(exc_info.value)
    
    def test_get_supabase_requires_url(self, monkeypatch):
        from leadflow.api.v1.dependencies import get_supabase
        
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        
        with pytest.raises(RuntimeError) as exc_info:
            get_supabase()
        assert "SUPABASE_URL" in str(exc_info.value)
    
    def test_url_must_be_http(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "test.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "test-service-key")
        
        all_valid, results = ConfigValidator().validate_all()
        
        assert not all_valid
        assert [r.setting for r in results if not r.is_valid] == ["SUPABASE_URL"]
    
    def test_non_positive_tunables_rejected(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://test.supabase.co")
        monkeypatch.setenv("SUPABASE_SERVICE_KEY", "test-service-key")
        (tmp_path / "default.yaml").write_text(
            "leads:\n  page_size: 0\nimport:\n  batch_size: many\n", encoding="utf-8"
        )
        config = ConfigManager(env="test", config_dir=tmp_path)
        
        all_valid, results = ConfigValidator(config=config).validate_all()
        
        assert not all_valid
        assert {r.setting for r in results if not r.is_valid} == {"leads.page_size", "import.batch_size"}
