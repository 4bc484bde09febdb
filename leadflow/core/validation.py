"""
Startup Configuration Checks
Supabase credentials from the environment and CRM tunables from YAML
"""
import os
import logging
from typing import List, Optional, Tuple
from dataclasses import dataclass

from leadflow.core.config import ConfigManager

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Outcome of one configuration check."""
    component: str
    setting: str
    is_valid: bool
    message: str
    warning: bool = False


class ConfigValidator:
    """
    Checks that the backend can reach Supabase and that the CRM tunables
    are usable before the application accepts requests.
    """
    
    # (env var, what it is for)
    REQUIRED_ENV_VARS = [
        ("SUPABASE_URL", "Supabase project URL"),
        ("SUPABASE_SERVICE_KEY", "Supabase service role key"),
    ]
    
    OPTIONAL_ENV_VARS = [
        ("SUPABASE_ANON_KEY", "Supabase anon key for password sign-in"),
    ]
    
    # Tunables that must be positive numbers
    POSITIVE_TUNABLES = [
        "leads.page_size",
        "leads.fetch_timeout_seconds",
        "leads.max_age_seconds",
        "import.batch_size",
        "activity.recency_hours",
        "workspace.idle_timeout_seconds",
    ]
    
    def __init__(self, strict: bool = False, config: Optional[ConfigManager] = None):
        """
        Args:
            strict: Treat warnings as errors
            config: Loaded tunables (defaults to the YAML config directory)
        """
        self.strict = strict
        self.config = config
        self.results: List[ValidationResult] = []
    
    def validate_all(self) -> Tuple[bool, List[ValidationResult]]:
        """
        Run every check.
    
        Returns:
            Tuple of (all_valid, list of results)
        """
        self.results = []
        self._check_environment()
        self._check_tunables()
        return not self.errors(), self.results
    
    def errors(self) -> List[ValidationResult]:
        return [r for r in self.results if not r.is_valid]
    
    def _check_environment(self) -> None:
        for env_var, description in self.REQUIRED_ENV_VARS:
            value = os.getenv(env_var)
            if not value:
                self._record("supabase", env_var, False, f"{description} requires {env_var} to be set")
            elif env_var == "SUPABASE_URL" and not value.startswith(("http://", "https://")):
                self._record("supabase", env_var, False, f"{env_var} must be an http(s) URL")
            else:
                self._record("supabase", env_var, True, f"{description} configured")
    
        for env_var, description in self.OPTIONAL_ENV_VARS:
            if os.getenv(env_var):
                self._record("auth", env_var, True, f"{description} configured")
            else:
                self._record(
                    "auth", env_var, not self.strict,
                    f"{description} not configured (service key will be used)",
                    warning=True,
                )
    
    def _check_tunables(self) -> None:
        config = self.config or ConfigManager()
        for key in self.POSITIVE_TUNABLES:
            value = config.get(key)
            if value is None:
                # Code defaults apply
                continue
            try:
                ok = float(value) > 0
            except (TypeError, ValueError):
                ok = False
            if ok:
                self._record("tunables", key, True, f"{key} = {value}")
            else:
                self._record("tunables", key, False, f"{key} must be a positive number, got {value!r}")
    
    def _record(self, component: str, setting: str, is_valid: bool, message: str, warning: bool = False):
        self.results.append(ValidationResult(component, setting, is_valid, message, warning))
    
    def log_results(self):
        """Log every result at a level matching its outcome."""
        for r in self.results:
            if not r.is_valid:
                logger.error(f"  ✗ [{r.component}] {r.setting}: {r.message}")
            elif r.warning:
                logger.warning(f"  ⚠ [{r.component}] {r.message}")
            else:
                logger.info(f"  ✓ [{r.component}] {r.message}")
    
    def get_error_summary(self) -> Optional[str]:
        errors = self.errors()
        if not errors:
            return None
        return "\n".join(["Configuration errors:"] + [f"  - {r.setting}: {r.message}" for r in errors])


def validate_config_on_startup(strict: bool = False) -> None:
    """
    Validate configuration from the FastAPI lifespan hook.
    
    Raises:
        RuntimeError: If required configuration is missing or unusable
    """
    validator = ConfigValidator(strict=strict)
    all_valid, _ = validator.validate_all()
    validator.log_results()
    
    if not all_valid:
        raise RuntimeError(validator.get_error_summary())
    
    logger.info("Configuration validated")
