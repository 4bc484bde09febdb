"""
Configuration Management
Loads settings from YAML files and environment variables
"""
import yaml
import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment"""
    
    environment: str = "development"
    debug: bool = True
    
    # API Settings
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = ["http://localhost:5173"]
    
    # Supabase
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()


ENV_REFERENCE = re.compile(r"\$\{(\w+)\}")


class ConfigManager:
    """
    CRM tunables from config/default.yaml, overlaid with config/<env>.yaml.
    
    String values may reference environment variables as ${NAME}; unset
    variables are left as written.
    """
    
    def __init__(self, env: Optional[str] = None, config_dir: Optional[Path] = None):
        self.env = env or os.getenv("ENVIRONMENT", "development")
        self.config_dir = config_dir or Path(__file__).parent.parent.parent / "config"
        self._config: Dict[str, Any] = {}
        
        for name in ("default.yaml", f"{self.env}.yaml"):
            path = self.config_dir / name
            if path.exists():
                self._merge(self._config, self._read(path))
        self._config = self._expand(self._config)
    
    @staticmethod
    def _read(path: Path) -> Dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    
    @classmethod
    def _merge(cls, base: Dict, override: Dict) -> None:
        for key, value in override.items():
            if isinstance(base.get(key), dict) and isinstance(value, dict):
                cls._merge(base[key], value)
            else:
                base[key] = value
    
    @classmethod
    def _expand(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {key: cls._expand(item) for key, item in value.items()}
        if isinstance(value, list):
            return [cls._expand(item) for item in value]
        if isinstance(value, str):
            return ENV_REFERENCE.sub(lambda m: os.getenv(m.group(1), m.group(0)), value)
        return value
    
    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Look a value up by dotted path.
        Example: config.get("leads.page_size") -> 10
        """
        value: Any = self._config
        for key in key_path.split("."):
            if not isinstance(value, dict) or key not in value:
                return default
            value = value[key]
        return value
    
    def get_int(self, key_path: str, default: int) -> int:
        """Integer tunable, falling back to default on missing or bad values"""
        try:
            return int(self.get(key_path, default))
        except (TypeError, ValueError):
            return default
    
    def get_float(self, key_path: str, default: float) -> float:
        try:
            return float(self.get(key_path, default))
        except (TypeError, ValueError):
            return default
