"""Application settings using Pydantic Settings."""

from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from erdeploy.errors import ConfigurationError


def find_and_load_env_file() -> Optional[str]:
    """Find and load a .env file in the working directory or its parents."""
    search_paths = [
        Path.cwd(),
        Path(__file__).parent.parent.parent.parent,  # Project root
    ]

    for start_path in search_paths:
        current = start_path.resolve()
        for _ in range(4):
            env_path = current / ".env"
            if env_path.exists():
                load_dotenv(env_path, override=False)
                return str(env_path)
            parent = current.parent
            if parent == current:
                break
            current = parent
    return None


find_and_load_env_file()


class Settings(BaseSettings):
    """Application configuration settings."""

    # Target platform
    platform_url: Optional[str] = None
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    # Deployment defaults
    default_publisher_name: str = "Custom Mermaid Publisher"
    default_publisher_prefix: str = "cmmd"
    max_concurrent_operations: int = 4
    remote_max_retries: int = 3
    remote_retry_delay: float = 1.0  # seconds, doubled per attempt
    deployment_retention_seconds: float = 300.0

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_file=None,  # loaded manually with dotenv
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class TargetConfig(BaseModel):
    """Resolved connection details for the remote platform."""

    platform_url: str
    tenant_id: str
    client_id: str
    client_secret: str


_REQUIRED_TARGET_FIELDS = ("platform_url", "tenant_id", "client_id", "client_secret")


def resolve_target(settings: Settings) -> TargetConfig:
    """
    Build the target configuration from settings.

    Args:
        settings: Loaded settings

    Returns:
        TargetConfig with every connection field present

    Raises:
        ConfigurationError: If any required field is missing or blank
    """
    missing: List[str] = [
        name for name in _REQUIRED_TARGET_FIELDS if not getattr(settings, name)
    ]
    if missing:
        raise ConfigurationError(
            f"Missing target platform configuration: {', '.join(missing)}"
        )
    return TargetConfig(**{name: getattr(settings, name) for name in _REQUIRED_TARGET_FIELDS})


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
