"""Tests for settings and target resolution."""

import pytest
from erdeploy.config import Settings, resolve_target
from erdeploy.errors import ConfigurationError


def test_resolve_target(settings):
    """Test that a complete configuration resolves."""
    target = resolve_target(settings)

    assert target.platform_url == "https://platform.test"
    assert target.client_id == "client"


def test_resolve_target_lists_missing_fields():
    """Test that missing connection fields are named in the error."""
    settings = Settings(platform_url="https://platform.test", tenant_id=None, client_id="c", client_secret="")

    with pytest.raises(ConfigurationError) as exc_info:
        resolve_target(settings)
    assert "tenant_id" in str(exc_info.value)
    assert "client_secret" in str(exc_info.value)
    assert "client_id" not in str(exc_info.value)


def test_settings_defaults():
    """Test deployment defaults."""
    settings = Settings()

    assert settings.default_publisher_prefix
    assert settings.max_concurrent_operations >= 1
    assert settings.deployment_retention_seconds > 0
