"""Unit tests for configuration."""

import pytest
from pydantic import ValidationError


def test_sandbox_default_limits():
    """Test default sandbox limits."""
    from assessor.config import SandboxConfig

    config = SandboxConfig()

    assert config.default_timeout_seconds == 30
    assert config.timeout_ceiling_seconds == 120
    assert "PATH" in config.env_allowlist
    assert "AWS_ACCESS_KEY_ID" not in config.env_allowlist
    assert "os" not in config.allowed_modules


def test_effective_timeout_is_clamped_to_ceiling():
    """Test per-challenge timeouts never exceed the platform ceiling."""
    from assessor.config import SandboxConfig

    config = SandboxConfig()

    assert config.effective_timeout(None) == 30.0
    assert config.effective_timeout(45) == 45.0
    assert config.effective_timeout(600) == 120.0
    assert config.effective_timeout(0) == 30.0


def test_sandbox_timeout_ceiling_cannot_be_raised():
    """Test the 120 second platform ceiling is not configurable upwards."""
    from assessor.config import SandboxConfig

    with pytest.raises(ValidationError):
        SandboxConfig(timeout_ceiling_seconds=300)


def test_sandbox_default_must_not_exceed_ceiling():
    """Test default timeout above the configured ceiling is rejected."""
    from assessor.config import SandboxConfig

    with pytest.raises(ValidationError):
        SandboxConfig(default_timeout_seconds=60, timeout_ceiling_seconds=40)


def test_broker_duration_capped_at_fifteen_minutes():
    """Test delegated credentials cannot be configured beyond 900 seconds."""
    from assessor.config import BrokerConfig

    assert BrokerConfig(external_id="ext").duration_seconds == 900
    with pytest.raises(ValidationError):
        BrokerConfig(external_id="ext", duration_seconds=3600)


def test_broker_retry_budget_capped_at_three():
    """Test issuance retries cannot exceed three attempts."""
    from assessor.config import BrokerConfig

    with pytest.raises(ValidationError):
        BrokerConfig(external_id="ext", max_attempts=5)


def test_broker_external_id_required(monkeypatch):
    """Test the external id must be supplied and non-empty."""
    from assessor.config import BrokerConfig

    monkeypatch.delenv("BROKER_EXTERNAL_ID", raising=False)
    with pytest.raises(ValidationError):
        BrokerConfig(_env_file=None)
    with pytest.raises(ValidationError):
        BrokerConfig(external_id="   ")


def test_broker_config_from_environment(monkeypatch):
    """Test broker settings are read from BROKER_ environment variables."""
    from assessor.config import BrokerConfig

    monkeypatch.setenv("BROKER_EXTERNAL_ID", "from-env")
    monkeypatch.setenv("BROKER_ROLE_NAME", "InspectorRole")

    config = BrokerConfig()

    assert config.external_id == "from-env"
    assert config.role_name == "InspectorRole"


def test_orchestrator_defaults():
    """Test orchestrator defaults for deadline, concurrency and partial credit."""
    from assessor.config import OrchestratorConfig

    config = OrchestratorConfig()

    assert config.attempt_deadline_seconds == 300.0
    assert config.max_concurrency == 16
    assert config.partial_credit_on_validation_failure is True


def test_database_connection_url_excludes_password():
    """Test the connection URL never embeds a password."""
    from assessor.config import DatabaseSettings

    settings = DatabaseSettings(host="db.internal", user="assessor", local_password="secret")

    assert settings.connection_url == "postgresql://assessor@db.internal:5432/assessment_engine"
