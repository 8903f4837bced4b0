"""
Tests for configuration and application wiring.
"""

import os

import pytest

from app.domains.agent import ScriptProvisioningAgent, SimulatedProvisioningAgent


class TestConfig:
    """Test configuration module."""

    def test_settings_loads(self):
        """Test settings load from environment."""
        from app.config import Settings

        settings = Settings()
        assert settings.server_ip == "203.0.113.10"
        assert settings.redis_url == ""
        assert settings.dns_nameservers == ["8.8.8.8", "1.1.1.1"]
        assert settings.verification_expiry_days == 7
        assert settings.attach_timeout == 120.0
        assert settings.detach_timeout == 30.0

    def test_settings_env_prefix(self, monkeypatch):
        """Test settings use WAVEORDER_ prefix."""
        from app.config import Settings

        monkeypatch.setenv("WAVEORDER_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("WAVEORDER_DNS_NAMESERVERS", '["9.9.9.9"]')
        settings = Settings()
        assert settings.log_level == "DEBUG"
        assert settings.dns_nameservers == ["9.9.9.9"]

    def test_validate_required(self):
        from app.config import Settings

        with pytest.raises(ValueError):
            Settings(server_ip="").validate_required()
        with pytest.raises(ValueError):
            Settings(api_token="").validate_required()
        assert Settings().validate_required() is True


class TestBuildAgent:
    def test_simulated(self):
        from app.config import Settings
        from app.main import build_agent

        agent = build_agent(Settings(simulate_provisioning=True))
        assert isinstance(agent, SimulatedProvisioningAgent)

    def test_scripts(self):
        from app.config import Settings
        from app.main import build_agent

        agent = build_agent(
            Settings(simulate_provisioning=False, scripts_path="/srv/scripts")
        )
        assert isinstance(agent, ScriptProvisioningAgent)
        assert agent.provision_script == os.path.join("/srv/scripts", "provision-domain.sh")
        assert agent.attach_timeout == 120.0
