"""
Configuration management for the WaveOrder custom domain service.
"""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Platform identity (REQUIRED)
    server_ip: str = ""
    api_token: str = ""

    # Network
    host: str = "0.0.0.0"
    port: int = 8000
    platform_domain: str = "waveorder.app"

    # Redis
    redis_url: str = "redis://localhost:6379"
    redis_key_prefix: str = "waveorder_domains:"

    # DNS
    dns_nameservers: List[str] = ["8.8.8.8", "1.1.1.1"]
    dns_timeout: float = 5.0

    # TLS / connectivity checks
    tls_timeout: float = 10.0
    probe_timeout: float = 8.0
    probe_max_redirects: int = 5
    cert_expiry_warning_days: int = 14

    # Provisioning agent
    scripts_path: str = "/opt/waveorder/scripts"
    agent_use_sudo: bool = True
    attach_timeout: float = 120.0
    detach_timeout: float = 30.0
    agent_kill_grace: float = 5.0
    simulate_provisioning: bool = False

    # Domain policy
    verification_expiry_days: int = 7
    domain_allowed_plans: List[str] = ["BUSINESS"]
    system_domains: List[str] = [
        "waveorder.app",
        "localhost",
        "vercel.app",
        "netlify.app",
        "herokuapp.com",
        "azurewebsites.net",
    ]
    blocked_tlds: List[str] = [
        ".local",
        ".internal",
        ".localhost",
        ".test",
        ".example",
        ".invalid",
    ]

    # Background health monitor (0 disables)
    health_check_interval: int = 3600

    # Logging
    log_level: str = "INFO"

    # Debug mode
    debug: bool = False

    model_config = {
        "env_prefix": "WAVEORDER_",
        "env_file": ".env",
        "extra": "ignore"
    }

    def validate_required(self) -> bool:
        """Validate that required settings are configured."""
        if not self.server_ip:
            raise ValueError(
                "WAVEORDER_SERVER_IP is required. "
                "Set it to the public IPv4 address tenants point their A record at."
            )
        if not self.api_token:
            raise ValueError(
                "WAVEORDER_API_TOKEN is required. "
                "Generate with: python -c \"import secrets; "
                "print(secrets.token_urlsafe(32))\""
            )
        return True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    # In production, validate required fields
    if not settings.debug:
        try:
            settings.validate_required()
        except ValueError as e:
            import logging
            logging.warning(f"Configuration warning: {e}")
    return settings
