"""
Pytest configuration for the custom domain service tests.
"""

import os
import sys

import pytest

# Add app directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment variables
os.environ["WAVEORDER_SERVER_IP"] = "203.0.113.10"
os.environ["WAVEORDER_API_TOKEN"] = "test-service-token"
os.environ["WAVEORDER_DEBUG"] = "true"
os.environ["WAVEORDER_REDIS_URL"] = ""
os.environ["WAVEORDER_HEALTH_CHECK_INTERVAL"] = "0"
os.environ["WAVEORDER_SIMULATE_PROVISIONING"] = "true"

from app.domains.agent import SimulatedProvisioningAgent  # noqa: E402
from app.domains.dns_client import DNSLookup, DNSResolverClient  # noqa: E402
from app.domains.models import Tenant  # noqa: E402
from app.domains.orchestrator import ProvisioningOrchestrator  # noqa: E402
from app.domains.repository import DomainRepository, TenantDirectory  # noqa: E402
from app.domains.tokens import VerificationTokenManager  # noqa: E402
from app.domains.validation import DomainValidator  # noqa: E402

SERVER_IP = "203.0.113.10"


class StaticDNSClient(DNSResolverClient):
    """
    DNSResolverClient answering from a table instead of the network.

    answers maps (name, record_type) to a list of records, or to a failure
    reason string such as "timeout". Unknown names are NXDOMAIN.
    """

    def __init__(self, answers=None):
        super().__init__(nameservers=["192.0.2.53"], timeout=0.1)
        self.answers = answers if answers is not None else {}
        self.queries = []

    async def _lookup(self, name, record_type):
        name = name.lower().rstrip(".")
        self.queries.append((name, record_type))
        answer = self.answers.get((name, record_type))
        if answer is None:
            return DNSLookup(
                name, record_type, reason="nxdomain",
                error=f"{name} does not exist (NXDOMAIN)",
            )
        if isinstance(answer, str):
            return DNSLookup(name, record_type, reason=answer, error=f"lookup {answer}")
        return DNSLookup(name, record_type, records=list(answer))

    def publish(self, domain, ip=SERVER_IP, token=None):
        """Answer as if the tenant created their A and TXT records."""
        if ip:
            self.answers[(domain, "A")] = [ip]
        if token:
            self.answers[(f"_waveorder-verification.{domain}", "TXT")] = [token]


@pytest.fixture
def test_settings():
    """Provide test settings."""
    from app.config import Settings
    return Settings()


@pytest.fixture
def repository():
    """In-memory domain repository (no Redis)."""
    return DomainRepository(redis_url="")


@pytest.fixture
def tenant_directory():
    """In-memory tenant directory with two BUSINESS tenants and one FREE tenant."""
    directory = TenantDirectory(redis_url="")
    for tenant in (
        Tenant(tenant_id="biz_1", slug="naia-studio", plan="BUSINESS", name="Naia Studio"),
        Tenant(tenant_id="biz_2", slug="shehutools", plan="BUSINESS", name="Shehu Tools"),
        Tenant(tenant_id="free_1", slug="corner-cafe", plan="FREE", name="Corner Cafe"),
    ):
        directory._memory_store[tenant.tenant_id] = tenant.to_dict()
    return directory


@pytest.fixture
def dns_client():
    return StaticDNSClient()


@pytest.fixture
def agent():
    return SimulatedProvisioningAgent()


@pytest.fixture
def tokens():
    return VerificationTokenManager()


@pytest.fixture
def orchestrator(repository, tenant_directory, dns_client, agent, tokens):
    return ProvisioningOrchestrator(
        repository=repository,
        tenants=tenant_directory,
        validator=DomainValidator(repository),
        tokens=tokens,
        dns_client=dns_client,
        agent=agent,
        server_ip=SERVER_IP,
    )
