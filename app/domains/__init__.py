"""Custom domain trust and provisioning for WaveOrder storefronts."""

from .agent import ProvisioningAgent, ScriptProvisioningAgent, SimulatedProvisioningAgent
from .diagnostics import DiagnosticsReporter, Health
from .dns_client import DNSResolverClient
from .models import CustomDomainRecord, DomainStatus, Tenant
from .orchestrator import ProvisioningOrchestrator
from .probe import ConnectivityProber
from .repository import DomainRepository, TenantDirectory
from .tls import CertificateInspector
from .tokens import VerificationTokenManager
from .validation import DomainValidator, normalize_domain

__all__ = [
    "CertificateInspector",
    "ConnectivityProber",
    "CustomDomainRecord",
    "DiagnosticsReporter",
    "DNSResolverClient",
    "DomainRepository",
    "DomainStatus",
    "DomainValidator",
    "Health",
    "ProvisioningAgent",
    "ProvisioningOrchestrator",
    "ScriptProvisioningAgent",
    "SimulatedProvisioningAgent",
    "Tenant",
    "TenantDirectory",
    "VerificationTokenManager",
    "normalize_domain",
]
