import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.domains import router as domains_router
from .config import Settings, get_settings
from .domains.agent import (
    ProvisioningAgent,
    ScriptProvisioningAgent,
    SimulatedProvisioningAgent,
)
from .domains.diagnostics import DiagnosticsReporter
from .domains.dns_client import DNSResolverClient
from .domains.locks import KeyedLocks
from .domains.monitor import DomainHealthMonitor
from .domains.orchestrator import ProvisioningOrchestrator
from .domains.probe import ConnectivityProber
from .domains.repository import DomainRepository, TenantDirectory
from .domains.tls import CertificateInspector
from .domains.tokens import VerificationTokenManager
from .domains.validation import DomainValidator

logger = logging.getLogger("waveorder_domains")


def build_agent(settings: Settings) -> ProvisioningAgent:
    """Pick the provisioning agent for this environment."""
    if settings.simulate_provisioning:
        logger.warning("Provisioning agent is simulated; no certificates will be issued")
        return SimulatedProvisioningAgent()
    return ScriptProvisioningAgent(
        scripts_path=settings.scripts_path,
        use_sudo=settings.agent_use_sudo,
        attach_timeout=settings.attach_timeout,
        detach_timeout=settings.detach_timeout,
        kill_grace=settings.agent_kill_grace,
    )


def create_app(
    settings: Optional[Settings] = None,
    agent: Optional[ProvisioningAgent] = None,
) -> FastAPI:
    """Wire the domain engine components onto a FastAPI app."""
    settings = settings or get_settings()

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    app = FastAPI(
        title="WaveOrder Custom Domains",
        description="Ownership verification, provisioning and diagnostics for storefront domains",
        version="0.1.0",
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    locks = KeyedLocks()
    repository = DomainRepository(settings.redis_url, settings.redis_key_prefix)
    tenant_directory = TenantDirectory(settings.redis_url, settings.redis_key_prefix)
    tokens = VerificationTokenManager(expiry_days=settings.verification_expiry_days)
    dns_client = DNSResolverClient(settings.dns_nameservers, timeout=settings.dns_timeout)
    validator = DomainValidator(
        repository,
        system_domains=settings.system_domains,
        blocked_tlds=settings.blocked_tlds,
    )

    orchestrator = ProvisioningOrchestrator(
        repository=repository,
        tenants=tenant_directory,
        validator=validator,
        tokens=tokens,
        dns_client=dns_client,
        agent=agent or build_agent(settings),
        server_ip=settings.server_ip,
        platform_domain=settings.platform_domain,
        allowed_plans=settings.domain_allowed_plans,
        locks=locks,
    )
    diagnostics = DiagnosticsReporter(
        repository=repository,
        dns_client=dns_client,
        inspector=CertificateInspector(timeout=settings.tls_timeout),
        prober=ConnectivityProber(
            timeout=settings.probe_timeout,
            max_redirects=settings.probe_max_redirects,
        ),
        tokens=tokens,
        server_ip=settings.server_ip,
        expiring_warning_days=settings.cert_expiry_warning_days,
        locks=locks,
    )
    monitor = DomainHealthMonitor(
        repository, diagnostics, interval=settings.health_check_interval
    )

    app.state.settings = settings
    app.state.domain_repository = repository
    app.state.tenant_directory = tenant_directory
    app.state.orchestrator = orchestrator
    app.state.diagnostics = diagnostics
    app.state.health_monitor = monitor

    app.include_router(domains_router)

    @app.on_event("startup")
    async def startup_event():
        monitor.start()
        logger.info(f"Custom domain service started (server IP {settings.server_ip or 'unset'})")

    @app.on_event("shutdown")
    async def shutdown_event():
        await monitor.stop()
        await repository.close()
        await tenant_directory.close()

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "ok"}

    return app


app = create_app()
