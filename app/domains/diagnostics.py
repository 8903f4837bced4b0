"""
Read-only health diagnostics for custom domains.

DNS, TLS and connectivity are checked concurrently, each bounded by its own
timeout, so one unreachable dimension never delays the others. Nothing is
cached: every run performs live lookups.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from .dns_client import DNSLookup, DNSResolverClient
from .errors import NotFoundError
from .locks import KeyedLocks, tenant_key
from .models import CustomDomainRecord, DomainStatus
from .probe import ConnectivityProber, ProbeResult
from .repository import DomainRepository
from .state import DomainStateMachine
from .tls import CertificateInfo, CertificateInspector
from .tokens import TokenCheck, VerificationTokenManager
from .validation import normalize_domain

logger = logging.getLogger("waveorder_domains.domains.diagnostics")


class Health(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    UNHEALTHY = "unhealthy"


_SEVERITY = {Health.HEALTHY: 0, Health.WARNING: 1, Health.UNHEALTHY: 2}


def worst(*verdicts: Health) -> Health:
    return max(verdicts, key=lambda v: _SEVERITY[v])


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class DiagnosticReport:
    """Everything one diagnostic pass learned about a domain."""

    domain: str
    record: CustomDomainRecord
    server_ip: str
    checked_at: datetime
    a_lookup: DNSLookup
    txt_lookup: DNSLookup
    token_check: TokenCheck
    certificate: CertificateInfo
    probe: ProbeResult
    expiring_warning_days: int = 14

    @property
    def points_to_server(self) -> bool:
        return bool(self.server_ip) and self.server_ip in self.a_lookup.records

    @property
    def expiring_warning(self) -> bool:
        return self.certificate.expiring_soon(self.expiring_warning_days)

    @property
    def dns_health(self) -> Health:
        if not self.points_to_server:
            return Health.UNHEALTHY
        # Live domains no longer need the ownership token published
        if self.record.status != DomainStatus.ACTIVE and not self.token_check.valid:
            return Health.WARNING
        return Health.HEALTHY

    @property
    def ssl_health(self) -> Health:
        if not self.certificate.valid:
            return Health.UNHEALTHY
        if self.expiring_warning:
            return Health.WARNING
        return Health.HEALTHY

    @property
    def connectivity_health(self) -> Health:
        return Health.HEALTHY if self.probe.reachable else Health.UNHEALTHY

    @property
    def overall_health(self) -> Health:
        return worst(self.dns_health, self.ssl_health, self.connectivity_health)

    def to_dict(self) -> dict:
        record = self.record
        cert = self.certificate
        return {
            "domain": self.domain,
            "tenant_id": record.tenant_id,
            "current_status": record.status.value,
            "last_error": record.last_error,
            "provisioned_at": _iso(record.provisioned_at),
            "last_checked": _iso(self.checked_at),
            "dns": {
                "a_records": {
                    "found": self.a_lookup.ok,
                    "records": self.a_lookup.records,
                    "points_to_server": self.points_to_server,
                    "expected_ip": self.server_ip,
                    "error": self.a_lookup.error,
                },
                "verification": {
                    "record_name": self.txt_lookup.name,
                    "found": self.txt_lookup.ok,
                    "valid": self.token_check.valid,
                    "expired": self.token_check.expired,
                    "expected_token": record.verification_token,
                    "expiry": _iso(record.verification_expiry),
                    "reason": self.token_check.reason,
                    "error": self.txt_lookup.error,
                },
            },
            "ssl": {
                "valid": cert.valid,
                "issuer": cert.issuer,
                "valid_from": _iso(cert.valid_from),
                "valid_to": _iso(cert.valid_to),
                "days_remaining": cert.days_remaining,
                "expiring_warning": self.expiring_warning,
                "reason": cert.reason,
                "error": cert.error,
            },
            "connectivity": {
                "https": self.probe.reachable,
                "url": self.probe.url,
                "latency_ms": self.probe.latency_ms,
                "status_code": self.probe.status_code,
                "reason": self.probe.reason,
                "error": self.probe.error,
            },
            "health": {
                "dns": self.dns_health.value,
                "ssl": self.ssl_health.value,
                "connectivity": self.connectivity_health.value,
            },
            "overall_health": self.overall_health.value,
        }


class DiagnosticsReporter:
    """Runs the DNS, TLS and connectivity checks for a configured domain."""

    def __init__(
        self,
        repository: DomainRepository,
        dns_client: DNSResolverClient,
        inspector: CertificateInspector,
        prober: ConnectivityProber,
        tokens: VerificationTokenManager,
        server_ip: str,
        expiring_warning_days: int = 14,
        locks: Optional[KeyedLocks] = None,
        stamp_timeout: float = 1.0,
    ):
        self.repository = repository
        self.dns = dns_client
        self.inspector = inspector
        self.prober = prober
        self.tokens = tokens
        self.server_ip = server_ip
        self.expiring_warning_days = expiring_warning_days
        self.locks = locks or KeyedLocks()
        self.stamp_timeout = stamp_timeout

    async def run(self, raw_domain: str) -> DiagnosticReport:
        """
        Diagnose a configured domain.

        Raises NotFoundError if no tenant has this domain. Stamps
        last_checked_at on the record unless a verification or removal holds
        the tenant; status is never changed here.
        """
        domain = normalize_domain(raw_domain)
        record = await self.repository.get_by_domain(domain)
        if record is None:
            raise NotFoundError("Domain not found", reason="domain")

        a_lookup, txt_lookup, certificate, probe = await asyncio.gather(
            self.dns.resolve_a(domain),
            self.dns.verification_txt(domain),
            self.inspector.inspect(domain),
            self.prober.probe(domain, "https"),
        )

        now = datetime.now(timezone.utc)
        token_check = self.tokens.check(record, txt_lookup.records, now)
        await self._stamp(record.tenant_id, domain, now)
        record.last_checked_at = now

        report = DiagnosticReport(
            domain=domain,
            record=record,
            server_ip=self.server_ip,
            checked_at=now,
            a_lookup=a_lookup,
            txt_lookup=txt_lookup,
            token_check=token_check,
            certificate=certificate,
            probe=probe,
            expiring_warning_days=self.expiring_warning_days,
        )
        logger.info(
            f"Diagnostics for {domain}: dns={report.dns_health.value} "
            f"ssl={report.ssl_health.value} "
            f"connectivity={report.connectivity_health.value}"
        )
        return report

    async def _stamp(self, tenant_id: str, domain: str, now: datetime) -> None:
        """
        Update last_checked_at on the freshest copy of the record.

        Skipped if the tenant lock is not free within stamp_timeout; a
        verify holds it for the whole agent run.
        """
        lock = self.locks.get(tenant_key(tenant_id))
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self.stamp_timeout)
        except asyncio.TimeoutError:
            logger.info(f"Skipped last_checked_at for {domain}: tenant {tenant_id} busy")
            return

        try:
            current = await self.repository.get(tenant_id)
            if current is None or current.domain != domain:
                return
            DomainStateMachine.note_check(current, now)
            await self.repository.save(current)
        finally:
            lock.release()
