"""
Provisioning orchestrator for tenant custom domains.

Coordinates validation, token issuance, DNS verification, the external
provisioning agent and the persisted state machine. Steps run strictly in
sequence: certificate issuance is never attempted against unverified DNS.
Work on one tenant or one domain is serialized; unrelated domains proceed
concurrently.

Usage:
    orchestrator = ProvisioningOrchestrator(
        repository, tenants, validator, tokens, dns_client, agent,
        server_ip="203.0.113.10",
    )
    result = await orchestrator.request_domain("biz_1", "Shop.Example.com.")
    outcome = await orchestrator.verify_domain("biz_1")
    await orchestrator.remove_domain("biz_1")
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from .agent import AgentResult, ProvisioningAgent
from .dns_client import DNSResolverClient
from .errors import ConflictError, NotFoundError, PlanRequiredError, ProvisioningError
from .locks import KeyedLocks, domain_key, tenant_key
from .models import CustomDomainRecord, DomainStatus, Tenant
from .repository import DomainRepository, TenantDirectory
from .state import DomainStateMachine
from .tokens import VerificationTokenManager
from .validation import DomainValidator

logger = logging.getLogger("waveorder_domains.domains.orchestrator")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DomainConfig:
    """Current domain state of a tenant plus what the tenant should do next."""

    tenant: Tenant
    record: CustomDomainRecord
    has_feature: bool
    instructions: Optional[dict]
    storefront_url: str

    def to_dict(self) -> dict:
        return {
            "has_feature": self.has_feature,
            "domain": self.record.to_api_response(),
            "instructions": self.instructions,
            "storefront_url": self.storefront_url,
        }


@dataclass
class DomainRequestResult:
    normalized_domain: str
    status: DomainStatus
    token: Optional[str]
    expires_at: Optional[datetime]
    record_instructions: Optional[dict]
    message: str = "Domain saved. Please configure DNS records to verify ownership."

    def to_dict(self) -> dict:
        return {
            "domain": self.normalized_domain,
            "status": self.status.value,
            "token": self.token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "instructions": self.record_instructions,
            "message": self.message,
        }


@dataclass
class VerificationOutcome:
    """Result of a verify-and-provision attempt. Failures are data, not exceptions."""

    success: bool
    status: DomainStatus
    domain: str
    message: str
    reason: Optional[str] = None
    error: Optional[str] = None
    a_record_verified: bool = False
    txt_verified: bool = False
    errors: List[str] = field(default_factory=list)
    instructions: Optional[dict] = None

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "status": self.status.value,
            "domain": self.domain,
            "message": self.message,
            "reason": self.reason,
            "error": self.error,
            "dns_status": {
                "a_record_verified": self.a_record_verified,
                "txt_verified": self.txt_verified,
                "configured": self.a_record_verified and self.txt_verified,
            },
            "errors": self.errors,
        }
        if self.instructions:
            data["instructions"] = self.instructions
        if self.status == DomainStatus.ACTIVE:
            data["url"] = f"https://{self.domain}"
        return data


class ProvisioningOrchestrator:
    """Drives a tenant's custom domain through its lifecycle."""

    def __init__(
        self,
        repository: DomainRepository,
        tenants: TenantDirectory,
        validator: DomainValidator,
        tokens: VerificationTokenManager,
        dns_client: DNSResolverClient,
        agent: ProvisioningAgent,
        server_ip: str,
        platform_domain: str = "waveorder.app",
        allowed_plans: Iterable[str] = ("BUSINESS",),
        locks: Optional[KeyedLocks] = None,
        state: Optional[DomainStateMachine] = None,
    ):
        self.repository = repository
        self.tenants = tenants
        self.validator = validator
        self.tokens = tokens
        self.dns = dns_client
        self.agent = agent
        self.server_ip = server_ip
        self.platform_domain = platform_domain
        self.allowed_plans = {p.upper() for p in allowed_plans}
        self.locks = locks or KeyedLocks()
        self.state = state or DomainStateMachine()

    # ── Collaborators ────────────────────────────────────────────────

    def has_feature(self, tenant: Tenant) -> bool:
        return tenant.plan.upper() in self.allowed_plans

    async def _require_tenant(self, tenant_id: str, gate: bool = True) -> Tenant:
        tenant = await self.tenants.get(tenant_id)
        if tenant is None:
            raise NotFoundError("Business not found", reason="tenant")
        if gate and not self.has_feature(tenant):
            raise PlanRequiredError(
                "Custom domains require a BUSINESS plan subscription"
            )
        return tenant

    def _instructions(self, record: CustomDomainRecord) -> Optional[dict]:
        if not record.domain or not record.verification_token:
            return None
        if record.status not in (DomainStatus.PENDING, DomainStatus.FAILED):
            return None
        return self.tokens.instructions(
            record.domain, record.verification_token, self.server_ip
        )

    # ── Queries ──────────────────────────────────────────────────────

    async def get_domain_config(self, tenant_id: str) -> DomainConfig:
        """Current persisted state plus the DNS records still required."""
        tenant = await self._require_tenant(tenant_id, gate=False)
        record = await self.repository.get_or_empty(tenant_id)

        if record.status == DomainStatus.ACTIVE and record.domain:
            storefront_url = f"https://{record.domain}"
        else:
            storefront_url = f"https://{self.platform_domain}/{tenant.slug}"

        return DomainConfig(
            tenant=tenant,
            record=record,
            has_feature=self.has_feature(tenant),
            instructions=self._instructions(record),
            storefront_url=storefront_url,
        )

    async def list_domains(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        """Operator listing of configured domains with per-status counts."""
        page = max(1, page)
        limit = max(1, min(limit, 100))
        now = _utc_now()
        records = await self.repository.list_all()

        counts = {"all": 0, "PENDING": 0, "ACTIVE": 0, "FAILED": 0}
        for record in records:
            counts[record.status.value] = counts.get(record.status.value, 0) + 1
            counts["all"] += 1

        if status and status.lower() != "all":
            records = [r for r in records if r.status.value == status.upper()]

        rows = []
        needle = (search or "").strip().lower()
        for record in records:
            tenant = await self.tenants.get(record.tenant_id)
            haystack = [record.domain or ""]
            if tenant:
                haystack.extend([tenant.name.lower(), tenant.slug.lower()])
            if needle and not any(needle in h for h in haystack):
                continue
            rows.append(
                {
                    **record.to_dict(),
                    "is_verification_expired": record.token_expired(now),
                    "business": tenant.to_dict() if tenant else None,
                }
            )

        # Most recently provisioned first, never-provisioned last
        rows.sort(key=lambda row: row["provisioned_at"] or "", reverse=True)
        total = len(rows)
        start = (page - 1) * limit

        return {
            "domains": rows[start:start + limit],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
            "counts": counts,
        }

    # ── Commands ─────────────────────────────────────────────────────

    async def request_domain(self, tenant_id: str, raw_domain: str) -> DomainRequestResult:
        """
        Accept a domain for a tenant and issue a verification token.

        Re-requesting the current domain rotates the token (or is a no-op
        while ACTIVE). A different domain replaces the current one: the old
        domain is removed first, then the new one starts at PENDING.
        """
        await self._require_tenant(tenant_id)
        domain = await self.validator.validate_for_tenant(raw_domain, tenant_id)

        async with self.locks.hold(tenant_key(tenant_id)):
            record = await self.repository.get_or_empty(tenant_id)
            current = record.domain if record.is_configured else None

            async with self.locks.hold(domain_key(domain), domain_key(current)):
                if current == domain and record.status == DomainStatus.ACTIVE:
                    logger.info(f"{domain} already active for {tenant_id}")
                    return DomainRequestResult(
                        normalized_domain=domain,
                        status=record.status,
                        token=record.verification_token,
                        expires_at=record.verification_expiry,
                        record_instructions=None,
                        message="Domain is already active",
                    )

                claimed = False
                if current != domain:
                    if not await self.repository.claim(domain, tenant_id):
                        raise ConflictError(
                            "This domain is already connected to another store",
                            reason="claimed",
                        )
                    claimed = True

                try:
                    if current and claimed:
                        logger.info(f"Replacing {current} with {domain} for {tenant_id}")
                        await self._remove_locked(record)

                    issued = self.tokens.issue()
                    self.state.start_pending(record, domain, issued.token, issued.expires_at)
                    await self.repository.save(record)
                except Exception:
                    if claimed:
                        logger.error(f"Request for {domain} failed, releasing claim for {tenant_id}")
                        await self.repository.release(domain, tenant_id)
                    raise

        logger.info(f"Domain {domain} pending verification for {tenant_id}")
        return DomainRequestResult(
            normalized_domain=domain,
            status=record.status,
            token=issued.token,
            expires_at=issued.expires_at,
            record_instructions=self.tokens.instructions(
                domain, issued.token, self.server_ip
            ),
        )

    async def replace_domain(self, tenant_id: str, raw_domain: str) -> DomainRequestResult:
        """Swap a configured domain for a new one (remove, then request)."""
        record = await self.repository.get(tenant_id)
        if record is None or not record.is_configured:
            raise NotFoundError("No custom domain configured", reason="no_domain")
        return await self.request_domain(tenant_id, raw_domain)

    async def verify_domain(self, tenant_id: str) -> VerificationOutcome:
        """
        Verify DNS and, only if it checks out, attach the domain.

        1. A record must include the platform server address.
        2. The TXT record must contain the live, unexpired token.
        3. The provisioning agent issues the certificate and attaches the route.
        DNS failures leave the record PENDING with last_error set; an agent
        failure moves it to FAILED with the agent's diagnostic text.
        """
        tenant = await self._require_tenant(tenant_id)

        async with self.locks.hold(tenant_key(tenant_id)):
            record = await self.repository.get(tenant_id)
            if record is None or not record.is_configured:
                raise NotFoundError("No custom domain configured", reason="no_domain")
            domain = record.domain

            async with self.locks.hold(domain_key(domain)):
                if record.status == DomainStatus.ACTIVE:
                    return VerificationOutcome(
                        success=True,
                        status=DomainStatus.ACTIVE,
                        domain=domain,
                        message="Domain is already active",
                        a_record_verified=True,
                        txt_verified=True,
                    )

                if record.status == DomainStatus.FAILED:
                    self.state.retry(record)

                return await self._verify_and_provision(record, tenant)

    async def _verify_and_provision(
        self, record: CustomDomainRecord, tenant: Tenant
    ) -> VerificationOutcome:
        domain = record.domain
        now = _utc_now()

        points, a_lookup = await self.dns.points_to(domain, self.server_ip)
        txt_lookup = await self.dns.verification_txt(domain)
        token_check = self.tokens.check(record, txt_lookup.records, now)

        errors: List[str] = []
        if not points:
            detail = f" ({a_lookup.error})" if a_lookup.error else ""
            errors.append(
                "Domain does not point to WaveOrder server. "
                f"Add an A record with our server IP {self.server_ip}{detail}"
            )
        if not token_check.valid:
            errors.append(token_check.message)

        if errors:
            error = "; ".join(errors)
            self.state.note_check(record, now, error=error, update_error=True)
            await self.repository.save(record)
            logger.info(f"DNS not ready for {domain}: {error}")
            return VerificationOutcome(
                success=False,
                status=record.status,
                domain=domain,
                message="DNS not properly configured",
                reason="expired" if token_check.expired else "dns_not_configured",
                error=error,
                a_record_verified=points,
                txt_verified=token_check.valid,
                errors=errors,
                instructions=self._instructions(record),
            )

        try:
            result: AgentResult = await self.agent.attach(domain, tenant.slug)
        except ProvisioningError as e:
            self.state.note_check(record, now, error=e.message, update_error=True)
            await self.repository.save(record)
            raise

        if result.success:
            self.state.activate(record, dns_verified=True, agent_succeeded=True)
            await self.repository.save(record)
            logger.info(f"Domain {domain} active for {tenant.tenant_id}")
            return VerificationOutcome(
                success=True,
                status=DomainStatus.ACTIVE,
                domain=domain,
                message="Domain successfully verified and provisioned!",
                a_record_verified=True,
                txt_verified=True,
            )

        self.state.fail(record, result.diagnostic)
        await self.repository.save(record)
        logger.error(f"Provisioning failed for {domain}: {result.diagnostic}")
        return VerificationOutcome(
            success=False,
            status=DomainStatus.FAILED,
            domain=domain,
            message="SSL provisioning failed",
            reason=result.reason or "agent_failed",
            error=result.diagnostic,
            a_record_verified=True,
            txt_verified=True,
            errors=[result.diagnostic],
        )

    async def remove_domain(self, tenant_id: str) -> CustomDomainRecord:
        """
        Tear down and forget a tenant's domain.

        Teardown is best-effort; local state is cleared regardless so the
        tenant is never stuck with a domain it cannot remove.
        """
        async with self.locks.hold(tenant_key(tenant_id)):
            record = await self.repository.get(tenant_id)
            if record is None or not record.is_configured:
                raise NotFoundError("No custom domain configured", reason="no_domain")

            async with self.locks.hold(domain_key(record.domain)):
                await self._remove_locked(record)

        return record

    async def _remove_locked(self, record: CustomDomainRecord) -> None:
        """Teardown + clear + release. Caller holds tenant and domain locks."""
        domain = record.domain
        if record.status in (DomainStatus.ACTIVE, DomainStatus.FAILED):
            await self._teardown(domain)

        self.state.clear(record)
        await self.repository.save(record)
        await self.repository.release(domain, record.tenant_id)
        logger.info(f"Removed {domain} from tenant {record.tenant_id}")

    async def _teardown(self, domain: str) -> Optional[AgentResult]:
        try:
            result = await self.agent.detach(domain)
        except ProvisioningError as e:
            logger.warning(f"Teardown of {domain} could not start: {e.message}")
            return None
        except OSError as e:
            logger.warning(f"Teardown of {domain} could not start: {e}")
            return None
        if not result.success:
            logger.warning(f"Teardown of {domain} failed: {result.diagnostic}")
        return result
