"""
Status transitions for a tenant's custom domain record.

Every mutation of a CustomDomainRecord's status goes through this module
so that the record invariants hold after any sequence of operations:
ACTIVE always carries provisioned_at, NONE never carries a domain.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from .errors import InvalidTransitionError
from .models import CustomDomainRecord, DomainStatus

logger = logging.getLogger("waveorder_domains.domains.state")

S = DomainStatus

TRANSITIONS: Dict[DomainStatus, FrozenSet[DomainStatus]] = {
    S.NONE: frozenset({S.PENDING}),
    S.PENDING: frozenset({S.PENDING, S.ACTIVE, S.FAILED, S.NONE}),
    S.ACTIVE: frozenset({S.PENDING, S.NONE}),
    S.FAILED: frozenset({S.PENDING, S.NONE}),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DomainStateMachine:
    """Applies validated transitions to records in place."""

    @staticmethod
    def can_transition(current: DomainStatus, target: DomainStatus) -> bool:
        return target in TRANSITIONS.get(current, frozenset())

    def _check(self, record: CustomDomainRecord, target: DomainStatus) -> None:
        if not self.can_transition(record.status, target):
            logger.warning(
                f"Rejected transition {record.status.value} -> {target.value} "
                f"for tenant {record.tenant_id}"
            )
            raise InvalidTransitionError(
                f"Cannot move domain from {record.status.value} to {target.value}",
                reason=f"{record.status.value}->{target.value}",
            )

    def start_pending(
        self,
        record: CustomDomainRecord,
        domain: str,
        token: str,
        expires_at: datetime,
    ) -> CustomDomainRecord:
        """
        Begin verification for a domain (new request, re-issue, or change).

        Clears provisioning state; the previous token stops matching.
        """
        self._check(record, S.PENDING)
        record.domain = domain
        record.status = S.PENDING
        record.verification_token = token
        record.verification_expiry = expires_at
        record.provisioned_at = None
        record.last_error = None
        return record

    def retry(self, record: CustomDomainRecord) -> CustomDomainRecord:
        """FAILED -> PENDING keeping the live token, so verification can re-run."""
        if record.status != S.FAILED:
            raise InvalidTransitionError(
                f"Only FAILED domains can be retried, not {record.status.value}",
                reason=f"{record.status.value}->{S.PENDING.value}",
            )
        record.status = S.PENDING
        return record

    def activate(
        self,
        record: CustomDomainRecord,
        dns_verified: bool,
        agent_succeeded: bool,
        now: Optional[datetime] = None,
    ) -> CustomDomainRecord:
        """PENDING -> ACTIVE, only with verified DNS and a successful agent run."""
        self._check(record, S.ACTIVE)
        if not (dns_verified and agent_succeeded):
            raise InvalidTransitionError(
                "Domain can only become ACTIVE after DNS verification and provisioning",
                reason="unverified",
            )
        now = now or _now()
        record.status = S.ACTIVE
        record.provisioned_at = now
        record.last_checked_at = now
        record.last_error = None
        return record

    def fail(
        self,
        record: CustomDomainRecord,
        error: str,
        now: Optional[datetime] = None,
    ) -> CustomDomainRecord:
        """PENDING -> FAILED after the provisioning agent reports failure."""
        self._check(record, S.FAILED)
        record.status = S.FAILED
        record.provisioned_at = None
        record.last_checked_at = now or _now()
        record.last_error = error
        return record

    def clear(self, record: CustomDomainRecord) -> CustomDomainRecord:
        """Any configured state -> NONE with every field reset."""
        self._check(record, S.NONE)
        record.domain = None
        record.status = S.NONE
        record.verification_token = None
        record.verification_expiry = None
        record.provisioned_at = None
        record.last_checked_at = None
        record.last_error = None
        return record

    @staticmethod
    def note_check(
        record: CustomDomainRecord,
        now: Optional[datetime] = None,
        error: Optional[str] = None,
        update_error: bool = False,
    ) -> CustomDomainRecord:
        """Record that a check ran, without touching status."""
        if record.status == S.NONE:
            return record
        record.last_checked_at = now or _now()
        if update_error:
            record.last_error = error
        return record
