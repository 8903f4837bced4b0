"""
Error taxonomy for custom domain handling.

Verification and diagnostic failures are normally reported as data
(persisted on the record or returned in a report). These exceptions are
for the cases where a caller has to stop: bad input, ownership conflicts,
missing configuration, illegal state changes and infrastructure faults.
"""

from typing import Optional


class DomainError(Exception):
    """Base class for custom domain errors."""

    code = "DOMAIN_ERROR"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.reason = reason

    def to_dict(self) -> dict:
        data = {"error": self.message, "code": self.code}
        if self.reason:
            data["reason"] = self.reason
        return data


class ValidationError(DomainError):
    """Requested domain is syntactically invalid or not allowed."""

    code = "INVALID_DOMAIN"


class ConflictError(DomainError):
    """Domain is already claimed by another tenant."""

    code = "DOMAIN_CONFLICT"


class NotFoundError(DomainError):
    """No custom domain (or tenant) is configured."""

    code = "NOT_FOUND"


class PlanRequiredError(DomainError):
    """Tenant's subscription plan does not include custom domains."""

    code = "PLAN_REQUIRED"


class InvalidTransitionError(DomainError):
    """Requested status change is not allowed by the state machine."""

    code = "INVALID_TRANSITION"


class DNSError(DomainError):
    """DNS lookup failure, tagged with timeout / nxdomain / no_data."""

    code = "DNS_ERROR"


class TLSError(DomainError):
    """TLS inspection failure, tagged with unreachable / expired / etc."""

    code = "TLS_ERROR"


class ProvisioningError(DomainError):
    """Provisioning agent failure: timeout, agent_failed, ambiguous_output, launch_failed."""

    code = "PROVISIONING_ERROR"
