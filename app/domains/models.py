"""
Custom domain data model for WaveOrder storefronts.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class DomainStatus(str, Enum):
    """Persisted status of a tenant's custom domain."""

    NONE = "NONE"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class Tenant:
    """Tenant (business) as seen by the domain engine."""

    tenant_id: str
    slug: str
    plan: str = "FREE"
    name: str = ""

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "slug": self.slug,
            "plan": self.plan,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Tenant":
        return cls(
            tenant_id=data["tenant_id"],
            slug=data["slug"],
            plan=data.get("plan", "FREE"),
            name=data.get("name", ""),
        )


@dataclass
class CustomDomainRecord:
    """The custom domain state of a single tenant."""

    tenant_id: str
    domain: Optional[str] = None
    status: DomainStatus = DomainStatus.NONE
    verification_token: Optional[str] = None
    verification_expiry: Optional[datetime] = None
    provisioned_at: Optional[datetime] = None
    last_checked_at: Optional[datetime] = None
    last_error: Optional[str] = None

    @property
    def is_configured(self) -> bool:
        return self.status != DomainStatus.NONE and self.domain is not None

    def token_expired(self, now: datetime) -> bool:
        """True when a token exists but its validity window has passed."""
        if self.verification_expiry is None:
            return False
        return self.verification_expiry < now

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "tenant_id": self.tenant_id,
            "domain": self.domain,
            "status": self.status.value,
            "verification_token": self.verification_token,
            "verification_expiry": _iso(self.verification_expiry),
            "provisioned_at": _iso(self.provisioned_at),
            "last_checked_at": _iso(self.last_checked_at),
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CustomDomainRecord":
        """Create from dictionary."""
        return cls(
            tenant_id=data["tenant_id"],
            domain=data.get("domain"),
            status=DomainStatus(data.get("status", DomainStatus.NONE.value)),
            verification_token=data.get("verification_token"),
            verification_expiry=_parse(data.get("verification_expiry")),
            provisioned_at=_parse(data.get("provisioned_at")),
            last_checked_at=_parse(data.get("last_checked_at")),
            last_error=data.get("last_error"),
        )

    def to_api_response(self) -> dict:
        """Convert to API response, hiding token once the domain is live."""
        resp = {
            "domain": self.domain,
            "status": self.status.value,
            "verification_expiry": _iso(self.verification_expiry),
            "provisioned_at": _iso(self.provisioned_at),
            "last_checked": _iso(self.last_checked_at),
            "error": self.last_error,
        }
        if self.status in (DomainStatus.PENDING, DomainStatus.FAILED):
            resp["verification_token"] = self.verification_token
        else:
            resp["verification_token"] = None
        return resp
