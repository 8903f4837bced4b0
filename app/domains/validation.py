"""
Normalization and validation of tenant-supplied custom domains.
"""

import ipaddress
import logging
import re
from typing import Iterable, Optional

from .errors import ConflictError, ValidationError

logger = logging.getLogger("waveorder_domains.domains.validation")

MAX_DOMAIN_LENGTH = 253
MAX_LABEL_LENGTH = 63

_LABEL_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
_TLD_RE = re.compile(r"^[a-z]{2,63}$")

# Characters that mean the user pasted a URL rather than a hostname
_URL_MARKERS = ("://", "/", "?", "#", "@", ":")

DEFAULT_SYSTEM_DOMAINS = (
    "waveorder.app",
    "localhost",
    "vercel.app",
    "netlify.app",
    "herokuapp.com",
    "azurewebsites.net",
)

DEFAULT_BLOCKED_TLDS = (
    ".local",
    ".internal",
    ".localhost",
    ".test",
    ".example",
    ".invalid",
)


def normalize_domain(raw: Optional[str]) -> str:
    """
    Canonicalize a hostname: trim, lowercase, drop one trailing dot.

    Case and a trailing root dot never distinguish two domains.
    """
    if not raw:
        return ""
    domain = raw.strip().lower()
    if domain.endswith("."):
        domain = domain[:-1]
    return domain


def _is_ip_literal(value: str) -> bool:
    try:
        ipaddress.ip_address(value.strip("[]"))
    except ValueError:
        return False
    return True


def validate_domain_format(
    domain: str,
    system_domains: Iterable[str] = DEFAULT_SYSTEM_DOMAINS,
    blocked_tlds: Iterable[str] = DEFAULT_BLOCKED_TLDS,
) -> str:
    """
    Validate a raw domain and return its canonical form.

    Raises ValidationError describing the first problem found.
    """
    if domain is None or not domain.strip():
        raise ValidationError("Domain is required", reason="empty")

    canonical = normalize_domain(domain)

    if _is_ip_literal(canonical):
        raise ValidationError(
            "IP addresses are not allowed. Please use a domain name.",
            reason="ip_address",
        )

    if any(marker in canonical for marker in _URL_MARKERS):
        raise ValidationError(
            "Enter a bare hostname without scheme, port or path. "
            "Example: shop.example.com",
            reason="url",
        )

    if any(ch.isspace() for ch in canonical):
        raise ValidationError("Domain must not contain whitespace", reason="syntax")

    if len(canonical) > MAX_DOMAIN_LENGTH:
        raise ValidationError(
            f"Domain exceeds maximum length of {MAX_DOMAIN_LENGTH} characters",
            reason="too_long",
        )

    for tld in blocked_tlds:
        if canonical.endswith(tld) or canonical == tld.lstrip("."):
            raise ValidationError(
                "This domain extension is not allowed", reason="reserved"
            )

    for system in system_domains:
        system = normalize_domain(system)
        if canonical == system or canonical.endswith(f".{system}"):
            raise ValidationError(
                "System domains cannot be used as custom domains",
                reason="reserved",
            )

    labels = canonical.split(".")
    if len(labels) < 2:
        raise ValidationError(
            "Invalid domain format. Example: shop.example.com", reason="syntax"
        )
    for label in labels:
        if len(label) > MAX_LABEL_LENGTH:
            raise ValidationError(
                f"Domain label exceeds {MAX_LABEL_LENGTH} characters",
                reason="syntax",
            )
        if not _LABEL_RE.match(label):
            raise ValidationError(
                "Invalid domain format. Example: shop.example.com",
                reason="syntax",
            )
    if not _TLD_RE.match(labels[-1]):
        raise ValidationError(
            "Invalid domain format. Example: shop.example.com", reason="syntax"
        )

    return canonical


class DomainValidator:
    """Validates domains and enforces cross-tenant uniqueness."""

    def __init__(
        self,
        repository,
        system_domains: Iterable[str] = DEFAULT_SYSTEM_DOMAINS,
        blocked_tlds: Iterable[str] = DEFAULT_BLOCKED_TLDS,
    ):
        self.repository = repository
        self.system_domains = tuple(system_domains)
        self.blocked_tlds = tuple(blocked_tlds)

    def normalize(self, raw: str) -> str:
        """Syntax-only validation; returns the canonical domain."""
        return validate_domain_format(raw, self.system_domains, self.blocked_tlds)

    async def validate_for_tenant(self, raw: str, tenant_id: str) -> str:
        """
        Validate syntax and ownership for a tenant's request.

        Raises ValidationError or ConflictError. A tenant re-requesting its
        own domain is not a conflict.
        """
        domain = self.normalize(raw)
        owner = await self.repository.owner_of(domain)
        if owner is not None and owner != tenant_id:
            logger.info(f"Rejected {domain} for {tenant_id}: owned by {owner}")
            raise ConflictError(
                "This domain is already connected to another store",
                reason="claimed",
            )
        return domain
