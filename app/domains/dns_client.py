"""
DNS lookups against explicit public resolvers.

The system resolver (and its cache) is never consulted.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import dns.asyncresolver
import dns.exception
import dns.resolver

from .tokens import VerificationTokenManager

logger = logging.getLogger("waveorder_domains.domains.dns")

DEFAULT_NAMESERVERS = ("8.8.8.8", "1.1.1.1")


@dataclass
class DNSLookup:
    """Result of a single record lookup. Never raised, always returned."""

    name: str
    record_type: str
    records: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None and len(self.records) > 0


class DNSResolverClient:
    """Resolves A, TXT and CNAME records with a hard per-lookup timeout."""

    def __init__(
        self,
        nameservers: Sequence[str] = DEFAULT_NAMESERVERS,
        timeout: float = 5.0,
    ):
        self.nameservers = list(nameservers)
        self.timeout = timeout

    def _get_resolver(self) -> dns.asyncresolver.Resolver:
        resolver = dns.asyncresolver.Resolver(configure=False)
        resolver.nameservers = list(self.nameservers)
        resolver.timeout = self.timeout
        resolver.lifetime = self.timeout
        return resolver

    async def _lookup(self, name: str, record_type: str) -> DNSLookup:
        name = name.lower().rstrip(".")
        resolver = self._get_resolver()

        try:
            answers = await asyncio.wait_for(
                resolver.resolve(name, record_type), timeout=self.timeout
            )
        except (asyncio.TimeoutError, dns.exception.Timeout):
            return DNSLookup(
                name, record_type, reason="timeout", error="DNS lookup timed out"
            )
        except dns.resolver.NXDOMAIN:
            return DNSLookup(
                name, record_type, reason="nxdomain",
                error=f"{name} does not exist (NXDOMAIN)",
            )
        except dns.resolver.NoAnswer:
            return DNSLookup(
                name, record_type, reason="no_data",
                error=f"No {record_type} records found for {name}",
            )
        except dns.resolver.NoNameservers as e:
            return DNSLookup(
                name, record_type, reason="no_nameservers",
                error=f"No nameserver answered for {name}: {e}",
            )
        except dns.exception.DNSException as e:
            logger.debug(f"{record_type} lookup failed for {name}: {e}")
            return DNSLookup(
                name, record_type, reason="error",
                error=f"{record_type} lookup failed: {e}",
            )

        records = [self._render(record_type, rdata) for rdata in answers]
        if not records:
            return DNSLookup(
                name, record_type, reason="no_data",
                error=f"No {record_type} records found for {name}",
            )
        return DNSLookup(name, record_type, records=records)

    @staticmethod
    def _render(record_type: str, rdata) -> str:
        if record_type == "TXT":
            # TXT records may be split into multiple strings
            return "".join(
                s.decode() if isinstance(s, bytes) else s
                for s in rdata.strings
            )
        if record_type == "CNAME":
            return str(rdata.target).rstrip(".").lower()
        return str(rdata)

    async def resolve_a(self, domain: str) -> DNSLookup:
        return await self._lookup(domain, "A")

    async def resolve_txt(self, name: str) -> DNSLookup:
        return await self._lookup(name, "TXT")

    async def resolve_cname(self, domain: str) -> DNSLookup:
        return await self._lookup(domain, "CNAME")

    async def verification_txt(self, domain: str) -> DNSLookup:
        """Look up the ownership TXT record for a domain."""
        return await self.resolve_txt(VerificationTokenManager.record_name(domain))

    async def points_to(self, domain: str, expected_ip: str) -> tuple[bool, DNSLookup]:
        """
        Check that the domain's A records include expected_ip.

        Returns (matches, lookup).
        """
        lookup = await self.resolve_a(domain)
        if not expected_ip:
            lookup.error = lookup.error or "Server IP not configured"
            return False, lookup
        return expected_ip in lookup.records, lookup
