"""
Inspection of the TLS certificate a domain is currently serving.
"""

import asyncio
import logging
import math
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

logger = logging.getLogger("waveorder_domains.domains.tls")

SECONDS_PER_DAY = 86400


@dataclass
class CertificateInfo:
    """What we learned about the certificate served for a domain."""

    valid: bool
    issuer: Optional[str] = None
    subject: Optional[str] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    days_remaining: int = 0
    reason: Optional[str] = None
    error: Optional[str] = None

    @property
    def unreachable(self) -> bool:
        return self.reason == "unreachable"

    def expiring_soon(self, threshold_days: int = 14) -> bool:
        return self.valid and self.days_remaining <= threshold_days


def _name_attr(name: x509.Name, oid) -> Optional[str]:
    attrs = name.get_attributes_for_oid(oid)
    return str(attrs[0].value) if attrs else None


def describe_certificate(der: bytes, now: Optional[datetime] = None) -> CertificateInfo:
    """Build CertificateInfo from a DER-encoded certificate."""
    now = now or datetime.now(timezone.utc)
    cert = x509.load_der_x509_certificate(der)

    valid_from = cert.not_valid_before_utc
    valid_to = cert.not_valid_after_utc
    issuer = (
        _name_attr(cert.issuer, NameOID.ORGANIZATION_NAME)
        or _name_attr(cert.issuer, NameOID.COMMON_NAME)
        or "Unknown"
    )
    subject = _name_attr(cert.subject, NameOID.COMMON_NAME)

    valid = valid_from <= now <= valid_to
    days_remaining = 0
    reason = None
    error = None
    if valid:
        days_remaining = math.ceil((valid_to - now).total_seconds() / SECONDS_PER_DAY)
    elif now > valid_to:
        reason = "expired"
        error = f"Certificate expired on {valid_to.isoformat()}"
    else:
        reason = "not_yet_valid"
        error = f"Certificate not valid until {valid_from.isoformat()}"

    return CertificateInfo(
        valid=valid,
        issuer=issuer,
        subject=subject,
        valid_from=valid_from,
        valid_to=valid_to,
        days_remaining=days_remaining,
        reason=reason,
        error=error,
    )


class CertificateInspector:
    """
    Reads whatever certificate a domain serves on port 443.

    Chain verification is off, so expired and self-signed certificates
    are reported as such. A host that cannot be reached at all is reported as
    "unreachable", never as an invalid certificate.
    """

    def __init__(self, timeout: float = 10.0, port: int = 443):
        self.timeout = timeout
        self.port = port

    @staticmethod
    def _context() -> ssl.SSLContext:
        ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        return ctx

    async def _fetch_certificate(self, domain: str) -> Optional[bytes]:
        """Handshake with the domain and return the peer certificate (DER)."""
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(
                domain,
                self.port,
                ssl=self._context(),
                server_hostname=domain,
            ),
            timeout=self.timeout,
        )
        try:
            ssl_object = writer.get_extra_info("ssl_object")
            if ssl_object is None:
                return None
            return ssl_object.getpeercert(binary_form=True)
        finally:
            writer.close()
            try:
                await asyncio.wait_for(writer.wait_closed(), timeout=2)
            except (asyncio.TimeoutError, OSError, ssl.SSLError):
                pass

    async def inspect(self, domain: str, now: Optional[datetime] = None) -> CertificateInfo:
        """Inspect the certificate for a domain."""
        domain = domain.lower().rstrip(".")

        try:
            der = await self._fetch_certificate(domain)
        except asyncio.TimeoutError:
            return CertificateInfo(
                valid=False, reason="unreachable", error="Connection timeout"
            )
        except ConnectionRefusedError:
            return CertificateInfo(
                valid=False,
                reason="unreachable",
                error="Connection refused (HTTPS not available)",
            )
        except ssl.SSLError as e:
            return CertificateInfo(
                valid=False,
                reason="handshake_failed",
                error=f"TLS handshake failed: {e}",
            )
        except OSError as e:
            return CertificateInfo(valid=False, reason="unreachable", error=str(e))

        if not der:
            return CertificateInfo(
                valid=False, reason="no_certificate", error="No certificate found"
            )

        try:
            return describe_certificate(der, now=now)
        except ValueError as e:
            logger.debug(f"Unparseable certificate for {domain}: {e}")
            return CertificateInfo(
                valid=False,
                reason="no_certificate",
                error=f"Certificate could not be parsed: {e}",
            )
