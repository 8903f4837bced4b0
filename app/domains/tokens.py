"""
Ownership verification tokens and the DNS record contract around them.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from .models import CustomDomainRecord

VERIFICATION_PREFIX = "_waveorder-verification"

PROPAGATION_NOTE = (
    "DNS changes can take up to 48 hours to propagate, "
    "but usually complete within 5-30 minutes."
)


@dataclass
class IssuedToken:
    token: str
    expires_at: datetime


@dataclass
class TokenCheck:
    """Outcome of matching a record's token against published TXT values."""

    valid: bool
    found: bool
    expired: bool = False
    reason: Optional[str] = None

    @property
    def message(self) -> str:
        if self.valid:
            return "Verification TXT record matches"
        return {
            "missing": "Verification token missing. Please save the domain again.",
            "expired": (
                "Verification token expired. Please save the domain again "
                "to get a new token."
            ),
            "not_found": "Verification TXT record not found",
            "mismatch": "Verification TXT record found but does not contain the current token",
        }.get(self.reason or "", "Verification TXT record not found or invalid")


class VerificationTokenManager:
    """Issues tokens and checks them against published TXT records."""

    def __init__(self, expiry_days: int = 7, token_bytes: int = 24):
        self.expiry_days = expiry_days
        self.token_bytes = token_bytes

    def issue(self, now: Optional[datetime] = None) -> IssuedToken:
        """Generate a fresh token valid for expiry_days."""
        now = now or datetime.now(timezone.utc)
        return IssuedToken(
            token=secrets.token_urlsafe(self.token_bytes),
            expires_at=now + timedelta(days=self.expiry_days),
        )

    @staticmethod
    def record_name(domain: str) -> str:
        """TXT record name a tenant must publish for a domain."""
        return f"{VERIFICATION_PREFIX}.{domain}"

    def instructions(self, domain: str, token: str, server_ip: str) -> dict:
        """Return the DNS records a tenant still has to create."""
        return {
            "server_ip": server_ip,
            "steps": [
                {
                    "type": "A",
                    "name": domain,
                    "value": server_ip,
                    "description": "Point your domain to our server",
                },
                {
                    "type": "TXT",
                    "name": self.record_name(domain),
                    "value": token,
                    "description": "Verify domain ownership",
                },
            ],
            "note": PROPAGATION_NOTE,
        }

    def check(
        self,
        record: CustomDomainRecord,
        txt_values: Iterable[str],
        now: Optional[datetime] = None,
    ) -> TokenCheck:
        """
        Match the record's live token against flattened TXT values.

        Substring matching tolerates registrars that quote or merge values.
        An expired token is reported as expired even if the record is
        published, so operators can tell it apart from a missing record.
        """
        now = now or datetime.now(timezone.utc)
        values: List[str] = [v for v in txt_values if v]
        found = len(values) > 0

        if not record.verification_token:
            return TokenCheck(valid=False, found=found, reason="missing")

        if record.verification_expiry is None or record.token_expired(now):
            return TokenCheck(valid=False, found=found, expired=True, reason="expired")

        if not found:
            return TokenCheck(valid=False, found=False, reason="not_found")

        if any(record.verification_token in value for value in values):
            return TokenCheck(valid=True, found=True)

        return TokenCheck(valid=False, found=True, reason="mismatch")
