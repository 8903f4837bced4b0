#!/usr/bin/env python3
"""
WaveOrder custom domain check

Runs the same DNS, TLS and connectivity checks the service uses, straight
from a shell, without touching stored state. Useful when a tenant reports
a broken storefront and you want to see what the outside world sees.

Usage:
    python scripts/check_domain.py shop.example.com --server-ip 203.0.113.10
    python scripts/check_domain.py shop.example.com --token abc123 --json
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.config import get_settings  # noqa: E402
from app.domains.diagnostics import DiagnosticReport  # noqa: E402
from app.domains.dns_client import DNSResolverClient  # noqa: E402
from app.domains.errors import ValidationError  # noqa: E402
from app.domains.models import CustomDomainRecord, DomainStatus  # noqa: E402
from app.domains.probe import ConnectivityProber  # noqa: E402
from app.domains.tls import CertificateInspector  # noqa: E402
from app.domains.tokens import VerificationTokenManager  # noqa: E402
from app.domains.validation import validate_domain_format  # noqa: E402


async def run_checks(args: argparse.Namespace) -> DiagnosticReport:
    settings = get_settings()
    domain = validate_domain_format(args.domain)
    dns_client = DNSResolverClient(
        args.nameserver or settings.dns_nameservers, timeout=settings.dns_timeout
    )
    inspector = CertificateInspector(timeout=settings.tls_timeout)
    prober = ConnectivityProber(timeout=settings.probe_timeout)
    tokens = VerificationTokenManager()

    now = datetime.now(timezone.utc)
    # Ad-hoc record, never persisted. Without a token the domain is judged as live.
    record = CustomDomainRecord(
        tenant_id="cli",
        domain=domain,
        status=DomainStatus.PENDING if args.token else DomainStatus.ACTIVE,
        verification_token=args.token,
        verification_expiry=now + timedelta(days=1) if args.token else None,
    )

    a_lookup, txt_lookup, certificate, probe = await asyncio.gather(
        dns_client.resolve_a(domain),
        dns_client.verification_txt(domain),
        inspector.inspect(domain),
        prober.probe(domain, args.scheme),
    )

    return DiagnosticReport(
        domain=domain,
        record=record,
        server_ip=args.server_ip or settings.server_ip,
        checked_at=now,
        a_lookup=a_lookup,
        txt_lookup=txt_lookup,
        token_check=tokens.check(record, txt_lookup.records, now),
        certificate=certificate,
        probe=probe,
        expiring_warning_days=settings.cert_expiry_warning_days,
    )


def print_summary(report: DiagnosticReport) -> None:
    data = report.to_dict()
    print(f"\n{report.domain}")
    print("=" * len(report.domain))

    a = data["dns"]["a_records"]
    print(f"  A records:     {', '.join(a['records']) or '-'}"
          f"  (expected {a['expected_ip'] or 'unset'})")
    if a["error"]:
        print(f"                 {a['error']}")

    v = data["dns"]["verification"]
    print(f"  TXT record:    {v['record_name']}  found={v['found']} valid={v['valid']}")

    ssl = data["ssl"]
    if ssl["valid"]:
        print(f"  Certificate:   {ssl['issuer']}, {ssl['days_remaining']} days remaining")
    else:
        print(f"  Certificate:   invalid ({ssl['reason']}: {ssl['error']})")

    c = data["connectivity"]
    if c["https"]:
        print(f"  Connectivity:  {c['status_code']} in {c['latency_ms']}ms")
    else:
        print(f"  Connectivity:  unreachable ({c['reason']}: {c['error']})")

    h = data["health"]
    print(f"\n  Health: dns={h['dns']} ssl={h['ssl']} connectivity={h['connectivity']}"
          f"  overall={data['overall_health']}\n")


def main():
    parser = argparse.ArgumentParser(
        description="Check DNS, TLS and connectivity for a custom domain"
    )
    parser.add_argument("domain", help="Domain to check (e.g. shop.example.com)")
    parser.add_argument("--server-ip", help="Expected A record value")
    parser.add_argument("--token", help="Verification token expected in the TXT record")
    parser.add_argument(
        "--nameserver", action="append",
        help="Resolver to query (repeatable, default from settings)",
    )
    parser.add_argument("--scheme", choices=["https", "http"], default="https")
    parser.add_argument("--json", action="store_true", help="Print the raw JSON report")
    args = parser.parse_args()

    try:
        report = asyncio.run(run_checks(args))
    except ValidationError as e:
        print(f"ERROR: {e.message}")
        sys.exit(2)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print_summary(report)

    sys.exit(0 if report.overall_health.value == "healthy" else 1)


if __name__ == "__main__":
    main()
