"""
Tests for verification tokens and the domain record model.
"""

from datetime import datetime, timedelta, timezone

from app.domains.models import CustomDomainRecord, DomainStatus, Tenant
from app.domains.tokens import (
    PROPAGATION_NOTE,
    VerificationTokenManager,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _pending(token="tok_abc123", expiry=NOW + timedelta(days=7)):
    return CustomDomainRecord(
        tenant_id="biz_1",
        domain="shop.example.com",
        status=DomainStatus.PENDING,
        verification_token=token,
        verification_expiry=expiry,
    )


class TestCustomDomainRecord:
    def test_defaults(self):
        record = CustomDomainRecord(tenant_id="biz_1")
        assert record.status == DomainStatus.NONE
        assert record.domain is None
        assert record.is_configured is False

    def test_serialization_roundtrip(self):
        record = _pending()
        record.last_checked_at = NOW
        restored = CustomDomainRecord.from_dict(record.to_dict())

        assert restored == record
        assert restored.verification_expiry.tzinfo is not None

    def test_api_response_shows_token_when_pending(self):
        resp = _pending().to_api_response()
        assert resp["verification_token"] == "tok_abc123"
        assert resp["status"] == "PENDING"

    def test_api_response_hides_token_when_active(self):
        record = _pending()
        record.status = DomainStatus.ACTIVE
        record.provisioned_at = NOW
        resp = record.to_api_response()
        assert resp["verification_token"] is None
        assert resp["provisioned_at"] == NOW.isoformat()

    def test_token_expired(self):
        record = _pending(expiry=NOW - timedelta(seconds=1))
        assert record.token_expired(NOW) is True
        assert _pending().token_expired(NOW) is False


class TestTenant:
    def test_roundtrip(self):
        tenant = Tenant(tenant_id="biz_1", slug="naia", plan="BUSINESS", name="Naia")
        assert Tenant.from_dict(tenant.to_dict()) == tenant

    def test_plan_defaults_to_free(self):
        assert Tenant.from_dict({"tenant_id": "t", "slug": "s"}).plan == "FREE"


class TestTokenIssue:
    def test_issue_sets_expiry(self):
        tokens = VerificationTokenManager(expiry_days=7)
        issued = tokens.issue(NOW)
        assert issued.expires_at == NOW + timedelta(days=7)
        assert len(issued.token) >= 32

    def test_tokens_are_unique(self):
        tokens = VerificationTokenManager()
        issued = {tokens.issue(NOW).token for _ in range(50)}
        assert len(issued) == 50

    def test_token_is_url_safe(self):
        token = VerificationTokenManager().issue(NOW).token
        assert all(c.isalnum() or c in "-_" for c in token)

    def test_record_name(self):
        assert (
            VerificationTokenManager.record_name("shop.example.com")
            == "_waveorder-verification.shop.example.com"
        )

    def test_instructions(self):
        data = VerificationTokenManager().instructions(
            "shop.example.com", "tok_abc123", "203.0.113.10"
        )
        a_step, txt_step = data["steps"]
        assert a_step == {
            "type": "A",
            "name": "shop.example.com",
            "value": "203.0.113.10",
            "description": "Point your domain to our server",
        }
        assert txt_step["type"] == "TXT"
        assert txt_step["name"] == "_waveorder-verification.shop.example.com"
        assert txt_step["value"] == "tok_abc123"
        assert data["note"] == PROPAGATION_NOTE


class TestTokenCheck:
    def test_exact_match(self):
        check = VerificationTokenManager().check(_pending(), ["tok_abc123"], NOW)
        assert check.valid is True
        assert check.found is True

    def test_substring_match_tolerates_quoting(self):
        check = VerificationTokenManager().check(
            _pending(), ['"tok_abc123"', "v=spf1 -all"], NOW
        )
        assert check.valid is True

    def test_not_found(self):
        check = VerificationTokenManager().check(_pending(), [], NOW)
        assert check.valid is False
        assert check.found is False
        assert check.reason == "not_found"

    def test_mismatch(self):
        check = VerificationTokenManager().check(_pending(), ["tok_old999"], NOW)
        assert check.valid is False
        assert check.found is True
        assert check.reason == "mismatch"

    def test_expired_token_fails_even_when_published(self):
        record = _pending(expiry=NOW - timedelta(minutes=1))
        check = VerificationTokenManager().check(record, ["tok_abc123"], NOW)
        assert check.valid is False
        assert check.expired is True
        assert check.reason == "expired"
        assert "expired" in check.message

    def test_missing_token(self):
        record = _pending(token=None)
        check = VerificationTokenManager().check(record, ["anything"], NOW)
        assert check.valid is False
        assert check.reason == "missing"

    def test_missing_expiry_counts_as_expired(self):
        record = _pending(expiry=None)
        check = VerificationTokenManager().check(record, ["tok_abc123"], NOW)
        assert check.expired is True
