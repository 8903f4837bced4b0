"""
Tests for the custom domain state machine.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.domains.errors import InvalidTransitionError
from app.domains.models import CustomDomainRecord, DomainStatus
from app.domains.state import DomainStateMachine

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
S = DomainStatus


def _record(status=S.NONE, domain=None):
    return CustomDomainRecord(tenant_id="biz_1", domain=domain, status=status)


@pytest.fixture
def machine():
    return DomainStateMachine()


class TestTransitionTable:
    @pytest.mark.parametrize("current,target", [
        (S.NONE, S.PENDING),
        (S.PENDING, S.PENDING),
        (S.PENDING, S.ACTIVE),
        (S.PENDING, S.FAILED),
        (S.PENDING, S.NONE),
        (S.ACTIVE, S.PENDING),
        (S.ACTIVE, S.NONE),
        (S.FAILED, S.PENDING),
        (S.FAILED, S.NONE),
    ])
    def test_allowed(self, current, target):
        assert DomainStateMachine.can_transition(current, target) is True

    @pytest.mark.parametrize("current,target", [
        (S.NONE, S.ACTIVE),
        (S.NONE, S.FAILED),
        (S.ACTIVE, S.FAILED),
        (S.FAILED, S.ACTIVE),
        (S.ACTIVE, S.ACTIVE),
    ])
    def test_forbidden(self, current, target):
        assert DomainStateMachine.can_transition(current, target) is False


class TestStateMachine:
    def test_start_pending_from_none(self, machine):
        record = machine.start_pending(
            _record(), "shop.example.com", "tok", NOW + timedelta(days=7)
        )
        assert record.status == S.PENDING
        assert record.domain == "shop.example.com"
        assert record.verification_token == "tok"
        assert record.provisioned_at is None

    def test_start_pending_from_active_clears_provisioning(self, machine):
        record = _record(S.ACTIVE, "old.example.com")
        record.provisioned_at = NOW
        record.last_error = "stale"

        machine.start_pending(record, "new.example.com", "tok2", NOW)

        assert record.status == S.PENDING
        assert record.provisioned_at is None
        assert record.last_error is None

    def test_activate_requires_both_conditions(self, machine):
        record = _record(S.PENDING, "shop.example.com")
        with pytest.raises(InvalidTransitionError):
            machine.activate(record, dns_verified=True, agent_succeeded=False)
        with pytest.raises(InvalidTransitionError):
            machine.activate(record, dns_verified=False, agent_succeeded=True)
        assert record.status == S.PENDING

    def test_activate_sets_provisioned_at(self, machine):
        record = _record(S.PENDING, "shop.example.com")
        record.last_error = "DNS not ready"

        machine.activate(record, dns_verified=True, agent_succeeded=True, now=NOW)

        assert record.status == S.ACTIVE
        assert record.provisioned_at == NOW
        assert record.last_checked_at == NOW
        assert record.last_error is None

    def test_activate_from_none_rejected(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.activate(_record(), dns_verified=True, agent_succeeded=True)

    def test_fail_records_error(self, machine):
        record = machine.fail(_record(S.PENDING, "shop.example.com"), "certbot: rate limited", NOW)
        assert record.status == S.FAILED
        assert record.last_error == "certbot: rate limited"
        assert record.provisioned_at is None

    def test_fail_from_active_rejected(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.fail(_record(S.ACTIVE, "shop.example.com"), "boom")

    def test_retry_only_from_failed(self, machine):
        record = _record(S.FAILED, "shop.example.com")
        record.verification_token = "tok"
        machine.retry(record)
        assert record.status == S.PENDING
        assert record.verification_token == "tok"

        with pytest.raises(InvalidTransitionError):
            machine.retry(_record(S.PENDING, "shop.example.com"))

    def test_clear_resets_everything(self, machine):
        record = _record(S.ACTIVE, "shop.example.com")
        record.verification_token = "tok"
        record.provisioned_at = NOW
        record.last_checked_at = NOW

        machine.clear(record)

        assert record == CustomDomainRecord(tenant_id="biz_1")

    def test_clear_from_none_rejected(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.clear(_record())

    def test_note_check_never_changes_status(self):
        record = _record(S.ACTIVE, "shop.example.com")
        DomainStateMachine.note_check(record, NOW, error="drift", update_error=True)
        assert record.status == S.ACTIVE
        assert record.last_checked_at == NOW
        assert record.last_error == "drift"

    def test_note_check_ignores_unconfigured(self):
        record = _record()
        DomainStateMachine.note_check(record, NOW)
        assert record.last_checked_at is None
