"""
Tests for the REST API.
"""

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.domains.agent import SimulatedProvisioningAgent
from app.main import create_app

from conftest import SERVER_IP, StaticDNSClient

TOKEN = "test-service-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
def agent():
    return SimulatedProvisioningAgent()


@pytest.fixture
def dns_client():
    return StaticDNSClient()


@pytest.fixture
def app(agent, dns_client):
    settings = Settings(
        server_ip=SERVER_IP,
        api_token=TOKEN,
        redis_url="",
        health_check_interval=0,
        debug=True,
    )
    app = create_app(settings, agent=agent)
    app.state.orchestrator.dns = dns_client
    app.state.diagnostics.dns = dns_client
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        client.put(
            "/api/tenants/biz_1",
            json={"slug": "naia-studio", "plan": "business", "name": "Naia Studio"},
            headers=AUTH,
        )
        client.put(
            "/api/tenants/biz_2",
            json={"slug": "shehutools", "plan": "BUSINESS"},
            headers=AUTH,
        )
        client.put("/api/tenants/free_1", json={"slug": "corner-cafe"}, headers=AUTH)
        yield client


class TestAuth:
    def test_health_is_public(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_missing_token(self, client):
        resp = client.get("/api/tenants/biz_1/domain")
        assert resp.status_code in (401, 403)

    def test_wrong_token(self, client):
        resp = client.get(
            "/api/tenants/biz_1/domain", headers={"Authorization": "Bearer nope"}
        )
        assert resp.status_code == 401


class TestTenantSync:
    def test_plan_is_uppercased(self, client):
        resp = client.put(
            "/api/tenants/biz_3", json={"slug": "new-shop", "plan": "business"}, headers=AUTH
        )
        assert resp.status_code == 200
        assert resp.json()["plan"] == "BUSINESS"


class TestDomainRoutes:
    def test_full_lifecycle(self, client, dns_client, agent):
        resp = client.post(
            "/api/tenants/biz_1/domain", json={"domain": "Shop.Example.com."}, headers=AUTH
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["domain"] == "shop.example.com"
        assert body["status"] == "PENDING"
        token = body["token"]

        resp = client.post("/api/tenants/biz_1/domain/verify", headers=AUTH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is False
        assert body["dns_status"]["configured"] is False
        assert body["config"]["domain"]["status"] == "PENDING"
        assert body["config"]["domain"]["error"]

        dns_client.publish("shop.example.com", token=token)
        resp = client.post("/api/tenants/biz_1/domain/verify", headers=AUTH)
        body = resp.json()
        assert body["success"] is True
        assert body["status"] == "ACTIVE"
        assert body["url"] == "https://shop.example.com"
        assert body["config"]["storefront_url"] == "https://shop.example.com"
        assert body["config"]["domain"]["verification_token"] is None

        resp = client.delete("/api/tenants/biz_1/domain", headers=AUTH)
        assert resp.status_code == 200
        assert resp.json()["success"] is True
        assert ("detach", "shop.example.com") in agent.calls

        resp = client.get("/api/tenants/biz_1/domain", headers=AUTH)
        assert resp.json()["domain"]["status"] == "NONE"

    def test_invalid_domain_is_400(self, client):
        resp = client.post(
            "/api/tenants/biz_1/domain", json={"domain": "192.168.0.1"}, headers=AUTH
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_DOMAIN"
        assert resp.json()["detail"]["reason"] == "ip_address"

    def test_free_plan_is_403(self, client):
        resp = client.post(
            "/api/tenants/free_1/domain", json={"domain": "cafe.example.com"}, headers=AUTH
        )
        assert resp.status_code == 403
        assert resp.json()["detail"]["code"] == "PLAN_REQUIRED"

    def test_conflict_is_409(self, client):
        client.post("/api/tenants/biz_1/domain", json={"domain": "shop.example.com"}, headers=AUTH)
        resp = client.post(
            "/api/tenants/biz_2/domain", json={"domain": "shop.example.com"}, headers=AUTH
        )
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "DOMAIN_CONFLICT"

    def test_remove_without_domain_is_404(self, client):
        resp = client.delete("/api/tenants/biz_1/domain", headers=AUTH)
        assert resp.status_code == 404

    def test_unknown_tenant_is_404(self, client):
        resp = client.get("/api/tenants/ghost/domain", headers=AUTH)
        assert resp.status_code == 404


class TestOperatorRoutes:
    def test_list_domains(self, client):
        client.post("/api/tenants/biz_1/domain", json={"domain": "naia.example.com"}, headers=AUTH)
        client.post("/api/tenants/biz_2/domain", json={"domain": "shehu.example.com"}, headers=AUTH)

        resp = client.get("/api/domains", params={"search": "naia"}, headers=AUTH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["counts"]["all"] == 2
        assert [d["domain"] for d in body["domains"]] == ["naia.example.com"]
        assert body["domains"][0]["is_verification_expired"] is False

    def test_diagnostics_unknown_domain(self, client):
        resp = client.get("/api/domains/nobody.example.com/diagnostics", headers=AUTH)
        assert resp.status_code == 404

    def test_diagnostics(self, client, app, dns_client):
        from unittest.mock import AsyncMock

        from app.domains.probe import ProbeResult
        from app.domains.tls import CertificateInfo

        reporter = app.state.diagnostics
        reporter.inspector.inspect = AsyncMock(
            return_value=CertificateInfo(valid=False, reason="unreachable", error="Connection timeout")
        )
        reporter.prober.probe = AsyncMock(
            return_value=ProbeResult(reachable=False, url="https://shop.example.com/", reason="timeout")
        )
        client.post("/api/tenants/biz_1/domain", json={"domain": "shop.example.com"}, headers=AUTH)
        dns_client.publish("shop.example.com")

        resp = client.get("/api/domains/shop.example.com/diagnostics", headers=AUTH)
        assert resp.status_code == 200
        body = resp.json()
        assert body["current_status"] == "PENDING"
        assert body["dns"]["a_records"]["points_to_server"] is True
        assert body["health"]["dns"] == "warning"
        assert body["overall_health"] == "unhealthy"
