"""
Admin API Tests

Tests the token guard, tenant CRUD over the INI store, connection tests and
the audit read endpoints.
"""

from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from preauth_portal.audit.log import AuditLog
from preauth_portal.auth.verifier import SoapCredentialVerifier
from preauth_portal.main import create_app
from preauth_portal.tenants.source import StaticTenantSource
from preauth_portal.tenants.store import IniTenantStore
from preauth_portal.tests.conftest import ADMIN_TOKEN, FakeVerifier, make_tenant

AUTH_HEADERS = {"X-Admin-Token": ADMIN_TOKEN}

SOAP_FAULT = "<soap:Envelope><soap:Body><soap:Fault/></soap:Body></soap:Envelope>"
SOAP_AUTH_OK = "<soap:Envelope><soap:Body><authToken>0_x</authToken></soap:Body></soap:Envelope>"


@pytest.fixture
def store(settings):
    Path(settings.CONFIG_PATH).write_text(
        "[portal]\ndefault_domain = example.com\n\n"
        "[tenant_1]\nname = Main\nbase_url = https://mail.example.com\n"
        "domains = example.com\nsecret = super-secret-value\n",
        encoding="utf-8",
    )
    return IniTenantStore(settings.CONFIG_PATH)


@pytest.fixture
def audit_log(settings):
    return AuditLog(settings.audit_log_path)


def soap_verifier(handler) -> SoapCredentialVerifier:
    return SoapCredentialVerifier(httpx.Timeout(5.0), transport=httpx.MockTransport(handler))


@pytest.fixture
def client(settings, store, audit_log):
    verifier = soap_verifier(lambda request: httpx.Response(500, text=SOAP_FAULT))
    app = create_app(settings, tenant_source=store, verifier=verifier, audit_log=audit_log)
    return TestClient(app)


class TestTokenGuard:
    def test_missing_token(self, client):
        assert client.get("/api/admin/tenants").status_code == 401

    def test_wrong_token(self, client):
        response = client.get("/api/admin/tenants", headers={"X-Admin-Token": "nope"})
        assert response.status_code == 401

    def test_disabled_without_configured_token(self, settings, store, audit_log):
        settings.ADMIN_API_TOKEN = None
        app = create_app(settings, tenant_source=store, verifier=FakeVerifier(), audit_log=audit_log)

        response = TestClient(app).get("/api/admin/tenants", headers=AUTH_HEADERS)

        assert response.status_code == 503


class TestTenantCrud:
    def test_list_masks_secret(self, client):
        response = client.get("/api/admin/tenants", headers=AUTH_HEADERS)

        assert response.status_code == 200
        [tenant] = response.json()["tenants"]
        assert tenant["key"] == "tenant_1"
        assert tenant["secret_masked"] == "su***ue"
        assert tenant["tls_mode"] == "DEFAULT_CA"
        assert "super-secret-value" not in response.text

    def test_create_then_login_sees_it(self, client, store):
        response = client.post(
            "/api/admin/tenants",
            headers=AUTH_HEADERS,
            json={
                "key": "tenant_2",
                "baseUrl": "https://other.example.org",
                "domains": ["example.org"],
                "secret": "another-secret",
                "insecureTls": True,
            },
        )

        assert response.status_code == 201
        assert response.json()["tenant"]["tls_mode"] == "INSECURE"
        assert store.get_tenant("tenant_2").domains == ("example.org",)

    def test_create_invalid(self, client):
        response = client.post(
            "/api/admin/tenants",
            headers=AUTH_HEADERS,
            json={"key": "tenant_2", "baseUrl": "http://plain.example.org", "domains": "x.org", "secret": "s"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "TENANT_VALIDATION_ERROR"

    def test_update_with_blank_secret_keeps_it(self, client, store):
        response = client.put(
            "/api/admin/tenants/tenant_1",
            headers=AUTH_HEADERS,
            json={"name": "Renamed", "baseUrl": "https://mail.example.com", "domains": "example.com", "secret": ""},
        )

        assert response.status_code == 200
        tenant = store.get_tenant("tenant_1")
        assert tenant.name == "Renamed"
        assert tenant.secret.get_secret_value() == "super-secret-value"

    def test_update_missing(self, client):
        response = client.put(
            "/api/admin/tenants/tenant_7",
            headers=AUTH_HEADERS,
            json={"baseUrl": "https://x.example.com", "domains": "x.com", "secret": "s"},
        )
        assert response.status_code == 404

    def test_delete(self, client, store):
        assert client.delete("/api/admin/tenants/tenant_1", headers=AUTH_HEADERS).status_code == 200
        assert store.list_tenants() == []
        assert client.delete("/api/admin/tenants/tenant_1", headers=AUTH_HEADERS).status_code == 404

    def test_delete_portal_section_rejected(self, client, store, settings):
        before = Path(settings.CONFIG_PATH).read_text(encoding="utf-8")

        response = client.delete("/api/admin/tenants/portal", headers=AUTH_HEADERS)

        assert response.status_code == 400
        assert Path(settings.CONFIG_PATH).read_text(encoding="utf-8") == before
        assert store.load().default_domain == "example.com"

    def test_read_only_source(self, settings, audit_log):
        source = StaticTenantSource([make_tenant("tenant_1", "example.com")])
        app = create_app(settings, tenant_source=source, verifier=FakeVerifier(), audit_log=audit_log)

        response = TestClient(app).delete("/api/admin/tenants/tenant_1", headers=AUTH_HEADERS)

        assert response.status_code == 501


class TestConnectionTest:
    def build(self, settings, store, audit_log, handler) -> TestClient:
        app = create_app(
            settings,
            tenant_source=store,
            verifier=soap_verifier(handler),
            audit_log=audit_log,
        )
        return TestClient(app)

    def test_ping_reachable(self, client):
        response = client.post("/api/admin/tenants/tenant_1/test", headers=AUTH_HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["details"]["check"] == "REACHABLE"
        assert body["details"]["tls"] == "DEFAULT_CA"

    def test_credential_check_ok(self, settings, store, audit_log):
        client = self.build(settings, store, audit_log, lambda r: httpx.Response(200, text=SOAP_AUTH_OK))

        response = client.post(
            "/api/admin/tenants/tenant_1/test",
            headers=AUTH_HEADERS,
            json={"test_email": "check@example.com", "test_password": "pw"},
        )

        assert response.json()["details"]["check"] == "AUTH_OK"

    def test_credential_check_accepts_address_without_tld(self, settings, store, audit_log):
        seen = []

        def handler(request):
            seen.append(request.content.decode())
            return httpx.Response(200, text=SOAP_AUTH_OK)

        client = self.build(settings, store, audit_log, handler)

        response = client.post(
            "/api/admin/tenants/tenant_1/test",
            headers=AUTH_HEADERS,
            json={"test_email": "user@corp", "test_password": "pw"},
        )

        assert response.status_code == 200
        assert response.json()["details"]["check"] == "AUTH_OK"
        assert "user@corp" in seen[0]

    def test_credential_check_rejected(self, client):
        response = client.post(
            "/api/admin/tenants/tenant_1/test",
            headers=AUTH_HEADERS,
            json={"test_email": "check@example.com", "test_password": "bad"},
        )

        body = response.json()
        assert body["ok"] is False
        assert body["details"]["check"] == "AUTH_FAIL"

    def test_unreachable(self, settings, store, audit_log):
        def handler(request):
            raise httpx.ConnectError("no route to host", request=request)

        client = self.build(settings, store, audit_log, handler)
        body = client.post("/api/admin/tenants/tenant_1/test", headers=AUTH_HEADERS).json()

        assert body["ok"] is False
        assert body["details"]["check"] == "UNREACHABLE"
        assert "no route to host" in body["error"]

    def test_unknown_tenant(self, client):
        response = client.post("/api/admin/tenants/tenant_9/test", headers=AUTH_HEADERS)
        assert response.status_code == 404


class TestAuditEndpoints:
    @pytest.fixture
    def seeded(self, audit_log):
        for i in range(5):
            audit_log.path.parent.mkdir(parents=True, exist_ok=True)
            with open(audit_log.path, "a", encoding="utf-8") as f:
                f.write(
                    '{"timestamp": "2020-01-01T00:00:00+00:00", "result": "%s", '
                    '"domain": "example.com", "chosenTenantKey": "tenant_1", "seq": %d}\n'
                    % ("ok" if i < 3 else "fail", i)
                )

    def test_stats(self, client, seeded):
        response = client.get("/api/admin/stats", headers=AUTH_HEADERS)

        stats = response.json()["stats"]
        assert stats["total"] == 5
        assert stats["ok"] == 3
        assert stats["fail"] == 2
        assert stats["last24_total"] == 0
        assert stats["byDomain"] == {"example.com": 5}

    def test_logs_newest_first_with_limit(self, client, seeded):
        response = client.get("/api/admin/logs?limit=2", headers=AUTH_HEADERS)

        assert [e["seq"] for e in response.json()["entries"]] == [4, 3]

    def test_logs_limit_is_capped(self, settings, client, seeded):
        settings.LOGS_MAX_LIMIT = 3
        response = client.get("/api/admin/logs?limit=1000", headers=AUTH_HEADERS)
        assert len(response.json()["entries"]) == 3

    def test_login_then_logs(self, client):
        client.post("/api/login", json={"identifier": "a@example.com", "password": "pw"})

        entries = client.get("/api/admin/logs", headers=AUTH_HEADERS).json()["entries"]

        assert entries[0]["normalizedEmail"] == "a@example.com"
        assert entries[0]["failureReason"] == "authFailed"
