"""
Tests for tenant resolution and operation runs.
"""

import pytest

from b2c_tenant.auth import TokenKind
from b2c_tenant.config import DirectoryConfig
from b2c_tenant.exceptions import AuthError, ConfigurationError, NotFound, UnknownTenant
from b2c_tenant.tenant_manager import TenantManager

from conftest import GRAPH_TOKEN_URL, LEGACY_BASE, LEGACY_TOKEN_URL, MODERN_BASE, TENANT_DOMAIN


@pytest.fixture
def manager(config_file, audit, fake):
    return TenantManager(DirectoryConfig.load(config_file), audit_logger=audit, transport=fake.transport)


def test_unknown_tenant(manager):
    with pytest.raises(UnknownTenant):
        manager.get_tenant("fabrikam.onmicrosoft.com")


def test_legacy_operation_uses_legacy_token(manager, fake):
    fake.add_tokens("legacy-tok")
    fake.add("GET", f"{LEGACY_BASE}/groups/g-1?api-version=1.6", json_body={"objectId": "g-1", "displayName": "Admins"})

    group = manager.run_operation(TENANT_DOMAIN, lambda ops: ops.get_group("g-1"))

    assert group.display_name == "Admins"
    assert fake.urls()[0] == LEGACY_TOKEN_URL
    assert fake.requests[1].headers["Authorization"] == "Bearer legacy-tok"


def test_graph_operation_uses_graph_token(manager, fake):
    fake.add_tokens()
    fake.add("GET", f"{MODERN_BASE}/users/u-1", json_body={"id": "u-1"})

    manager.run_operation(TENANT_DOMAIN, lambda ops: ops.get_user("u-1"), token_kind=TokenKind.GRAPH)

    assert fake.urls()[0] == GRAPH_TOKEN_URL


def test_auth_failure_stops_before_any_directory_call(manager, fake):
    fake.add("POST", LEGACY_TOKEN_URL, json_body={"error": "unauthorized_client"}, status=400)

    with pytest.raises(AuthError):
        manager.run_operation(TENANT_DOMAIN, lambda ops: ops.get_groups())

    assert len(fake.requests) == 1


def test_run_is_audited_with_correlation_id(manager, fake, audit_buffer):
    fake.add_tokens()
    fake.add("GET", f"{LEGACY_BASE}/groups/?api-version=1.6", json_body={"value": []})

    manager.run_operation(TENANT_DOMAIN, lambda ops: ops.get_groups(), correlation_id="corr-9")

    records = list(reversed(audit_buffer.latest()))
    assert [r.event for r in records] == [
        "operation_started",
        "token_acquired",
        "graph_request",
        "operation_completed",
    ]
    assert all(r.correlation_id == "corr-9" for r in records)
    assert all(r.tenant_domain == TENANT_DOMAIN for r in records)
    assert records[0].fields["token_kind"] == "legacy"


def test_failed_run_is_audited_and_reraised(manager, fake, audit_buffer):
    fake.add_tokens()
    fake.add("GET", f"{LEGACY_BASE}/reports/b2cAuthenticationCount/?api-version=beta", json_body={"value": []})

    with pytest.raises(NotFound):
        manager.run_operation(TENANT_DOMAIN, lambda ops: ops.get_b2c_authentication_count())

    latest = audit_buffer.latest()[0]
    assert latest.event == "operation_failed"
    assert latest.fields["error_type"] == "NotFound"
    assert latest.correlation_id


def test_token_failure_is_audited_as_failed_run(manager, fake, audit_buffer):
    fake.add("POST", LEGACY_TOKEN_URL, json_body={"error": "invalid_client"}, status=401)

    with pytest.raises(AuthError):
        manager.run_operation(TENANT_DOMAIN, lambda ops: ops.get_groups(), correlation_id="corr-3")

    latest = audit_buffer.latest()[0]
    assert latest.event == "operation_failed"
    assert latest.fields["error_type"] == "AuthError"
    assert latest.correlation_id == "corr-3"


def test_unknown_tenant_run_is_audited(manager, audit_buffer):
    with pytest.raises(UnknownTenant):
        manager.run_operation("fabrikam.onmicrosoft.com", lambda ops: ops.get_groups())

    assert [r.event for r in audit_buffer.latest()] == ["operation_failed", "operation_started"]


def test_unset_secret_is_a_configuration_error(tmp_path, audit, audit_buffer, fake, monkeypatch):
    monkeypatch.delenv("B2C_UNSET_SECRET", raising=False)
    path = tmp_path / "tenants.yaml"
    path.write_text(
        "tenants:\n"
        f"  - tenant_domain: {TENANT_DOMAIN}\n"
        "    auth:\n"
        "      client_id: app-id\n"
        "      client_secret: {env: B2C_UNSET_SECRET}\n",
        encoding="utf-8",
    )
    manager = TenantManager(DirectoryConfig.load(path), audit_logger=audit, transport=fake.transport)

    with pytest.raises(ConfigurationError, match="B2C_UNSET_SECRET"):
        manager.run_operation(TENANT_DOMAIN, lambda ops: ops.get_groups())

    assert fake.requests == []
    assert audit_buffer.latest()[0].fields["error_type"] == "ConfigurationError"
