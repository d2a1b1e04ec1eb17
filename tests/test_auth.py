"""
Tests for client-credentials token acquisition.
"""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from b2c_tenant.auth import GRAPH_SCOPE, TokenKind, TokenProvider
from b2c_tenant.exceptions import AuthError
from b2c_tenant.models import AccessToken, Tenant

from conftest import GRAPH_TOKEN_URL, LEGACY_TOKEN_URL, TENANT_DOMAIN


@pytest.fixture
def bare_tenant():
    return Tenant(client_id="app-id", client_secret="s3cret", tenant_domain=TENANT_DOMAIN)


@pytest.fixture
def provider(audit, fake):
    with TokenProvider(audit, transport=fake.transport) as token_provider:
        yield token_provider


def _form(request: httpx.Request) -> dict:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


def test_legacy_token_posts_client_credentials(provider, fake, bare_tenant):
    fake.add("POST", LEGACY_TOKEN_URL, json_body={"access_token": "abc", "token_type": "Bearer"})

    token = provider.authenticate_legacy(bare_tenant)

    assert token == AccessToken(access_token="abc", token_type="Bearer")
    assert bare_tenant.access_token == token
    request = fake.requests[0]
    assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
    assert _form(request) == {
        "client_id": "app-id",
        "client_secret": "s3cret",
        "grant_type": "client_credentials",
    }


def test_graph_token_adds_scope(provider, fake, bare_tenant):
    fake.add("POST", GRAPH_TOKEN_URL, json_body={"access_token": "xyz", "token_type": "Bearer"})

    provider.authenticate_graph(bare_tenant)

    assert str(fake.requests[0].url) == GRAPH_TOKEN_URL
    assert _form(fake.requests[0])["scope"] == GRAPH_SCOPE
    assert bare_tenant.access_token.access_token == "xyz"


def test_new_token_replaces_previous_one(provider, fake, bare_tenant):
    bare_tenant.access_token = AccessToken(access_token="old", token_type="Bearer")
    fake.add("POST", LEGACY_TOKEN_URL, json_body={"access_token": "new", "token_type": "Bearer"})

    provider.authenticate(bare_tenant, TokenKind.LEGACY)

    assert bare_tenant.access_token.access_token == "new"


def test_non_200_raises_auth_error_with_status_and_body(provider, fake, bare_tenant):
    body = {"error": "invalid_client", "error_description": "bad secret"}
    fake.add("POST", LEGACY_TOKEN_URL, json_body=body, status=401)

    with pytest.raises(AuthError) as exc_info:
        provider.authenticate_legacy(bare_tenant)

    assert exc_info.value.status == 401
    assert json.loads(exc_info.value.body) == body
    assert "invalid_client" in str(exc_info.value)
    assert bare_tenant.access_token is None


def test_transport_failure_raises_auth_error(provider, fake, bare_tenant):
    fake.add("POST", GRAPH_TOKEN_URL, error=httpx.ConnectError("connection refused"))

    with pytest.raises(AuthError) as exc_info:
        provider.authenticate_graph(bare_tenant)

    assert exc_info.value.status is None
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_malformed_token_body_raises_auth_error(provider, fake, bare_tenant):
    fake.add("POST", LEGACY_TOKEN_URL, content=b'{"token_type": "Bearer"}')

    with pytest.raises(AuthError):
        provider.authenticate_legacy(bare_tenant)
    assert bare_tenant.access_token is None


def test_token_value_is_not_logged(provider, fake, bare_tenant, audit_stream):
    fake.add("POST", LEGACY_TOKEN_URL, json_body={"access_token": "very-secret", "token_type": "Bearer"})

    provider.authenticate_legacy(bare_tenant)

    output = audit_stream.getvalue()
    assert "token_acquired" in output
    assert "very-secret" not in output
    assert "s3cret" not in output


def test_custom_authority_host(audit, fake, bare_tenant):
    url = f"https://login.microsoftonline.us/{TENANT_DOMAIN}/oauth2/v2.0/token"
    fake.add("POST", url, json_body={"access_token": "gov", "token_type": "Bearer"})

    with TokenProvider(audit, authority_host="https://login.microsoftonline.us/", transport=fake.transport) as p:
        p.authenticate_graph(bare_tenant)

    assert str(fake.requests[0].url) == url
