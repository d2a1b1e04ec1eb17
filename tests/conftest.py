"""Shared fixtures: a scripted fake of the token and directory endpoints."""

import io
import json
import uuid
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Tuple

import httpx
import pytest

from b2c_tenant.audit import AuditBuffer, JsonAuditLogger
from b2c_tenant.graph_client import GraphClient
from b2c_tenant.models import AccessToken, Tenant
from b2c_tenant.operations import DirectoryService, TenantExecutionContext

TENANT_DOMAIN = "contoso.onmicrosoft.com"
LEGACY_TOKEN_URL = f"https://login.microsoftonline.com/{TENANT_DOMAIN}/oauth2/token?api-version=1.0"
GRAPH_TOKEN_URL = f"https://login.microsoftonline.com/{TENANT_DOMAIN}/oauth2/v2.0/token"
LEGACY_BASE = f"https://graph.windows.net/{TENANT_DOMAIN}"
MODERN_BASE = "https://graph.microsoft.com/beta"


class FakeDirectory:
    """Answers requests from scripted responses and records every request.

    Responses registered for the same method and URL are served in order; the
    last one is repeated once the queue runs dry.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Deque[Any]] = defaultdict(deque)
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        url: str,
        json_body: Any = None,
        status: int = 200,
        content: Optional[bytes] = None,
        error: Optional[Exception] = None,
    ) -> None:
        key = (method.upper(), str(httpx.URL(url)))
        if error is not None:
            self.routes[key].append(error)
            return
        if content is None:
            content = b"" if json_body is None else json.dumps(json_body).encode("utf-8")
        self.routes[key].append((status, content))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, str(request.url)))
        if not queue:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        answer = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(answer, Exception):
            raise answer
        status, content = answer
        return httpx.Response(status, content=content, headers={"Content-Type": "application/json"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def add_tokens(self, token: str = "tok-123") -> None:
        body = {"access_token": token, "token_type": "Bearer", "expires_in": 3599}
        self.add("POST", LEGACY_TOKEN_URL, json_body=body)
        self.add("POST", GRAPH_TOKEN_URL, json_body=body)

    def urls(self) -> List[str]:
        return [str(request.url) for request in self.requests]


@pytest.fixture
def fake() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def audit_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def audit_buffer() -> AuditBuffer:
    return AuditBuffer()


@pytest.fixture
def audit(audit_stream, audit_buffer) -> JsonAuditLogger:
    # unique logger name so each test gets its own handler and stream
    return JsonAuditLogger(
        name=f"b2c_tenant.test.{uuid.uuid4().hex}", buffer=audit_buffer, stream=audit_stream
    )


@pytest.fixture
def tenant() -> Tenant:
    return Tenant(
        client_id="app-id",
        client_secret="s3cret",
        tenant_domain=TENANT_DOMAIN,
        access_token=AccessToken(access_token="tok-123", token_type="Bearer"),
    )


@pytest.fixture
def graph(tenant, audit, fake):
    client = GraphClient(tenant, audit, transport=fake.transport)
    yield client
    client.close()


@pytest.fixture
def service(tenant, graph) -> DirectoryService:
    return DirectoryService(TenantExecutionContext(tenant=tenant, graph=graph, correlation_id="corr-1"))


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "tenants.yaml"
    path.write_text(
        "tenants:\n"
        f"  - tenant_domain: {TENANT_DOMAIN}\n"
        "    display_name: Contoso\n"
        "    auth:\n"
        "      type: client_secret\n"
        "      client_id: app-id\n"
        "      client_secret:\n"
        "        value: s3cret\n",
        encoding="utf-8",
    )
    return path
