from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional, TypeVar

import httpx

from .audit import JsonAuditLogger
from .auth import TokenKind, TokenProvider
from .config import DirectoryConfig, TenantConfig
from .exceptions import DirectoryError, UnknownTenant
from .graph_client import GraphClient
from .operations import DirectoryService, TenantExecutionContext

ResultT = TypeVar("ResultT")


class TenantManager:
    """Resolves configured tenants and runs directory operations against them.

    Each run builds a fresh session, authenticates with the token kind the
    operation needs (the legacy and the Graph surfaces accept different
    tokens) and tags every audit event with a correlation id.
    """

    def __init__(
        self,
        config: DirectoryConfig,
        audit_logger: Optional[JsonAuditLogger] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.config = config
        self.audit = audit_logger or JsonAuditLogger()
        self.transport = transport
        self._tenant_cache: Dict[str, TenantConfig] = {
            tenant.tenant_domain: tenant for tenant in config.tenants
        }

    def get_tenant(self, tenant_domain: str) -> TenantConfig:
        tenant = self._tenant_cache.get(tenant_domain)
        if not tenant:
            raise UnknownTenant(f"Tenant {tenant_domain} is not configured")
        return tenant

    @contextmanager
    def with_context(
        self,
        tenant_domain: str,
        token_kind: TokenKind = TokenKind.LEGACY,
        correlation_id: Optional[str] = None,
    ) -> Iterator[TenantExecutionContext]:
        tenant_config = self.get_tenant(tenant_domain)
        tenant = tenant_config.build_tenant()
        audit = self.audit.bind(tenant_domain=tenant_domain, correlation_id=correlation_id)

        with TokenProvider(
            audit,
            authority_host=tenant_config.auth.authority_host,
            timeout=tenant_config.timeout,
            transport=self.transport,
        ) as provider:
            provider.authenticate(tenant, token_kind)

        with GraphClient(
            tenant,
            audit,
            legacy_graph_url=tenant_config.legacy_graph_url,
            graph_base_url=tenant_config.graph_base_url,
            legacy_api_version=tenant_config.legacy_api_version,
            timeout=tenant_config.timeout,
            transport=self.transport,
        ) as graph:
            yield TenantExecutionContext(tenant=tenant, graph=graph, correlation_id=correlation_id)

    def run_operation(
        self,
        tenant_domain: str,
        operation: Callable[[DirectoryService], ResultT],
        token_kind: TokenKind = TokenKind.LEGACY,
        correlation_id: Optional[str] = None,
    ) -> ResultT:
        correlation_id = correlation_id or str(uuid.uuid4())
        audit = self.audit.bind(tenant_domain=tenant_domain, correlation_id=correlation_id)
        audit.info("operation_started", token_kind=TokenKind(token_kind).value)
        try:
            with self.with_context(tenant_domain, token_kind, correlation_id) as context:
                result = operation(DirectoryService(context))
        except DirectoryError as exc:
            # covers unknown tenants, unusable config and token failures too
            audit.error("operation_failed", error=str(exc), error_type=type(exc).__name__)
            raise
        audit.info("operation_completed")
        return result
