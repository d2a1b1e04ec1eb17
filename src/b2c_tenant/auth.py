from __future__ import annotations

import enum
import logging
from typing import Dict, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from .audit import JsonAuditLogger
from .exceptions import AuthError
from .models import AccessToken, Tenant

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"


class TokenKind(str, enum.Enum):
    """Which API a token is issued for."""

    LEGACY = "legacy"
    GRAPH = "graph"


class TokenProvider:
    """Acquires app-only tokens with the OAuth2 client-credentials grant.

    ``LEGACY`` tokens come from the v1 endpoint and are accepted by the Azure AD
    Graph API; ``GRAPH`` tokens come from the v2 endpoint with the Microsoft
    Graph ``.default`` scope. A successful call replaces ``tenant.access_token``.
    There is no retry and no expiry bookkeeping.
    """

    def __init__(
        self,
        audit_logger: JsonAuditLogger,
        authority_host: str = "https://login.microsoftonline.com",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.audit = audit_logger
        self.authority_host = authority_host.rstrip("/")
        self.session = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "TokenProvider":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def token_url(self, tenant: Tenant, kind: TokenKind) -> str:
        if kind is TokenKind.GRAPH:
            return f"{self.authority_host}/{tenant.tenant_domain}/oauth2/v2.0/token"
        return f"{self.authority_host}/{tenant.tenant_domain}/oauth2/token?api-version=1.0"

    def authenticate_legacy(self, tenant: Tenant) -> AccessToken:
        return self.authenticate(tenant, TokenKind.LEGACY)

    def authenticate_graph(self, tenant: Tenant) -> AccessToken:
        return self.authenticate(tenant, TokenKind.GRAPH)

    def authenticate(self, tenant: Tenant, kind: TokenKind) -> AccessToken:
        kind = TokenKind(kind)
        url = self.token_url(tenant, kind)
        form: Dict[str, str] = {
            "client_id": tenant.client_id,
            "client_secret": tenant.client_secret,
            "grant_type": "client_credentials",
        }
        if kind is TokenKind.GRAPH:
            form["scope"] = GRAPH_SCOPE

        logger.debug("Requesting %s token for %s", kind.value, tenant.tenant_domain)
        try:
            response = self.session.post(url, data=form)
        except httpx.TransportError as exc:
            self.audit.error(
                "token_request_failed",
                tenant_domain=tenant.tenant_domain,
                token_kind=kind.value,
                error=str(exc),
            )
            raise AuthError(f"Error in POSTing the token request to {url}: {exc}") from exc

        body = response.content
        if response.status_code != 200:
            self.audit.error(
                "token_request_failed",
                tenant_domain=tenant.tenant_domain,
                token_kind=kind.value,
                status=response.status_code,
            )
            raise AuthError(
                f"Error while calling auth endpoint {url}: {response.text}",
                status=response.status_code,
                body=body,
            )

        try:
            token = AccessToken.model_validate_json(body)
        except PydanticValidationError as exc:
            raise AuthError(
                f"Error getting the access token: {exc}", status=response.status_code, body=body
            ) from exc

        tenant.access_token = token
        self.audit.info(
            "token_acquired",
            tenant_domain=tenant.tenant_domain,
            token_kind=kind.value,
            token_type=token.token_type,
        )
        return token
