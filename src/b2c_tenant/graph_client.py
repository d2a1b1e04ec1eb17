from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Type, Union

import httpx

from .audit import JsonAuditLogger
from .exceptions import ApiError, TransportError
from .models import ModelT, Tenant, parse_body

logger = logging.getLogger(__name__)

Params = Union[str, Mapping[str, Any], list, None]


def append_query(url: str, query: str) -> str:
    if not query:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


@dataclass(frozen=True)
class LegacySurface:
    """Azure AD Graph: ``{legacy}/{tenant}{endpoint}?api-version={version}``."""

    api_version: str = "1.6"

    def build_url(self, client: "GraphClient", endpoint: str) -> str:
        return (
            f"{client.legacy_graph_url}/{client.tenant.tenant_domain}{endpoint}"
            f"?api-version={self.api_version}"
        )

    def follow_link(self) -> "FollowLink":
        return FollowLink(api_version=self.api_version)


@dataclass(frozen=True)
class ModernSurface:
    """Microsoft Graph beta: ``{graph_base_url}{endpoint}``."""

    def build_url(self, client: "GraphClient", endpoint: str) -> str:
        return f"{client.graph_base_url}{endpoint}"

    def follow_link(self) -> "FollowLink":
        return FollowLink()


@dataclass(frozen=True)
class FollowLink:
    """Continuation links are complete URLs and are requested as given.

    The legacy API may hand out links relative to the tenant
    (``directoryObjects/...?$skiptoken=...``); those are resolved against the
    legacy tenant base and get their ``api-version`` back.
    """

    api_version: Optional[str] = None

    def build_url(self, client: "GraphClient", endpoint: str) -> str:
        if endpoint.startswith(("https://", "http://")):
            return endpoint
        url = f"{client.legacy_graph_url}/{client.tenant.tenant_domain}/{endpoint.lstrip('/')}"
        return append_query(url, f"api-version={self.api_version or client.legacy_api_version}")

    def follow_link(self) -> "FollowLink":
        return self


ApiSurface = Union[LegacySurface, ModernSurface, FollowLink]

MODERN = ModernSurface()


class GraphClient:
    """Tenant-scoped request executor for both directory API surfaces.

    Every request carries the tenant's current bearer token. The body is read in
    full whatever the status; 200-204 return it, anything else raises
    ``ApiError`` with the status and raw body attached.
    """

    def __init__(
        self,
        tenant: Tenant,
        audit_logger: JsonAuditLogger,
        legacy_graph_url: str = "https://graph.windows.net",
        graph_base_url: str = "https://graph.microsoft.com/beta",
        legacy_api_version: str = "1.6",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.tenant = tenant
        self.audit = audit_logger.bind(tenant_domain=tenant.tenant_domain)
        self.legacy_graph_url = legacy_graph_url.rstrip("/")
        self.graph_base_url = graph_base_url.rstrip("/")
        self.legacy_api_version = legacy_api_version
        self.session = httpx.Client(timeout=timeout, transport=transport)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "GraphClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def legacy(self, api_version: Optional[str] = None) -> LegacySurface:
        return LegacySurface(api_version=api_version or self.legacy_api_version)

    def _auth_header(self) -> Dict[str, str]:
        token = self.tenant.access_token
        if token is None:
            # left for the service to reject
            return {}
        return {"Authorization": token.authorization_header()}

    def call(
        self,
        endpoint: str,
        surface: ApiSurface,
        method: str = "GET",
        params: Params = None,
    ) -> bytes:
        method = method.upper()
        url = surface.build_url(self, endpoint)
        headers = self._auth_header()
        content: Optional[bytes] = None
        json_body: Any = None

        if params:
            if method == "GET":
                query = params if isinstance(params, str) else str(httpx.QueryParams(params))
                url = append_query(url, query)
            elif method in ("POST", "PATCH"):
                if isinstance(params, str):
                    # already serialized by the caller
                    content = params.encode("utf-8")
                    headers["Content-Type"] = "application/json"
                else:
                    json_body = params

        self.audit.info("graph_request", method=method, url=url)

        try:
            response = self.session.request(
                method, url, headers=headers, content=content, json=json_body
            )
        except httpx.TransportError as exc:
            self.audit.error("graph_request_failed", method=method, url=url, error=str(exc))
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        body = response.content
        logger.debug("%s %s -> %s (%d bytes)", method, url, response.status_code, len(body))
        if not 200 <= response.status_code <= 204:
            self.audit.error(
                "graph_request_failed", method=method, url=url, status=response.status_code
            )
            raise ApiError.from_status(method, url, response.status_code, body)

        return body

    def fetch(
        self,
        model_type: Type[ModelT],
        endpoint: str,
        surface: ApiSurface,
        method: str = "GET",
        params: Params = None,
    ) -> ModelT:
        return parse_body(model_type, self.call(endpoint, surface, method=method, params=params))
