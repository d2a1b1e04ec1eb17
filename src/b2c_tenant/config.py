from __future__ import annotations

import os
from pathlib import Path
from typing import List, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import ConfigurationError
from .models import Tenant

ENV_CLIENT_ID = "B2C_CLIENT_ID"
ENV_CLIENT_SECRET = "B2C_CLIENT_SECRET"
ENV_TENANT_DOMAIN = "B2C_TENANT_DOMAIN"


class SecretRef(BaseModel):
    """Reference to a secret without storing it in the config file.

    Prefer ``env``; ``value`` exists for local development only.
    """

    env: Optional[str] = Field(
        default=None, description="Environment variable name containing the secret"
    )
    value: Optional[str] = Field(
        default=None,
        description="Inline value (use only for local development; avoid in production)",
    )

    model_config = ConfigDict(extra="forbid")

    def resolve(self) -> str:
        if self.env:
            env_value = os.getenv(self.env)
            if env_value:
                return env_value
            raise ValueError(f"Environment variable {self.env} is not set")
        if self.value:
            return self.value
        raise ValueError("No secret reference provided for resolution")


class ClientSecretAuth(BaseModel):
    type: Literal["client_secret"] = "client_secret"
    client_id: str
    client_secret: SecretRef
    authority_host: str = Field(
        default="https://login.microsoftonline.com",
        description="AAD authority host",
    )

    model_config = ConfigDict(extra="forbid")

    @field_validator("authority_host")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class TenantConfig(BaseModel):
    tenant_domain: str
    display_name: Optional[str] = None
    auth: ClientSecretAuth
    legacy_graph_url: str = Field(
        default="https://graph.windows.net",
        description="Azure AD Graph endpoint used by the versioned directory calls.",
    )
    graph_base_url: str = Field(
        default="https://graph.microsoft.com/beta",
        description="Microsoft Graph endpoint. Override for national clouds if needed.",
    )
    legacy_api_version: str = "1.6"
    timeout: float = Field(default=30.0, gt=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("tenant_domain")
    @classmethod
    def ensure_domain(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("tenant_domain must not be empty")
        return value

    @field_validator("legacy_graph_url", "graph_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def build_tenant(self) -> Tenant:
        try:
            client_secret = self.auth.client_secret.resolve()
        except ValueError as exc:
            raise ConfigurationError(f"Tenant {self.tenant_domain}: {exc}") from exc
        return Tenant(
            client_id=self.auth.client_id,
            client_secret=client_secret,
            tenant_domain=self.tenant_domain,
        )


class DirectoryConfig(BaseModel):
    tenants: List[TenantConfig]

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "DirectoryConfig":
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open("r", encoding="utf-8") as handle:
                raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**raw)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DirectoryConfig":
        """Build a single-tenant config from the ``B2C_*`` variables."""
        environ = os.environ if environ is None else environ
        missing = [
            name
            for name in (ENV_CLIENT_ID, ENV_CLIENT_SECRET, ENV_TENANT_DOMAIN)
            if not environ.get(name)
        ]
        if missing:
            raise ValueError(f"Missing environment variables: {', '.join(missing)}")

        tenant = TenantConfig(
            tenant_domain=environ[ENV_TENANT_DOMAIN],
            auth=ClientSecretAuth(
                client_id=environ[ENV_CLIENT_ID],
                client_secret=SecretRef(value=environ[ENV_CLIENT_SECRET]),
            ),
        )
        return cls(tenants=[tenant])
