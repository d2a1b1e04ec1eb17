from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .exceptions import DecodeError

ModelT = TypeVar("ModelT", bound=BaseModel)
ItemT = TypeVar("ItemT")


class AccessToken(BaseModel):
    """OAuth2 bearer token returned by the token endpoint."""

    access_token: str
    token_type: str

    model_config = ConfigDict(frozen=True, extra="ignore")

    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


@dataclass
class Tenant:
    """Directory session: app registration credentials plus the current token.

    The token is only replaced by the token provider. Nothing checks it for
    expiry; callers re-authenticate when the service starts refusing it.
    """

    client_id: str
    client_secret: str
    tenant_domain: str
    access_token: Optional[AccessToken] = None

    def __repr__(self) -> str:
        return f"Tenant(client_id={self.client_id!r}, tenant_domain={self.tenant_domain!r})"


class DirectoryObject(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _null_as_default(cls, value: Any, info) -> Any:
        # the directory sends explicit nulls for unset attributes
        if value is None:
            field = cls.model_fields[info.field_name]
            return field.get_default(call_default_factory=True)
        return value


class User(DirectoryObject):
    object_id: str = Field(default="", alias="objectId")
    id: str = ""
    display_name: str = Field(default="", alias="displayName")
    email_addresses: List[str] = Field(default_factory=list, alias="otherMails")

    def primary_email(self) -> Optional[str]:
        return self.email_addresses[0] if self.email_addresses else None


class Group(DirectoryObject):
    object_id: str = Field(default="", alias="objectId")
    display_name: str = Field(default="", alias="displayName")


class Page(BaseModel, Generic[ItemT]):
    """One page of a list endpoint: ``{"value": [...], "@odata.nextLink": "..."}``.

    The legacy surface spells the link ``odata.nextLink``; both are accepted.
    """

    items: List[ItemT] = Field(default_factory=list, alias="value")
    next_link: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("@odata.nextLink", "odata.nextLink"),
        serialization_alias="@odata.nextLink",
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class MemberGroupIds(BaseModel):
    group_ids: List[str] = Field(default_factory=list, alias="value")


class AuthenticationCount(BaseModel):
    count: float = Field(alias="AuthenticationCount")


class AuthenticationCountReport(BaseModel):
    entries: List[AuthenticationCount] = Field(default_factory=list, alias="value")


@dataclass
class MembershipChange:
    """Outcome of adding or removing one user for a group membership edit."""

    user_object_id: str
    group_id: str
    action: str
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_dict(self) -> dict:
        return {
            "user_object_id": self.user_object_id,
            "group_id": self.group_id,
            "action": self.action,
            "ok": self.ok,
            "error": str(self.error) if self.error else None,
        }


def parse_body(model_type: Type[ModelT], body: bytes) -> ModelT:
    """Decode a JSON response body into ``model_type`` or raise DecodeError."""
    try:
        return model_type.model_validate_json(body)
    except PydanticValidationError as exc:
        raise DecodeError(f"Could not decode {model_type.__name__} from response: {exc}") from exc
