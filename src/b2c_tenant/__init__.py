"""Client library for Azure AD B2C tenant directories.

Exposes token acquisition, the request executor for the Azure AD Graph and
Microsoft Graph surfaces, paged result aggregation, and user/group operations.
"""

from .auth import TokenKind, TokenProvider
from .exceptions import (
    ApiError,
    AuthError,
    ConfigurationError,
    DecodeError,
    DirectoryError,
    MembershipError,
    NotFound,
    PaginationError,
    TransportError,
    UnknownTenant,
    ValidationError,
)
from .graph_client import MODERN, FollowLink, GraphClient, LegacySurface, ModernSurface
from .models import AccessToken, Group, MembershipChange, Tenant, User
from .operations import DirectoryService, TenantExecutionContext
from .pagination import collect_all

__version__ = "0.1.0"

__all__ = [
    "AccessToken",
    "ApiError",
    "AuthError",
    "ConfigurationError",
    "DecodeError",
    "DirectoryError",
    "DirectoryService",
    "FollowLink",
    "GraphClient",
    "Group",
    "LegacySurface",
    "MODERN",
    "MembershipChange",
    "MembershipError",
    "ModernSurface",
    "NotFound",
    "PaginationError",
    "Tenant",
    "TenantExecutionContext",
    "TokenKind",
    "TokenProvider",
    "TransportError",
    "UnknownTenant",
    "User",
    "ValidationError",
    "collect_all",
]
