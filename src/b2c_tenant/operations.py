from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional
from urllib.parse import quote, quote_plus

from .exceptions import DirectoryError, MembershipError, NotFound, ValidationError
from .graph_client import MODERN, GraphClient
from .models import (
    AuthenticationCountReport,
    Group,
    MemberGroupIds,
    MembershipChange,
    Tenant,
    User,
)
from .pagination import collect_all, first_page

logger = logging.getLogger(__name__)

MEMBER_GROUPS_BODY = {"securityEnabledOnly": False}


@dataclass
class TenantExecutionContext:
    tenant: Tenant
    graph: GraphClient
    correlation_id: Optional[str] = None

    @property
    def tenant_domain(self) -> str:
        return self.tenant.tenant_domain


def _require(value: str, what: str) -> str:
    if not value:
        raise ValidationError(f"no {what} specified")
    return value


def _path_segment(value: str) -> str:
    return quote(value, safe="")


def _odata_string(value: str) -> str:
    # single quotes inside an OData string literal are doubled
    return "'" + value.replace("'", "''") + "'"


class DirectoryService:
    """User and group operations for one tenant.

    Read calls are thin wrappers around the request executor. Membership edits
    resolve an email address to every matching user and apply the change to
    each of them in turn; they are not atomic.
    """

    def __init__(self, context: TenantExecutionContext):
        self.context = context

    @property
    def graph(self) -> GraphClient:
        return self.context.graph

    # users

    def get_user(self, object_id: str) -> User:
        object_id = _require(object_id, "user object id")
        return self.graph.fetch(User, f"/users/{_path_segment(object_id)}", MODERN)

    def get_users(self, all_pages: bool = False) -> List[User]:
        if all_pages:
            return collect_all(self.graph, "/users/", self.graph.legacy(), User)
        return first_page(self.graph, "/users/", self.graph.legacy(), User)

    def search_user(self, email_fragment: str) -> List[User]:
        """Users whose first email address contains ``email_fragment`` (case-sensitive)."""

        def matches(user: User) -> bool:
            primary = user.primary_email()
            return primary is not None and email_fragment in primary

        return collect_all(self.graph, "/users", MODERN, User, item_filter=matches)

    def find_users_by_email(self, email: str) -> List[User]:
        email = _require(email, "user email")
        expression = f"otherMails/any(x:x eq {_odata_string(email)})"
        users = first_page(
            self.graph,
            "/users",
            self.graph.legacy(),
            User,
            params="$filter=" + quote_plus(expression),
        )
        if not users:
            raise NotFound(f"no user with email {email} exists")
        return users

    def add_user(self, email: str, display_name: str, password: str) -> User:
        email = _require(email, "user email")
        display_name = _require(display_name, "display name")
        password = _require(password, "password")
        payload = {
            "accountEnabled": True,
            "creationType": "LocalAccount",
            "displayName": display_name,
            "passwordProfile": {
                "password": password,
                "forceChangePasswordNextLogin": False,
            },
            "passwordPolicies": "DisablePasswordExpiration",
            "signInNames": [{"type": "emailAddress", "value": email}],
            "otherMails": [email],
        }
        user = self.graph.fetch(User, "/users", self.graph.legacy(), method="POST", params=payload)
        self.graph.audit.info("user_created", user_object_id=user.object_id)
        return user

    def delete_user(self, object_id: str) -> None:
        object_id = _require(object_id, "user object id")
        try:
            self.graph.call(
                f"/users/{_path_segment(object_id)}", self.graph.legacy(), method="DELETE"
            )
        except NotFound:
            logger.info("User %s was already removed", object_id)
            return
        self.graph.audit.info("user_deleted", user_object_id=object_id)

    # groups

    def get_group(self, group_id: str) -> Group:
        group_id = _require(group_id, "group id")
        return self.graph.fetch(Group, f"/groups/{_path_segment(group_id)}", self.graph.legacy())

    def get_groups(self, all_pages: bool = False) -> List[Group]:
        if all_pages:
            return collect_all(self.graph, "/groups/", self.graph.legacy(), Group)
        return first_page(self.graph, "/groups/", self.graph.legacy(), Group)

    def get_group_members(self, group_id: str, all_pages: bool = False) -> List[User]:
        group_id = _require(group_id, "group id")
        endpoint = f"/groups/{_path_segment(group_id)}/members"
        if all_pages:
            return collect_all(self.graph, endpoint, MODERN, User)
        return first_page(self.graph, endpoint, MODERN, User)

    def get_member_group_ids(self, user_object_id: str) -> List[str]:
        """Object ids of every group the user belongs to, transitive memberships included."""
        user_object_id = _require(user_object_id, "user object id")
        response = self.graph.fetch(
            MemberGroupIds,
            f"/users/{_path_segment(user_object_id)}/getMemberGroups",
            self.graph.legacy(),
            method="POST",
            params=MEMBER_GROUPS_BODY,
        )
        return response.group_ids

    def get_member_groups_detailed(self, user_object_id: str) -> List[str]:
        """Display names of the user's groups.

        Each id is resolved with its own request, so this costs one call per
        group on top of the membership lookup.
        """
        return [
            self.get_group(group_id).display_name
            for group_id in self.get_member_group_ids(user_object_id)
        ]

    def add_group_member(
        self, group_id: str, email: str, stop_on_error: bool = True
    ) -> List[MembershipChange]:
        group_id = _require(group_id, "AAD group")
        email = _require(email, "user email")
        return self._edit_membership(
            group_id,
            email,
            action="add",
            apply=lambda user: self.graph.call(
                f"/groups/{_path_segment(group_id)}/$links/members",
                self.graph.legacy(),
                method="POST",
                params={"url": self._directory_object_url(user.object_id)},
            ),
            stop_on_error=stop_on_error,
        )

    def delete_group_member(
        self, group_id: str, email: str, stop_on_error: bool = True
    ) -> List[MembershipChange]:
        group_id = _require(group_id, "AAD group")
        email = _require(email, "user email")
        return self._edit_membership(
            group_id,
            email,
            action="remove",
            apply=lambda user: self.graph.call(
                f"/groups/{_path_segment(group_id)}/$links/members/{_path_segment(user.object_id)}",
                self.graph.legacy(),
                method="DELETE",
            ),
            stop_on_error=stop_on_error,
        )

    def _directory_object_url(self, object_id: str) -> str:
        return f"{self.graph.legacy_graph_url}/{self.context.tenant_domain}/directoryObjects/{object_id}"

    def _edit_membership(
        self,
        group_id: str,
        email: str,
        action: str,
        apply: Callable[[User], bytes],
        stop_on_error: bool,
    ) -> List[MembershipChange]:
        results: List[MembershipChange] = []
        for user in self.find_users_by_email(email):
            change = MembershipChange(user_object_id=user.object_id, group_id=group_id, action=action)
            results.append(change)
            try:
                apply(user)
            except DirectoryError as exc:
                change.error = exc
                status = getattr(exc, "status", None)
                self.graph.audit.error(
                    "group_member_change_failed",
                    action=action,
                    group_id=group_id,
                    user_object_id=user.object_id,
                    status=status,
                    error=str(exc),
                )
                if stop_on_error:
                    raise MembershipError(
                        f"error while {'adding' if action == 'add' else 'removing'} user "
                        f"{user.object_id} {'to' if action == 'add' else 'from'} group {group_id}: {exc}",
                        results=results,
                        status=status,
                        body=getattr(exc, "body", b""),
                    ) from exc
                continue

            self.graph.audit.info(
                "group_member_added" if action == "add" else "group_member_removed",
                group_id=group_id,
                user_object_id=user.object_id,
            )
        return results

    # reports

    def get_b2c_authentication_count(self) -> float:
        """B2C authentications over the last 30 days (the window is fixed by the service)."""
        report = self.graph.fetch(
            AuthenticationCountReport,
            "/reports/b2cAuthenticationCount/",
            self.graph.legacy("beta"),
        )
        if not report.entries:
            raise NotFound("authentication count report returned no entries")
        return report.entries[0].count
