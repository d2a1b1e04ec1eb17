from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from pydantic import BaseModel

from b2c_tenant.audit import JsonAuditLogger
from b2c_tenant.auth import TokenKind
from b2c_tenant.config import DirectoryConfig
from b2c_tenant.exceptions import DirectoryError, MembershipError
from b2c_tenant.models import MembershipChange
from b2c_tenant.operations import DirectoryService
from b2c_tenant.tenant_manager import TenantManager


class CliOperation(NamedTuple):
    token_kind: TokenKind
    required: Sequence[str]
    run: Callable[[DirectoryService, argparse.Namespace], Any]


OPERATIONS: Dict[str, CliOperation] = {
    "get-user": CliOperation(TokenKind.GRAPH, ["user_id"], lambda ops, a: ops.get_user(a.user_id)),
    "list-users": CliOperation(
        TokenKind.LEGACY, [], lambda ops, a: ops.get_users(all_pages=a.all_pages)
    ),
    "search-user": CliOperation(TokenKind.GRAPH, ["email"], lambda ops, a: ops.search_user(a.email)),
    "get-group": CliOperation(TokenKind.LEGACY, ["group_id"], lambda ops, a: ops.get_group(a.group_id)),
    "list-groups": CliOperation(
        TokenKind.LEGACY, [], lambda ops, a: ops.get_groups(all_pages=a.all_pages)
    ),
    "group-members": CliOperation(
        TokenKind.GRAPH,
        ["group_id"],
        lambda ops, a: ops.get_group_members(a.group_id, all_pages=a.all_pages),
    ),
    "member-groups": CliOperation(
        TokenKind.LEGACY, ["user_id"], lambda ops, a: ops.get_member_group_ids(a.user_id)
    ),
    "member-groups-detailed": CliOperation(
        TokenKind.LEGACY, ["user_id"], lambda ops, a: ops.get_member_groups_detailed(a.user_id)
    ),
    "add-member": CliOperation(
        TokenKind.LEGACY,
        ["group_id", "email"],
        lambda ops, a: ops.add_group_member(a.group_id, a.email, stop_on_error=not a.keep_going),
    ),
    "remove-member": CliOperation(
        TokenKind.LEGACY,
        ["group_id", "email"],
        lambda ops, a: ops.delete_group_member(a.group_id, a.email, stop_on_error=not a.keep_going),
    ),
    "auth-count": CliOperation(
        TokenKind.LEGACY, [], lambda ops, a: ops.get_b2c_authentication_count()
    ),
    "add-user": CliOperation(
        TokenKind.LEGACY,
        ["email", "display_name", "password"],
        lambda ops, a: ops.add_user(a.email, a.display_name, a.password),
    ),
    "delete-user": CliOperation(
        TokenKind.LEGACY, ["user_id"], lambda ops, a: ops.delete_user(a.user_id)
    ),
}


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Azure AD B2C directory client")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--config", help="Path to tenant configuration YAML")
    source.add_argument(
        "--from-env",
        action="store_true",
        help="Read B2C_CLIENT_ID, B2C_CLIENT_SECRET and B2C_TENANT_DOMAIN",
    )
    parser.add_argument("--tenant", help="Tenant domain to target (defaults to the only one configured)")
    parser.add_argument("--operation", required=True, choices=sorted(OPERATIONS), help="Operation to run")
    parser.add_argument("--user-id", help="User object ID")
    parser.add_argument("--group-id", help="Group object ID")
    parser.add_argument("--email", help="User email address (or fragment for search-user)")
    parser.add_argument("--display-name", help="Display name for add-user")
    parser.add_argument("--password", help="Initial password for add-user")
    parser.add_argument("--all-pages", action="store_true", help="Follow continuation links on list operations")
    parser.add_argument(
        "--keep-going",
        action="store_true",
        help="Continue membership edits after a failed user and report every result",
    )
    return parser.parse_args(argv)


def to_jsonable(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(by_alias=True)
    if isinstance(result, MembershipChange):
        return result.as_dict()
    if isinstance(result, list):
        return [to_jsonable(item) for item in result]
    return result


def error_payload(exc: DirectoryError) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"error": str(exc), "type": type(exc).__name__}
    status = getattr(exc, "status", None)
    if status is not None:
        payload["status"] = status
    if isinstance(exc, MembershipError):
        payload["results"] = to_jsonable(exc.results)
    return payload


def resolve_tenant(config: DirectoryConfig, requested: Optional[str]) -> str:
    if requested:
        return requested
    if len(config.tenants) != 1:
        raise SystemExit("--tenant is required when more than one tenant is configured")
    return config.tenants[0].tenant_domain


def main(argv: Optional[List[str]] = None, manager: Optional[TenantManager] = None) -> int:
    args = parse_args(argv)
    operation = OPERATIONS[args.operation]

    missing = [name for name in operation.required if not getattr(args, name)]
    if missing:
        flags = ", ".join("--" + name.replace("_", "-") for name in missing)
        raise SystemExit(f"{flags} required for {args.operation}")

    if manager is None:
        config = DirectoryConfig.from_env() if args.from_env else DirectoryConfig.load(Path(args.config))
        manager = TenantManager(config, audit_logger=JsonAuditLogger())
    tenant_domain = resolve_tenant(manager.config, args.tenant)

    try:
        result = manager.run_operation(
            tenant_domain=tenant_domain,
            operation=lambda ops: operation.run(ops, args),
            token_kind=operation.token_kind,
        )
    except DirectoryError as exc:
        print(json.dumps(error_payload(exc), indent=2), file=sys.stderr)
        return 1

    print(json.dumps(to_jsonable(result), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
