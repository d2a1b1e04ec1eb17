from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Optional

import httpx
from flask import Flask, jsonify, request

from b2c_tenant.audit import AuditBuffer, JsonAuditLogger
from b2c_tenant.auth import TokenKind
from b2c_tenant.config import DirectoryConfig
from b2c_tenant.exceptions import (
    AuthError,
    ConfigurationError,
    DirectoryError,
    NotFound,
    UnknownTenant,
    ValidationError,
)
from b2c_tenant.tenant_manager import TenantManager


def _error_status(exc: DirectoryError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, (NotFound, UnknownTenant)):
        return 404
    if isinstance(exc, ConfigurationError):
        return 500
    if isinstance(exc, AuthError):
        return 502
    status = getattr(exc, "status", None)
    return status if status and status >= 400 else 502


def _limit_arg(default: int = 100) -> int:
    limit_param = request.args.get("limit")
    try:
        return int(limit_param) if limit_param else default
    except ValueError:
        return default


def create_app(
    config_path: str | os.PathLike[str] = "config/tenants.yaml",
    transport: Optional[httpx.BaseTransport] = None,
    audit_logger: Optional[JsonAuditLogger] = None,
) -> Flask:
    config = DirectoryConfig.load(Path(config_path))
    audit_logger = audit_logger or JsonAuditLogger()
    if audit_logger.buffer is None:
        audit_logger.buffer = AuditBuffer()
    audit_buffer = audit_logger.buffer
    manager = TenantManager(config, audit_logger=audit_logger, transport=transport)

    app = Flask(__name__)
    app.config["TENANT_MANAGER"] = manager
    app.config["AUDIT_BUFFER"] = audit_buffer

    @app.errorhandler(DirectoryError)
    def directory_error(exc: DirectoryError):
        payload = {"error": str(exc), "status": getattr(exc, "status", None)}
        return jsonify(payload), _error_status(exc)

    @app.get("/tenants/<tenant_domain>/users/<user_id>/memberGroups")
    def member_groups(tenant_domain: str, user_id: str):
        detailed = request.args.get("detailed", "").lower() in {"1", "true", "yes"}
        groups = manager.run_operation(
            tenant_domain=tenant_domain,
            correlation_id=request.headers.get("X-Correlation-ID") or str(uuid.uuid4()),
            operation=lambda ops: (
                ops.get_member_groups_detailed(user_id) if detailed else ops.get_member_group_ids(user_id)
            ),
            token_kind=TokenKind.LEGACY,
        )
        return jsonify({"groups": groups})

    @app.get("/tenants/<tenant_domain>/reports/b2cAuthenticationCount")
    def authentication_count(tenant_domain: str):
        count = manager.run_operation(
            tenant_domain=tenant_domain,
            operation=lambda ops: ops.get_b2c_authentication_count(),
            token_kind=TokenKind.LEGACY,
        )
        return jsonify({"count": count})

    @app.get("/audit.json")
    def audit_json():
        payload = [record.as_dict() for record in audit_buffer.latest(limit=_limit_arg())]
        return jsonify({"events": payload, "count": len(payload)})

    return app


if __name__ == "__main__":
    app = create_app(os.getenv("B2C_TENANT_CONFIG", "config/tenants.yaml"))
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5000)))
