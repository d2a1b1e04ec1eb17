"""Audit trail for token requests, directory requests and operation runs.

Every event is written as one JSON line. A logger can be bound to a tenant and
a correlation id; everything emitted through the bound logger carries them, so
the token request, the directory calls and the outcome of one operation run
can be tied together.
"""

from __future__ import annotations

import json
import logging
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Deque, Dict, List, Optional, TextIO

_CONTEXT_KEYS = ("tenant_domain", "correlation_id")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class AuditRecord:
    event: str
    level: str
    tenant_domain: Optional[str] = None
    correlation_id: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_utcnow)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "level": self.level,
            "event": self.event,
            "tenant_domain": self.tenant_domain,
            "correlation_id": self.correlation_id,
            **self.fields,
        }


class AuditBuffer:
    """Newest-first ring buffer of audit records, shared across request threads."""

    def __init__(self, capacity: int = 1000):
        self._records: Deque[AuditRecord] = deque(maxlen=capacity)
        self._lock = Lock()

    def add(self, record: AuditRecord) -> None:
        with self._lock:
            self._records.appendleft(record)

    def latest(self, limit: int = 100) -> List[AuditRecord]:
        with self._lock:
            return list(self._records)[:limit]


class JsonAuditLogger:
    def __init__(
        self,
        name: str = "b2c_tenant.audit",
        buffer: Optional[AuditBuffer] = None,
        stream: Optional[TextIO] = None,
        context: Optional[Dict[str, str]] = None,
    ):
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler(stream or sys.stdout)
            handler.setFormatter(_AuditFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)
            self.logger.propagate = False
        self.buffer = buffer
        self.context: Dict[str, str] = dict(context or {})

    def bind(self, **context: Optional[str]) -> "JsonAuditLogger":
        """A logger sharing this one's output whose events also carry ``context``."""
        merged = dict(self.context)
        merged.update({key: value for key, value in context.items() if value is not None})
        return JsonAuditLogger(self.logger.name, buffer=self.buffer, context=merged)

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, fields)

    def error(self, event: str, **fields: Any) -> None:
        self._emit(logging.ERROR, event, fields)

    def _emit(self, level: int, event: str, fields: Dict[str, Any]) -> None:
        context = dict(self.context)
        for key in _CONTEXT_KEYS:
            value = fields.pop(key, None)
            if value is not None:
                context[key] = value

        record = AuditRecord(
            event=event,
            level=logging.getLevelName(level),
            tenant_domain=context.get("tenant_domain"),
            correlation_id=context.get("correlation_id"),
            fields=fields,
        )
        if self.buffer is not None:
            self.buffer.add(record)
        self.logger.log(level, event, extra={"audit_record": record})


class _AuditFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        audit_record: Optional[AuditRecord] = getattr(record, "audit_record", None)
        if audit_record is None:
            return super().format(record)
        return json.dumps({**audit_record.as_dict(), "logger": record.name}, default=str)
