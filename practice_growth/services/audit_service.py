"""Audit sink - post-commit record of state-changing operations.

Services commit their primary write first, then call ``emit``. A sink
failure is logged and swallowed so it can never unwind the write it
describes.

Security guidelines:
- Record ids and changed field values only, never names/emails/phones
- ``changes`` values are stringified for JSON-safe sinks
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from practice_growth.core.structured_logging import build_log_context
from practice_growth.db.enums import AuditAction
from practice_growth.db.types import utcnow

logger = logging.getLogger("practice_growth.audit")

# Fields that may carry PHI; replaced with a marker before reaching a sink.
REDACTED_FIELDS = frozenset(
    {
        "first_name",
        "last_name",
        "email",
        "phone",
        "notes",
        "referee_name",
        "referee_email",
        "referee_phone",
        "referee_notes",
    }
)


@dataclass(frozen=True)
class AuditEvent:
    org_id: UUID
    action: AuditAction
    entity_type: str
    entity_id: UUID
    actor_user_id: UUID | None = None
    changes: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)


class AuditSink(Protocol):
    def record(self, event: AuditEvent) -> None: ...


class LoggingAuditSink:
    """Write one structured log line per event."""

    def record(self, event: AuditEvent) -> None:
        context = build_log_context(
            org_id=event.org_id,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            actor_user_id=event.actor_user_id,
        )
        logger.info(
            "audit %s %s id=%s changes=%s",
            event.action.value,
            event.entity_type,
            event.entity_id,
            event.changes,
            extra={"context": context},
        )


class RecordingAuditSink:
    """Keep events in memory (tests, dry runs)."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def actions(self, entity_type: str | None = None) -> list[AuditAction]:
        return [
            e.action for e in self.events if entity_type is None or e.entity_type == entity_type
        ]


default_sink: AuditSink = LoggingAuditSink()


def get_audit_sink() -> AuditSink:
    """FastAPI dependency; tests override it with a RecordingAuditSink."""
    return default_sink


def _serialize(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def sanitize_changes(changes: dict[str, Any] | None) -> dict[str, Any]:
    if not changes:
        return {}
    return {
        key: "[redacted]" if key in REDACTED_FIELDS else _serialize(value)
        for key, value in changes.items()
    }


def emit(
    sink: AuditSink | None,
    *,
    org_id: UUID,
    action: AuditAction,
    entity_type: str,
    entity_id: UUID,
    actor_user_id: UUID | None = None,
    changes: dict[str, Any] | None = None,
) -> None:
    """
    Send an audit event after the primary transaction committed.

    Best-effort: exceptions raised by the sink are logged and suppressed.
    """
    event = AuditEvent(
        org_id=org_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        changes=sanitize_changes(changes),
    )
    try:
        (sink or default_sink).record(event)
    except Exception:
        logger.exception(
            "Audit sink failed for %s %s",
            action.value,
            entity_type,
            extra={"context": build_log_context(org_id=org_id, entity_id=entity_id)},
        )
