"""Messaging collaborator boundary.

Delivery (email/SMS providers, task systems) lives outside this service.
Nurture steps and review requests record the intent to send and the id
the dispatcher hands back; they never talk to a provider directly.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol
from uuid import UUID, uuid4

from practice_growth.core.structured_logging import build_log_context

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """Raised by a dispatcher when a message or task could not be handed off."""

    pass


class MessageDispatcher(Protocol):
    def send_email(
        self, org_id: UUID, to: str, template_id: str | None, context: dict[str, Any]
    ) -> str: ...

    def send_sms(
        self, org_id: UUID, to: str, template_id: str | None, context: dict[str, Any]
    ) -> str: ...

    def create_task(
        self,
        org_id: UUID,
        title: str,
        description: str | None,
        assignee_id: UUID | None,
        context: dict[str, Any],
    ) -> str: ...


class NullDispatcher:
    """Log the intent and return a synthetic id; nothing is delivered."""

    def _record(self, kind: str, org_id: UUID, context: dict[str, Any]) -> str:
        external_id = f"{kind}-{uuid4().hex[:12]}"
        logger.info(
            "Dispatch intent %s id=%s",
            kind,
            external_id,
            extra={
                "context": build_log_context(
                    org_id=org_id,
                    entity_type=context.get("entity_type"),
                    entity_id=context.get("entity_id"),
                )
            },
        )
        return external_id

    def send_email(self, org_id, to, template_id, context):
        return self._record("email", org_id, context)

    def send_sms(self, org_id, to, template_id, context):
        return self._record("sms", org_id, context)

    def create_task(self, org_id, title, description, assignee_id, context):
        return self._record("task", org_id, context)


default_dispatcher: MessageDispatcher = NullDispatcher()


def get_dispatcher() -> MessageDispatcher:
    """FastAPI dependency for the active dispatcher."""
    return default_dispatcher
