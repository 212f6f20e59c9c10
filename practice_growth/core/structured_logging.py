"""Structured logging helpers (PHI-safe)."""

import logging
import sys
from typing import Any
from uuid import UUID

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    if any(getattr(h, "_practice_growth", False) for h in root.handlers):
        root.setLevel(level.upper())
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    handler._practice_growth = True
    root.addHandler(handler)
    root.setLevel(level.upper())


def build_log_context(
    *,
    org_id: UUID | str | None = None,
    entity_type: str | None = None,
    entity_id: UUID | str | None = None,
    actor_user_id: UUID | str | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Return a PHI-safe log context dict (identifiers only)."""
    context: dict[str, Any] = {}
    if org_id:
        context["org_id"] = str(org_id)
    if entity_type:
        context["entity_type"] = entity_type
    if entity_id:
        context["entity_id"] = str(entity_id)
    if actor_user_id:
        context["actor_user_id"] = str(actor_user_id)
    if request_id:
        context["request_id"] = request_id
    return context
