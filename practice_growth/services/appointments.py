"""Appointment source boundary.

Scheduling lives outside this service. The review funnel only needs the
visits that finished in a time window, reported as ``CompletedAppointment``
records.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from practice_growth.schemas.review import CompletedAppointment


class AppointmentSource(Protocol):
    def completed_between(
        self, org_id: UUID, start: datetime, end: datetime
    ) -> list[CompletedAppointment]: ...


class NullAppointmentSource:
    """No scheduling system connected; reports no appointments."""

    def completed_between(self, org_id, start, end):
        return []


default_appointment_source: AppointmentSource = NullAppointmentSource()


def get_appointment_source() -> AppointmentSource:
    """FastAPI dependency for the active appointment source."""
    return default_appointment_source
