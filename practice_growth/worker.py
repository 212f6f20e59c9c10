"""
Background worker that drives the time-based growth operations.

Usage:
    python -m practice_growth.worker

Every poll interval the worker walks all organizations and, for each one,
runs the maintenance sweeps, advances nurture enrollments and dispatches
due review requests. For production, run this as a separate process
(e.g., systemd service, Docker container).
"""

import asyncio
import logging

from practice_growth.core.config import settings
from practice_growth.core.structured_logging import build_log_context, configure_logging
from practice_growth.db.session import SessionLocal
from practice_growth.services import scheduled_service
from practice_growth.services.appointments import AppointmentSource
from practice_growth.services.messaging import MessageDispatcher, default_dispatcher

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = settings.WORKER_POLL_INTERVAL
BATCH_SIZE = settings.WORKER_BATCH_SIZE


def process_organization(
    db, org_id, dispatcher: MessageDispatcher, source: AppointmentSource | None = None
) -> dict[str, dict[str, int]]:
    """Run one tick for one organization."""
    return {
        "maintenance": scheduled_service.run_maintenance(db, org_id),
        "nurture": scheduled_service.run_nurture(db, org_id),
        "appointment_reviews": scheduled_service.request_appointment_reviews(db, org_id, source=source),
        "reviews": scheduled_service.dispatch_review_requests(
            db, org_id, dispatcher=dispatcher, limit=BATCH_SIZE
        ),
    }


def run_once(dispatcher: MessageDispatcher | None = None) -> int:
    """Process every organization once; returns how many were handled."""
    dispatcher = dispatcher or default_dispatcher
    with SessionLocal() as db:
        org_ids = scheduled_service.list_org_ids(db)

    handled = 0
    for org_id in org_ids:
        # One session per organization so a failure never leaks into the next tenant
        with SessionLocal() as db:
            try:
                summary = process_organization(db, org_id, dispatcher)
                handled += 1
                logger.info(
                    "Organization tick complete: %s",
                    summary,
                    extra={"context": build_log_context(org_id=org_id)},
                )
            except Exception:
                db.rollback()
                logger.exception(
                    "Organization tick failed",
                    extra={"context": build_log_context(org_id=org_id)},
                )
    return handled


async def worker_loop() -> None:
    """Main worker loop - runs a tick for every organization each poll interval."""
    logger.info(
        "Worker starting (poll interval: %ss, batch size: %s)", POLL_INTERVAL_SECONDS, BATCH_SIZE
    )

    while True:
        try:
            await asyncio.to_thread(run_once)
        except Exception as e:
            logger.error("Error in worker loop: %s", type(e).__name__)

        await asyncio.sleep(POLL_INTERVAL_SECONDS)


def main() -> None:
    """Entry point for the worker."""
    try:
        asyncio.run(worker_loop())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")


if __name__ == "__main__":
    main()
