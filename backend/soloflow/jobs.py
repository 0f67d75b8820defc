"""
Shared job runner for scheduled background jobs.
Used by the app scheduler and the cron script.
"""
import asyncio
from datetime import datetime

from sqlmodel import Session

from soloflow.core.logging_setup import logger
from soloflow.db import session as db_session
from soloflow.services.maintenance import MaintenanceReport, run_subscription_maintenance

MAINTENANCE_JOB_ID = "subscription_maintenance"


def run_maintenance_once(now: datetime | None = None) -> MaintenanceReport:
    with Session(db_session.engine) as session:
        report = run_subscription_maintenance(session, now=now)
    failed = sum(1 for item in report.results if not item.success)
    if failed:
        logger.warning("Subscription maintenance finished with %s failed record(s)", failed)
    return report


async def run_maintenance_job() -> dict[str, object]:
    try:
        report = await asyncio.to_thread(run_maintenance_once)
    except Exception as exc:
        logger.error("Subscription maintenance job failed: %s", exc)
        raise
    logger.info("Subscription maintenance job completed: %s", report.message)
    return {"message": report.message, "count": report.processed}
