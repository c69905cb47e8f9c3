"""
In-process scheduler for the expiry sweep.

Off by default: production runs the sweep from an external cron hitting
/api/v1/cron/waitlist/expire. Enable with SWEEP_SCHEDULER_ENABLED for single
instance deployments. With several API replicas only one should run it.
"""

from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from campwaitlist.core.config import Settings
from campwaitlist.core.logging import get_logger
from campwaitlist.services.notification_service import Notifier
from campwaitlist.services.offer_service import OfferService
from campwaitlist.services.store_factory import (
    get_checkout_initiator,
    get_notification_sender,
    get_outbox,
    get_queue_store,
)
from campwaitlist.services.sweep_service import ExpirySweeper

logger = get_logger(__name__)

SWEEP_JOB_ID = "waitlist_expiry_sweep"

scheduler: Optional[AsyncIOScheduler] = None


def build_sweeper(settings: Settings) -> ExpirySweeper:
    store = get_queue_store()
    outbox = get_outbox()
    notifier = Notifier(outbox, settings)
    offers = OfferService(store, notifier, get_checkout_initiator(), settings)
    return ExpirySweeper(store, offers, notifier, outbox, get_notification_sender(), settings)


async def run_sweep_job(settings: Settings) -> None:
    await build_sweeper(settings).run()


def _on_job_event(event) -> None:
    if event.code == EVENT_JOB_MISSED:
        logger.warning("scheduled_job_missed", job_id=event.job_id, scheduled_run_time=str(event.scheduled_run_time))
    else:
        logger.error("scheduled_job_failed", job_id=event.job_id, error=str(event.exception))


def start_scheduler(settings: Settings) -> AsyncIOScheduler:
    global scheduler
    if scheduler is not None:
        return scheduler

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_listener(_on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)
    scheduler.add_job(
        run_sweep_job,
        IntervalTrigger(minutes=settings.SWEEP_INTERVAL_MINUTES),
        args=[settings],
        id=SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info("sweep_scheduler_started", interval_minutes=settings.SWEEP_INTERVAL_MINUTES)
    return scheduler


def shutdown_scheduler() -> None:
    global scheduler
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
