"""APScheduler configuration for the workflow worker."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import logging

from leadflow.config import settings

logger = logging.getLogger(__name__)

# Create scheduler instance
scheduler = AsyncIOScheduler()


async def process_workflow_events():
    """
    Claim due workflow events and run their functions.
    Called by APScheduler every WORKER_POLL_SECONDS.
    """
    from leadflow.workflow import get_workflow_engine

    try:
        stats = await get_workflow_engine().process_pending()
        if stats["claimed"]:
            logger.info(f"Workflow worker processed {stats['claimed']} events: {stats}")
    except Exception as e:
        logger.error(f"❌ Error in workflow worker: {e}", exc_info=True)


def start_scheduler():
    """
    Initialize and start the APScheduler.

    Jobs:
    - Workflow worker: every WORKER_POLL_SECONDS, one instance at a time
    """
    if scheduler.running:
        logger.info("Scheduler already running")
        return

    if not settings.ENABLE_WORKER:
        logger.info("Workflow worker disabled (ENABLE_WORKER=false)")
        return

    try:
        scheduler.add_job(
            process_workflow_events,
            trigger=IntervalTrigger(seconds=settings.WORKER_POLL_SECONDS),
            id='workflow_worker',
            name='Workflow Worker',
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        logger.info(f"✅ Scheduled: Workflow Worker (every {settings.WORKER_POLL_SECONDS}s)")

        scheduler.start()
        logger.info("✅ APScheduler started successfully!")

        for job in scheduler.get_jobs():
            logger.info(f"   • {job.name}: Next run at {job.next_run_time}")

    except Exception as e:
        logger.error(f"❌ Error starting scheduler: {e}")


def stop_scheduler():
    """Stop the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
