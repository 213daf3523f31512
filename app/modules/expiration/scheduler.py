import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.modules.expiration.expiration_sweeper import ExpirationSweeper

logger = logging.getLogger(__name__)


async def run_expiration_sweep():
    try:
        swept = await ExpirationSweeper.process_weekly_plans()
        if swept:
            logger.info(f"✅ Expiration sweep finished for {swept} users")
    except Exception as e:
        logger.error(f"❌ Expiration sweep failed: {e}", exc_info=True)


async def run_roster_cleanup():
    try:
        await ExpirationSweeper.prune_removed_customers()
    except Exception as e:
        logger.error(f"❌ Roster cleanup failed: {e}", exc_info=True)


def create_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    # Every hour at :15; each timezone group only acts during its local Monday 00:xx
    scheduler.add_job(run_expiration_sweep, "cron", minute=15, id="weekly_plan_expiration", coalesce=True, max_instances=1)
    # Every Monday at 15:00 UTC
    scheduler.add_job(run_roster_cleanup, "cron", day_of_week="mon", hour=15, minute=0, id="expired_roster_cleanup", coalesce=True, max_instances=1)
    return scheduler


def start_scheduler() -> AsyncIOScheduler:
    scheduler = create_scheduler()
    scheduler.start()
    logger.info("✅ Expiration scheduler started")
    return scheduler
