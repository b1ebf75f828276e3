"""
ARQ Worker Settings

Configuration for the async Redis queue worker and the lifecycle cron.
"""

import logging

from arq import cron
from arq.connections import RedisSettings

from config.settings import settings
from workers.lifecycle import close_expired_rfps_job, reconcile_companies_job

logger = logging.getLogger("rfp_marketplace.workers")


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from the REDIS_URL setting."""
    return RedisSettings.from_dsn(settings.redis_url)


def sweep_minutes() -> set[int]:
    """Minutes of the hour at which the expiry sweep runs."""
    return set(range(0, 60, settings.lifecycle_sweep_minutes))


class WorkerSettings:
    """
    ARQ Worker configuration.

    Usage:
        arq workers.settings.WorkerSettings
    """

    # Redis connection
    redis_settings = get_redis_settings()

    # Job functions to register
    functions = [
        reconcile_companies_job,
    ]

    # Expiry sweep bounds how long an RFP can read as active past its deadline
    cron_jobs = [
        cron(
            close_expired_rfps_job,
            minute=sweep_minutes(),
            run_at_startup=True,
            unique=True
        ),
    ]

    # Worker behavior
    max_jobs = 5  # Max concurrent jobs
    job_timeout = 600  # 10 minutes max per job
    keep_result = 3600  # Keep results for 1 hour

    # Retry settings
    max_tries = 3

    # Health check
    health_check_interval = 30

    @staticmethod
    async def on_startup(ctx):
        """Called when worker starts."""
        logger.info(f"ARQ Worker starting (sweep every {settings.lifecycle_sweep_minutes} min)...")

    @staticmethod
    async def on_shutdown(ctx):
        """Called when worker shuts down."""
        from database.connection import close_db
        await close_db()
        logger.info("ARQ Worker shutting down...")
