"""
Workers Package

Background job processing with ARQ (async Redis queue).
"""

from workers.settings import WorkerSettings, get_redis_settings
from workers.lifecycle import close_expired_rfps_job, reconcile_companies_job
from workers.queue import (
    get_redis_pool,
    close_redis_pool,
    enqueue_company_reconciliation,
    get_job_status
)

__all__ = [
    # Settings
    "WorkerSettings",
    "get_redis_settings",
    # Jobs
    "close_expired_rfps_job",
    "reconcile_companies_job",
    # Queue operations
    "get_redis_pool",
    "close_redis_pool",
    "enqueue_company_reconciliation",
    "get_job_status"
]
