"""
Lifecycle Worker

Scheduled expiry sweep and on-demand company reconciliation.
"""

import logging
import uuid
from typing import Optional

from arq import ArqRedis

from database.connection import get_db_context
from services.lifecycle import close_expired_rfps
from services.company_linkage import reconcile_all
from workers.jobs import write_job_status

logger = logging.getLogger("rfp_marketplace.workers.lifecycle")


async def close_expired_rfps_job(ctx: dict):
    """
    Cron job: close every active RFP past its closing date.

    The sweep is a conditional update, so overlapping runs (or a run racing a
    status-filtered listing) close and notify each RFP once.
    """
    async with get_db_context() as db:
        result = await close_expired_rfps(db)

    if result.updated_count:
        logger.info(f"Scheduled sweep closed {result.updated_count} RFP(s)")
    return result.model_dump(mode="json")


async def reconcile_companies_job(ctx: dict, job_id: str, performed_by: Optional[str] = None):
    """
    Link legacy free-text company names to company records.

    Args:
        ctx: ARQ context with Redis connection
        job_id: Tracking id written by `enqueue_company_reconciliation`
        performed_by: Admin who requested the run
    """
    redis: ArqRedis = ctx["redis"]

    logger.info(f"Starting company reconciliation job {job_id}")
    await write_job_status(redis, job_id, "running")

    try:
        async with get_db_context() as db:
            admin_id = uuid.UUID(performed_by) if performed_by else None
            result = await reconcile_all(db, performed_by=admin_id)
    except Exception as e:
        logger.error(f"Company reconciliation job {job_id} failed: {str(e)}")
        await write_job_status(redis, job_id, "failed", error=str(e))
        raise

    await write_job_status(
        redis,
        job_id,
        "completed",
        attempted=result.attempted,
        linked_count=result.linked_count,
        failed_count=len(result.failures)
    )
    logger.info(
        f"Company reconciliation job {job_id} completed: "
        f"{result.linked_count} linked, {len(result.failures)} failed"
    )
    return result.model_dump(mode="json")
