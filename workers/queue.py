"""
Job Queue Service

Enqueue maintenance jobs on the ARQ worker and read their status back.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from arq import create_pool
from arq.connections import ArqRedis

from workers.jobs import read_job_status, write_job_status
from workers.settings import get_redis_settings


# Module-level connection pool
_redis_pool: Optional[ArqRedis] = None


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis connection pool."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = await create_pool(get_redis_settings())
    return _redis_pool


async def close_redis_pool():
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool:
        await _redis_pool.close()
        _redis_pool = None


async def enqueue_company_reconciliation(performed_by: Optional[str] = None) -> str:
    """
    Queue a company reconciliation run.

    Args:
        performed_by: Admin principal id recorded on the join audit rows

    Returns:
        Job ID for tracking
    """
    job_id = str(uuid.uuid4())
    redis = await get_redis_pool()

    await write_job_status(
        redis,
        job_id,
        "queued",
        job_id=job_id,
        kind="reconcile_companies",
        performed_by=performed_by,
        created_at=datetime.now(timezone.utc).isoformat()
    )
    await redis.enqueue_job("reconcile_companies_job", job_id, performed_by, _job_id=job_id)

    return job_id


async def get_job_status(job_id: str) -> Optional[Dict[str, Any]]:
    """Status record of a queued job, or None if not found."""
    return await read_job_status(await get_redis_pool(), job_id)
