"""
Job Status Records

Background jobs report progress into a Redis hash `job:<id>` that the API
reads back. Counters are stored as strings and returned as ints.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from arq.connections import ArqRedis


JOB_STATUS_TTL = 86400  # seconds
COUNTER_FIELDS = ("attempted", "linked_count", "failed_count")


def job_key(job_id: str) -> str:
    return f"job:{job_id}"


async def write_job_status(redis: ArqRedis, job_id: str, status: str, **fields) -> None:
    """Merge `status` and `fields` into the job record and refresh its TTL."""
    mapping = {
        "status": status,
        "updated_at": datetime.now(timezone.utc).isoformat(),
        **{key: "" if value is None else str(value) for key, value in fields.items()}
    }
    await redis.hset(job_key(job_id), mapping=mapping)
    await redis.expire(job_key(job_id), JOB_STATUS_TTL)


async def read_job_status(redis: ArqRedis, job_id: str) -> Optional[Dict[str, Any]]:
    """The job record, or None when unknown or expired."""
    raw = await redis.hgetall(job_key(job_id))
    if not raw:
        return None

    record = {
        (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
        for k, v in raw.items()
    }
    for field in COUNTER_FIELDS:
        if record.get(field):
            record[field] = int(record[field])
    return record
