"""
arq queue client used by the API to hand work to the background worker.

Enqueueing is best-effort: a Redis outage is logged and reported as
``None`` so that registration never fails because mail could not be queued.
"""

from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from redis.exceptions import RedisError

from sessionauth.config import settings
from sessionauth.core.logging import get_logger

logger = get_logger(__name__)

_pool: ArqRedis | None = None


async def get_queue() -> ArqRedis:
    """Get or lazily create the shared arq pool."""
    global _pool
    if _pool is None:
        _pool = await create_pool(RedisSettings.from_dsn(settings.ARQ_REDIS_URL))
        logger.info("arq_pool_created", redis_url=settings.ARQ_REDIS_URL)
    return _pool


async def enqueue_job(function_name: str, *args: Any, **kwargs: Any) -> str | None:
    """
    Enqueue a registered worker function.

    Returns:
        The job id, or None when the job could not be queued
    """
    try:
        pool = await get_queue()
        job = await pool.enqueue_job(function_name, *args, **kwargs)
    except (RedisError, OSError) as e:
        logger.error(
            "job_enqueue_error",
            function=function_name,
            error=str(e),
            error_type=type(e).__name__,
        )
        return None

    if job is None:
        # arq returns None when a job with the same id already exists
        logger.warning("job_enqueue_duplicate", function=function_name)
        return None

    logger.debug("job_enqueued", function=function_name, job_id=job.job_id)
    return job.job_id


async def close_queue() -> None:
    """Close the arq pool (called on shutdown)."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
        logger.info("arq_pool_closed")
