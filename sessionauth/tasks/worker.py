"""
arq worker configuration.

Run worker with: arq sessionauth.tasks.worker.WorkerSettings
"""

from typing import Any

from arq.connections import RedisSettings
from arq.worker import func

from sessionauth.config import settings
from sessionauth.core.logging import configure_logging, get_logger
from sessionauth.tasks.email_jobs import send_verification_email_job

logger = get_logger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    configure_logging()
    logger.info("arq_worker_starting", redis_url=settings.ARQ_REDIS_URL)


async def shutdown(ctx: dict[str, Any]) -> None:
    logger.info("arq_worker_shutdown")


class WorkerSettings:
    """arq worker configuration."""

    redis_settings = RedisSettings.from_dsn(settings.ARQ_REDIS_URL)

    max_jobs = 10
    job_timeout = 120
    keep_result = settings.ARQ_KEEP_RESULT

    on_startup = startup
    on_shutdown = shutdown

    functions = [
        func(send_verification_email_job, max_tries=settings.ARQ_MAX_TRIES),
    ]
