"""Tests for arq worker configuration, job registration and the queue client."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from sessionauth.config import settings
from sessionauth.tasks import queue
from sessionauth.tasks.worker import WorkerSettings, shutdown, startup


@pytest.mark.unit
class TestWorkerConfiguration:
    """Test worker configuration and job registration."""

    def test_verification_email_job_registered(self):
        function_names = [func.coroutine.__name__ for func in WorkerSettings.functions]

        assert function_names == ["send_verification_email_job"]

    def test_retry_config(self):
        (job,) = WorkerSettings.functions

        assert job.max_tries == settings.ARQ_MAX_TRIES

    async def test_lifecycle_hooks(self):
        with patch("sessionauth.tasks.worker.configure_logging") as mock_configure:
            await startup({})
            await shutdown({})

        mock_configure.assert_called_once()


@pytest.fixture
def pool(monkeypatch) -> MagicMock:
    """Fresh queue module state with create_pool mocked out."""
    mock_pool = MagicMock()
    mock_pool.enqueue_job = AsyncMock()
    mock_pool.close = AsyncMock()
    monkeypatch.setattr(queue, "_pool", None)
    monkeypatch.setattr(queue, "create_pool", AsyncMock(return_value=mock_pool))
    return mock_pool


@pytest.mark.unit
class TestEnqueueJob:
    async def test_returns_job_id(self, pool: MagicMock):
        pool.enqueue_job.return_value = MagicMock(job_id="abc")

        job_id = await queue.enqueue_job("send_verification_email_job", user_id=1, token="t")

        assert job_id == "abc"
        pool.enqueue_job.assert_awaited_once_with(
            "send_verification_email_job", user_id=1, token="t"
        )

    async def test_pool_created_once(self, pool: MagicMock):
        pool.enqueue_job.return_value = MagicMock(job_id="abc")

        await queue.enqueue_job("send_verification_email_job")
        await queue.enqueue_job("send_verification_email_job")

        queue.create_pool.assert_awaited_once()

    async def test_redis_outage_returns_none(self, pool: MagicMock):
        """Queueing is best-effort; the caller never sees the Redis error."""
        pool.enqueue_job.side_effect = RedisConnectionError("down")

        assert await queue.enqueue_job("send_verification_email_job") is None

    async def test_duplicate_job_returns_none(self, pool: MagicMock):
        pool.enqueue_job.return_value = None

        assert await queue.enqueue_job("send_verification_email_job") is None

    async def test_close_queue(self, pool: MagicMock):
        pool.enqueue_job.return_value = MagicMock(job_id="abc")
        await queue.enqueue_job("send_verification_email_job")

        await queue.close_queue()
        await queue.close_queue()

        pool.close.assert_awaited_once()
        assert queue._pool is None
