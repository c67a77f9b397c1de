from unittest.mock import AsyncMock, patch

import pytest

from shared.cache import redis_client
from shared.cache.redis_client import DistributedLock, LockNotAcquired
from shared.utils.retry import retry_with_backoff
from services.ticket_qr.tasks import qr_tasks


class FakeRedis:
    def __init__(self):
        self.values = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        return True

    async def eval(self, script, numkeys, key, identifier):
        if self.values.get(key) == identifier:
            del self.values[key]
            return 1
        return 0


@pytest.mark.asyncio
async def test_retry_with_backoff_retries_listed_exceptions():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("reset")
        return "ok"

    with patch("shared.utils.retry.asyncio.sleep", AsyncMock()):
        assert await retry_with_backoff(flaky, max_retries=3, exceptions=(ConnectionError,)) == "ok"

    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retry_with_backoff_does_not_retry_other_errors():
    calls = []

    async def broken():
        calls.append(1)
        raise ValueError("bad input")

    with pytest.raises(ValueError):
        await retry_with_backoff(broken, exceptions=(ConnectionError,))

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_lock_is_exclusive_and_released_by_owner():
    fake = FakeRedis()

    with patch.object(redis_client, "get_redis", AsyncMock(return_value=fake)):
        async with DistributedLock("qr-backfill", timeout=0):
            with pytest.raises(LockNotAcquired):
                async with DistributedLock("qr-backfill", timeout=0):
                    pass
        assert fake.values == {}


@pytest.mark.asyncio
async def test_backfill_task_skips_when_another_worker_holds_lock():
    fake = FakeRedis()
    fake.values["lock:qr-backfill"] = "other-worker"

    with patch.object(redis_client, "get_redis", AsyncMock(return_value=fake)), \
            patch.object(qr_tasks.connection, "init_db", AsyncMock()), \
            patch.object(qr_tasks.connection, "close_db", AsyncMock()), \
            patch.object(qr_tasks, "close_redis", AsyncMock()):
        result = await qr_tasks.run_backfill()

    assert result == {"success": True, "skipped": True, "fixed_count": 0}
    assert fake.values["lock:qr-backfill"] == "other-worker"
