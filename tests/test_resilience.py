"""
Tests for outbound call resilience and named locks.
"""
import pytest
import asyncio
from unittest.mock import AsyncMock, MagicMock

from support_relay.services.exceptions import ServiceRequestError, ServiceUnavailableError
from support_relay.session import DistributedLock, DistributedLockManager, LocalLockManager, LockAcquisitionError
from support_relay.utils.resilience import (
    CallTimeoutError,
    CircuitBreakerConfig,
    CircuitOpenError,
    RetryConfig,
    get_circuit_breaker_states,
    resilient_call
)

FAST_RETRY = RetryConfig(
    max_attempts=3,
    wait_min=0,
    wait_max=0,
    retry_exceptions=(ServiceUnavailableError, CallTimeoutError)
)


# ===========================
# Resilient Call
# ===========================

class TestResilientCall:

    async def test_success(self):
        func = AsyncMock(return_value="ok")

        assert await resilient_call("svc", "op", func, retry_config=FAST_RETRY) == "ok"
        func.assert_awaited_once()

    async def test_transient_failure_retried(self):
        func = AsyncMock(side_effect=[ServiceUnavailableError("blip"), "ok"])

        assert await resilient_call("svc", "op", func, retry_config=FAST_RETRY) == "ok"
        assert func.await_count == 2

    async def test_non_transient_failure_not_retried(self):
        func = AsyncMock(side_effect=ServiceRequestError("bad request", status_code=400))

        with pytest.raises(ServiceRequestError):
            await resilient_call("svc", "op", func, retry_config=FAST_RETRY)

        func.assert_awaited_once()

    async def test_timeout(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(CallTimeoutError):
            await resilient_call("svc", "op", slow, timeout=0.01)

    async def test_breaker_opens_and_short_circuits(self):
        func = AsyncMock(side_effect=ServiceUnavailableError("down"))
        config = CircuitBreakerConfig(fail_max=2, reset_timeout=60)

        for _ in range(2):
            with pytest.raises((ServiceUnavailableError, CircuitOpenError)):
                await resilient_call("flaky", "op", func, circuit_breaker_config=config)

        with pytest.raises(CircuitOpenError):
            await resilient_call("flaky", "op", func, circuit_breaker_config=config)

        assert func.await_count == 2
        assert get_circuit_breaker_states()["flaky"]["state"] == "open"

    async def test_excluded_errors_do_not_trip_breaker(self):
        func = AsyncMock(side_effect=ServiceRequestError("bad request", status_code=400))
        config = CircuitBreakerConfig(fail_max=2, exclude=(ServiceRequestError,))

        for _ in range(3):
            with pytest.raises(ServiceRequestError):
                await resilient_call("picky", "op", func, circuit_breaker_config=config)

        assert get_circuit_breaker_states()["picky"]["state"] == "closed"


# ===========================
# Local Locks
# ===========================

class TestLocalLocks:

    async def test_serializes_same_name(self):
        manager = LocalLockManager(timeout=5)
        order = []

        async def critical(label: str):
            async with manager.get_lock("handoff:s1"):
                order.append(f"{label}-in")
                await asyncio.sleep(0.01)
                order.append(f"{label}-out")

        await asyncio.gather(critical("a"), critical("b"))

        assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    async def test_different_names_do_not_block(self):
        manager = LocalLockManager(timeout=0.1)

        async with manager.get_lock("handoff:s1"):
            async with manager.get_lock("handoff:s2"):
                pass

    async def test_timeout_raises(self):
        manager = LocalLockManager(timeout=0.05)

        async with manager.get_lock("handoff:s1"):
            with pytest.raises(LockAcquisitionError):
                async with manager.get_lock("handoff:s1"):
                    pass

    async def test_unused_locks_dropped(self):
        manager = LocalLockManager(timeout=5)

        async with manager.get_lock("handoff:s1"):
            assert "handoff:s1" in manager._locks

        assert manager._locks == {}


# ===========================
# Distributed Locks
# ===========================

class TestDistributedLocks:

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        client.set = AsyncMock(return_value=True)
        client.eval = AsyncMock(return_value=1)
        return client

    async def test_acquire_and_release(self, redis_client):
        lock = DistributedLockManager(redis_client, timeout=30).get_lock("handoff:s1")

        async with lock:
            assert lock.acquired is True

        set_call = redis_client.set.await_args
        assert set_call.args[0] == "lock:handoff:s1"
        assert set_call.kwargs == {"nx": True, "ex": 30}
        assert redis_client.eval.await_args.args[2:] == ("lock:handoff:s1", set_call.args[1])
        assert lock.acquired is False

    async def test_contended_lock_gives_up(self, redis_client):
        redis_client.set.return_value = None
        lock = DistributedLock(redis_client, "handoff:s1", retry_attempts=3, retry_delay=0.001)

        with pytest.raises(LockAcquisitionError):
            await lock.acquire()

        assert redis_client.set.await_count == 3

    async def test_release_after_expiry(self, redis_client):
        redis_client.eval.return_value = 0
        lock = DistributedLock(redis_client, "handoff:s1")

        await lock.acquire()

        assert await lock.release() is False
        assert lock.acquired is False
