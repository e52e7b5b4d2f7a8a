"""
Unit tests for the shared circuit breaker.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import NotFoundError, UpstreamError


class FakeMonotonic:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.fixture
    def clock(self):
        return FakeMonotonic()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker(
            failure_threshold=2,
            recovery_timeout=30.0,
            failure_exceptions=(UpstreamError,),
            name="riot_api",
            clock=clock,
        )

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        failing = AsyncMock(side_effect=UpstreamError("down"))

        for _ in range(2):
            with pytest.raises(UpstreamError):
                await breaker.call(failing)

        assert breaker.is_open()
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(failing)
        assert failing.await_count == 2

    @pytest.mark.asyncio
    async def test_ignores_exceptions_outside_failure_set(self, breaker):
        missing = AsyncMock(side_effect=NotFoundError())

        for _ in range(3):
            with pytest.raises(NotFoundError):
                await breaker.call(missing)

        assert breaker.get_state()["consecutive_failures"] == 0
        assert not breaker.is_open()

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self, breaker, clock):
        failing = AsyncMock(side_effect=UpstreamError("down"))
        for _ in range(2):
            with pytest.raises(UpstreamError):
                await breaker.call(failing)

        clock.now += 31
        result = await breaker.call(AsyncMock(return_value="ok"))

        assert result == "ok"
        assert breaker.get_state()["state"] == "closed"

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, clock):
        failing = AsyncMock(side_effect=UpstreamError("down"))
        for _ in range(2):
            with pytest.raises(UpstreamError):
                await breaker.call(failing)

        clock.now += 31
        with pytest.raises(UpstreamError):
            await breaker.call(failing)

        assert breaker.is_open()

    @pytest.mark.asyncio
    async def test_open_rejection_reports_time_until_probe(self, breaker, clock):
        failing = AsyncMock(side_effect=UpstreamError("down"))
        for _ in range(2):
            with pytest.raises(UpstreamError):
                await breaker.call(failing)

        clock.now += 10
        with pytest.raises(CircuitBreakerOpenException) as exc_info:
            await breaker.call(failing)

        assert exc_info.value.retry_in == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_half_open_admits_a_single_probe(self, breaker, clock):
        failing = AsyncMock(side_effect=UpstreamError("down"))
        for _ in range(2):
            with pytest.raises(UpstreamError):
                await breaker.call(failing)
        clock.now += 31

        release = asyncio.Event()

        async def slow_probe():
            await release.wait()
            return "ok"

        probe = asyncio.create_task(breaker.call(slow_probe))
        await asyncio.sleep(0)

        second = AsyncMock(return_value="ok")
        with pytest.raises(CircuitBreakerOpenException) as exc_info:
            await breaker.call(second)
        second.assert_not_awaited()
        assert "HALF_OPEN" in str(exc_info.value)

        release.set()
        assert await probe == "ok"
        assert breaker.get_state()["state"] == "closed"
        assert await breaker.call(second) == "ok"

    @pytest.mark.asyncio
    async def test_probe_answered_with_not_found_closes(self, breaker, clock):
        failing = AsyncMock(side_effect=UpstreamError("down"))
        for _ in range(2):
            with pytest.raises(UpstreamError):
                await breaker.call(failing)
        clock.now += 31

        with pytest.raises(NotFoundError):
            await breaker.call(AsyncMock(side_effect=NotFoundError()))

        assert breaker.get_state()["state"] == "closed"
