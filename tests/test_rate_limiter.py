import asyncio

import pytest

from opera.services.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.mark.asyncio
async def test_first_call_does_not_wait():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
    async with limiter:
        pass
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_waits_out_remaining_interval():
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)
    async with limiter:
        pass
    clock.now += 0.25
    async with limiter:
        pass
    assert clock.sleeps == [pytest.approx(0.75)]


@pytest.mark.asyncio
async def test_concurrent_callers_are_serialized():
    clock = FakeClock()
    limiter = RateLimiter(0.5, clock=clock, sleep=clock.sleep)
    order: list[int] = []

    async def call(n: int):
        async with limiter:
            assert limiter.busy
            order.append(n)
            await asyncio.sleep(0)

    await asyncio.gather(*(call(n) for n in range(3)))

    assert order == [0, 1, 2]
    assert clock.sleeps == [pytest.approx(0.5), pytest.approx(0.5)]
    assert not limiter.busy


@pytest.mark.asyncio
async def test_lock_released_when_body_raises():
    limiter = RateLimiter(0)
    with pytest.raises(RuntimeError):
        async with limiter:
            raise RuntimeError("boom")
    assert not limiter.busy
    assert limiter.time_until_ready() == 0.0
