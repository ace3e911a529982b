"""Tests for the TokenBucket limiter using a fake clock."""

from __future__ import annotations

import pytest

from src.keap_sync.core.rate_limit import TokenBucket


async def test_first_acquire_does_not_wait(limiter, fake_clock):
    await limiter.acquire()
    assert fake_clock.sleeps == []


async def test_back_to_back_acquires_are_spaced(limiter, fake_clock):
    for _ in range(4):
        await limiter.acquire()

    assert sum(fake_clock.sleeps) == pytest.approx(0.3)


async def test_second_acquire_sleeps_once_for_one_interval(limiter, fake_clock):
    await limiter.acquire()
    await limiter.acquire()

    assert fake_clock.sleeps == [pytest.approx(0.1)]


async def test_pacing_holds_at_large_clock_values(fake_clock):
    fake_clock.now = 1_000_000.1
    bucket = TokenBucket(rate=10.0, clock=fake_clock, sleep=fake_clock.sleep)

    for _ in range(20):
        await bucket.acquire()

    assert len(fake_clock.sleeps) == 19
    assert all(s == pytest.approx(0.1) for s in fake_clock.sleeps)


async def test_idle_time_refills(limiter, fake_clock):
    await limiter.acquire()
    fake_clock.now += 5.0

    await limiter.acquire()

    assert fake_clock.sleeps == []


async def test_burst_capacity(fake_clock):
    bucket = TokenBucket(rate=10.0, capacity=3, clock=fake_clock, sleep=fake_clock.sleep)

    for _ in range(3):
        await bucket.acquire()
    assert fake_clock.sleeps == []

    await bucket.acquire()
    assert sum(fake_clock.sleeps) == pytest.approx(0.1)


def test_rate_must_be_positive():
    with pytest.raises(ValueError):
        TokenBucket(rate=0)
