"""
Tests for retry.py: delay computation, retry eligibility, the retry loop.
Run with: pytest tests/test_retry.py
"""

import asyncio

import httpx
import pytest

from dialtone.config import RetryPolicy
from dialtone.errors import BadResponse, EmptyResponse, MissingAPIKey
from dialtone.retry import retry_delay, should_retry, with_retry


def _no_jitter(lo, hi):
    return 0.0


def _max_jitter(lo, hi):
    return hi


class _Sleeps:
    """Records requested sleeps instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)


# ---------------------------------------------------------------------------
# retry_delay
# ---------------------------------------------------------------------------

def test_delay_exponential_without_jitter():
    p = RetryPolicy(base_delay=0.4, max_delay=8.0, backoff_multiplier=2.0, jitter_ratio=0.2)
    assert retry_delay(1, p, rand=_no_jitter) == pytest.approx(0.4)
    assert retry_delay(2, p, rand=_no_jitter) == pytest.approx(0.8)
    assert retry_delay(3, p, rand=_no_jitter) == pytest.approx(1.6)


def test_delay_capped_at_max():
    p = RetryPolicy(base_delay=1.0, max_delay=3.0, backoff_multiplier=2.0)
    assert retry_delay(10, p, rand=_no_jitter) == pytest.approx(3.0)


def test_delay_jitter_range_is_symmetric():
    p = RetryPolicy(base_delay=1.0, max_delay=10.0, backoff_multiplier=2.0, jitter_ratio=0.25)
    seen = []

    def rand(lo, hi):
        seen.append((lo, hi))
        return lo

    assert retry_delay(1, p, rand=rand) == pytest.approx(0.75)
    assert seen == [(pytest.approx(-0.25), pytest.approx(0.25))]


def test_delay_never_negative():
    p = RetryPolicy(base_delay=0.0, jitter_ratio=1.0)
    assert retry_delay(1, p, rand=lambda lo, hi: -5.0) == 0.0


def test_delay_attempt_zero_treated_as_first():
    p = RetryPolicy(base_delay=0.5, backoff_multiplier=3.0)
    assert retry_delay(0, p, rand=_no_jitter) == retry_delay(1, p, rand=_no_jitter)


def test_delay_monotonic_and_bounded():
    p = RetryPolicy(base_delay=0.3, max_delay=5.0, backoff_multiplier=1.7, jitter_ratio=0.3)
    delays = [retry_delay(n, p, rand=_no_jitter) for n in range(1, 20)]
    assert delays == sorted(delays)
    for n in range(1, 20):
        assert retry_delay(n, p) <= p.max_delay * (1 + p.jitter_ratio) + 1e-9
        assert retry_delay(n, p, rand=_max_jitter) <= p.max_delay * (1 + p.jitter_ratio) + 1e-9


def test_delay_huge_attempt_caps_at_max():
    p = RetryPolicy()
    assert retry_delay(1100, p, rand=_no_jitter) == pytest.approx(p.max_delay)
    assert retry_delay(1100, p) <= p.max_delay * (1 + p.jitter_ratio) + 1e-9
    assert retry_delay(5000, RetryPolicy(base_delay=0.0), rand=_no_jitter) == 0.0


# ---------------------------------------------------------------------------
# should_retry
# ---------------------------------------------------------------------------

def test_should_retry_classification():
    p = RetryPolicy.standard()
    assert not should_retry(asyncio.CancelledError(), p)
    assert should_retry(httpx.ConnectError("refused"), p)
    assert should_retry(httpx.ReadTimeout("slow"), p)
    assert should_retry(BadResponse(503, "busy"), p)
    assert should_retry(BadResponse(429), p)
    assert not should_retry(BadResponse(400, "bad"), p)
    assert not should_retry(BadResponse(401), p)
    assert not should_retry(EmptyResponse(), p)
    assert not should_retry(MissingAPIKey(), p)
    assert not should_retry(ValueError("x"), p)


def test_should_retry_uses_policy_codes():
    p = RetryPolicy(retryable_status_codes={418})
    assert should_retry(BadResponse(418), p)
    assert not should_retry(BadResponse(503), p)


# ---------------------------------------------------------------------------
# with_retry
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_with_retry_first_try_no_sleep():
    sleeps = _Sleeps()

    async def op():
        return "ok"

    assert await with_retry(op, RetryPolicy.standard(), sleep=sleeps) == "ok"
    assert sleeps.calls == []


@pytest.mark.asyncio
async def test_with_retry_recovers_after_transient():
    sleeps = _Sleeps()
    failures = [BadResponse(503, "busy"), httpx.ConnectError("refused")]
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        if failures:
            raise failures.pop(0)
        return "ok"

    policy = RetryPolicy(max_attempts=3, base_delay=0.1, jitter_ratio=0.0)
    assert await with_retry(op, policy, sleep=sleeps) == "ok"
    assert calls == 3
    assert sleeps.calls == [pytest.approx(0.1), pytest.approx(0.2)]


@pytest.mark.asyncio
async def test_with_retry_non_retryable_status_single_attempt():
    sleeps = _Sleeps()
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        raise BadResponse(400, "bad request")

    with pytest.raises(BadResponse) as exc:
        await with_retry(op, RetryPolicy.standard(), sleep=sleeps)
    assert exc.value.status_code == 400
    assert calls == 1
    assert sleeps.calls == []


@pytest.mark.asyncio
async def test_with_retry_exhausts_and_reraises_last_error():
    sleeps = _Sleeps()
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        raise BadResponse(500, f"attempt {calls}")

    with pytest.raises(BadResponse) as exc:
        await with_retry(op, RetryPolicy(max_attempts=3, jitter_ratio=0.0), sleep=sleeps)
    assert calls == 3
    assert exc.value.message == "attempt 3"
    assert len(sleeps.calls) == 2


@pytest.mark.asyncio
async def test_with_retry_many_attempts_surfaces_last_error():
    sleeps = _Sleeps()
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        raise BadResponse(503, "busy")

    with pytest.raises(BadResponse) as exc:
        await with_retry(op, RetryPolicy(max_attempts=1100), sleep=sleeps)
    assert exc.value == BadResponse(503, "busy")
    assert calls == 1100
    assert max(sleeps.calls) <= 8.0 * 1.2 + 1e-9


@pytest.mark.asyncio
async def test_with_retry_none_policy_never_retries():
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        raise BadResponse(503)

    with pytest.raises(BadResponse):
        await with_retry(op, RetryPolicy.none(), sleep=_Sleeps())
    assert calls == 1


@pytest.mark.asyncio
async def test_with_retry_zero_delay_skips_sleep():
    sleeps = _Sleeps()
    failures = [BadResponse(503)]

    async def op():
        if failures:
            raise failures.pop(0)
        return 1

    assert await with_retry(op, RetryPolicy(base_delay=0.0), sleep=sleeps) == 1
    assert sleeps.calls == []


@pytest.mark.asyncio
async def test_with_retry_cancellation_not_retried():
    calls = 0

    async def op():
        nonlocal calls
        calls += 1
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await with_retry(op, RetryPolicy.standard(), sleep=_Sleeps())
    assert calls == 1


@pytest.mark.asyncio
async def test_with_retry_cancel_during_backoff_sleep():
    started = asyncio.Event()

    async def op():
        raise BadResponse(503)

    async def slow_sleep(seconds):
        started.set()
        await asyncio.sleep(3600)

    task = asyncio.create_task(with_retry(op, RetryPolicy.standard(), sleep=slow_sleep))
    await asyncio.wait_for(started.wait(), 1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
