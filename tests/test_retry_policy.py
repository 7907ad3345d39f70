import pytest

from threshold_bot.engines.execution.retry import RetryPolicy
from threshold_bot.errors import RateLimited, RateLimitExceeded, RemoteError


class _Sleeps:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _flaky(rate_limits: int, result="ok"):
    calls = {"n": 0}

    async def _fn():
        calls["n"] += 1
        if calls["n"] <= rate_limits:
            raise RateLimited("429", status_code=429)
        return result

    return _fn, calls


def test_schedule_is_exponential_and_capped():
    assert RetryPolicy().schedule_ms() == [1000, 2000, 4000]
    assert RetryPolicy(max_retries=6).schedule_ms() == [1000, 2000, 4000, 8000, 10_000, 10_000]


@pytest.mark.anyio
async def test_three_rate_limits_then_success_sleeps_1_2_4_seconds():
    sleeps = _Sleeps()
    fn, calls = _flaky(3)
    result = await RetryPolicy(sleep=sleeps).call("JUPITER_QUOTE", fn)
    assert result == "ok"
    assert calls["n"] == 4
    assert sleeps.calls == [1.0, 2.0, 4.0]


@pytest.mark.anyio
async def test_fourth_rate_limit_raises_exceeded():
    sleeps = _Sleeps()
    fn, calls = _flaky(4)
    with pytest.raises(RateLimitExceeded) as exc:
        await RetryPolicy(sleep=sleeps).call("JUPITER_QUOTE", fn)
    assert exc.value.attempts == 4
    assert calls["n"] == 4
    assert sleeps.calls == [1.0, 2.0, 4.0]


@pytest.mark.anyio
async def test_other_errors_are_not_retried():
    sleeps = _Sleeps()
    calls = {"n": 0}

    async def _fn():
        calls["n"] += 1
        raise RemoteError("500 Internal Server Error", status_code=500)

    with pytest.raises(RemoteError):
        await RetryPolicy(sleep=sleeps).call("JUPITER_SWAP", _fn)
    assert calls["n"] == 1
    assert sleeps.calls == []


@pytest.mark.anyio
async def test_policy_is_stateless_between_calls():
    sleeps = _Sleeps()
    policy = RetryPolicy(sleep=sleeps)
    fn1, _ = _flaky(2)
    fn2, _ = _flaky(2)
    await policy.call("A", fn1)
    await policy.call("B", fn2)
    assert sleeps.calls == [1.0, 2.0, 1.0, 2.0]
