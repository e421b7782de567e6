import asyncio

import pytest

from app.features.comms_history.pipeline.fan_out import run_bounded
from app.models.domain.errors import AccessDeniedError


@pytest.mark.asyncio
async def test_failures_are_isolated():
    async def operation(value: int) -> int:
        await asyncio.sleep(0.001 * (5 - value))
        if value in (2, 4):
            raise RuntimeError(f"input {value} failed")
        return value * 10

    result = await run_bounded([1, 2, 3, 4, 5], operation, concurrency=2)

    assert result.successes == [10, 30, 50]
    assert [failure.item for failure in result.failures] == [2, 4]
    assert all(isinstance(failure.error, RuntimeError) for failure in result.failures)


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [1, 2, 5])
async def test_concurrency_ceiling_is_respected(concurrency):
    in_flight = 0
    peak = 0

    async def operation(value: int) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005)
        in_flight -= 1
        return value

    result = await run_bounded(list(range(12)), operation, concurrency=concurrency)

    assert result.successes == list(range(12))
    assert peak <= concurrency


@pytest.mark.asyncio
async def test_unbounded_runs_everything_at_once():
    started = asyncio.Event()
    count = 0

    async def operation(value: int) -> int:
        nonlocal count
        count += 1
        if count == 4:
            started.set()
        await asyncio.wait_for(started.wait(), timeout=1)
        return value

    result = await run_bounded([1, 2, 3, 4], operation, concurrency=None)

    assert result.successes == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_access_denied_is_skipped():
    async def operation(mailbox: str) -> str:
        if mailbox == "locked@example.com":
            raise AccessDeniedError("no access", status_code=403)
        return mailbox

    result = await run_bounded(["a@example.com", "locked@example.com"], operation)

    assert result.successes == ["a@example.com"]
    assert result.failures[0].index == 1


@pytest.mark.asyncio
async def test_empty_input():
    async def operation(value):
        return value

    result = await run_bounded([], operation)

    assert result.successes == []
    assert result.failures == []
