"""
Bounded concurrent fan-out.

Runs one async operation per input with at most `concurrency` in flight.
Failures are isolated per input: they are logged and collected, never raised.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from app.infrastructure.observability.logging import get_logger
from app.models.domain.errors import AccessDeniedError

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(slots=True)
class FanOutFailure(Generic[T]):
    index: int
    item: T
    error: Exception


@dataclass(slots=True)
class FanOutResult(Generic[T, R]):
    """Successful outputs in input order, plus the failures that were absorbed."""

    successes: list[R] = field(default_factory=list)
    failures: list[FanOutFailure[T]] = field(default_factory=list)


async def run_bounded(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[R]],
    concurrency: int | None = 5,
    label: str = "fan_out",
    describe: Callable[[T], str] = str,
) -> FanOutResult[T, R]:
    """
    Apply `operation` to every item with a concurrency ceiling.

    concurrency=1 runs sequentially; None or <= 0 means unbounded.
    """
    outputs: list[tuple[bool, R | Exception] | None] = [None] * len(items)
    semaphore = asyncio.Semaphore(concurrency) if concurrency and concurrency > 0 else None

    async def _run(index: int, item: T) -> None:
        try:
            if semaphore is None:
                outputs[index] = (True, await operation(item))
            else:
                async with semaphore:
                    outputs[index] = (True, await operation(item))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            outputs[index] = (False, e)
            if isinstance(e, AccessDeniedError):
                logger.warning(f"{label}: skipping, no access", item=describe(item), error=str(e))
            else:
                logger.error(
                    f"{label}: item failed",
                    item=describe(item),
                    error_type=type(e).__name__,
                    error=str(e),
                    status_code=getattr(e, "status_code", None),
                )

    await asyncio.gather(*(_run(i, item) for i, item in enumerate(items)))

    result: FanOutResult[T, R] = FanOutResult()
    for index, (item, outcome) in enumerate(zip(items, outputs)):
        ok, value = outcome
        if ok:
            result.successes.append(value)
        else:
            result.failures.append(FanOutFailure(index=index, item=item, error=value))

    logger.info(
        f"{label}: complete",
        total=len(items),
        succeeded=len(result.successes),
        failed=len(result.failures),
        concurrency=concurrency,
    )
    return result
