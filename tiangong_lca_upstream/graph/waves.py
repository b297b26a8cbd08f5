"""Bounded-concurrency fan-out executed in sequential waves."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

from tiangong_lca_upstream.core.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def run_in_waves(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    limit: int,
    label: str = "wave",
) -> list[R | BaseException]:
    """Run ``worker`` over ``items`` at most ``limit`` at a time.

    Each wave is launched together and fully awaited before the next one starts, so every
    result of wave n is available before wave n+1 begins. Results keep input order; a failed
    item yields its exception in place of a result and never cancels its siblings.
    """
    size = max(int(limit), 1)
    results: list[R | BaseException] = []
    total_waves = (len(items) + size - 1) // size
    for wave_index, start in enumerate(range(0, len(items), size), start=1):
        wave = items[start : start + size]
        LOGGER.debug("waves.start", label=label, wave=wave_index, total=total_waves, size=len(wave))
        outcomes = await asyncio.gather(*(worker(item) for item in wave), return_exceptions=True)
        failures = sum(1 for outcome in outcomes if isinstance(outcome, BaseException))
        if failures:
            LOGGER.warning("waves.partial_failure", label=label, wave=wave_index, failures=failures, size=len(wave))
        results.extend(outcomes)
    return results
