from __future__ import annotations

import asyncio
import random
from typing import Optional


def compute_backoff(
    attempt: int, base: float = 1.5, jitter: float = 0.5, cap: Optional[float] = None
) -> float:
    """Compute exponential backoff with jitter, optionally capped."""
    delay = base ** attempt
    if cap is not None:
        delay = min(delay, cap)
    return delay + random.uniform(0, jitter)


async def schedule_retry(attempt: int, cap: Optional[float] = None) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, cap=cap)
    await asyncio.sleep(delay)
