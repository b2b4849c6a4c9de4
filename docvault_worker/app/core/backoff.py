"""Connection backoff for broker and database start-up.

`exponential_backoff` yields the delay that precedes the caller's next attempt and
sleeps between attempts, so connect loops read as a plain `async for`. This is only
used for infrastructure connects: document processing never sleeps between retries,
redelivery is the broker's job.
"""
from __future__ import annotations

import asyncio
import random
from typing import AsyncIterator


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
    *,
    jitter: float = 0.0,
) -> AsyncIterator[float]:
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        yield delay
        if attempt < max_attempts:
            delay = min(delay * multiplier, max_delay)
            sleep_for = delay
            if jitter > 0:
                sleep_for += random.uniform(0, jitter)
            await asyncio.sleep(sleep_for)
