"""
Fixed-interval polling of a Replicate prediction.

Each attempt sleeps `interval` seconds and then fetches the status once, so
`interval * max_attempts` is the hard wall-clock budget for a stage:
  image: 2s × 45 = 90s
  video: 2s × 90 = 180s
"""

import asyncio
import logging
from typing import Awaitable, Callable

from .errors import PollFailedError, PollTimeoutError
from .models import JobHandle, JobState, primary_output

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


async def wait_for_output(
    client,
    handle: JobHandle,
    interval: float,
    max_attempts: int,
    sleep: Sleep = asyncio.sleep,
    label: str = "prediction",
) -> str:
    """
    Poll `handle` until it succeeds, fails, or the attempt budget runs out.

    Args:
        client:       Anything with an async `poll(handle) -> JobStatus`.
        handle:       The submitted prediction.
        interval:     Seconds to wait before every status fetch.
        max_attempts: Number of status fetches allowed.
        sleep:        Timer coroutine, swapped out in tests.
        label:        Stage name for log lines.

    Returns:
        The prediction's primary output.

    Raises:
        PollFailedError:  The provider reported the job as failed.
        PollTimeoutError: No terminal status within max_attempts.
    """
    for attempt in range(max_attempts):
        await sleep(interval)

        status = await client.poll(handle)
        logger.debug(f"{label} poll #{attempt + 1}/{max_attempts}: {status.state.value}")

        if status.state == JobState.SUCCEEDED:
            logger.info(f"{label} {handle.id} succeeded after {attempt + 1} poll(s)")
            return primary_output(status.output)

        if status.state == JobState.FAILED:
            logger.warning(f"{label} {handle.id} failed: {status.error}")
            raise PollFailedError(status.error or "")

    raise PollTimeoutError(max_attempts, interval * max_attempts)
