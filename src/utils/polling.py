import asyncio
import time
from typing import Any, Awaitable, Callable, Optional


class PollTimeoutError(Exception):
    def __init__(self, timeout: float, elapsed: float, last_value: Any = None):
        super().__init__(f"condition not met within {timeout:.1f}s")
        self.timeout = timeout
        self.elapsed = elapsed
        self.last_value = last_value


async def poll_until(
    fetch: Callable[[], Awaitable[Any]],
    predicate: Callable[[Any], bool],
    interval: float,
    timeout: float,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_poll: Optional[Callable[[Any], None]] = None,
) -> Any:
    """
    Call ``fetch`` every ``interval`` seconds until ``predicate`` accepts its result.

    Returns the accepted value. Raises PollTimeoutError once ``timeout`` seconds
    have elapsed on ``clock``; the last sleep is clipped to the remaining time so
    a run that never succeeds waits exactly ``timeout``.
    """
    started = clock()
    deadline = started + timeout
    while True:
        value = await fetch()
        if on_poll:
            on_poll(value)
        if predicate(value):
            return value
        remaining = deadline - clock()
        if remaining <= 0:
            raise PollTimeoutError(timeout, clock() - started, value)
        await sleep(min(interval, remaining))
