"""Latest-input-wins request runner.

Network-bound lookups keyed on user input (e.g. a completion for the text
typed so far) must never report a result for input that has since moved
on. ``LatestOnly`` keeps one request in flight per input: a new input
cancels the previous request and clears its result.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LatestOnly(Generic[T]):
    """Run ``fetch`` for the latest input only.

    Args:
        fetch: Coroutine function producing a result for an input.
        on_result: Called with each result that is still current.
        delay: Quiet period before fetching, in seconds.
        min_length: Inputs this short or shorter are not fetched.
        tail: Send only the last ``tail`` characters of the input.
    """

    def __init__(
        self,
        fetch: Callable[[str], Awaitable[T]],
        on_result: Optional[Callable[[T], None]] = None,
        *,
        delay: float = 0.0,
        min_length: int = 0,
        tail: Optional[int] = None,
    ):
        self._fetch = fetch
        self._on_result = on_result
        self.delay = delay
        self.min_length = min_length
        self.tail = tail

        self._value: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self.result: Optional[T] = None

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def update(self, value: str) -> None:
        """Observe new input; stale work is cancelled and its result cleared."""
        self.cancel()
        self._value = value
        self.result = None
        if len(value) <= self.min_length:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(value))

    async def _run(self, value: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        payload = value[-self.tail :] if self.tail else value
        result = await self._fetch(payload)
        if value != self._value:
            logger.debug("Dropping result for stale input")
            return
        self.result = result
        if self._on_result is not None:
            self._on_result(result)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> Optional[T]:
        """Wait for the current request, if any; returns the current result."""
        task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        return self.result
