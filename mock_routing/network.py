# mock_routing/network.py
# Simulated network latency: every delivery runs in its own task after a configurable delay.
import asyncio
import logging
import random
from typing import Callable, Optional, Set

from .errors import ChannelClosed

logger = logging.getLogger(__name__)

DEFAULT_DELAY_MS = 1000


class SimulatedNetwork:
    def __init__(self, delay_ms: int = DEFAULT_DELAY_MS, jitter_ms: int = 0, loop=None):
        self.delay_ms = 0
        self.jitter_ms = 0
        self.set_delay(delay_ms, jitter_ms)
        self.loop = loop
        self._tasks: Set[asyncio.Task] = set()

    def set_delay(self, delay_ms: int, jitter_ms: Optional[int] = None):
        if delay_ms < 0:
            raise ValueError(f"delay must be non-negative, got {delay_ms}")
        if jitter_ms is not None:
            if jitter_ms < 0:
                raise ValueError(f"jitter must be non-negative, got {jitter_ms}")
            self.jitter_ms = jitter_ms
        self.delay_ms = delay_ms

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _delay_sec(self, delay_ms: Optional[int]) -> float:
        ms = self.delay_ms if delay_ms is None else delay_ms
        if self.jitter_ms and delay_ms is None:
            ms += random.uniform(0, self.jitter_ms)
        return ms / 1000.0

    def schedule(self, deliver: Callable[..., None], *args, delay_ms: Optional[int] = None) -> asyncio.Task:
        """Run deliver(*args) after the delay in an independent task; returns immediately."""
        loop = self.loop or asyncio.get_running_loop()
        task = loop.create_task(self._deliver_later(self._delay_sec(delay_ms), deliver, args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _deliver_later(self, delay: float, deliver, args):
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            deliver(*args)
        except ChannelClosed as e:
            # fire-and-forget: the receiver is gone
            logger.warning(f"Delivery dropped: {e}")
        except Exception:
            logger.exception(f"Delivery failed: {deliver!r}")

    async def drain(self):
        """Wait until every scheduled delivery, including ones scheduled meanwhile, has run."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> int:
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        return len(tasks)
