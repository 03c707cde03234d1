"""
Bounded observation collection window.

A CollectionWindow is the hard timeout that ends collection at one reference
point. It ticks at a fixed interval so the workflow can publish progress, can
be stopped early by the operator, and can be cancelled without leaving any
scheduled callback behind.
"""

from enum import Enum
from typing import Callable, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)


class WindowOutcome(Enum):
    """How a collection window ended."""

    ELAPSED = 'elapsed'        # hard timeout reached
    STOPPED = 'stopped'        # operator ended it early
    CANCELLED = 'cancelled'    # workflow cancelled; data is discarded


class CollectionWindow:
    """
    Cancellable timer with progress ticks.

    Usage:
        window = CollectionWindow(15.0, 0.1, on_tick=lambda p: print(p))
        outcome = await window.run()

    Notes:
        - stop() and cancel() may be called from any coroutine on the same
          loop, before or during run()
        - on_tick receives progress in [0, 1]; the last tick of an elapsed
          window is exactly 1.0
    """

    def __init__(
        self,
        duration_s: float,
        tick_interval_s: float,
        on_tick: Optional[Callable[[float], None]] = None,
    ):
        """
        Initialize window.

        Args:
            duration_s: Hard timeout (s)
            tick_interval_s: Progress tick period (s)
            on_tick: Progress callback
        """
        if duration_s <= 0:
            raise ValueError(f"Window duration must be positive: {duration_s}")
        if tick_interval_s <= 0:
            raise ValueError(f"Tick interval must be positive: {tick_interval_s}")

        self.duration_s = duration_s
        self.tick_interval_s = tick_interval_s
        self.on_tick = on_tick
        self.outcome: Optional[WindowOutcome] = None

        self._elapsed = 0.0
        self._stop_requested = False
        self._cancel_requested = False
        self._wakeup: Optional[asyncio.Event] = None

    @property
    def progress(self) -> float:
        return min(self._elapsed / self.duration_s, 1.0)

    @property
    def is_running(self) -> bool:
        return self._wakeup is not None and self.outcome is None

    def stop(self):
        """End the window early, keeping collected data."""
        self._stop_requested = True
        if self._wakeup is not None:
            self._wakeup.set()

    def cancel(self):
        """End the window and mark its data for discarding."""
        self._cancel_requested = True
        if self._wakeup is not None:
            self._wakeup.set()

    def _requested_outcome(self) -> Optional[WindowOutcome]:
        if self._cancel_requested:
            return WindowOutcome.CANCELLED
        if self._stop_requested:
            return WindowOutcome.STOPPED
        return None

    def _tick(self):
        if self.on_tick is not None:
            self.on_tick(self.progress)

    async def run(self) -> WindowOutcome:
        """
        Run until elapsed, stopped or cancelled.

        Returns:
            WindowOutcome describing how the window ended
        """
        loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        start = loop.time()
        deadline = start + self.duration_s

        while True:
            requested = self._requested_outcome()
            if requested is not None:
                self.outcome = requested
                break

            now = loop.time()
            self._elapsed = min(now - start, self.duration_s)
            remaining = deadline - now
            if remaining <= 0:
                self._elapsed = self.duration_s
                self._tick()
                self.outcome = WindowOutcome.ELAPSED
                break

            self._tick()
            try:
                await asyncio.wait_for(
                    self._wakeup.wait(), timeout=min(self.tick_interval_s, remaining)
                )
            except asyncio.TimeoutError:
                continue

        logger.debug(f"Collection window ended: {self.outcome.value} at {self._elapsed:.2f}s")
        return self.outcome
