import asyncio
import logging
from typing import Awaitable, Callable, Optional

from di_mcp_server.DiscoveryErrors import DiscoveryIssue, IssueReporter, log_discovery_issue


class PollScheduler:
    """
    Runs a discovery pass at a fixed interval, at most one pass at a time.

    A tick that fires while the previous pass is still running is dropped, it is not queued.
    A failing pass is reported and the next tick still runs.

    Args:
        run_pass (callable): Coroutine function running one pass, returns True when the tool list changed.
        interval_ms (int): The poll interval in milliseconds.
        on_changed (callable, optional): Coroutine function awaited after a pass that changed the tool list.
        on_issue (callable): Receives a 'poll-failure' DiscoveryIssue when a pass raises.
    """

    def __init__(self, run_pass: Callable[[], Awaitable[bool]], interval_ms: int,
                 on_changed: Optional[Callable[[], Awaitable[None]]] = None,
                 on_issue: IssueReporter = log_discovery_issue):
        self.logger = logging.getLogger(__name__)
        self.run_pass = run_pass
        self.interval_ms = interval_ms
        self.on_changed = on_changed
        self.on_issue = on_issue
        self._in_flight = asyncio.Lock()
        self._timer: Optional[asyncio.Task] = None
        self._ticks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def busy(self) -> bool:
        return self._in_flight.locked()

    def start(self):
        if self.running:
            return
        self.logger.info("Polling decision services every %d ms", self.interval_ms)
        self._timer = asyncio.create_task(self._run_timer())

    async def _run_timer(self):
        loop = asyncio.get_running_loop()
        interval = self.interval_ms / 1000
        next_tick = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            # Ticks missed while the event loop was stalled are dropped
            missed = max(0, int((loop.time() - next_tick) // interval))
            next_tick += (missed + 1) * interval
            task = asyncio.create_task(self.tick())
            self._ticks.add(task)
            task.add_done_callback(self._ticks.discard)

    async def tick(self) -> bool:
        """
        Runs one pass unless a pass is already in flight.

        Returns:
            bool: False when the tick was skipped, True otherwise (even when the pass failed).
        """
        if self._in_flight.locked():
            self.logger.debug("Previous poll still in progress, skipping this tick")
            return False

        async with self._in_flight:
            try:
                changed = await self.run_pass()
                if changed and self.on_changed is not None:
                    await self.on_changed()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.on_issue(DiscoveryIssue(kind="poll-failure", message=f"Error while polling decision services: {e}",
                                             error=e))
        return True

    async def stop(self):
        """Cancels the timer, then waits for the pass in flight if any."""
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            await asyncio.gather(timer, return_exceptions=True)

        ticks = list(self._ticks)
        if ticks:
            await asyncio.gather(*ticks, return_exceptions=True)
        self._ticks.clear()
