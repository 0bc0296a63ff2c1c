"""Match loop scheduler: one recurring asyncio task per playing match."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from engine import TickEngine
from game import Match, MatchStatus
from registry import MatchRegistry

logger = logging.getLogger("duelsnake")

MatchCallback = Callable[[Match], Awaitable[None]]


class MatchLoopScheduler:
    """Drives the tick engine for every playing match.

    Each match gets its own task that sleeps for the match's tick rate, ticks
    once and awaits the state callback before sleeping again, so ticks of one
    match never overlap. A finished match stops ticking at once but stays in
    the registry for ``finish_grace`` seconds.
    """

    def __init__(self, registry: MatchRegistry, engine: TickEngine,
                 on_state: Optional[MatchCallback] = None,
                 on_finished: Optional[MatchCallback] = None,
                 on_evicted: Optional[MatchCallback] = None,
                 finish_grace: float = 5.0):
        self.registry = registry
        self.engine = engine
        self.on_state = on_state
        self.on_finished = on_finished
        self.on_evicted = on_evicted
        self.finish_grace = finish_grace
        self.tasks: dict[str, asyncio.Task] = {}
        self.removals: dict[str, asyncio.TimerHandle] = {}
        self.reaper_task: Optional[asyncio.Task] = None

    def is_running(self, match_id: str) -> bool:
        task = self.tasks.get(match_id)
        return task is not None and not task.done()

    def start(self, match_id: str):
        """Start ticking a playing match, replacing any loop it already has."""
        self.stop(match_id)
        match = self.registry.get(match_id)
        if match is None or match.status != MatchStatus.PLAYING:
            return
        self.tasks[match_id] = asyncio.create_task(self._run(match_id))
        logger.info(f"⏱️ [Match {match_id}] Loop started ({match.tick_rate}s/tick)")

    def stop(self, match_id: str):
        task = self.tasks.pop(match_id, None)
        if task is None:
            return
        if not task.done() and task is not asyncio.current_task():
            task.cancel()
        logger.info(f"⏹️ [Match {match_id}] Loop stopped")

    async def _run(self, match_id: str):
        task = asyncio.current_task()
        try:
            while self.tasks.get(match_id) is task:
                match = self.registry.get(match_id)
                if match is None:
                    return
                await asyncio.sleep(match.tick_rate)
                if self.tasks.get(match_id) is not task:
                    return
                if not self.engine.tick(match_id):
                    return
                if self.on_state:
                    await self.on_state(match)
                if match.status == MatchStatus.FINISHED:
                    self.tasks.pop(match_id, None)
                    if self.on_finished:
                        await self.on_finished(match)
                    self.schedule_removal(match_id)
                    return
        except asyncio.CancelledError:
            pass
        finally:
            if self.tasks.get(match_id) is task:
                self.tasks.pop(match_id, None)

    def schedule_removal(self, match_id: str):
        """Delete the match from the registry once the grace window has passed."""
        old = self.removals.pop(match_id, None)
        if old:
            old.cancel()
        loop = asyncio.get_running_loop()
        self.removals[match_id] = loop.call_later(self.finish_grace, self._remove, match_id)

    def _remove(self, match_id: str):
        self.removals.pop(match_id, None)
        self.registry.delete(match_id)

    def start_reaper(self, waiting_timeout: float, interval: float = 5.0):
        """Periodically evict matches that never left WAITING. Disabled when timeout is 0."""
        if waiting_timeout <= 0 or self.reaper_task is not None:
            return
        self.reaper_task = asyncio.create_task(self._reap(waiting_timeout, interval))

    async def _reap(self, waiting_timeout: float, interval: float):
        try:
            while True:
                await asyncio.sleep(interval)
                await self.evict_stale(waiting_timeout)
        except asyncio.CancelledError:
            pass

    async def evict_stale(self, waiting_timeout: float) -> list[str]:
        evicted = self.registry.stale_waiting(waiting_timeout)
        for match_id in evicted:
            match = self.registry.get(match_id)
            logger.info(f"🧹 [Match {match_id}] Never started within {waiting_timeout}s, evicting")
            if match is not None and self.on_evicted:
                await self.on_evicted(match)
            self.registry.delete(match_id)
        return evicted

    def shutdown(self):
        """Cancel every loop, pending removal and the reaper."""
        for match_id in list(self.tasks):
            self.stop(match_id)
        for handle in self.removals.values():
            handle.cancel()
        self.removals.clear()
        if self.reaper_task is not None:
            self.reaper_task.cancel()
            self.reaper_task = None
