import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable, Optional, Set

logger = logging.getLogger(__name__)

Fetch = Callable[[Hashable], Awaitable[Any]]
SnapshotHandler = Callable[[Any], None]
FailureHandler = Callable[[BaseException], None]
TickHandler = Callable[[], Any]


class PollScheduler:
    """
    Recurring fetch loop standing in for a push channel.

    • ``start(context, on_snapshot)`` begins polling; the first tick fires
      immediately. Calling it again for the context already being polled is a
      no-op; calling it for another context stops the old loop first.
    • ``stop()`` cancels the loop and every in-flight tick synchronously. Safe
      to call repeatedly or before ``start``.
    • Each tick is its own task, so a slow fetch never delays the cadence.
      Ticks are numbered; a result is handed to ``on_snapshot`` only if it is
      newer than the last one handed over. Older responses arriving late are
      dropped.
    • A failed fetch is logged (and reported to ``on_failure``); the loop keeps
      going and the next tick is the retry.
    • ``on_tick`` runs synchronously as each tick is issued, before its fetch
      starts, so it keeps the cadence even while fetches hang.

    Must be driven from inside a running event loop.
    """

    def __init__(
        self,
        name: str,
        fetch: Fetch,
        interval_s: float,
        on_failure: Optional[FailureHandler] = None,
        on_tick: Optional[TickHandler] = None,
    ):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.name = name
        self.interval_s = interval_s
        self._fetch = fetch
        self._on_failure = on_failure
        self._on_tick = on_tick
        self._on_snapshot: Optional[SnapshotHandler] = None
        self._context: Optional[Hashable] = None
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._generation = 0
        self._last_issued = 0
        self._last_committed = 0
        self.ticks_issued = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def context(self) -> Optional[Hashable]:
        return self._context if self.running else None

    def start(self, context: Hashable, on_snapshot: SnapshotHandler) -> bool:
        if self.running:
            if context == self._context:
                logger.debug("[%s] already polling %s", self.name, context)
                return False
            self.stop()

        loop = asyncio.get_running_loop()
        self._generation += 1
        self._context = context
        self._on_snapshot = on_snapshot
        self._last_issued = 0
        self._last_committed = 0
        self._task = loop.create_task(self._run(self._generation), name=f"poll:{self.name}")
        logger.debug("[%s] started for %s every %.2fs", self.name, context, self.interval_s)
        return True

    def stop(self) -> None:
        if self._task is None:
            return
        self._generation += 1
        self._task.cancel()
        for task in list(self._inflight):
            task.cancel()
        self._inflight.clear()
        self._task = None
        logger.debug("[%s] stopped for %s", self.name, self._context)
        self._context = None

    def trigger(self) -> bool:
        """Issue one extra tick now (e.g. right after a mutation)."""
        if not self.running:
            return False
        self._issue(self._generation)
        return True

    async def _run(self, generation: int) -> None:
        while True:
            self._issue(generation)
            await asyncio.sleep(self.interval_s)

    def _issue(self, generation: int) -> None:
        if self._on_tick is not None:
            try:
                self._on_tick()
            except Exception:
                logger.exception("[%s] tick handler raised", self.name)
            if generation != self._generation:
                return
        self._last_issued += 1
        self.ticks_issued += 1
        task = asyncio.get_running_loop().create_task(self._tick(generation, self._last_issued))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _tick(self, generation: int, seq: int) -> None:
        context = self._context
        try:
            snapshot = await self._fetch(context)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation != self._generation:
                return
            logger.warning("[%s] poll failed for %s: %s", self.name, context, exc)
            if self._on_failure is not None:
                try:
                    self._on_failure(exc)
                except Exception:
                    logger.exception("[%s] failure handler raised", self.name)
            return

        if generation != self._generation:
            return
        if seq <= self._last_committed:
            logger.debug("[%s] dropped stale tick %d (committed %d)", self.name, seq, self._last_committed)
            return
        self._last_committed = seq

        try:
            self._on_snapshot(snapshot)
        except Exception:
            logger.exception("[%s] snapshot handler raised", self.name)
