from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


class GovernorState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"


class Admission(str, Enum):
    ADMITTED = "admitted"
    IDLE = "idle"
    BUSY = "busy"
    TOO_SOON = "too_soon"


@dataclass(frozen=True)
class GovernorConfig:
    # 0.1 s ~ 10 FPS target.
    min_interval_s: float = 0.1
    # Period of the built-in ticker (display-refresh stand-in).
    tick_interval_s: float = 1.0 / 60.0

    def __post_init__(self) -> None:
        if self.min_interval_s < 0:
            raise ValueError("min_interval_s must be >= 0")
        if self.tick_interval_s <= 0:
            raise ValueError("tick_interval_s must be > 0")


@dataclass
class GovernorStats:
    admitted: int = 0
    dropped_busy: int = 0
    dropped_interval: int = 0
    dropped_idle: int = 0
    completed: int = 0
    failed: int = 0
    max_in_flight: int = 0

    def as_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


RunFn = Callable[[int], Awaitable[object]]


class FrameGovernor:
    """
    Throttled single-flight admission of pipeline runs.

    Every `tick()` while scanning admits one run only when no run is in flight
    and at least `min_interval_s` has passed since the last admitted run.
    Denied ticks are dropped, never queued. The in-flight flag is cleared in a
    `finally` so a failing run cannot block later frames.

    Runs receive the session generation they were admitted under; `start()`
    bumps it, which lets a run that outlives a stop/start detect it is stale.
    All state is touched from the event loop thread only.
    """

    def __init__(
        self,
        run: RunFn,
        cfg: GovernorConfig = GovernorConfig(),
        *,
        clock: Callable[[], float] = time.monotonic,
        on_start: Optional[Callable[[int], None]] = None,
        on_stop: Optional[Callable[[], None]] = None,
    ) -> None:
        self._run = run
        self.cfg = cfg
        self._clock = clock
        self._on_start = on_start
        self._on_stop = on_stop

        self.state = GovernorState.IDLE
        self.generation = 0
        self.stats = GovernorStats()
        self._in_flight = False
        self._running = 0
        self._last_admitted: Optional[float] = None
        self._run_task: Optional[asyncio.Task] = None
        self._ticker: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def scanning(self) -> bool:
        return self.state is GovernorState.SCANNING

    def is_current(self, generation: int) -> bool:
        return self.scanning and generation == self.generation

    def start(self) -> None:
        if self.scanning:
            return
        self.state = GovernorState.SCANNING
        self.generation += 1
        self._last_admitted = None
        logger.info("Scan started (generation %d)", self.generation)
        if self._on_start is not None:
            self._on_start(self.generation)

    def stop(self) -> None:
        if not self.scanning:
            return
        self.state = GovernorState.IDLE
        ticker, self._ticker = self._ticker, None
        if ticker is not None and ticker is not asyncio.current_task():
            ticker.cancel()
        logger.info("Scan stopped (generation %d)", self.generation)
        if self._on_stop is not None:
            self._on_stop()

    def tick(self, now: Optional[float] = None) -> Admission:
        if not self.scanning:
            self.stats.dropped_idle += 1
            return Admission.IDLE
        if self._in_flight:
            self.stats.dropped_busy += 1
            return Admission.BUSY

        now = self._clock() if now is None else now
        if self._last_admitted is not None and now - self._last_admitted < self.cfg.min_interval_s:
            self.stats.dropped_interval += 1
            return Admission.TOO_SOON

        self._in_flight = True
        self._last_admitted = now
        self.stats.admitted += 1
        loop = asyncio.get_running_loop()
        self._run_task = loop.create_task(self._guarded(self.generation))
        logger.debug("Admitted frame run at %.3f (generation %d)", now, self.generation)
        return Admission.ADMITTED

    async def _guarded(self, generation: int) -> None:
        self._running += 1
        self.stats.max_in_flight = max(self.stats.max_in_flight, self._running)
        try:
            await self._run(generation)
            self.stats.completed += 1
        except asyncio.CancelledError:
            raise
        except Exception:
            self.stats.failed += 1
            logger.exception("Frame run failed (generation %d)", generation)
        finally:
            self._running -= 1
            self._in_flight = False

    async def run_forever(self) -> None:
        """Tick every `tick_interval_s` until stopped."""
        while self.scanning:
            self.tick()
            await asyncio.sleep(self.cfg.tick_interval_s)

    def start_ticker(self) -> asyncio.Task:
        self.start()
        if self._ticker is None or self._ticker.done():
            self._ticker = asyncio.get_running_loop().create_task(self.run_forever())
        return self._ticker

    async def wait_idle(self) -> None:
        """Wait for the current in-flight run (if any) to finish."""
        task = self._run_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    async def close(self) -> None:
        self.stop()
        await self.wait_idle()
