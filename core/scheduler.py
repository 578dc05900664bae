"""Periodic asyncio triggers for the trading cycle and status reports."""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import time
from typing import Any, Awaitable, Callable, Union

log = logging.getLogger("pairtrader.scheduler")

Job = Callable[[], Union[Any, Awaitable[Any]]]


class PeriodicTrigger:
    """Run ``job`` every ``period`` seconds until stopped.

    With ``align`` the ticks fall on epoch multiples of the period, so an
    hourly trigger fires at the top of each hour. Runs never overlap: if a run
    outlasts one or more ticks those ticks are dropped and the next run waits
    for the following boundary.
    """

    def __init__(
        self,
        name: str,
        period: float,
        job: Job,
        *,
        align: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if period <= 0:
            raise ValueError("period must be positive")
        self.name = name
        self.period = float(period)
        self._job = job
        self._align = align
        self._clock = clock
        self._anchor = 0.0
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.runs = 0
        self.skipped_ticks = 0

    @property
    def running(self) -> bool:
        return bool(self._task and not self._task.done())

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._anchor = 0.0 if self._align else self._clock()
        self._task = asyncio.get_running_loop().create_task(self._run_loop(), name=f"trigger:{self.name}")

    async def stop(self) -> None:
        task = self._task
        if task is None:
            return
        self._stop_event.set()
        try:
            await task
        finally:
            self._task = None

    def next_fire_time(self, now: float) -> float:
        elapsed = now - self._anchor
        return self._anchor + (math.floor(elapsed / self.period) + 1) * self.period

    async def _run_loop(self) -> None:
        log.info(
            "scheduler.started",
            extra={"trigger": self.name, "period": self.period, "aligned": self._align},
        )
        last_target: float | None = None
        try:
            while not self._stop_event.is_set():
                now = self._clock()
                if last_target is not None and now < last_target:
                    # The wall clock stepped back; a fired boundary never fires again.
                    log.warning(
                        "scheduler.clock_stepped_back",
                        extra={"trigger": self.name, "now": now, "last_target": last_target},
                    )
                    now = last_target
                target = self.next_fire_time(now)
                delay = max(target - self._clock(), 0.0)
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                    break
                except asyncio.TimeoutError:
                    pass
                await self._fire(target)
                last_target = target
        finally:
            log.info("scheduler.stopped", extra={"trigger": self.name, "runs": self.runs})

    async def _fire(self, scheduled: float) -> None:
        try:
            result = self._job()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - a failed run must not end the trigger
            log.exception("scheduler.job_failed", extra={"trigger": self.name, "error": str(exc)})
        finally:
            self.runs += 1
        missed = int((self._clock() - scheduled) // self.period)
        if missed > 0:
            self.skipped_ticks += missed
            log.warning("scheduler.ticks_skipped", extra={"trigger": self.name, "skipped": missed})
