"""
Scan loop — re-analyzes the live input on a fixed cadence.

Every tick (1s by default) the scheduler decides whether to send a new
analysis request:

  suspended?            → skip (a dialog / audio / overlay is in the way)
  cooling down?         → skip until the cooldown ends, then back to IDLE
  request in flight?    → skip (never more than one)
  too soon since last?  → skip, unless the persona just changed (once)
  source not ready?     → skip (a capture that raises is logged and skipped too)
  otherwise             → capture, send, and apply the outcome when it lands

Capture runs in a worker thread so a slow source (ffmpeg seek, network
share) never stalls responses or user commands on the event loop. A tick
that fails is logged and the loop keeps its cadence.

A response is only applied if the scheduler is still running the same
session and the persona context it was issued under is still current.
Anything else is a stale result and is dropped.

Time comes from an injectable clock so tests can step it by hand.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from analyzer import analyze
from capture import NOT_READY
from config import COOLDOWN_DURATION, MIN_SPACING, TICK_INTERVAL
from errors import AnalysisError, ErrorKind
from models import NO_CONTEXT, AnalysisResult, PersonaContext
from rate_limiter import Outcome, RateLimiter

logger = logging.getLogger(__name__)

Invoker = Callable[..., Awaitable[AnalysisResult]]


class ScanState(str, Enum):
    AWAITING_SOURCE = "awaiting_source"
    IDLE = "idle"
    CAPTURING = "capturing"
    AWAITING_RESPONSE = "awaiting_response"
    COOLDOWN = "cooldown"
    SUSPENDED = "suspended"
    FAILED = "failed"


@dataclass
class ScanSettings:
    tick_interval: float = TICK_INTERVAL
    min_spacing: float = MIN_SPACING
    cooldown_duration: float = COOLDOWN_DURATION


def _never_suspended() -> bool:
    return False


class ScanScheduler:
    def __init__(
        self,
        source,
        invoker: Invoker = analyze,
        credential: str | None = None,
        context: PersonaContext = NO_CONTEXT,
        settings: ScanSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
        suspended: Callable[[], bool] = _never_suspended,
        on_result: Callable[[AnalysisResult], None] | None = None,
        on_error: Callable[[AnalysisError], None] | None = None,
    ):
        self.source = source
        self.invoker = invoker
        self.settings = settings or ScanSettings()
        self.clock = clock
        self.suspended = suspended
        self.on_result = on_result
        self.on_error = on_error

        self._credential = credential
        self._context = context
        self._limiter = RateLimiter(self.settings.min_spacing, self.settings.cooldown_duration)
        self._state = ScanState.AWAITING_SOURCE
        self._paused_from: ScanState | None = None
        self._force_next = False
        self._running = False
        self._session = 0
        self._loop_task: asyncio.Task | None = None
        self._in_flight: asyncio.Task | None = None
        self._result: AnalysisResult | None = None
        self._error: AnalysisError | None = None

    # ── Read-only views ──────────────────────────────────────────────────────

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def running(self) -> bool:
        return self._running

    @property
    def result(self) -> AnalysisResult | None:
        """The most recently published result, or None after a persona change."""
        return self._result

    @property
    def error(self) -> AnalysisError | None:
        return self._error

    @property
    def context(self) -> PersonaContext:
        return self._context

    @property
    def limiter_state(self):
        return self._limiter.state

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    # ── Inputs ───────────────────────────────────────────────────────────────

    def set_context(self, context: PersonaContext) -> None:
        """
        Switch persona. Clears the shown result and lets the next tick skip
        the spacing rule once. Cooldown still applies.
        """
        if context == self._context:
            return
        logger.info("Persona context changed: %s/%s", context.persona_id, context.sub_option_id)
        self._context = context
        self._result = None
        self._force_next = True

    def set_credential(self, credential: str | None) -> None:
        self._credential = credential

    def pause(self) -> None:
        if self._state is ScanState.SUSPENDED:
            return
        self._paused_from = self._state
        self._set_state(ScanState.SUSPENDED)

    def resume(self) -> None:
        if self._state is not ScanState.SUSPENDED:
            return
        previous = self._paused_from or ScanState.IDLE
        self._paused_from = None
        # a response that landed while paused already moved us on
        if previous is ScanState.AWAITING_RESPONSE and not self.in_flight:
            previous = ScanState.IDLE
        self._set_state(previous)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self, autotick: bool = True) -> None:
        """
        Begin a scan session with fresh rate-limit state. With autotick the
        timer loop is started on the running event loop; without it the
        caller drives `tick()` itself.
        """
        if self._running:
            return
        self._running = True
        self._session += 1
        self._limiter.reset()
        self._force_next = False
        self._error = None
        self._paused_from = None
        self._set_state(ScanState.AWAITING_SOURCE)
        if autotick:
            self._loop_task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Scan session %d started", self._session)

    def stop(self) -> None:
        """
        Stop ticking now. A request already in flight is left to finish and
        its outcome is discarded.
        """
        if not self._running:
            return
        self._running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            self._loop_task = None
        logger.info("Scan session %d stopped", self._session)

    async def drain(self) -> None:
        """Wait for an in-flight request (if any) to settle."""
        task = self._in_flight
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _run(self) -> None:
        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.error("Scan tick failed: %s", e, exc_info=True)
            await asyncio.sleep(self.settings.tick_interval)

    # ── Tick ─────────────────────────────────────────────────────────────────

    async def tick(self) -> asyncio.Task | None:
        """
        One scheduling decision. Returns the task for the request it started,
        or None if this tick was skipped.
        """
        if not self._running:
            return None

        now = self.clock()

        if self._state is ScanState.SUSPENDED or self.suspended():
            return self._skip("suspended")

        if self._state is ScanState.COOLDOWN:
            if self._limiter.in_cooldown(now):
                return self._skip("cooling down")
            self._limiter.clear_cooldown()
            self._error = None
            self._set_state(ScanState.IDLE)

        if self.in_flight:
            return self._skip("request in flight")

        if not self._limiter.may_invoke(now, forced=self._force_next):
            return self._skip("spacing")

        session = self._session
        try:
            # ffmpeg seeks and file reads run off the event loop
            unit = await asyncio.to_thread(self.source.capture)
        except Exception as e:
            logger.error("Capture failed: %s", e)
            return self._skip("capture failed")
        if unit is NOT_READY:
            return self._skip("source not ready")

        # stop(), pause() or another tick may have run while capturing
        if not self._running or session != self._session:
            return self._skip("stopped during capture")
        if self._state is ScanState.SUSPENDED:
            return self._skip("paused during capture")
        if self.in_flight:
            return self._skip("request in flight")

        self._set_state(ScanState.CAPTURING)
        if self._force_next:
            logger.debug("Persona change: skipping spacing once")
        self._force_next = False

        context = self._context
        self._set_state(ScanState.AWAITING_RESPONSE)
        task = asyncio.get_running_loop().create_task(self._invoke(unit, context, self._session))
        self._in_flight = task
        return task

    def _skip(self, reason: str) -> None:
        logger.debug("Tick skipped: %s", reason)
        return None

    async def _invoke(self, unit, context: PersonaContext, session: int) -> None:
        try:
            result = await self.invoker(unit, context.instruction, self._credential)
        except AnalysisError as e:
            self._apply(session, context, error=e)
        else:
            self._apply(session, context, result=result)
        finally:
            if self._in_flight is asyncio.current_task():
                self._in_flight = None
            if session == self._session and self._state is ScanState.AWAITING_RESPONSE:
                self._set_state(ScanState.IDLE)

    def _apply(
        self,
        session: int,
        context: PersonaContext,
        result: AnalysisResult | None = None,
        error: AnalysisError | None = None,
    ) -> None:
        if not self._running or session != self._session:
            logger.debug("Discarding outcome from stopped session %d", session)
            return

        now = self.clock()
        stale = context != self._context
        paused = self._state is ScanState.SUSPENDED

        if error is None:
            self._limiter.record(now, Outcome.SUCCESS)
            next_state = ScanState.IDLE
        elif error.kind is ErrorKind.QUOTA_EXCEEDED:
            self._limiter.record(now, Outcome.QUOTA_EXCEEDED)
            next_state = ScanState.COOLDOWN
        elif error.kind is ErrorKind.MISSING_CREDENTIAL:
            self._limiter.record(now, Outcome.NOT_ATTEMPTED)
            next_state = ScanState.FAILED
        else:
            self._limiter.record(now, Outcome.FAILURE)
            next_state = ScanState.FAILED if error.needs_credentials else ScanState.IDLE

        if paused:
            self._paused_from = next_state
        else:
            self._set_state(next_state)

        if stale:
            logger.info("Discarding stale outcome issued under %s/%s", context.persona_id, context.sub_option_id)
            return

        if error is None:
            self._result = result
            self._error = None
            if self.on_result is not None:
                self.on_result(result)
        else:
            self._error = error
            if self.on_error is not None:
                self.on_error(error)

    def _set_state(self, state: ScanState) -> None:
        if state is not self._state:
            logger.debug("Scan state %s → %s", self._state.value, state.value)
            self._state = state
