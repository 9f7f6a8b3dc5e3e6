"""Countdown scheduler: keeps the code and progress of running credentials fresh.

Architecture: one shared Ticker thread calls tick() every second while at
least one credential is running. Each tick:
  1. Read the wall clock once
  2. For every running credential, recompute code, progress and time left
  3. Record failures on that credential only and move on

Stopped credentials are never touched. The ticker is released as soon as
nothing is running, and again on shutdown().
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from collections.abc import Callable
from typing import Any, Protocol

from totpkeep.auth import totp
from totpkeep.errors import TotpError
from totpkeep.models import CredentialConfig, DerivedState
from totpkeep.registry import CredentialStore

logger = logging.getLogger(__name__)

TICK_INTERVAL_S = 1.0


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


class TickerLike(Protocol):
    @property
    def running(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class Ticker:
    """Calls `callback` every `interval` seconds on a daemon thread."""

    def __init__(self, interval: float, callback: Callable[[], Any], name: str = "totp-ticker") -> None:
        self.interval = interval
        self._callback = callback
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._loop, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()
        logger.debug("Ticker started (%.2fs)", self.interval)

    def stop(self) -> None:
        """Stop the loop. Safe to call repeatedly and from the callback itself."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout=self.interval * 2)
        logger.debug("Ticker stopped")

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stop_event.is_set()

    def _loop(self) -> None:
        # Fire on a fixed monotonic schedule so slow callbacks do not add drift
        deadline = time.monotonic()
        while True:
            deadline += self.interval
            now = time.monotonic()
            if now > deadline:
                # Overran one or more slots; skip them instead of bursting
                deadline += (now - deadline) // self.interval * self.interval
            if self._stop_event.wait(max(0.0, deadline - now)):
                break
            try:
                self._callback()
            except Exception:
                logger.error("Error in ticker callback", exc_info=True)


class CountdownScheduler:
    """Derives the display overlay {id -> DerivedState} for a CredentialStore."""

    def __init__(
        self,
        store: CredentialStore,
        *,
        clock_ms: Callable[[], int] = wall_clock_ms,
        interval: float = TICK_INTERVAL_S,
        ticker_factory: Callable[[float, Callable[[], Any]], TickerLike] = Ticker,
    ) -> None:
        self._store = store
        self._clock_ms = clock_ms
        self._interval = interval
        self._ticker_factory = ticker_factory
        self._ticker: TickerLike | None = None
        self._states: dict[str, DerivedState] = {}
        # tick() runs on the ticker thread; start/stop run on the caller's
        self._lock = threading.Lock()

    # --- lifecycle ---

    def start(self, credential_id: str, now_ms: int | None = None) -> DerivedState:
        """Mark a credential running and derive its code right away."""
        config = self._store.get(credential_id)
        now_ms = self._clock_ms() if now_ms is None else now_ms
        with self._lock:
            state = self._states.setdefault(credential_id, DerivedState())
            state.is_running = True
            self._refresh(config, state, now_ms)
            if self._ticker is None:
                self._ticker = self._ticker_factory(self._interval, self.tick)
                self._ticker.start()
                logger.info("Ticker started for %s", config.name)
            return dataclasses.replace(state)

    def stop(self, credential_id: str) -> None:
        """Mark a credential stopped. Its last code and progress are left as-is."""
        with self._lock:
            state = self._states.get(credential_id)
            if state is not None:
                state.is_running = False
            ticker = self._detach_ticker_if_idle()
        if ticker is not None:
            ticker.stop()

    def toggle(self, credential_id: str, now_ms: int | None = None) -> bool:
        """Flip Stopped <-> Running. Returns the new running flag."""
        if self.is_running(credential_id):
            self.stop(credential_id)
            return False
        self.start(credential_id, now_ms)
        return True

    def shutdown(self) -> None:
        """Stop every credential and release the ticker (view teardown)."""
        with self._lock:
            for state in self._states.values():
                state.is_running = False
            ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.stop()
            logger.info("Ticker released")

    # --- ticking ---

    def tick(self, now_ms: int | None = None) -> int:
        """Refresh every running credential against one timestamp.

        Returns the number of credentials refreshed.
        """
        now_ms = self._clock_ms() if now_ms is None else now_ms
        refreshed = 0
        with self._lock:
            configs = {c.id: c for c in self._store.entries}
            for gone in self._states.keys() - configs.keys():
                del self._states[gone]
            for credential_id, state in self._states.items():
                if not state.is_running:
                    continue
                self._refresh(configs[credential_id], state, now_ms)
                refreshed += 1
            ticker = self._detach_ticker_if_idle()
        if ticker is not None:
            ticker.stop()
        return refreshed

    def _refresh(self, config: CredentialConfig, state: DerivedState, now_ms: int) -> None:
        try:
            at = now_ms // 1000
            state.code = totp.compute(config.secret, config.algorithm, config.digits, config.period, at)
            state.counter = totp.time_step(at, config.period)
            state.progress = totp.progress(now_ms, config.period)
            state.seconds_remaining = totp.seconds_remaining(now_ms, config.period)
            state.error = None
        except TotpError as e:
            logger.warning("Cannot derive code for %s (%s): %s", config.name, config.id, e)
            state.code = ""
            state.counter = None
            state.progress = 0.0
            state.seconds_remaining = 0
            state.error = str(e)

    def _detach_ticker_if_idle(self) -> TickerLike | None:
        # Caller holds the lock; the returned ticker is stopped outside it so a
        # tick waiting on the lock is never joined.
        if self._ticker is None or any(s.is_running for s in self._states.values()):
            return None
        ticker, self._ticker = self._ticker, None
        logger.info("No running credentials, releasing ticker")
        return ticker

    # --- read side ---

    def is_running(self, credential_id: str) -> bool:
        with self._lock:
            state = self._states.get(credential_id)
            return state is not None and state.is_running

    def state(self, credential_id: str) -> DerivedState:
        with self._lock:
            return dataclasses.replace(self._states.get(credential_id, DerivedState()))

    def overlay(self) -> dict[str, DerivedState]:
        with self._lock:
            return {cid: dataclasses.replace(s) for cid, s in self._states.items()}

    @property
    def ticking(self) -> bool:
        return self._ticker is not None and self._ticker.running

    def status(self) -> dict[str, Any]:
        """Counts shown in the caption of the watch table."""
        with self._lock:
            running = [cid for cid, s in self._states.items() if s.is_running]
        return {
            "ticking": self.ticking,
            "running_count": len(running),
            "running": running,
            "interval": self._interval,
        }
