"""Periodic reconciliation for one consumer, with single-flight cycles and clean disposal."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from safecrypto.config.constants import STATUS_ERROR, STATUS_LOADING, STATUS_READY
from safecrypto.models.core import ReconciliationResult, RefreshState
from safecrypto.models.errors import DashboardError

logger = logging.getLogger(__name__)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RefreshScheduler:
    """
    Re-runs engine.reconcile(email) every `interval` seconds on a daemon thread.

    At most one cycle is in flight at a time; a manual refresh_now() while a
    cycle is running is skipped. After stop() returns, no cycle changes the
    state or calls on_update, even if its fetch was already in progress.
    Failed cycles keep the previous result and set status to "error".
    """

    def __init__(
        self,
        engine,
        email: str,
        interval: float = 10.0,
        on_update: Optional[Callable[[RefreshState], None]] = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.engine = engine
        self.email = email
        self.interval = float(interval)
        self.on_update = on_update
        self._stop = threading.Event()
        self._in_flight = threading.Lock()
        self._state_lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None
        self._state: RefreshState = {
            "status": STATUS_LOADING,
            "result": None,
            "error": None,
            "cycles": 0,
            "updated_at": None,
        }

    @property
    def active(self) -> bool:
        return not self._stop.is_set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight.locked()

    def snapshot(self) -> RefreshState:
        """Copy of the current state, safe to hand to the presentation layer."""
        with self._state_lock:
            return dict(self._state)  # type: ignore[return-value]

    def _commit(self, **changes) -> bool:
        with self._state_lock:
            if self._stop.is_set():
                return False
            self._state.update(changes)  # type: ignore[typeddict-item]
            self._state["updated_at"] = _utcnow_iso()
            state = dict(self._state)
            if self.on_update is not None:
                try:
                    self.on_update(state)  # type: ignore[arg-type]
                except Exception:
                    logger.exception("on_update callback failed for %s", self.email)
        return True

    def run_cycle(self) -> bool:
        """Run one reconciliation cycle now. Returns True if a fresh result was committed."""
        if self._stop.is_set():
            return False
        if not self._in_flight.acquire(blocking=False):
            logger.debug("Cycle for %s already in flight; skipping", self.email)
            return False
        try:
            self._commit(status=STATUS_LOADING)
            try:
                result: ReconciliationResult = self.engine.reconcile(self.email)
            except DashboardError as e:
                logger.warning("Reconciliation failed for %s: %s", self.email, e)
                self._commit(status=STATUS_ERROR, error=str(e))
                return False
            except Exception as e:
                logger.exception("Unexpected reconciliation error for %s", self.email)
                self._commit(status=STATUS_ERROR, error=f"{type(e).__name__}: {e}")
                return False
            with self._state_lock:
                cycles = self._state["cycles"] + 1
            return self._commit(status=STATUS_READY, result=result, error=None, cycles=cycles)
        finally:
            self._in_flight.release()

    refresh_now = run_cycle

    def _run(self) -> None:
        while not self._stop.is_set():
            self.run_cycle()
            self._stop.wait(self.interval)

    def start(self) -> None:
        """Start polling; the first cycle runs immediately."""
        if self._stop.is_set():
            raise RuntimeError("scheduler was stopped; create a new one")
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run, name=f"refresh-{self.email}", daemon=True
        )
        self._thread.start()

    def stop(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        """Dispose: stop the timer and discard any in-flight result.

        With wait=True, also join the polling thread (it may be blocked on an
        in-flight fetch until that fetch times out).
        """
        with self._state_lock:
            self._stop.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the scheduler is stopped or timeout elapses. Returns True once stopped."""
        return self._stop.wait(timeout)

    def __enter__(self) -> "RefreshScheduler":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
