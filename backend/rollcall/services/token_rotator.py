"""Per-session background task that drives token rotation."""
import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class TokenRotator:
    """
    Calls ``on_tick`` every ``interval`` seconds until cancelled, and calls
    ``on_expire`` once when ``expires_at`` is reached.

    Ticks are scheduled against the start time rather than the end of the
    previous tick, so a slow tick does not push later rotations back.
    The callbacks are responsible for re-checking that their session is still
    live; cancelling only guarantees that no further callback is started.
    """

    def __init__(
        self,
        session_id: str,
        interval: float,
        expires_at: float,
        on_tick: Callable[[], None],
        on_expire: Callable[[], None],
        clock: Callable[[], float] = time.time,
    ):
        self.session_id = session_id
        self.interval = interval
        self.expires_at = expires_at
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._clock = clock
        self._cancelled = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"rotator-{session_id[:8]}",
            daemon=True
        )

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self) -> 'TokenRotator':
        self._thread.start()
        return self

    def cancel(self) -> None:
        """Prevent any further callback. Safe to call from any thread, repeatedly."""
        self._cancelled.set()

    def join(self, timeout: float = None) -> None:
        """Wait for the worker thread unless called from the worker itself."""
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def _run(self) -> None:
        next_tick = self._clock() + self.interval

        while not self._cancelled.is_set():
            deadline = min(next_tick, self.expires_at)
            if self._cancelled.wait(max(0.0, deadline - self._clock())):
                return

            if self._clock() >= self.expires_at:
                self._fire(self._on_expire)
                return

            self._fire(self._on_tick)
            next_tick += self.interval
            # Missed ticks are skipped, not replayed back to back.
            now = self._clock()
            if next_tick <= now:
                next_tick = now + self.interval

    def _fire(self, callback: Callable[[], None]) -> None:
        if self._cancelled.is_set():
            return
        try:
            callback()
        except Exception:
            # Keep rotating; the registry has already committed or discarded the tick.
            logger.exception("Rotation callback failed for session %s", self.session_id)
