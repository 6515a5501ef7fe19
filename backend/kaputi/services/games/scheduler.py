import logging
import threading
import time
from typing import Callable, Dict, Hashable


logger = logging.getLogger(__name__)


class TimerScheduler:
    """Schedule deadline callbacks on Socket.IO background tasks.

    - One live timer per key; scheduling a key again supersedes the old timer
    - A superseded or cancelled timer wakes up, notices, and does nothing
    - Callbacks are expected to re-enter their room through its lock
    - When disabled (tests) timers are recorded but never run
    """

    def __init__(self, start_task: Callable, sleep: Callable = time.sleep, enabled: bool = True,
                 heartbeat: float = 0):
        self._start_task = start_task
        self._sleep = sleep
        self.enabled = enabled
        self.heartbeat = heartbeat
        self._tokens: Dict[Hashable, object] = {}
        self._lock = threading.Lock()

    def schedule(self, key, delay, callback) -> None:
        token = object()
        with self._lock:
            self._tokens[key] = token
        delay = max(0.0, float(delay))
        logger.info(f"[timer-set] key={key} delay={delay:.1f}s")
        if not self.enabled:
            return
        self._start_task(self._worker, key, token, delay, callback)

    def cancel(self, key) -> None:
        with self._lock:
            self._tokens.pop(key, None)

    def cancel_matching(self, predicate) -> None:
        with self._lock:
            for key in [k for k in self._tokens if predicate(k)]:
                self._tokens.pop(key, None)

    def is_scheduled(self, key) -> bool:
        with self._lock:
            return key in self._tokens

    def _worker(self, key, token, delay, callback):
        if self.heartbeat and self.heartbeat > 0:
            slept = 0.0
            while slept < delay:
                step = min(self.heartbeat, delay - slept)
                self._sleep(step)
                slept += step
                logger.debug(f"[timer-heartbeat] key={key} remaining={max(0.0, delay - slept):.1f}s")
        else:
            self._sleep(delay)
        with self._lock:
            if self._tokens.get(key) is not token:
                logger.info(f"[timer-abort] key={key} superseded or cancelled")
                return
            self._tokens.pop(key, None)
        logger.info(f"[timer-fire] key={key}")
        try:
            callback()
        except Exception:
            logger.exception(f"[timer-error] key={key}")

    def every(self, interval, callback) -> None:
        """Run ``callback`` forever on a fixed interval (room sweeps)."""
        if not self.enabled:
            return

        def _loop():
            while True:
                self._sleep(interval)
                try:
                    callback()
                except Exception:
                    logger.exception("[periodic-error]")

        self._start_task(_loop)
