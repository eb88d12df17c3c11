"""Background jobs with an explicit lifecycle."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicJob:
    """
    Runs ``task`` every ``interval_seconds`` on a daemon thread.

    ``run_once()`` executes the task synchronously, which is what tests use.
    Exceptions raised by the task are logged and never leave the job.
    """

    def __init__(self, name: str, interval_seconds: float, task: Callable[[], Any]) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self._task = task
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> Any:
        try:
            return self._task()
        except Exception:
            logger.exception("job %s failed", self.name)
            return None

    def _loop(self, stop: threading.Event) -> None:
        while not stop.wait(self.interval_seconds):
            self.run_once()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            # each run owns its stop flag; a thread outliving stop() still sees its own flag set
            self._stop = threading.Event()
            self._thread = threading.Thread(
                target=self._loop, args=(self._stop,), name=f"job-{self.name}", daemon=True
            )
            self._thread.start()
        logger.info("job %s started (every %ss)", self.name, self.interval_seconds)

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._stop.set()
            self._thread = None
        if thread is not None:
            thread.join(timeout)
            logger.info("job %s stopped", self.name)
