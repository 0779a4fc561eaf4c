from __future__ import annotations

import logging
import threading
from typing import Callable


class RefreshTimer:
    """Run ``action`` now and then every ``interval_s`` seconds on a daemon thread.

    An exception raised by one tick is logged and the next tick still runs.
    """

    MIN_INTERVAL_S = 0.001

    def __init__(self, interval_s: float, action: Callable[[], None], name: str = "hwmon-refresh") -> None:
        self.interval_s = max(self.MIN_INTERVAL_S, interval_s)
        self.action = action
        self.logger = logging.getLogger(self.__class__.__name__)
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self.ticks = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stopped.is_set()

    def start(self) -> None:
        self.logger.debug("Starting refresh timer every %.3f s.", self.interval_s)
        self._thread.start()

    def cancel(self, timeout: float | None = 5.0) -> None:
        self._stopped.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stopped.is_set():
            self.ticks += 1
            try:
                self.action()
            except Exception:
                self.failures += 1
                self.logger.exception("Refresh tick %d failed.", self.ticks)
            if self._stopped.wait(self.interval_s):
                break
