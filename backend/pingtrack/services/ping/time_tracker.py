import threading
import time
from typing import Callable, Optional, Tuple


def epoch_millis() -> int:
    return int(time.time() * 1000)


class TimeTracker:
    """Hands out the shared timestamp for each cycle.

    A cycle also contributes a history graph sample when persistence is on
    and at least ``history_interval_ms`` has passed since the last sample.
    """

    def __init__(self, history_interval_ms: int, log_to_database: bool,
                 clock: Callable[[], int] = epoch_millis):
        self._history_interval_ms = history_interval_ms
        self._log_to_database = log_to_database
        self._clock = clock
        self._last_history_sample: Optional[int] = None
        self._lock = threading.Lock()

    def new_cycle_point(self) -> Tuple[int, bool]:
        timestamp = self._clock()
        with self._lock:
            include = self._log_to_database and (
                self._last_history_sample is None
                or timestamp - self._last_history_sample >= self._history_interval_ms
            )
            if include:
                self._last_history_sample = timestamp
        return timestamp, include

    @staticmethod
    def to_seconds(timestamp_ms: int) -> int:
        return int(timestamp_ms // 1000)
