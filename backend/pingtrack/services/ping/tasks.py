import logging
import threading
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)


def spawn_thread(fn: Callable[..., Any], *args: Any) -> threading.Thread:
    """Fallback launcher with the same shape as ``socketio.start_background_task``."""
    t = threading.Thread(target=fn, args=args, daemon=True)
    t.start()
    return t


class TaskTracker:
    """Fire-and-forget tasks whose failures are logged and which can be drained."""

    def __init__(self, launcher: Callable[..., Any] = spawn_thread):
        self._launcher = launcher
        self._pending = 0
        self._cond = threading.Condition()

    @property
    def pending(self) -> int:
        with self._cond:
            return self._pending

    def spawn(self, name: str, fn: Callable[..., Any], *args: Any) -> bool:
        with self._cond:
            self._pending += 1
        try:
            self._launcher(self._run, name, fn, args)
        except Exception as exc:
            logger.error(f"[task-failed] task={name} could not start: {exc}")
            self._done()
            return False
        return True

    def _run(self, name, fn, args) -> None:
        try:
            fn(*args)
        except Exception as exc:
            logger.exception(f"[task-failed] task={name} error={exc}")
        finally:
            self._done()

    def _done(self) -> None:
        with self._cond:
            self._pending -= 1
            self._cond.notify_all()

    def drain(self, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        with self._cond:
            while self._pending > 0:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning(f"[task-drain] pending={self._pending} gave up after {timeout}s")
                    return False
                self._cond.wait(remaining)
        return True
