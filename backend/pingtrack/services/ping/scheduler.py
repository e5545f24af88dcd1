import logging
import threading
from typing import Any, Callable, Optional, Protocol, Sequence

from .aggregator import ResultAggregator, UpdateBatch
from .dispatcher import Dispatcher
from .registry import ServerRegistration
from .settings import PingSettings
from .tasks import TaskTracker, spawn_thread
from .time_tracker import TimeTracker

logger = logging.getLogger(__name__)

UPDATE_EVENT = 'updateServers'


class Broadcaster(Protocol):
    def publish(self, event: str, payload: Any) -> None: ...


class SampleSink(Protocol):
    def insert_sample(self, ip: str, timestamp: int, player_count: Optional[int]) -> None: ...


class PingScheduler:
    """Drives ping cycles and keeps at most one of them in flight.

    Each accepted trigger opens a new generation. A trigger arriving while
    a generation is still running is dropped, never queued. A generation
    that has not completed after ``cycle_deadline_ms`` is force-completed
    with failures for the servers that never reported.
    """

    def __init__(self, roster: Sequence[ServerRegistration], settings: PingSettings,
                 broadcaster: Broadcaster, store: Optional[SampleSink] = None,
                 dispatcher: Optional[Dispatcher] = None,
                 time_tracker: Optional[TimeTracker] = None,
                 spawn: Callable[..., Any] = spawn_thread):
        self._roster = list(roster)
        self._settings = settings
        self._broadcaster = broadcaster
        self._store = store
        self._spawn = spawn
        self._dispatcher = dispatcher or Dispatcher(settings, spawn=spawn)
        self._time_tracker = time_tracker or TimeTracker(
            settings.history_sample_interval_ms, settings.log_to_database
        )
        self._aggregator = ResultAggregator(self._on_cycle_complete)
        self._tasks = TaskTracker(spawn)
        self._lock = threading.Lock()
        self._generation = 0
        self._active: Optional[int] = None
        self._cycle_done = threading.Event()
        self._stopped = threading.Event()
        self._loop_started = False
        self.last_batch: Optional[UpdateBatch] = None

    @property
    def roster(self):
        return list(self._roster)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._active is not None

    @property
    def tasks(self) -> TaskTracker:
        return self._tasks

    def start(self) -> None:
        """Run a cycle now, then one every interval on a background task."""
        if self._loop_started:
            return
        self._stopped.clear()
        self.trigger_cycle()
        self._spawn(self._loop)
        self._loop_started = True
        logger.info(f"[scheduler-start] servers={len(self._roster)} interval={self._settings.interval_ms}ms")

    def stop(self, timeout: float = 5.0) -> bool:
        self._stopped.set()
        self._loop_started = False
        return self._tasks.drain(timeout)

    def _loop(self) -> None:
        while not self._stopped.wait(self._settings.interval_sec):
            try:
                self.trigger_cycle()
            except Exception:
                logger.exception("[scheduler-abort] ping loop stopped")
                self._stopped.set()
                return

    def trigger_cycle(self) -> bool:
        """Start a cycle unless one is running. Returns whether it started."""
        with self._lock:
            if self._active is not None:
                logger.warning(
                    f"[cycle-overrun] generation={self._active} still running; dropping tick. "
                    f"You may need to increase PING_INTERVAL_MS"
                )
                return False
            # Raises before any state changes on an unsupported edition
            plan = self._dispatcher.plan(self._roster)
            self._generation += 1
            generation = self._generation
            self._active = generation
            self._cycle_done = done = threading.Event()

        timestamp, include_history_sample = self._time_tracker.new_cycle_point()
        logger.info(f"[cycle-start] generation={generation} servers={len(self._roster)}")
        self._aggregator.begin(generation, timestamp, include_history_sample, self._roster)
        if plan:
            # Armed first so a partial fan-out still completes
            try:
                self._spawn(self._deadline_worker, generation, done)
            except Exception as exc:
                logger.error(f"[deadline-failed] generation={generation} error={exc}")
            self._dispatcher.dispatch(plan, generation, self._aggregator.record)
        return True

    def _deadline_worker(self, generation: int, done: threading.Event) -> None:
        if done.wait(self._settings.cycle_deadline_sec):
            return
        self._aggregator.expire(generation)

    def _on_cycle_complete(self, batch: UpdateBatch) -> None:
        try:
            self.last_batch = batch
            if self._settings.log_to_database and self._store is not None:
                by_id = {r.server_id: r for r in self._roster}
                for sid, record in batch.updates.items():
                    # None marks a failed ping
                    self._tasks.spawn(
                        'insert-sample', self._store.insert_sample,
                        by_id[sid].ip, batch.timestamp, record.online,
                    )
            self._tasks.spawn('broadcast', self._broadcaster.publish, UPDATE_EVENT, batch.to_message())
            failed = sum(1 for r in batch.updates.values() if r.failed)
            logger.info(
                f"[cycle-complete] generation={batch.generation} servers={len(batch.updates)} failed={failed}"
            )
        finally:
            with self._lock:
                if self._active == batch.generation:
                    self._active = None
                    self._cycle_done.set()
