import logging
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Sequence

from .errors import DuplicateOutcomeError
from .normalize import accept_favicon, cap_player_count
from .probes import ProbeFailureOutcome, ProbeOutcome, ProbeSuccess
from .registry import ServerRegistration
from .time_tracker import TimeTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateRecord:
    online: Optional[int] = None
    protocol_version: Optional[int] = None
    favicon: Optional[str] = None
    failed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        if self.failed:
            return {'failed': True}
        out: Dict[str, Any] = {'online': self.online}
        if self.protocol_version is not None:
            out['protocolVersion'] = self.protocol_version
        if self.favicon is not None:
            out['favicon'] = self.favicon
        return out


@dataclass(frozen=True)
class UpdateBatch:
    generation: int
    timestamp: int
    include_history_sample: bool
    updates: Mapping[int, UpdateRecord]

    def to_message(self) -> Dict[str, Any]:
        # Send a single timestamp since it is shared by every update
        return {
            'timestamp': TimeTracker.to_seconds(self.timestamp),
            'updateHistoryGraph': self.include_history_sample,
            'updates': {str(sid): rec.to_dict() for sid, rec in self.updates.items()},
        }


@dataclass
class CycleState:
    generation: int
    timestamp: int
    include_history_sample: bool
    roster: Mapping[int, ServerRegistration]
    outcomes: Dict[int, ProbeOutcome] = field(default_factory=dict)
    running: bool = True

    @property
    def expected(self) -> FrozenSet[int]:
        return frozenset(self.roster)

    @property
    def missing(self):
        return [sid for sid in self.roster if sid not in self.outcomes]

    def is_complete(self) -> bool:
        return len(self.outcomes) == len(self.roster)


def build_record(registration: ServerRegistration, outcome: ProbeOutcome) -> UpdateRecord:
    if isinstance(outcome, ProbeSuccess):
        return UpdateRecord(
            online=cap_player_count(registration.ip, outcome.player_count_raw),
            protocol_version=outcome.protocol_version,
            favicon=accept_favicon(outcome.favicon),
        )
    return UpdateRecord(failed=True)


class ResultAggregator:
    """Collects one outcome per server for the active generation.

    Writes are serialized by a single lock. When the last expected server
    reports, the batch is built and ``on_complete`` is called exactly once,
    outside the lock.
    """

    def __init__(self, on_complete: Callable[[UpdateBatch], None]):
        self._on_complete = on_complete
        self._lock = threading.Lock()
        self._cycle: Optional[CycleState] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._cycle is not None and self._cycle.running

    def begin(self, generation: int, timestamp: int, include_history_sample: bool,
              roster: Sequence[ServerRegistration]) -> None:
        with self._lock:
            if self._cycle is not None and self._cycle.running:
                raise RuntimeError(
                    f"generation {self._cycle.generation} still running, cannot begin {generation}"
                )
            self._cycle = CycleState(
                generation=generation,
                timestamp=timestamp,
                include_history_sample=include_history_sample,
                roster={r.server_id: r for r in roster},
            )
            batch = self._complete_locked() if not roster else None
        if batch is not None:
            self._on_complete(batch)

    def record(self, generation: int, server_id: int, outcome: ProbeOutcome) -> bool:
        """Store an outcome. Returns False when it was discarded as stale."""
        with self._lock:
            cycle = self._cycle
            if cycle is None or cycle.generation != generation or not cycle.running:
                logger.warning(
                    f"[stale-outcome] server={server_id} generation={generation} "
                    f"active={cycle.generation if cycle and cycle.running else None}"
                )
                return False
            if server_id not in cycle.roster:
                raise KeyError(f"server {server_id} is not part of generation {generation}")
            if server_id in cycle.outcomes:
                raise DuplicateOutcomeError(generation, server_id)
            cycle.outcomes[server_id] = outcome
            batch = self._complete_locked() if cycle.is_complete() else None
        if batch is not None:
            self._on_complete(batch)
        return True

    def expire(self, generation: int, reason: str = 'cycle deadline exceeded') -> int:
        """Fail every unreported server of ``generation`` and complete it.

        Returns how many servers were force-failed; 0 when the generation
        already completed or is not the active one.
        """
        with self._lock:
            cycle = self._cycle
            if cycle is None or cycle.generation != generation or not cycle.running:
                return 0
            missing = cycle.missing
            for sid in missing:
                cycle.outcomes[sid] = ProbeFailureOutcome(reason)
            batch = self._complete_locked()
        logger.warning(
            f"[cycle-deadline] generation={generation} unreported={[cycle.roster[s].ip for s in missing]}"
        )
        self._on_complete(batch)
        return len(missing)

    def _complete_locked(self) -> UpdateBatch:
        cycle = self._cycle
        cycle.running = False
        updates = {
            sid: build_record(reg, cycle.outcomes[sid])
            for sid, reg in cycle.roster.items()
        }
        return UpdateBatch(
            generation=cycle.generation,
            timestamp=cycle.timestamp,
            include_history_sample=cycle.include_history_sample,
            updates=MappingProxyType(updates),
        )
