import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .dns import DNSResolver
from .probes import ProbeFailureOutcome, ProbeOutcome, ProtocolProbe, select_probe
from .registry import ProtocolVersion, ServerRegistration
from .settings import PingSettings
from .tasks import spawn_thread

logger = logging.getLogger(__name__)

Report = Callable[[int, int, ProbeOutcome], Any]
Plan = List[Tuple[ServerRegistration, ProtocolProbe]]


class Dispatcher:
    """Fans a cycle out into one background probe per roster entry.

    Every probe task reports exactly one outcome; resolver and probe errors
    become failure outcomes and never reach the caller. No concurrency cap
    is applied, the per-probe timeout is the only bound.
    """

    def __init__(self, settings: PingSettings, resolver: Optional[DNSResolver] = None,
                 spawn: Callable[..., Any] = spawn_thread,
                 probe_selector: Callable[[ServerRegistration], ProtocolProbe] = select_probe):
        self._settings = settings
        self._resolver = resolver or DNSResolver(cache_sec=settings.dns_cache_sec)
        self._spawn = spawn
        self._select = probe_selector
        self._next_version_index: Dict[int, int] = {}
        self._version_lock = threading.Lock()

    def plan(self, roster: Sequence[ServerRegistration]) -> Plan:
        """Pick a probe for every server, failing fast on an unsupported edition."""
        return [(registration, self._select(registration)) for registration in roster]

    def next_protocol_version(self, registration: ServerRegistration) -> Optional[ProtocolVersion]:
        versions = registration.protocol_versions
        if not versions:
            return None
        with self._version_lock:
            idx = self._next_version_index.get(registration.server_id, -1) + 1
            if idx >= len(versions):
                idx = 0
            self._next_version_index[registration.server_id] = idx
        return versions[idx]

    def dispatch(self, plan: Plan, generation: int, report: Report) -> None:
        for registration, probe in plan:
            version = self.next_protocol_version(registration)
            try:
                self._spawn(self._probe, registration, probe, version, generation, report)
            except Exception as exc:
                logger.error(f"[spawn-failed] ip={registration.ip} generation={generation} error={exc}")
                report(generation, registration.server_id, ProbeFailureOutcome(f"could not start probe: {exc}"))

    def run_cycle(self, roster: Sequence[ServerRegistration], generation: int, report: Report) -> None:
        self.dispatch(self.plan(roster), generation, report)

    def _probe(self, registration: ServerRegistration, probe: ProtocolProbe,
               version: Optional[ProtocolVersion], generation: int, report: Report) -> None:
        hint = version.protocol_id if version else None
        try:
            host, port, remaining = self._resolver.resolve(
                registration, self._settings.connect_timeout_sec, srv=probe.resolves_srv
            )
            if remaining <= 0:
                raise TimeoutError('timeout budget spent resolving address')
            outcome: ProbeOutcome = probe.query(host, port, remaining, hint)
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            if self._settings.log_failed_pings:
                logger.error(f"[ping-failed] ip={registration.ip} generation={generation} reason={reason}")
            outcome = ProbeFailureOutcome(reason)
        report(generation, registration.server_id, outcome)
