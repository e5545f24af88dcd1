import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from mcstatus import JavaServer

from .registry import ServerRegistration

logger = logging.getLogger(__name__)


def _srv_lookup(address: str, timeout: float) -> Tuple[str, int]:
    server = JavaServer.lookup(address, timeout=timeout)
    return server.address.host, server.address.port


class DNSResolver:
    """Resolve a registration's effective host/port before probing.

    Only registrations whose probe wants SRV resolution and that did not
    pin a port go through a lookup; the answer is reused for
    ``cache_sec``. The time spent resolving is taken out of the probe's
    timeout budget.
    """

    def __init__(self, cache_sec: int = 3600,
                 lookup: Callable[[str, float], Tuple[str, int]] = _srv_lookup,
                 clock: Callable[[], float] = time.monotonic):
        self._cache_sec = cache_sec
        self._lookup = lookup
        self._clock = clock
        self._cache: Dict[int, Tuple[str, int, float]] = {}
        self._lock = threading.Lock()

    def resolve(self, registration: ServerRegistration, timeout: float, srv: bool = True) -> Tuple[str, int, float]:
        port = registration.effective_port
        if not srv or registration.port:
            return registration.ip, port, timeout

        now = self._clock()
        with self._lock:
            cached = self._cache.get(registration.server_id)
        if cached and cached[2] > now:
            return cached[0], cached[1], timeout

        started = self._clock()
        host, resolved_port = self._lookup(registration.ip, timeout)
        elapsed = self._clock() - started
        with self._lock:
            self._cache[registration.server_id] = (host, resolved_port, now + self._cache_sec)
        if (host, resolved_port) != (registration.ip, port):
            logger.debug(f"[dns] ip={registration.ip} resolved={host}:{resolved_port} in {elapsed:.3f}s")
        return host, resolved_port, max(0.0, timeout - elapsed)

