"""Status probes, one per protocol family.

Each probe performs a single timeout-bounded query and either returns a
``ProbeSuccess`` or raises. The wire protocols themselves are handled by
``mcstatus``; the third-party status API is reached with ``requests``.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import requests
from mcstatus import BedrockServer, JavaServer

from .errors import ProbeFailure, UnsupportedEditionError
from .registry import DEFAULT_PORTS, Edition, ServerRegistration

XDEFCON_URL = 'https://mcapi.xdefcon.com/server/{host}:{port}/full/json'


@dataclass(frozen=True)
class ProbeSuccess:
    player_count_raw: int
    protocol_version: Optional[int] = None
    favicon: Optional[str] = None


@dataclass(frozen=True)
class ProbeFailureOutcome:
    reason: str


ProbeOutcome = Union[ProbeSuccess, ProbeFailureOutcome]


def _parse_protocol(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip().lstrip('vV')
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class ProtocolProbe:
    """Common contract: ``query(host, port, timeout, version_hint) -> ProbeSuccess``."""

    # Whether the target address should go through SRV resolution first
    resolves_srv = False

    def query(self, host: str, port: int, timeout: float, version_hint: Optional[int] = None) -> ProbeSuccess:
        raise NotImplementedError


class JavaStatusProbe(ProtocolProbe):
    resolves_srv = True

    def query(self, host, port, timeout, version_hint=None):
        server = JavaServer(host, port, timeout=timeout)
        kwargs = {'version': version_hint} if version_hint is not None else {}
        # One attempt, so the whole query stays within timeout
        status = server.status(tries=1, **kwargs)
        return ProbeSuccess(
            player_count_raw=int(status.players.online),
            protocol_version=_parse_protocol(status.version.protocol),
            favicon=getattr(status, 'icon', None),
        )


class XdefconApiProbe(ProtocolProbe):
    """Java Edition status through the mcapi.xdefcon.com lookup service."""

    resolves_srv = True

    def __init__(self, session: Optional[requests.Session] = None):
        self._http = session or requests

    def query(self, host, port, timeout, version_hint=None):
        url = XDEFCON_URL.format(host=host, port=port or DEFAULT_PORTS[Edition.JAVA.value])
        response = self._http.get(url, timeout=timeout)
        response.raise_for_status()
        data: Dict[str, Any] = response.json()
        if not isinstance(data, dict):
            raise ProbeFailure(f"Unexpected payload type from {url}: {type(data)!r}")
        if data.get('serverStatus') == 'offline':
            raise ProbeFailure('Error when connecting to the server.')
        return ProbeSuccess(
            player_count_raw=int(float(data.get('players'))),
            protocol_version=_parse_protocol(data.get('protocol')),
            favicon=data.get('icon'),
        )


class BedrockPingProbe(ProtocolProbe):
    def query(self, host, port, timeout, version_hint=None):
        status = BedrockServer(host, port, timeout=timeout).status(tries=1)
        return ProbeSuccess(
            player_count_raw=int(status.players.online),
            protocol_version=_parse_protocol(getattr(status.version, 'protocol', None)),
        )


_java = JavaStatusProbe()
_xdefcon = XdefconApiProbe()
_bedrock = BedrockPingProbe()

PROBES = {
    Edition.JAVA.value: _java,
    Edition.BEDROCK.value: _bedrock,
}


def select_probe(registration: ServerRegistration) -> ProtocolProbe:
    if registration.edition == Edition.JAVA.value and registration.use_api:
        return _xdefcon
    probe = PROBES.get(registration.edition)
    if probe is None:
        raise UnsupportedEditionError(registration.server_id, registration.edition)
    return probe
