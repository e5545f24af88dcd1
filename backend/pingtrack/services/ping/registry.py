import enum
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple


class Edition(str, enum.Enum):
    JAVA = 'PC'
    BEDROCK = 'PE'


DEFAULT_PORTS = {
    Edition.JAVA.value: 25565,
    Edition.BEDROCK.value: 19132,
}


@dataclass(frozen=True)
class ProtocolVersion:
    name: str
    protocol_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'protocolId': self.protocol_id}


@dataclass(frozen=True)
class ServerRegistration:
    """One roster entry. Never mutated after startup.

    ``edition`` keeps the raw ``type`` string from the roster file so that an
    unsupported family surfaces when probes are selected, not here.
    """

    server_id: int
    name: str
    ip: str
    edition: str
    port: Optional[int] = None
    use_api: bool = False
    protocol_versions: Tuple[ProtocolVersion, ...] = ()

    @property
    def effective_port(self) -> Optional[int]:
        return self.port or DEFAULT_PORTS.get(self.edition)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'serverId': self.server_id,
            'name': self.name,
            'ip': self.ip,
            'port': self.port,
            'type': self.edition,
            'versions': [v.to_dict() for v in self.protocol_versions],
        }


def _parse_versions(entries: Any) -> Tuple[ProtocolVersion, ...]:
    out: List[ProtocolVersion] = []
    for item in entries or []:
        if not isinstance(item, dict) or 'protocolId' not in item:
            raise ValueError(f"Invalid protocol version entry: {item!r}")
        out.append(ProtocolVersion(name=str(item.get('name', item['protocolId'])), protocol_id=int(item['protocolId'])))
    return tuple(out)


def load_roster(servers: Sequence[Dict[str, Any]], versions: Optional[Dict[str, Any]] = None) -> List[ServerRegistration]:
    """Build the roster from ``servers.json`` entries and per-type version lists.

    Server ids are assigned by position, so the roster order is stable for
    the life of the process.
    """
    versions = versions or {}
    parsed_versions = {str(k): _parse_versions(v) for k, v in versions.items()}
    roster: List[ServerRegistration] = []
    for idx, item in enumerate(servers):
        if not isinstance(item, dict):
            raise ValueError(f"Server entry {idx} is not an object")
        missing = [k for k in ('name', 'ip', 'type') if not str(item.get(k, '')).strip()]
        if missing:
            raise ValueError(f"Server entry {idx} is missing {', '.join(missing)}")
        port = item.get('port')
        edition = str(item['type']).strip()
        roster.append(ServerRegistration(
            server_id=idx,
            name=str(item['name']).strip(),
            ip=str(item['ip']).strip(),
            edition=edition,
            port=int(port) if port not in (None, '') else None,
            use_api=bool(item.get('api', False)),
            protocol_versions=parsed_versions.get(edition, ()),
        ))
    return roster


def load_roster_file(servers_path: str, versions_path: Optional[str] = None) -> List[ServerRegistration]:
    with open(servers_path, 'r', encoding='utf-8') as f:
        servers = json.load(f)
    if not isinstance(servers, list):
        raise ValueError(f"{servers_path} must contain a list of servers")
    versions: Dict[str, Any] = {}
    if versions_path and os.path.exists(versions_path):
        with open(versions_path, 'r', encoding='utf-8') as f:
            versions = json.load(f)
    return load_roster(servers, versions)
