from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class PingSettings:
    """Ping loop options, read once from the Flask config and passed explicitly."""

    interval_ms: int = 3000
    connect_timeout_ms: int = 2500
    cycle_deadline_ms: int = 10000
    history_sample_interval_ms: int = 600000
    dns_cache_sec: int = 3600
    log_to_database: bool = False
    log_failed_pings: bool = True

    def __post_init__(self):
        for name in ('interval_ms', 'connect_timeout_ms', 'cycle_deadline_ms', 'history_sample_interval_ms'):
            if int(getattr(self, name)) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)!r}")
        if self.cycle_deadline_ms <= self.connect_timeout_ms:
            raise ValueError("cycle_deadline_ms must be greater than connect_timeout_ms")

    @property
    def interval_sec(self) -> float:
        return self.interval_ms / 1000.0

    @property
    def connect_timeout_sec(self) -> float:
        return self.connect_timeout_ms / 1000.0

    @property
    def cycle_deadline_sec(self) -> float:
        return self.cycle_deadline_ms / 1000.0

    @staticmethod
    def from_config(cfg: Mapping[str, Any]) -> "PingSettings":
        return PingSettings(
            interval_ms=int(cfg.get('PING_INTERVAL_MS', 3000)),
            connect_timeout_ms=int(cfg.get('CONNECT_TIMEOUT_MS', 2500)),
            cycle_deadline_ms=int(cfg.get('CYCLE_DEADLINE_MS', 10000)),
            history_sample_interval_ms=int(cfg.get('HISTORY_SAMPLE_INTERVAL_MS', 600000)),
            dns_cache_sec=int(cfg.get('DNS_CACHE_SEC', 3600)),
            log_to_database=bool(cfg.get('LOG_TO_DATABASE', False)),
            # Only an explicit False disables failure logging
            log_failed_pings=cfg.get('LOG_FAILED_PINGS', True) is not False,
        )
