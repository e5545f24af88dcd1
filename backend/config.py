import os


def _flag(name, default):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///pings.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Roster and protocol version candidates
    SERVERS_FILE = os.environ.get('SERVERS_FILE', 'servers.json')
    VERSIONS_FILE = os.environ.get('VERSIONS_FILE', 'minecraft_versions.json')
    # Ping cadence (ms)
    PING_INTERVAL_MS = int(os.environ.get('PING_INTERVAL_MS', '3000'))
    CONNECT_TIMEOUT_MS = int(os.environ.get('CONNECT_TIMEOUT_MS', '2500'))
    # Force-complete a cycle whose probes have not all reported by then
    CYCLE_DEADLINE_MS = int(os.environ.get('CYCLE_DEADLINE_MS', '10000'))
    # History graph sampling cadence (ms), only used with LOG_TO_DATABASE
    HISTORY_SAMPLE_INTERVAL_MS = int(os.environ.get('HISTORY_SAMPLE_INTERVAL_MS', '600000'))
    # Reuse resolved SRV addresses for this long (sec)
    DNS_CACHE_SEC = int(os.environ.get('DNS_CACHE_SEC', '3600'))
    LOG_TO_DATABASE = _flag('LOG_TO_DATABASE', 'false')
    LOG_FAILED_PINGS = _flag('LOG_FAILED_PINGS', 'true')
