"""Ping services: cycle scheduling, probe fan-out and batch aggregation.

Nothing in this package touches Flask directly; the application wires in
the Socket.IO broadcaster, the sample store and the background task
launcher when it builds the scheduler.
"""

from .aggregator import ResultAggregator, UpdateBatch, UpdateRecord
from .dispatcher import Dispatcher
from .errors import DuplicateOutcomeError, PingError, UnsupportedEditionError
from .normalize import MAX_PLAYER_COUNT, accept_favicon, cap_player_count
from .registry import Edition, ServerRegistration, load_roster, load_roster_file
from .scheduler import UPDATE_EVENT, PingScheduler
from .settings import PingSettings
