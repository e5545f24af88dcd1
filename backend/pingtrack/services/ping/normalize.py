import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Reported counts can reach 2^32-1, which wrecks graph rendering on clients
MAX_PLAYER_COUNT = 250000

FAVICON_PREFIX = 'data:image/'


def cap_player_count(host: str, player_count: int) -> int:
    """Bound a reported player count to [0, MAX_PLAYER_COUNT], warning when corrected."""
    if player_count > MAX_PLAYER_COUNT:
        logger.warning(
            f"[player-cap] host={host} player_count={player_count} capped={MAX_PLAYER_COUNT}"
        )
        return MAX_PLAYER_COUNT
    if player_count < 0:
        logger.warning(f"[player-invalid] host={host} player_count={player_count} set=0")
        return 0
    return player_count


def accept_favicon(favicon: Any) -> Optional[str]:
    if isinstance(favicon, str) and favicon.startswith(FAVICON_PREFIX):
        return favicon
    return None
