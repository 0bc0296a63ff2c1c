"""Match registry: owns every live match, keyed by match id."""

import logging
import random
import time
from typing import Any, Optional

from config import ServerConfig
from engine import spawn_apple
from game import Direction, Match, MatchStatus, Player, Snake, step

logger = logging.getLogger("duelsnake")


class MatchRegistry:
    """Creates, looks up and deletes matches, and seats players in them."""

    def __init__(self, config: Optional[ServerConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or ServerConfig()
        self.rng = rng or random.Random()
        self.matches: dict[str, Match] = {}

    def __len__(self) -> int:
        return len(self.matches)

    def __contains__(self, match_id: str) -> bool:
        return match_id in self.matches

    def ids(self) -> list[str]:
        return list(self.matches.keys())

    def create(self, match_id: str) -> Optional[Match]:
        """Allocate a new WAITING match. Returns None if the id is taken."""
        if match_id in self.matches:
            logger.warning(f"⚠️ Match {match_id} already exists, not creating")
            return None
        match = Match(match_id, self.config.grid_width, self.config.grid_height, self.config.tick_rate)
        self.matches[match_id] = match
        logger.info(f"🏠 Match {match_id} created ({len(self.matches)} live matches)")
        return match

    def get(self, match_id: str) -> Optional[Match]:
        return self.matches.get(match_id)

    def delete(self, match_id: str):
        if self.matches.pop(match_id, None) is not None:
            logger.info(f"🧹 Match {match_id} deleted ({len(self.matches)} live matches)")

    def _initial_snake(self, match: Match, join_order: int) -> Snake:
        # First joiner: top-left quadrant heading right. Second: bottom-right heading left.
        if join_order == 0:
            head = (match.width // 4, match.height // 4)
            direction = Direction.RIGHT
        else:
            head = ((match.width * 3) // 4, (match.height * 3) // 4)
            direction = Direction.LEFT
        segments = [head]
        for _ in range(self.config.initial_snake_length - 1):
            segments.append(step(segments[-1], direction.opposite))
        return Snake(segments, direction)

    def add_player(self, match_id: str, player_id: str, session: Any, name: str,
                   account_id: Optional[str] = None) -> Optional[Player]:
        """Seat a player. Returns None if the match is absent or full."""
        match = self.matches.get(match_id)
        if match is None or match.is_full():
            return None
        snake = self._initial_snake(match, len(match.players))
        player = Player(player_id, session, name, snake, account_id=account_id)
        match.players[player_id] = player
        return player

    def remove_player(self, match_id: str, player_id: str):
        """Remove a player. An empty match is deleted immediately."""
        match = self.matches.get(match_id)
        if match is None:
            return
        match.players.pop(player_id, None)
        if not match.players:
            self.delete(match_id)

    def set_ready(self, match_id: str, player_id: str, ready: bool) -> bool:
        """Toggle readiness; starts the match once both players are ready.

        Returns True if the match is playing afterwards.
        """
        match = self.matches.get(match_id)
        if match is None:
            return False
        player = match.players.get(player_id)
        if player is None:
            return False
        player.is_ready = bool(ready)
        if (match.status == MatchStatus.WAITING and match.is_full()
                and all(p.is_ready for p in match.players.values())):
            self.start(match_id)
        return match.status == MatchStatus.PLAYING

    def start(self, match_id: str):
        """WAITING -> PLAYING with the initial apples. No-op in any other state."""
        match = self.matches.get(match_id)
        if match is None or match.status != MatchStatus.WAITING:
            return
        match.status = MatchStatus.PLAYING
        for _ in range(self.config.initial_apples):
            spawn_apple(match, self.rng, self.config.apple_spawn_attempts)
        logger.info(f"🎮 [Match {match_id}] Started with {len(match.apples)} apples")

    def stale_waiting(self, max_age: float) -> list[str]:
        """Ids of matches still WAITING after max_age seconds."""
        now = time.monotonic()
        return [
            mid for mid, match in self.matches.items()
            if match.status == MatchStatus.WAITING and now - match.created_at >= max_age
        ]
