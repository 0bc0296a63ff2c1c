"""Tick engine: advances a match by one discrete step."""

import logging
import random
from typing import Optional

from game import Direction, Match, MatchStatus, Position, step

logger = logging.getLogger("duelsnake")


def spawn_apple(match: Match, rng: random.Random, max_attempts: int = 100) -> Optional[Position]:
    """Place one apple on a random free cell by rejection sampling.

    Gives up after max_attempts draws (nearly full grid); that is logged and
    tolerated, the match just runs with one apple fewer.
    """
    occupied = match.occupied()
    for _ in range(max_attempts):
        pos = (rng.randrange(match.width), rng.randrange(match.height))
        if pos not in occupied:
            match.apples.append(pos)
            return pos
    logger.warning(f"🍎 [Match {match.id}] No free cell found after {max_attempts} attempts, skipping apple")
    return None


class TickEngine:
    def __init__(self, registry, rng: Optional[random.Random] = None, apple_spawn_attempts: int = 100):
        self.registry = registry
        self.rng = rng or random.Random()
        self.apple_spawn_attempts = apple_spawn_attempts

    def change_direction(self, match_id: str, player_id: str, direction: Direction) -> bool:
        """Buffer a direction change. Ignored unless the match is playing and the snake alive."""
        match = self.registry.get(match_id)
        if match is None or match.status != MatchStatus.PLAYING:
            return False
        player = match.players.get(player_id)
        if player is None or not player.snake.is_alive:
            return False
        return player.snake.queue_direction(direction)

    def tick(self, match_id: str) -> bool:
        """Advance one step. Returns False if the match is absent or not playing."""
        match = self.registry.get(match_id)
        if match is None or match.status != MatchStatus.PLAYING:
            return False

        movers = match.alive_players()

        # Every collision is judged against the board as it was before this tick,
        # so join order never decides who survives.
        before = {p.id: set(p.snake.segments) for p in movers}
        heads: dict[str, Position] = {}
        for player in movers:
            snake = player.snake
            snake.direction = snake.next_direction
            heads[player.id] = step(snake.head(), snake.direction)

        crashed = set()
        for player in movers:
            new_head = heads[player.id]
            if not match.in_bounds(new_head):
                crashed.add(player.id)
            elif new_head in before[player.id]:
                crashed.add(player.id)
            else:
                for other in movers:
                    if other.id == player.id:
                        continue
                    # Body hit, or both heads entering the same cell
                    if new_head in before[other.id] or new_head == heads[other.id]:
                        crashed.add(player.id)
                        break

        eaten = 0
        for player in movers:
            snake = player.snake
            if player.id in crashed:
                snake.is_alive = False
                logger.debug(f"💥 [Match {match.id}] {player.name} crashed at {heads[player.id]}")
                continue
            new_head = heads[player.id]
            snake.segments.insert(0, new_head)
            if new_head in match.apples:
                match.apples.remove(new_head)
                eaten += 1
            else:
                snake.segments.pop()

        # Replacements go down after every snake has moved so they never land on a new head
        for _ in range(eaten):
            spawn_apple(match, self.rng, self.apple_spawn_attempts)

        match.tick_count += 1

        alive = match.alive_players()
        if len(alive) == 0:
            match.finish(None)
        elif len(alive) == 1:
            match.finish(alive[0].id)
        return True
