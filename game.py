"""Grid simulation model: directions, snakes, players and matches."""

import time
from enum import Enum
from typing import Any, Optional

Position = tuple[int, int]


class Direction(Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"

    @property
    def vector(self) -> Position:
        return _VECTORS[self]

    @property
    def opposite(self) -> "Direction":
        return _OPPOSITES[self]

    @classmethod
    def parse(cls, value) -> Optional["Direction"]:
        """Parse a client-supplied direction ("up", "UP", ...). Returns None if invalid."""
        if isinstance(value, Direction):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.lower())
        except ValueError:
            return None


_VECTORS = {
    Direction.UP: (0, -1),
    Direction.DOWN: (0, 1),
    Direction.LEFT: (-1, 0),
    Direction.RIGHT: (1, 0),
}

_OPPOSITES = {
    Direction.UP: Direction.DOWN,
    Direction.DOWN: Direction.UP,
    Direction.LEFT: Direction.RIGHT,
    Direction.RIGHT: Direction.LEFT,
}


def step(pos: Position, direction: Direction) -> Position:
    dx, dy = direction.vector
    return (pos[0] + dx, pos[1] + dy)


class MatchStatus(Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class Snake:
    def __init__(self, segments: list[Position], direction: Direction):
        self.segments = list(segments)  # Head first
        self.direction = direction
        self.next_direction = direction
        self.is_alive = True

    def head(self) -> Position:
        return self.segments[0]

    def queue_direction(self, direction: Direction) -> bool:
        """Buffer a direction for the next tick. A 180° reversal is dropped."""
        if direction == self.direction.opposite:
            return False
        self.next_direction = direction
        return True

    def to_dict(self) -> dict:
        return {
            "segments": [list(pos) for pos in self.segments],
            "direction": self.direction.value,
            "alive": self.is_alive,
        }


class Player:
    """A participant bound to one snake and one transport session."""
    def __init__(self, player_id: str, session: Any, name: str, snake: Snake,
                 account_id: Optional[str] = None):
        self.id = player_id
        self.session = session  # Opaque transport reference
        self.name = name
        self.snake = snake
        self.account_id = account_id  # None for guests
        self.is_ready = False

    @property
    def is_guest(self) -> bool:
        return self.account_id is None

    def to_dict(self) -> dict:
        data = {"id": self.id, "name": self.name}
        data.update(self.snake.to_dict())
        return data


class Match:
    """One two-player game from formation to finish."""

    MAX_PLAYERS = 2

    def __init__(self, match_id: str, width: int, height: int, tick_rate: float):
        self.id = match_id
        self.players: dict[str, Player] = {}  # Insertion order = join order
        self.apples: list[Position] = []
        self.width = width
        self.height = height
        self.status = MatchStatus.WAITING
        self.tick_rate = tick_rate
        self.winner_id: Optional[str] = None
        self.tick_count = 0
        self.created_at = time.monotonic()
        self.finished_at: Optional[float] = None

    def is_full(self) -> bool:
        return len(self.players) >= self.MAX_PLAYERS

    def in_bounds(self, pos: Position) -> bool:
        return 0 <= pos[0] < self.width and 0 <= pos[1] < self.height

    def alive_players(self) -> list[Player]:
        return [p for p in self.players.values() if p.snake.is_alive]

    def occupied(self) -> set[Position]:
        """All cells held by any snake segment or apple."""
        cells = set(self.apples)
        for player in self.players.values():
            cells.update(player.snake.segments)
        return cells

    def finish(self, winner_id: Optional[str]):
        self.status = MatchStatus.FINISHED
        self.winner_id = winner_id
        self.finished_at = time.monotonic()

    def snapshot(self) -> dict:
        return {
            "match_id": self.id,
            "status": self.status.value,
            "tick": self.tick_count,
            "grid": {"width": self.width, "height": self.height},
            "players": [p.to_dict() for p in self.players.values()],
            "apples": [list(pos) for pos in self.apples],
            "winner_id": self.winner_id,
        }
