import random

import pytest

from config import ServerConfig
from engine import TickEngine
from game import Direction, MatchStatus, Snake
from registry import MatchRegistry


def line(head, direction, length=4):
    """Segments for a straight snake whose head is at `head` travelling `direction`."""
    dx, dy = direction.vector
    return [(head[0] - dx * i, head[1] - dy * i) for i in range(length)]


def make_match(registry, snakes, apples=(), match_id="m1"):
    """A PLAYING match whose players (p1, p2, ...) own the given snakes."""
    match = registry.create(match_id)
    for i, snake in enumerate(snakes):
        player = registry.add_player(match_id, f"p{i + 1}", None, f"Player {i + 1}")
        player.snake = snake
    match.apples = list(apples)
    match.status = MatchStatus.PLAYING
    return match


class FakeSocket:
    """Stands in for a WebSocket; records what it was sent."""
    def __init__(self, broken=False):
        self.sent = []
        self.broken = broken

    async def send_json(self, message):
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(message)


@pytest.fixture()
def config():
    return ServerConfig(grid_width=20, grid_height=20, tick_rate=0.01)


@pytest.fixture()
def registry(config):
    return MatchRegistry(config, rng=random.Random(7))


@pytest.fixture()
def engine(registry):
    return TickEngine(registry, rng=random.Random(11))


@pytest.fixture()
def far_snake():
    """A second snake parked where it cannot interfere for a few ticks."""
    return Snake(line((15, 15), Direction.LEFT), Direction.LEFT)
