import logging
import random

import pytest

from conftest import line, make_match
from engine import spawn_apple
from game import Direction, Match, MatchStatus, Snake


def occupied_by_snakes(match):
    return {pos for p in match.players.values() for pos in p.snake.segments}


def test_eating_apple_grows_snake(registry, engine, far_snake):
    snake = Snake([(5, 5), (4, 5), (3, 5), (2, 5)], Direction.RIGHT)
    match = make_match(registry, [snake, far_snake], apples=[(6, 5)])

    assert engine.tick("m1") is True

    assert snake.segments == [(6, 5), (5, 5), (4, 5), (3, 5), (2, 5)]
    assert (6, 5) not in match.apples
    assert len(match.apples) == 1
    assert match.apples[0] not in occupied_by_snakes(match)
    assert match.status == MatchStatus.PLAYING


def test_normal_move_keeps_length(registry, engine, far_snake):
    snake = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    match = make_match(registry, [snake, far_snake], apples=[(0, 0), (19, 0)])

    engine.tick("m1")

    assert snake.segments == [(6, 5), (5, 5), (4, 5), (3, 5)]
    assert sorted(match.apples) == [(0, 0), (19, 0)]


def test_apple_count_restored_after_consumption(registry, engine, far_snake):
    snake = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    match = make_match(registry, [snake, far_snake], apples=[(6, 5), (0, 19)])

    engine.tick("m1")

    assert len(match.apples) == 2
    assert (6, 5) not in match.apples
    assert (0, 19) in match.apples


def test_buffered_direction_applied_on_tick(registry, engine, far_snake):
    snake = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    make_match(registry, [snake, far_snake])

    assert engine.change_direction("m1", "p1", Direction.DOWN) is True
    assert snake.direction == Direction.RIGHT
    engine.tick("m1")
    assert snake.direction == Direction.DOWN
    assert snake.head() == (5, 6)


def test_reversal_ignored_by_engine(registry, engine, far_snake):
    snake = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    make_match(registry, [snake, far_snake])

    assert engine.change_direction("m1", "p1", Direction.LEFT) is False
    engine.tick("m1")
    assert snake.head() == (6, 5)


def test_change_direction_rejected_outside_play(registry, engine, far_snake):
    snake = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    match = make_match(registry, [snake, far_snake])

    assert engine.change_direction("m1", "nobody", Direction.UP) is False
    assert engine.change_direction("missing", "p1", Direction.UP) is False

    snake.is_alive = False
    assert engine.change_direction("m1", "p1", Direction.UP) is False

    snake.is_alive = True
    match.status = MatchStatus.WAITING
    assert engine.change_direction("m1", "p1", Direction.UP) is False
    assert snake.next_direction == Direction.RIGHT


def test_tick_noop_when_absent_or_not_playing(registry, engine, far_snake):
    assert engine.tick("missing") is False

    snake = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    match = make_match(registry, [snake, far_snake])
    match.status = MatchStatus.WAITING
    assert engine.tick("m1") is False
    assert snake.head() == (5, 5)

    match.status = MatchStatus.FINISHED
    assert engine.tick("m1") is False


def test_both_off_grid_is_a_tie(registry, engine):
    east = Snake(line((19, 5), Direction.RIGHT), Direction.RIGHT)
    west = Snake(line((0, 10), Direction.LEFT), Direction.LEFT)
    match = make_match(registry, [east, west])

    engine.tick("m1")

    assert not east.is_alive and not west.is_alive
    assert match.status == MatchStatus.FINISHED
    assert match.winner_id is None


def test_wall_hit_makes_survivor_winner(registry, engine, far_snake):
    doomed = Snake(line((19, 5), Direction.RIGHT), Direction.RIGHT)
    match = make_match(registry, [doomed, far_snake])

    engine.tick("m1")

    assert not doomed.is_alive
    # Dead snakes do not move
    assert doomed.head() == (19, 5)
    assert match.status == MatchStatus.FINISHED
    assert match.winner_id == "p2"


def test_self_collision(registry, engine, far_snake):
    # Head at (5, 5) travelling left with the body curling round below it
    snake = Snake([(5, 5), (6, 5), (6, 6), (5, 6), (4, 6)], Direction.LEFT)
    match = make_match(registry, [snake, far_snake])
    engine.change_direction("m1", "p1", Direction.DOWN)

    engine.tick("m1")

    assert not snake.is_alive
    assert match.winner_id == "p2"


def test_opponent_body_collision(registry, engine):
    attacker = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    wall = Snake([(6, 3), (6, 4), (6, 5), (6, 6)], Direction.UP)
    match = make_match(registry, [attacker, wall])

    engine.tick("m1")

    assert not attacker.is_alive
    assert wall.is_alive
    assert wall.head() == (6, 2)
    assert match.winner_id == "p2"


def test_dead_opponent_is_not_an_obstacle(registry, engine):
    snake = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    corpse = Snake([(6, 4), (6, 5), (6, 6), (6, 7)], Direction.UP)
    corpse.is_alive = False
    match = make_match(registry, [snake, corpse])

    engine.tick("m1")

    assert snake.is_alive
    assert snake.head() == (6, 5)
    assert corpse.segments == [(6, 4), (6, 5), (6, 6), (6, 7)]
    assert match.winner_id == "p1"


@pytest.mark.parametrize("order", [(0, 1), (1, 0)])
def test_head_to_head_kills_both_regardless_of_order(registry, engine, order):
    snakes = [
        Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT),
        Snake(line((7, 5), Direction.LEFT), Direction.LEFT),
    ]
    match = make_match(registry, [snakes[i] for i in order])

    engine.tick("m1")

    assert not snakes[0].is_alive and not snakes[1].is_alive
    assert match.status == MatchStatus.FINISHED
    assert match.winner_id is None


def test_swapping_heads_kills_both(registry, engine):
    east = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    west = Snake(line((6, 5), Direction.LEFT), Direction.LEFT)
    match = make_match(registry, [east, west])

    engine.tick("m1")

    assert not east.is_alive and not west.is_alive
    assert match.winner_id is None


def test_contested_apple_kills_both(registry, engine):
    east = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    west = Snake(line((7, 5), Direction.LEFT), Direction.LEFT)
    match = make_match(registry, [east, west], apples=[(6, 5)])

    engine.tick("m1")

    assert match.apples == [(6, 5)]
    assert len(east.segments) == 4 and len(west.segments) == 4
    assert not east.is_alive and not west.is_alive
    assert match.winner_id is None
    assert match.status == MatchStatus.FINISHED


def test_tick_counter_advances(registry, engine, far_snake):
    snake = Snake(line((5, 5), Direction.RIGHT), Direction.RIGHT)
    match = make_match(registry, [snake, far_snake])
    engine.tick("m1")
    engine.tick("m1")
    assert match.tick_count == 2


def test_spawn_apple_finds_only_free_cell():
    match = Match("m", 3, 1, 0.2)
    match.apples = [(0, 0), (2, 0)]
    assert spawn_apple(match, random.Random(1)) == (1, 0)
    assert match.apples == [(0, 0), (2, 0), (1, 0)]


def test_spawn_apple_gives_up_on_full_grid(caplog):
    match = Match("m", 2, 1, 0.2)
    match.apples = [(0, 0), (1, 0)]
    with caplog.at_level(logging.WARNING, logger="duelsnake"):
        assert spawn_apple(match, random.Random(1), max_attempts=100) is None
    assert match.apples == [(0, 0), (1, 0)]
    assert "No free cell" in caplog.text


def test_replacement_apple_avoids_new_head(registry, engine):
    registry.config.grid_width = 5
    registry.config.grid_height = 1
    snake = Snake([(1, 0), (0, 0)], Direction.RIGHT)
    match = make_match(registry, [snake], apples=[(2, 0), (3, 0)])

    engine.tick("m1")

    assert snake.segments == [(2, 0), (1, 0), (0, 0)]
    # (4, 0) is the only cell not covered by the grown snake or the other apple
    assert sorted(match.apples) == [(3, 0), (4, 0)]
