#!/usr/bin/env python3
"""
DuelBot - practice opponent for the Duelsnake server.

Connects to /ws/play, asks for a match, readies up and steers its snake.
Launched by the server with --bots, or run standalone against any server.

STRATEGY
--------
Every state update the bot scores each safe move (not a reversal, not a
wall, not a snake segment) and picks the best one:

  1. Food: a large bonus for landing on an apple, plus a bonus for moves
     that close the distance to the nearest apple.
  2. Survival: moves with more safe neighbouring cells score higher.
  3. Edges: a small bonus for keeping away from walls.
  4. Head-on: the cell the opponent's head will enter next (if it keeps
     going straight) is avoided, since meeting heads kills both snakes.
  5. Noise: lower difficulties add random penalties.

Every segment, tails included, counts as danger: collisions are judged
against the board as it was before the tick.
"""

import argparse
import asyncio
import json
import random
from typing import Optional

import aiohttp
import websockets

DIRECTIONS = {
    "up": (0, -1),
    "down": (0, 1),
    "left": (-1, 0),
    "right": (1, 0),
}
OPPOSITES = {"up": "down", "down": "up", "left": "right", "right": "left"}


def choose_direction(game: dict, player_id: str, difficulty: int = 5,
                     rng: Optional[random.Random] = None) -> Optional[str]:
    """Pick the best direction for player_id from a state snapshot."""
    rng = rng or random
    players = game.get("players", [])
    me = next((p for p in players if p["id"] == player_id), None)
    if not me or not me.get("alive") or not me.get("segments"):
        return None

    grid = game.get("grid", {})
    width = grid.get("width", 20)
    height = grid.get("height", 20)
    head = tuple(me["segments"][0])
    current_dir = me.get("direction", "right")
    apples = [tuple(a) for a in game.get("apples", [])]

    dangerous = set()
    for player in players:
        if not player.get("alive"):
            continue
        for segment in player.get("segments", []):
            dangerous.add(tuple(segment))

    def is_safe(x, y):
        if x < 0 or x >= width or y < 0 or y >= height:
            return False
        return (x, y) not in dangerous

    def count_safe_neighbors(x, y):
        return sum(1 for dx, dy in DIRECTIONS.values() if is_safe(x + dx, y + dy))

    safe_moves = []
    for direction, (dx, dy) in DIRECTIONS.items():
        if direction == OPPOSITES.get(current_dir):
            continue
        nx, ny = head[0] + dx, head[1] + dy
        if is_safe(nx, ny):
            safe_moves.append((direction, nx, ny))

    # Doomed: keep going
    if not safe_moves:
        return current_dir

    nearest = min(apples, key=lambda a: abs(a[0] - head[0]) + abs(a[1] - head[1]), default=None)

    opp_next = None
    opponent = next((p for p in players if p["id"] != player_id and p.get("alive")), None)
    if opponent and opponent.get("segments"):
        ox, oy = opponent["segments"][0]
        dx, dy = DIRECTIONS.get(opponent.get("direction"), (0, 0))
        opp_next = (ox + dx, oy + dy)

    best_dir = None
    best_score = float("-inf")
    for direction, nx, ny in safe_moves:
        score = 0

        if opp_next == (nx, ny):
            score -= 5000

        if (nx, ny) in apples:
            score += 1000

        score += count_safe_neighbors(nx, ny) * 50

        if nearest:
            dist = abs(nx - nearest[0]) + abs(ny - nearest[1])
            score += (width + height - dist) * 10

        score += min(nx, width - 1 - nx, ny, height - 1 - ny) * 5

        mistake_chance = (10 - difficulty) / 20
        if rng.random() < mistake_chance:
            score -= rng.randint(0, 30)

        if score > best_score:
            best_score = score
            best_dir = direction

    return best_dir


class RobotPlayer:
    """Autonomous player that connects to a Duelsnake server and plays."""

    def __init__(self, server_url: str, name: str = None, difficulty: int = 5,
                 quiet: bool = False, once: bool = False):
        self.server_url = server_url
        self.difficulty = max(1, min(10, difficulty))
        self.name = name or f"DuelBot L{self.difficulty}"
        self.quiet = quiet
        self.once = once  # Exit after one match instead of queueing again
        self.player_id = None
        self.match_id = None
        self.running = False
        self.wins = 0
        self.games_played = 0

    def log(self, msg: str):
        if not self.quiet:
            print(msg.encode("ascii", errors="replace").decode("ascii"))

    def status_url(self) -> str:
        base = self.server_url.replace("ws://", "http://").replace("wss://", "https://")
        return base.split("/ws/")[0].rstrip("/") + "/status"

    async def wait_for_server(self):
        """Poll /status until the server answers."""
        while True:
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.get(self.status_url()) as resp:
                        if resp.status == 200:
                            return
                        self.log(f"Server not ready (status {resp.status}), waiting...")
            except aiohttp.ClientError as e:
                self.log(f"Cannot reach server: {e}, waiting...")
            await asyncio.sleep(2)

    async def send(self, ws, message: dict):
        await ws.send(json.dumps(message))

    async def play(self):
        await self.wait_for_server()
        self.log(f"Connecting to {self.server_url}...")
        self.running = True
        try:
            async with websockets.connect(self.server_url) as ws:
                while self.running:
                    data = json.loads(await ws.recv())
                    await self.handle_message(ws, data)
        except websockets.ConnectionClosed:
            self.log("Connection closed.")
        finally:
            self.running = False
            self.log("Bot stopped.")

    async def handle_message(self, ws, data: dict):
        msg_type = data.get("type")

        if msg_type == "connected":
            self.player_id = data.get("player_id")
            await self.send(ws, {"action": "find_match", "name": self.name})

        elif msg_type == "searching":
            self.log("Waiting for opponent...")

        elif msg_type == "match_found":
            self.match_id = data.get("match_id")
            opponents = [p["name"] for p in data.get("players", []) if p["id"] != self.player_id]
            self.log(f"Matched against {', '.join(opponents) or 'Opponent'}")
            await self.send(ws, {"action": "ready", "ready": True})

        elif msg_type == "state":
            game = data.get("game", {})
            if game.get("status") == "playing":
                direction = choose_direction(game, self.player_id, self.difficulty)
                if direction:
                    await self.send(ws, {"action": "move", "direction": direction})

        elif msg_type == "game_over":
            self.games_played += 1
            winner = data.get("winner_id")
            if winner == self.player_id:
                self.wins += 1
                self.log(f"Won! ({self.wins}/{self.games_played})")
            elif winner:
                self.log(f"Lost! ({self.wins}/{self.games_played})")
            else:
                self.log(f"Draw! ({self.wins}/{self.games_played})")
            await self.requeue(ws)

        elif msg_type in ("player_disconnected", "match_expired"):
            self.log(data.get("message", "Match ended"))
            await self.requeue(ws)

        elif msg_type == "error":
            self.log(f"Server error: {data.get('message')}")

    async def requeue(self, ws):
        self.match_id = None
        if self.once:
            self.running = False
            return
        await self.send(ws, {"action": "find_match", "name": self.name})


async def main():
    parser = argparse.ArgumentParser(description="DuelBot practice player")
    parser.add_argument("--server", "-s", default="ws://localhost:8765/ws/play",
                        help="Server WebSocket URL (default: ws://localhost:8765/ws/play)")
    parser.add_argument("--name", "-n", default=None,
                        help="Bot display name (default: DuelBot L<difficulty>)")
    parser.add_argument("--difficulty", "-d", type=int, default=5,
                        help="AI difficulty 1-10 (default: 5)")
    parser.add_argument("--once", action="store_true",
                        help="Exit after one match")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Suppress output (for spawned bots)")
    args = parser.parse_args()

    robot = RobotPlayer(args.server, name=args.name, difficulty=args.difficulty,
                        quiet=args.quiet, once=args.once)
    await robot.play()


if __name__ == "__main__":
    asyncio.run(main())
