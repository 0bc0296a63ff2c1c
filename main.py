"""Duelsnake Server - real-time 2-player Snake matches with FIFO matchmaking."""

import argparse
import asyncio
import json
import logging
import os
import random
import subprocess
import sys
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from config import (ServerConfig, apply_args, apply_settings, default_settings_path,
                    load_settings_file, validate_settings)
from engine import TickEngine
from game import Direction, Match, MatchStatus
from hub import ConnectionHub
from matchmaking import PairingQueue
from registry import MatchRegistry
from scheduler import MatchLoopScheduler
from stats import InMemoryStatsStore, StatsStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(message)s",
    datefmt="%H:%M:%S"
)
logger = logging.getLogger("duelsnake")

VERSION = "1.0.0"


class PlayerSession:
    """One connected WebSocket and the match it currently belongs to."""
    def __init__(self, player_id: str, websocket: WebSocket):
        self.player_id = player_id
        self.websocket = websocket
        self.match_id: Optional[str] = None


class DuelServer:
    """Routes player intents into matchmaking, the registry and the tick loop."""

    def __init__(self, config: Optional[ServerConfig] = None, stats: Optional[StatsStore] = None,
                 rng: Optional[random.Random] = None):
        self.config = config or ServerConfig()
        self.registry = MatchRegistry(self.config, rng=rng)
        self.engine = TickEngine(self.registry, rng=rng, apple_spawn_attempts=self.config.apple_spawn_attempts)
        self.queue = PairingQueue(self.registry)
        self.hub = ConnectionHub()
        self.stats = stats or InMemoryStatsStore()
        self.scheduler = MatchLoopScheduler(
            self.registry, self.engine,
            on_state=self.broadcast_state,
            on_finished=self.handle_finished,
            on_evicted=self.handle_evicted,
            finish_grace=self.config.finish_grace,
        )
        self.sessions: dict[str, PlayerSession] = {}
        self.matches_finished = 0

    async def connect(self, websocket: WebSocket) -> str:
        player_id = uuid.uuid4().hex
        self.sessions[player_id] = PlayerSession(player_id, websocket)
        logger.info(f"✅ Player {player_id} connected ({len(self.sessions)} online)")
        await self.hub.send(websocket, {"type": "connected", "player_id": player_id})
        return player_id

    async def handle_message(self, player_id: str, data: dict):
        session = self.sessions.get(player_id)
        if session is None:
            return
        action = data.get("action")
        if action == "find_match":
            await self.find_match(session, data.get("name"), data.get("account_id"))
        elif action == "cancel_matchmaking":
            await self.cancel_matchmaking(session)
        elif action == "ready":
            await self.set_ready(session, data.get("ready", True) is True)
        elif action == "move":
            direction = Direction.parse(data.get("direction"))
            if direction and session.match_id:
                self.engine.change_direction(session.match_id, player_id, direction)
        elif action == "ping":
            await self.hub.send(session.websocket, {"type": "pong"})
        else:
            await self.hub.send(session.websocket, {"type": "error", "message": f"Unknown action: {action}"})

    def _active_match(self, session: PlayerSession) -> Optional[Match]:
        if not session.match_id:
            return None
        match = self.registry.get(session.match_id)
        if match is None or match.status == MatchStatus.FINISHED:
            session.match_id = None
            return None
        return match

    async def find_match(self, session: PlayerSession, name: Optional[str] = None,
                         account_id: Optional[str] = None):
        if self._active_match(session):
            await self.hub.send(session.websocket, {"type": "error", "message": "Already in a match"})
            return

        name = name or f"Guest-{session.player_id[:4]}"
        match_id = self.queue.request_match(session.player_id, session.websocket, name,
                                            account_id=account_id)
        if match_id is None:
            await self.hub.send(session.websocket, {"type": "searching", "message": "Searching for opponent..."})
            return

        match = self.registry.get(match_id)
        for pid in match.players:
            peer = self.sessions.get(pid)
            if peer:
                peer.match_id = match_id
                self.hub.join(match_id, peer.websocket)

        await self.hub.broadcast(match_id, {
            "type": "match_found",
            "match_id": match_id,
            "players": [{"id": p.id, "name": p.name} for p in match.players.values()],
        })

    async def cancel_matchmaking(self, session: PlayerSession):
        self.queue.cancel(session.player_id)
        await self.hub.send(session.websocket, {"type": "matchmaking_cancelled"})

    async def set_ready(self, session: PlayerSession, ready: bool):
        match = self._active_match(session)
        if match is None:
            return
        playing = self.registry.set_ready(match.id, session.player_id, ready)

        await self.hub.broadcast(match.id, {
            "type": "player_ready",
            "player_id": session.player_id,
            "ready": ready,
        })

        if playing and not self.scheduler.is_running(match.id):
            self.scheduler.start(match.id)
            await self.hub.broadcast(match.id, {"type": "game_started", "match_id": match.id,
                                                "game": match.snapshot()})

    async def disconnect(self, player_id: str):
        session = self.sessions.pop(player_id, None)
        if session is None:
            return
        self.queue.cancel(player_id)
        self.hub.discard(session.websocket)
        logger.info(f"❌ Player {player_id} disconnected ({len(self.sessions)} online)")

        match_id = session.match_id
        if not match_id:
            return
        match = self.registry.get(match_id)
        if match is None:
            return

        # A finished match keeps its players for game_over and stats; the grace window clears it
        if match.status == MatchStatus.FINISHED:
            return
        self.registry.remove_player(match_id, player_id)

        self.scheduler.stop(match_id)
        await self.hub.broadcast(match_id, {
            "type": "player_disconnected",
            "player_id": player_id,
            "message": "Opponent disconnected",
        })
        self._teardown(match)

    def _teardown(self, match: Match):
        """Detach every remaining participant and drop the match right away."""
        for pid in match.players:
            peer = self.sessions.get(pid)
            if peer and peer.match_id == match.id:
                peer.match_id = None
        self.hub.close_group(match.id)
        self.registry.delete(match.id)

    async def broadcast_state(self, match: Match):
        await self.hub.broadcast(match.id, {"type": "state", "game": match.snapshot()})

    async def handle_finished(self, match: Match):
        self.matches_finished += 1
        if match.winner_id:
            winner = match.players.get(match.winner_id)
            logger.info(f"🏆 [Match {match.id}] Game over! Winner: {winner.name if winner else match.winner_id}")
        else:
            logger.info(f"🏁 [Match {match.id}] Game over! Draw.")

        await self.hub.broadcast(match.id, {
            "type": "game_over",
            "match_id": match.id,
            "winner_id": match.winner_id,
            "players": [p.to_dict() for p in match.players.values()],
        })

        for player in match.players.values():
            if player.is_guest:
                continue
            try:
                self.stats.record_result(player.account_id, player.id == match.winner_id)
            except Exception as e:
                logger.error(f"❌ Failed to record result for {player.account_id}: {e}")

        # Players may queue again right away; the match itself lingers for the grace window
        for pid in match.players:
            peer = self.sessions.get(pid)
            if peer and peer.match_id == match.id:
                peer.match_id = None
        self.hub.close_group(match.id)

    async def handle_evicted(self, match: Match):
        await self.hub.broadcast(match.id, {
            "type": "match_expired",
            "match_id": match.id,
            "message": "Match was not started in time",
        })
        self._teardown(match)

    def get_status(self) -> dict:
        by_status = {status.value: 0 for status in MatchStatus}
        for match_id in self.registry.ids():
            by_status[self.registry.get(match_id).status.value] += 1
        return {
            "version": VERSION,
            "config": self.config.to_dict(),
            "players_online": len(self.sessions),
            "queue_length": len(self.queue),
            "matches": by_status,
            "matches_running": len(self.scheduler.tasks),
            "matches_finished": self.matches_finished,
        }


def create_app(config: Optional[ServerConfig] = None, stats: Optional[StatsStore] = None,
               rng: Optional[random.Random] = None, settings_path: str = "") -> FastAPI:
    """Build the FastAPI app around a fresh DuelServer."""
    config = config or ServerConfig()
    server = DuelServer(config, stats=stats, rng=rng)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🐍 Duelsnake Server started")
        logger.info(f"   Grid: {config.grid_width}x{config.grid_height}, Tick rate: {config.tick_rate}s")
        logger.info(f"📡 Client connection URL: ws://localhost:{config.port}/ws/play")

        server.scheduler.start_reaper(config.waiting_timeout)

        watcher = None
        if settings_path:
            watcher = asyncio.create_task(watch_settings_file(server, settings_path))
            logger.info(f"👁️ Watching {os.path.basename(settings_path)} for changes")

        bot_processes = []
        if config.bots > 0:
            bot_processes = spawn_bots(config.bots, f"ws://localhost:{config.port}/ws/play")

        yield

        server.scheduler.shutdown()
        if watcher:
            watcher.cancel()
        stop_bots(bot_processes)

    app = FastAPI(title="Duelsnake Server", lifespan=lifespan)
    app.state.server = server

    # Enable CORS for client requests
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.websocket("/ws/play")
    async def play(websocket: WebSocket):
        await websocket.accept()
        player_id = await server.connect(websocket)
        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    await server.hub.send(websocket, {"type": "error", "message": "Invalid JSON"})
                    continue
                if not isinstance(data, dict):
                    await server.hub.send(websocket, {"type": "error", "message": "Expected a JSON object"})
                    continue
                await server.handle_message(player_id, data)
        except WebSocketDisconnect:
            pass
        finally:
            await server.disconnect(player_id)

    @app.get("/")
    async def root():
        return {"name": "Duelsnake Server", "status": "running"}

    @app.get("/status")
    async def status():
        return server.get_status()

    @app.get("/matches/{match_id}")
    async def match_state(match_id: str):
        match = server.registry.get(match_id)
        if match is None:
            raise HTTPException(status_code=404, detail="Match not found")
        return match.snapshot()

    @app.get("/stats/{account_id}")
    async def player_stats(account_id: str):
        return {"account_id": account_id, **server.stats.get(account_id)}

    return app


async def watch_settings_file(server: DuelServer, path: str, interval: float = 2.0):
    """Background task that reloads the settings file when it changes.

    New values apply to matches created afterwards; running matches keep theirs.
    """
    try:
        last_mtime = os.path.getmtime(path)
    except OSError:
        last_mtime = 0.0

    while True:
        await asyncio.sleep(interval)

        try:
            current_mtime = os.path.getmtime(path)
        except FileNotFoundError:
            continue  # File deleted, ignore

        if current_mtime <= last_mtime:
            continue
        last_mtime = current_mtime
        logger.info("🔄 Settings file changed, attempting to reload...")

        settings = load_settings_file(path)
        if not settings:
            logger.warning("⚠️ Settings file is empty or invalid JSON, keeping current settings")
            continue
        if not validate_settings(settings):
            logger.warning("⚠️ Settings file has invalid values, keeping current settings")
            continue

        apply_settings(server.config, settings)
        server.scheduler.finish_grace = server.config.finish_grace
        logger.info(f"✅ Settings reloaded: {server.config.grid_width}x{server.config.grid_height} grid, "
                    f"{server.config.tick_rate}s/tick")


def spawn_bots(count: int, server_url: str) -> list[subprocess.Popen]:
    """Launch practice bots as separate processes."""
    script_dir = os.path.dirname(os.path.abspath(__file__))
    script_path = os.path.join(script_dir, "duelbot.py")
    processes = []
    for i in range(count):
        difficulty = random.randint(1, 10)
        try:
            proc = subprocess.Popen(
                [sys.executable, script_path, "--server", server_url, "--difficulty", str(difficulty), "--quiet"],
                cwd=script_dir
            )
            processes.append(proc)
            logger.info(f"🤖 Spawned DuelBot L{difficulty} ({i + 1}/{count})")
        except Exception as e:
            logger.error(f"❌ Failed to spawn bot: {e}")
    return processes


def stop_bots(processes: list[subprocess.Popen]):
    for proc in processes:
        try:
            proc.terminate()
            proc.wait(timeout=2)
        except Exception as e:
            logger.warning(f"⚠️ Failed to terminate bot {proc.pid}: {e}")


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Duelsnake Server - 2-player Snake with FIFO matchmaking",
        usage="python main.py [options] [settings-file]"
    )
    parser.add_argument(
        "settings_file", nargs="?", default=None,
        help="Optional JSON settings file. Defaults to server-settings.json if it exists."
    )
    parser.add_argument(
        "--grid-size", type=str, default=None,
        help="Grid size as WIDTHxHEIGHT. Default: 20x20"
    )
    parser.add_argument(
        "--speed", type=float, default=None,
        help="Tick rate in seconds per tick. Default: 0.2"
    )
    parser.add_argument(
        "--grace", type=float, default=None,
        help="Seconds a finished match stays queryable. Default: 5"
    )
    parser.add_argument(
        "--waiting-timeout", type=float, default=None,
        help="Evict matches not started within this many seconds (0 disables). Default: 0"
    )
    parser.add_argument(
        "--bots", type=int, default=None,
        help="Number of practice bots to launch at server start. Default: 0"
    )
    parser.add_argument(
        "--host", type=str, default="0.0.0.0",
        help="Host to bind to. Default: 0.0.0.0"
    )
    parser.add_argument(
        "--port", type=int, default=8765,
        help="Port to bind to. Default: 8765"
    )
    return parser.parse_args(argv)


def build_config(args) -> tuple[ServerConfig, str]:
    """Resolve config from args and the settings file. Returns (config, watched settings path)."""
    config = ServerConfig()
    path = args.settings_file or default_settings_path()
    settings = load_settings_file(path) if os.path.exists(path) else {}
    if settings:
        logger.info(f"📄 Loaded settings from {path}")
    apply_args(config, args, settings)
    config.host = args.host
    config.port = args.port
    return config, path if settings else ""


app = create_app()


if __name__ == "__main__":
    import uvicorn
    args = parse_args()
    config, settings_path = build_config(args)

    logger.info("🎮 Starting Duelsnake Server")
    logger.info(f"   Grid: {config.grid_width}x{config.grid_height}")
    logger.info(f"   Speed: {config.tick_rate}s/tick")
    logger.info(f"   Bots: {config.bots}")

    uvicorn.run(create_app(config, settings_path=settings_path), host=config.host, port=config.port)
