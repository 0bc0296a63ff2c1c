"""Broadcast channel: fan-out of JSON messages to named groups of WebSocket sessions."""

import logging

from fastapi import WebSocket

logger = logging.getLogger("duelsnake")


class ConnectionHub:
    def __init__(self):
        self.groups: dict[str, set[WebSocket]] = {}

    def join(self, group: str, websocket: WebSocket):
        self.groups.setdefault(group, set()).add(websocket)

    def leave(self, group: str, websocket: WebSocket):
        members = self.groups.get(group)
        if members is None:
            return
        members.discard(websocket)
        if not members:
            del self.groups[group]

    def discard(self, websocket: WebSocket):
        """Drop a session from every group."""
        for group in list(self.groups):
            self.leave(group, websocket)

    def close_group(self, group: str):
        self.groups.pop(group, None)

    def members(self, group: str) -> set[WebSocket]:
        return set(self.groups.get(group, ()))

    async def send(self, websocket: WebSocket, message: dict) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"⚠️ Failed to send {message.get('type')}: {e}")
            self.discard(websocket)
            return False

    async def broadcast(self, group: str, message: dict):
        # Copy so failed sends can drop members mid-iteration
        for websocket in list(self.groups.get(group, ())):
            await self.send(websocket, message)
