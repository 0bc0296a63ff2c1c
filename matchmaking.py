"""Pairing queue: FIFO of players waiting for an opponent."""

import logging
import uuid
from collections import deque
from typing import Any, Optional

from registry import MatchRegistry

logger = logging.getLogger("duelsnake")


class WaitingEntry:
    def __init__(self, player_id: str, session: Any, name: str, account_id: Optional[str] = None):
        self.player_id = player_id
        self.session = session
        self.name = name
        self.account_id = account_id


class PairingQueue:
    """Pairs the longest-waiting player with each new requester."""

    def __init__(self, registry: MatchRegistry):
        self.registry = registry
        self.waiting: deque[WaitingEntry] = deque()

    def __len__(self) -> int:
        return len(self.waiting)

    def is_waiting(self, player_id: str) -> bool:
        return any(e.player_id == player_id for e in self.waiting)

    def request_match(self, player_id: str, session: Any, name: str,
                      account_id: Optional[str] = None) -> Optional[str]:
        """Pair with the oldest waiting entry, or enqueue. Returns the new match id or None."""
        self.cancel(player_id)

        if not self.waiting:
            self.waiting.append(WaitingEntry(player_id, session, name, account_id))
            logger.info(f"⏳ {name} ({player_id}) waiting for an opponent ({len(self.waiting)} in queue)")
            return None

        opponent = self.waiting.popleft()
        match_id = uuid.uuid4().hex
        match = self.registry.create(match_id)
        if match is None:
            # Identifier collision; put the opponent back at the front
            self.waiting.appendleft(opponent)
            return None

        self.registry.add_player(match_id, opponent.player_id, opponent.session, opponent.name,
                                 account_id=opponent.account_id)
        self.registry.add_player(match_id, player_id, session, name, account_id=account_id)
        logger.info(f"🤝 Paired {opponent.name} vs {name} in match {match_id}")
        return match_id

    def cancel(self, player_id: str):
        for entry in self.waiting:
            if entry.player_id == player_id:
                self.waiting.remove(entry)
                return
