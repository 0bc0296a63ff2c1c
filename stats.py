"""Win/loss statistics collaborator.

The real store lives with the credential service; this in-memory one keeps
the same interface so the server runs standalone.
"""

import logging

logger = logging.getLogger("duelsnake")


class StatsStore:
    def record_result(self, account_id: str, won: bool) -> dict:
        raise NotImplementedError

    def get(self, account_id: str) -> dict:
        raise NotImplementedError


class InMemoryStatsStore(StatsStore):
    def __init__(self):
        self.records: dict[str, dict] = {}

    def record_result(self, account_id: str, won: bool) -> dict:
        record = self.records.setdefault(account_id, {"wins": 0, "losses": 0, "games": 0})
        record["games"] += 1
        if won:
            record["wins"] += 1
        else:
            record["losses"] += 1
        logger.info(f"📊 {account_id}: {record['wins']}W/{record['losses']}L")
        return dict(record)

    def get(self, account_id: str) -> dict:
        return dict(self.records.get(account_id, {"wins": 0, "losses": 0, "games": 0}))
