from __future__ import annotations
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Mapping

from ..domain.models import ActionEvent


class MemoryScheduleStore:
    """Dict-backed store with the same contract as SQLiteScheduleStore."""

    def __init__(self, profiles: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self.profiles: Dict[str, Dict[str, Any]] = defaultdict(dict)
        for pid, values in (profiles or {}).items():
            self.profiles[pid].update(values)
        self.metrics: Dict[str, Dict[str, Any]] = {}
        self.actions: List[ActionEvent] = []
        self.writes: List[tuple[str, Dict[str, Any]]] = []

    async def init(self) -> None:
        return None

    async def read(self, profile_id: str) -> Dict[str, Any]:
        return dict(self.profiles.get(profile_id, {}))

    async def write(self, profile_id: str, update: Mapping[str, Any]) -> None:
        self.profiles[profile_id].update(update)
        self.writes.append((profile_id, dict(update)))

    async def publish(self, profile_id: str, metrics: Mapping[str, Any]) -> None:
        self.metrics[profile_id] = dict(metrics)

    async def insert_action(self, action: ActionEvent) -> None:
        self.actions.append(action)

    async def query_actions(self, start_ts: str, end_ts: str, limit: int) -> List[ActionEvent]:
        start = datetime.fromisoformat(start_ts)
        end = datetime.fromisoformat(end_ts)
        out = [a for a in self.actions if start <= a.ts_utc <= end]
        return out[-limit:]
