from __future__ import annotations
import json
import aiosqlite
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping
from ..domain.models import ActionEvent


class SQLiteScheduleStore:
    """Profile configuration, published metrics and the action log in SQLite."""

    def __init__(self, path: str) -> None:
        self._path = path

    async def init(self) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS profile_settings (
                    profile_id TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (profile_id, key)
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS metrics (
                    profile_id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS actions (
                    ts_utc TEXT NOT NULL,
                    profile_id TEXT NOT NULL,
                    device_id TEXT NOT NULL,
                    state INTEGER NOT NULL,
                    reason TEXT NOT NULL,
                    sensor_value REAL,
                    progress_percent REAL
                )
                """
            )
            await db.execute("CREATE INDEX IF NOT EXISTS idx_actions_ts ON actions(ts_utc)")
            await db.commit()

    async def seed_defaults(self, defaults: Mapping[str, Mapping[str, Any]]) -> None:
        """Insert default settings for keys that have never been written."""
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._path) as db:
            for profile_id, values in defaults.items():
                for key, value in values.items():
                    await db.execute(
                        "INSERT OR IGNORE INTO profile_settings(profile_id, key, value, updated_at) VALUES (?, ?, ?, ?)",
                        (profile_id, key, json.dumps(value), now),
                    )
            await db.commit()

    async def read(self, profile_id: str) -> Dict[str, Any]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                "SELECT key, value FROM profile_settings WHERE profile_id = ?",
                (profile_id,),
            )
            rows = await cur.fetchall()
        return {k: json.loads(v) for k, v in rows}

    async def write(self, profile_id: str, update: Mapping[str, Any]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._path) as db:
            for key, value in update.items():
                await db.execute(
                    "INSERT INTO profile_settings(profile_id, key, value, updated_at) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(profile_id, key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                    (profile_id, key, json.dumps(value), now),
                )
            await db.commit()

    async def publish(self, profile_id: str, metrics: Mapping[str, Any]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO metrics(profile_id, data, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(profile_id) DO UPDATE SET data=excluded.data, updated_at=excluded.updated_at",
                (profile_id, json.dumps(dict(metrics)), now),
            )
            await db.commit()

    async def insert_action(self, a: ActionEvent) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO actions(ts_utc,profile_id,device_id,state,reason,sensor_value,progress_percent) VALUES (?,?,?,?,?,?,?)",
                (
                    a.ts_utc.isoformat(),
                    a.profile_id,
                    a.device_id,
                    1 if a.state else 0,
                    a.reason,
                    a.sensor_value,
                    a.progress_percent,
                ),
            )
            await db.commit()

    async def query_actions(self, start_ts: str, end_ts: str, limit: int) -> List[ActionEvent]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                """
                SELECT ts_utc,profile_id,device_id,state,reason,sensor_value,progress_percent
                FROM actions
                WHERE ts_utc >= ? AND ts_utc <= ?
                ORDER BY ts_utc DESC
                LIMIT ?
                """,
                (start_ts, end_ts, limit),
            )
            rows = await cur.fetchall()
        out: list[ActionEvent] = []
        for ts, pid, did, st, reason, val, pct in rows:
            out.append(
                ActionEvent(
                    ts_utc=datetime.fromisoformat(ts),
                    profile_id=pid,
                    device_id=did,
                    state=bool(st),
                    reason=reason,
                    sensor_value=val,
                    progress_percent=pct,
                )
            )
        return list(reversed(out))
