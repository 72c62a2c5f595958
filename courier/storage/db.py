"""SQLite storage for memories, audit logs, room bookkeeping and the key/value cache."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from courier.models import Content, MemoryRecord

_db_instances: dict[str, "Database"] = {}


def get_db(workspace: Path) -> "Database":
    """Get or create a Database instance for a workspace."""
    key = str(workspace.resolve())
    if key not in _db_instances:
        _db_instances[key] = Database(workspace)
    return _db_instances[key]


class Database:
    """SQLite database for persistent storage."""

    def __init__(self, workspace: Path):
        self.workspace = workspace
        self.db_path = workspace / "db" / "courier.db"
        self._db: sqlite3.Connection | None = None
        self._initialized = False

    async def _ensure_init(self) -> sqlite3.Connection:
        if self._db is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = sqlite3.connect(str(self.db_path))
            self._db.execute("PRAGMA journal_mode=WAL")
            self._db.execute("PRAGMA synchronous=NORMAL")
            self._db.execute("PRAGMA busy_timeout=5000")
        if not self._initialized:
            self._create_tables()
            self._initialized = True
        return self._db

    def _create_tables(self) -> None:
        db = self._db
        assert db is not None

        db.execute(
            """
            CREATE TABLE IF NOT EXISTS memories (
                id TEXT PRIMARY KEY,
                agent_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                room_id TEXT NOT NULL,
                content_json TEXT NOT NULL,
                embedding_json TEXT NOT NULL,
                created_at INTEGER NOT NULL
            )
            """
        )
        db.execute("CREATE INDEX IF NOT EXISTS idx_memories_room ON memories(room_id, created_at)")

        db.execute(
            """
            CREATE TABLE IF NOT EXISTS participants (
                room_id TEXT NOT NULL,
                user_id TEXT NOT NULL,
                user_name TEXT NOT NULL DEFAULT '',
                source TEXT NOT NULL DEFAULT '',
                joined_at TEXT NOT NULL,
                PRIMARY KEY (room_id, user_id)
            )
            """
        )

        db.execute(
            """
            CREATE TABLE IF NOT EXISTS logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                room_id TEXT NOT NULL,
                type TEXT NOT NULL,
                body_json TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
            """
        )

        db.execute(
            """
            CREATE TABLE IF NOT EXISTS cache (
                key TEXT PRIMARY KEY,
                value_json TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        db.commit()

    # ==================== Rooms ====================

    async def ensure_connection(self, user_id: str, room_id: str, user_name: str, source: str) -> None:
        db = await self._ensure_init()
        db.execute(
            "INSERT OR IGNORE INTO participants (room_id, user_id, user_name, source, joined_at) VALUES (?, ?, ?, ?, ?)",
            (room_id, user_id, user_name, source, datetime.now().isoformat()),
        )
        db.commit()

    async def get_participants(self, room_id: str) -> list[dict]:
        db = await self._ensure_init()
        rows = db.execute(
            "SELECT user_id, user_name, source FROM participants WHERE room_id = ? ORDER BY joined_at",
            (room_id,),
        ).fetchall()
        return [{"user_id": r[0], "user_name": r[1], "source": r[2]} for r in rows]

    # ==================== Memories ====================

    async def create_memory(self, record: MemoryRecord) -> bool:
        """Persist a record. Returns False if a record with this id already exists."""
        db = await self._ensure_init()
        cursor = db.execute(
            "INSERT OR IGNORE INTO memories (id, agent_id, user_id, room_id, content_json, embedding_json, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.agent_id,
                record.user_id,
                record.room_id,
                json.dumps(record.content.to_dict(), ensure_ascii=False),
                json.dumps(record.embedding),
                record.created_at,
            ),
        )
        db.commit()
        return cursor.rowcount > 0

    async def get_memories(
        self,
        room_id: str,
        count: int | None = None,
        user_id: str | None = None,
    ) -> list[MemoryRecord]:
        """Return the most recent ``count`` room records, oldest first."""
        db = await self._ensure_init()
        sql = "SELECT id, agent_id, user_id, room_id, content_json, embedding_json, created_at FROM memories WHERE room_id = ?"
        params: list[Any] = [room_id]
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        sql += " ORDER BY created_at DESC, rowid DESC"
        if count is not None:
            sql += " LIMIT ?"
            params.append(count)
        rows = db.execute(sql, params).fetchall()
        return [
            MemoryRecord(
                id=r[0],
                agent_id=r[1],
                user_id=r[2],
                room_id=r[3],
                content=Content.from_dict(json.loads(r[4])),
                embedding=json.loads(r[5]),
                created_at=r[6],
            )
            for r in reversed(rows)
        ]

    # ==================== Audit log ====================

    async def log(self, body: dict[str, Any], user_id: str, room_id: str, type: str) -> None:
        db = await self._ensure_init()
        db.execute(
            "INSERT INTO logs (user_id, room_id, type, body_json, timestamp) VALUES (?, ?, ?, ?, ?)",
            (user_id, room_id, type, json.dumps(body, ensure_ascii=False, default=str), datetime.now().isoformat()),
        )
        db.commit()

    async def get_logs(self, room_id: str | None = None, type: str | None = None) -> list[dict]:
        db = await self._ensure_init()
        sql = "SELECT user_id, room_id, type, body_json, timestamp FROM logs WHERE 1=1"
        params: list[Any] = []
        if room_id is not None:
            sql += " AND room_id = ?"
            params.append(room_id)
        if type is not None:
            sql += " AND type = ?"
            params.append(type)
        rows = db.execute(sql + " ORDER BY id", params).fetchall()
        return [
            {"user_id": r[0], "room_id": r[1], "type": r[2], "body": json.loads(r[3]), "timestamp": r[4]}
            for r in rows
        ]

    # ==================== Cache ====================

    async def cache_get(self, key: str) -> Any | None:
        db = await self._ensure_init()
        row = db.execute("SELECT value_json FROM cache WHERE key = ?", (key,)).fetchone()
        return json.loads(row[0]) if row else None

    async def cache_set(self, key: str, value: Any) -> None:
        db = await self._ensure_init()
        db.execute(
            "INSERT INTO cache (key, value_json, updated_at) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json, updated_at = excluded.updated_at",
            (key, json.dumps(value, ensure_ascii=False), datetime.now().isoformat()),
        )
        db.commit()

    def close(self) -> None:
        if self._db is not None:
            self._db.close()
            self._db = None
            self._initialized = False
