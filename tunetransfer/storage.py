"""SQLite storage for connected source/target accounts."""

import aiosqlite
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
from cryptography.fernet import Fernet, InvalidToken

from tunetransfer.models import AccountRef


SIDES = ("source", "target")


class SessionStore:
    """
    SQLite-backed store of the account references of each side.

    Credentials are encrypted at rest with a Fernet key kept next to the
    database file. Nothing about transfer runs is persisted.
    """

    def __init__(self, db_path: str = "data/sessions.db"):
        self.db_path = db_path
        self._ensure_directory()
        self._encryption_key = self._get_or_create_key()
        self._fernet = Fernet(self._encryption_key)

    def _ensure_directory(self):
        """Ensure the data directory exists."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    def _get_or_create_key(self) -> bytes:
        """Get or create encryption key for token storage."""
        key_path = Path(self.db_path).parent / ".encryption_key"
        if key_path.exists():
            return key_path.read_bytes()
        key = Fernet.generate_key()
        key_path.write_bytes(key)
        os.chmod(key_path, 0o600)
        return key

    def _encrypt(self, data: str) -> str:
        return self._fernet.encrypt(data.encode()).decode()

    def _decrypt(self, data: str) -> str:
        return self._fernet.decrypt(data.encode()).decode()

    @staticmethod
    def _check_side(side: str):
        if side not in SIDES:
            raise ValueError(f"Unknown side: {side} (expected one of {', '.join(SIDES)})")

    async def init_db(self):
        """Initialize database tables."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    side TEXT PRIMARY KEY,
                    provider TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            await db.commit()

    async def save_session(self, side: str, account: AccountRef):
        """Store (or replace) the account of a side."""
        self._check_side(side)
        encrypted = self._encrypt(json.dumps(account.to_dict()))
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                INSERT OR REPLACE INTO sessions (side, provider, user_id, data, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """, (side, account.provider.value, account.user_id, encrypted, datetime.now().isoformat()))
            await db.commit()

    async def get_session(self, side: str) -> Optional[AccountRef]:
        """
        Return the stored account of a side.

        A row that no longer decrypts (the key file was replaced) is dropped
        and reported as absent.
        """
        self._check_side(side)
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT data FROM sessions WHERE side = ?", (side,))
            row = await cursor.fetchone()
        if not row:
            return None

        try:
            return AccountRef.from_dict(json.loads(self._decrypt(row[0])))
        except InvalidToken:
            await self.delete_session(side)
            return None

    async def has_session(self, side: str) -> bool:
        self._check_side(side)
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT 1 FROM sessions WHERE side = ?", (side,))
            row = await cursor.fetchone()
            return row is not None

    async def delete_session(self, side: str):
        """Forget the account of a side (logout)."""
        self._check_side(side)
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM sessions WHERE side = ?", (side,))
            await db.commit()

    async def list_sessions(self) -> List[Dict]:
        """Connected sides with provider and user id. Credentials are not returned."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT side, provider, user_id, updated_at FROM sessions ORDER BY side"
            )
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]
