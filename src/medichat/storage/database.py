"""
Database — SQLite-backed durable storage for users, patients and turns.

Usage:
    db = Database(db_path)
    await db.start()

    user = await db.create_user("a@example.com", identity_id="idp-123")
    await db.add_turn(ConversationTurn(user.id, "hello", "hi there"))
    turns = await db.list_turns(user.id)

Three tables:
- users: one row per account, unique by email and by identity provider id
- patients: patient records created by a user
- conversation_turns: append-only log of chat exchanges

Driver errors surface as PersistenceError; a duplicate account surfaces as
AuthError so the sign-up route can report it as a conflict.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

import aiosqlite

import medichat.core.config as config_module
from medichat.chat.models import ConversationTurn
from medichat.errors import AuthError, PersistenceError
from medichat.storage.models import PATIENT_FIELDS, Patient, User

logger = logging.getLogger(__name__)

_USER_COLUMNS = "id, email, identity_id, created_at"
_PATIENT_COLUMNS = "id, user_id, " + ", ".join(PATIENT_FIELDS) + ", created_at"


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except aiosqlite.Error as e:
        logger.error("Database error while %s: %s", action, e)
        raise PersistenceError(detail=f"{action}: {e}") from e


class Database:
    def __init__(self, db_path: Path | str | None = None):
        if db_path is None:
            db_path = config_module.config.database.db_path
        self.db_path = Path(db_path)
        self._db: aiosqlite.Connection | None = None

    async def start(self) -> None:
        """Open the connection and create tables."""
        if self._db is not None:
            return
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT UNIQUE NOT NULL,
                identity_id TEXT UNIQUE NOT NULL,
                created_at REAL NOT NULL
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS patients (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                date_of_birth TEXT,
                gender TEXT,
                phone TEXT,
                email TEXT,
                medical_history TEXT,
                allergies TEXT,
                medications TEXT,
                notes TEXT,
                created_at REAL NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS conversation_turns (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                message TEXT NOT NULL,
                response TEXT NOT NULL,
                timestamp REAL NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_turns_user_time
            ON conversation_turns(user_id, timestamp)
        """)

        await self._db.commit()
        logger.info("Database started (db=%s)", self.db_path)

    async def stop(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def ping(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                await cursor.fetchone()
            return True
        except aiosqlite.Error:
            return False

    # ─── Users ────────────────────────────────────────────────────

    async def create_user(self, email: str, identity_id: str) -> User:
        assert self._db is not None, "Database not started"

        user = User(id=str(uuid.uuid4()), email=email, identity_id=identity_id)
        try:
            await self._db.execute(
                f"INSERT INTO users ({_USER_COLUMNS}) VALUES (?, ?, ?, ?)",
                (user.id, user.email, user.identity_id, user.created_at),
            )
            await self._db.commit()
        except aiosqlite.IntegrityError as e:
            await self._db.rollback()
            raise AuthError("User already exists", detail=str(e)) from e
        except aiosqlite.Error as e:
            logger.error("Database error while creating user: %s", e)
            raise PersistenceError(detail=str(e)) from e
        return user

    async def get_user(self, user_id: str) -> User | None:
        return await self._fetch_user("id", user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        return await self._fetch_user("email", email)

    async def get_user_by_identity(self, identity_id: str) -> User | None:
        return await self._fetch_user("identity_id", identity_id)

    async def _fetch_user(self, column: str, value: str) -> User | None:
        assert self._db is not None, "Database not started"

        with _translate_errors("loading user"):
            async with self._db.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE {column} = ?",
                (value,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return User(
            id=row["id"],
            email=row["email"],
            identity_id=row["identity_id"],
            created_at=row["created_at"],
        )

    # ─── Patients ─────────────────────────────────────────────────

    async def create_patient(self, user_id: str, fields: dict[str, Any]) -> Patient:
        assert self._db is not None, "Database not started"

        values = {name: fields.get(name) for name in PATIENT_FIELDS}
        created_at = time.time()
        with _translate_errors("creating patient"):
            cursor = await self._db.execute(
                f"INSERT INTO patients (user_id, {', '.join(PATIENT_FIELDS)}, created_at) "
                f"VALUES (?, {', '.join('?' for _ in PATIENT_FIELDS)}, ?)",
                (user_id, *values.values(), created_at),
            )
            patient_id = cursor.lastrowid
            await cursor.close()
            await self._db.commit()
        return Patient(id=patient_id, user_id=user_id, created_at=created_at, **values)

    async def get_patient(self, patient_id: int) -> Patient | None:
        assert self._db is not None, "Database not started"

        with _translate_errors("loading patient"):
            async with self._db.execute(
                f"SELECT {_PATIENT_COLUMNS} FROM patients WHERE id = ?",
                (patient_id,),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        return Patient(**{key: row[key] for key in row.keys()})

    # ─── Conversation turns ───────────────────────────────────────

    async def add_turn(self, turn: ConversationTurn) -> None:
        assert self._db is not None, "Database not started"

        with _translate_errors("saving conversation turn"):
            await self._db.execute(
                """
                INSERT INTO conversation_turns (id, user_id, message, response, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    turn.id,
                    turn.user_id,
                    turn.input_text,
                    turn.output_text,
                    turn.timestamp,
                ),
            )
            await self._db.commit()

    async def list_turns(self, user_id: str, limit: int = 20) -> list[ConversationTurn]:
        """Most recent turns first."""
        assert self._db is not None, "Database not started"

        turns = []
        with _translate_errors("listing conversation turns"):
            async with self._db.execute(
                """
                SELECT id, user_id, message, response, timestamp
                FROM conversation_turns
                WHERE user_id = ?
                ORDER BY timestamp DESC, rowid DESC
                LIMIT ?
                """,
                (user_id, limit),
            ) as cursor:
                async for row in cursor:
                    turns.append(
                        ConversationTurn(
                            id=row["id"],
                            user_id=row["user_id"],
                            input_text=row["message"],
                            output_text=row["response"],
                            timestamp=row["timestamp"],
                        )
                    )
        return turns

    async def count_turns(self, user_id: str) -> int:
        assert self._db is not None, "Database not started"

        with _translate_errors("counting conversation turns"):
            async with self._db.execute(
                "SELECT COUNT(*) FROM conversation_turns WHERE user_id = ?",
                (user_id,),
            ) as cursor:
                row = await cursor.fetchone()
        return int(row[0])
