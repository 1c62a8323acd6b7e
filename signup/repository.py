from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterator
from uuid import uuid4

from core.enums import AdminRequestStatus
from core.models import Membership, Player, RosterEntry, Venue
from signup.errors import PersistenceError
from signup.models import ConversationSession, build_session_key


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SignupRepository:
    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = Path(sqlite_path)
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.sqlite_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            conn.rollback()
            raise PersistenceError(f"sqlite error: {exc}") from exc
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS players (
                    player_id TEXT PRIMARY KEY,
                    t_id INTEGER UNIQUE,
                    name TEXT NOT NULL,
                    surname TEXT,
                    nickname TEXT,
                    rating REAL,
                    friend_owner_ref INTEGER,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_players_friend_owner
                    ON players(friend_owner_ref);

                CREATE TABLE IF NOT EXISTS admin_requests (
                    player_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS venues (
                    venue_id TEXT PRIMARY KEY,
                    location TEXT NOT NULL,
                    venue_date TEXT NOT NULL,
                    time TEXT NOT NULL,
                    chat_id INTEGER NOT NULL,
                    chat_title TEXT,
                    owner_ref INTEGER,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_venues_chat_created
                    ON venues(chat_id, created_at DESC);

                CREATE TABLE IF NOT EXISTS memberships (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    venue_id TEXT NOT NULL,
                    player_id TEXT NOT NULL,
                    joined_at TEXT NOT NULL,
                    UNIQUE (venue_id, player_id)
                );
                CREATE INDEX IF NOT EXISTS idx_memberships_venue_joined
                    ON memberships(venue_id, joined_at, seq);

                CREATE TABLE IF NOT EXISTS conversation_sessions (
                    session_key TEXT PRIMARY KEY,
                    chat_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    step TEXT NOT NULL,
                    payload_json TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS processed_updates (
                    update_id TEXT PRIMARY KEY,
                    received_at TEXT NOT NULL
                );
                """
            )
            conn.commit()

    def mark_update_processed(self, update_id: str) -> bool:
        key = (update_id or "").strip()
        if not key:
            return False

        with self._connect() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO processed_updates(update_id, received_at) VALUES(?, ?)",
                (key, _utc_now()),
            )
            conn.commit()
            return cur.rowcount > 0

    def find_or_create_player(
        self,
        t_id: int,
        name: str,
        surname: str = "",
        nickname: str = "",
    ) -> Player:
        now = _utc_now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO players(
                    player_id, t_id, name, surname, nickname, rating,
                    friend_owner_ref, created_at, updated_at
                ) VALUES(?, ?, ?, ?, ?, NULL, NULL, ?, ?)
                """,
                (str(uuid4()), int(t_id), name or "", surname or "", nickname or "", now, now),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM players WHERE t_id = ?", (int(t_id),)).fetchone()
        if row is None:
            raise PersistenceError(f"player could not be saved: t_id={t_id}")
        return _player_from_row(row)

    def find_player_by_t_id(self, t_id: int) -> Player | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM players WHERE t_id = ?", (int(t_id),)).fetchone()
        return _player_from_row(row) if row is not None else None

    def add_guest(self, venue_id: str, name: str, rating: float | None, friend_owner_ref: int) -> Player:
        player_id = str(uuid4())
        now = _utc_now()
        # One transaction: a failed membership insert rolls the guest back.
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO players(
                    player_id, t_id, name, surname, nickname, rating,
                    friend_owner_ref, created_at, updated_at
                ) VALUES(?, NULL, ?, '', '', ?, ?, ?, ?)
                """,
                (player_id, name, rating, int(friend_owner_ref), now, now),
            )
            conn.execute(
                "INSERT INTO memberships(venue_id, player_id, joined_at) VALUES(?, ?, ?)",
                (venue_id, player_id, now),
            )
            conn.commit()
        return Player(
            id=player_id,
            name=name,
            rating=rating,
            friend_owner_ref=int(friend_owner_ref),
            created_at=now,
        )

    def update_player_rating(self, player_id: str, rating: float) -> Player:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE players SET rating = ?, updated_at = ? WHERE player_id = ?",
                (float(rating), _utc_now(), player_id),
            )
            conn.commit()
            if cur.rowcount == 0:
                raise PersistenceError(f"player not found: {player_id}")
            row = conn.execute("SELECT * FROM players WHERE player_id = ?", (player_id,)).fetchone()
        return _player_from_row(row)

    def request_admin(self, player_id: str) -> bool:
        now = _utc_now()
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO admin_requests(player_id, status, created_at, updated_at)
                VALUES(?, ?, ?, ?)
                """,
                (player_id, AdminRequestStatus.PENDING.value, now, now),
            )
            conn.commit()
            return cur.rowcount > 0

    def approve_admin(self, player_id: str) -> bool:
        now = _utc_now()
        with self._connect() as conn:
            existing = conn.execute(
                "SELECT status FROM admin_requests WHERE player_id = ?",
                (player_id,),
            ).fetchone()
            if existing is not None and existing["status"] == AdminRequestStatus.APPROVED.value:
                return False
            conn.execute(
                """
                INSERT INTO admin_requests(player_id, status, created_at, updated_at)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(player_id) DO UPDATE SET status = excluded.status, updated_at = excluded.updated_at
                """,
                (player_id, AdminRequestStatus.APPROVED.value, now, now),
            )
            conn.commit()
        return True

    def is_admin(self, player_id: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT status FROM admin_requests WHERE player_id = ?",
                (player_id,),
            ).fetchone()
        return row is not None and row["status"] == AdminRequestStatus.APPROVED.value

    def create_venue(
        self,
        location: str,
        venue_date: date,
        time: str,
        chat_id: int,
        chat_title: str,
        owner_ref: int | None,
    ) -> Venue:
        venue_id = str(uuid4())
        now = _utc_now()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO venues(
                    venue_id, location, venue_date, time, chat_id, chat_title, owner_ref, created_at
                ) VALUES(?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (venue_id, location, venue_date.isoformat(), time, int(chat_id), chat_title, owner_ref, now),
            )
            conn.commit()
        return Venue(
            id=venue_id,
            location=location,
            date=venue_date,
            time=time,
            chat_id=int(chat_id),
            chat_title=chat_title or "",
            owner_ref=owner_ref,
            created_at=now,
        )

    def get_venue(self, venue_id: str) -> Venue | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM venues WHERE venue_id = ?", (venue_id,)).fetchone()
        return _venue_from_row(row) if row is not None else None

    def get_latest_venue(self, chat_id: int) -> Venue | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM venues
                WHERE chat_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (int(chat_id),),
            ).fetchone()
        return _venue_from_row(row) if row is not None else None

    def add_membership(self, venue_id: str, player_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO memberships(venue_id, player_id, joined_at) VALUES(?, ?, ?)",
                (venue_id, player_id, _utc_now()),
            )
            conn.commit()
            return cur.rowcount > 0

    def remove_membership(self, venue_id: str, player_id: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM memberships WHERE venue_id = ? AND player_id = ?",
                (venue_id, player_id),
            )
            conn.commit()
            return cur.rowcount > 0

    def list_roster(self, venue_id: str) -> list[RosterEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT m.seq, m.venue_id, m.joined_at, p.*
                FROM memberships AS m
                JOIN players AS p ON p.player_id = m.player_id
                WHERE m.venue_id = ?
                """,
                (venue_id,),
            ).fetchall()
        return [
            RosterEntry(
                membership=Membership(
                    venue_id=row["venue_id"],
                    player_id=row["player_id"],
                    joined_at=row["joined_at"],
                    seq=int(row["seq"]),
                ),
                player=_player_from_row(row),
            )
            for row in rows
        ]

    def find_latest_guest(self, venue_id: str, friend_owner_ref: int) -> Player | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT p.*
                FROM memberships AS m
                JOIN players AS p ON p.player_id = m.player_id
                WHERE m.venue_id = ? AND p.friend_owner_ref = ?
                ORDER BY m.joined_at DESC, m.seq DESC
                LIMIT 1
                """,
                (venue_id, int(friend_owner_ref)),
            ).fetchone()
        return _player_from_row(row) if row is not None else None

    def get_session(self, chat_id: int, user_id: int) -> ConversationSession | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT chat_id, user_id, step, payload_json, created_at, updated_at
                FROM conversation_sessions
                WHERE session_key = ?
                """,
                (build_session_key(chat_id, user_id),),
            ).fetchone()
        if row is None:
            return None
        raw_payload = _load_json(row["payload_json"])
        payload = raw_payload if isinstance(raw_payload, dict) else {}
        return ConversationSession.from_payload(
            chat_id=row["chat_id"],
            user_id=row["user_id"],
            step=row["step"],
            payload=payload,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def save_session(self, session: ConversationSession) -> None:
        now = _utc_now()
        key = session.session_key
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO conversation_sessions(
                    session_key, chat_id, user_id, step, payload_json, created_at, updated_at
                ) VALUES(
                    ?,
                    ?,
                    ?,
                    ?,
                    ?,
                    COALESCE((SELECT created_at FROM conversation_sessions WHERE session_key = ?), ?),
                    ?
                )
                """,
                (
                    key,
                    int(session.chat_id),
                    int(session.user_id),
                    session.step.value,
                    json.dumps(session.to_payload(), ensure_ascii=False),
                    key,
                    now,
                    now,
                ),
            )
            conn.commit()
        session.updated_at = now
        if not session.created_at:
            session.created_at = now


def _player_from_row(row: sqlite3.Row) -> Player:
    return Player(
        id=row["player_id"],
        name=row["name"] or "",
        surname=row["surname"] or "",
        nickname=row["nickname"] or "",
        t_id=_to_int(row["t_id"]),
        rating=_to_float(row["rating"]),
        friend_owner_ref=_to_int(row["friend_owner_ref"]),
        created_at=row["created_at"] or "",
    )


def _venue_from_row(row: sqlite3.Row) -> Venue:
    return Venue(
        id=row["venue_id"],
        location=row["location"],
        date=date.fromisoformat(row["venue_date"]),
        time=row["time"],
        chat_id=int(row["chat_id"]),
        chat_title=row["chat_title"] or "",
        owner_ref=_to_int(row["owner_ref"]),
        created_at=row["created_at"] or "",
    )


def _load_json(text: str | None) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except Exception:
        return None


def _to_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
