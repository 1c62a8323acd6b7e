from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional


@dataclass(slots=True)
class TelegramUser:
    id: int
    first_name: str = ""
    last_name: str = ""
    username: str = ""

    @property
    def nickname(self) -> str:
        return f"@{self.username}" if self.username else ""


@dataclass(slots=True)
class RequestContext:
    chat_id: int
    sender: TelegramUser
    chat_title: str = ""
    chat_type: str = "private"
    message_id: Optional[int] = None
    callback_query_id: Optional[str] = None
    callback_message_id: Optional[int] = None


@dataclass(slots=True)
class Player:
    id: str
    name: str
    surname: str = ""
    nickname: str = ""
    t_id: Optional[int] = None
    rating: Optional[float] = None
    friend_owner_ref: Optional[int] = None
    created_at: str = ""

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.name, self.surname) if part)

    @property
    def full_tag(self) -> str:
        if self.nickname and self.nickname != "@":
            return self.nickname
        return self.full_name or "Player"

    @property
    def is_guest(self) -> bool:
        return self.friend_owner_ref is not None


@dataclass(slots=True)
class Venue:
    id: str
    location: str
    date: date
    time: str
    chat_id: int
    chat_title: str = ""
    owner_ref: Optional[int] = None
    created_at: str = ""

    def is_game_day(self, today: date) -> bool:
        return self.date == today


@dataclass(slots=True)
class Membership:
    venue_id: str
    player_id: str
    joined_at: str
    seq: int = 0


@dataclass(slots=True)
class RosterEntry:
    membership: Membership
    player: Player


@dataclass(slots=True)
class TeamAssignment:
    teams: list[list[Player]] = field(default_factory=list)
    bench: list[Player] = field(default_factory=list)

    @property
    def assigned_count(self) -> int:
        return sum(len(team) for team in self.teams)
