from __future__ import annotations

from datetime import date
from typing import Protocol

from core.models import Player, RosterEntry, Venue
from signup.models import ConversationSession


class SignupRepositoryProtocol(Protocol):
    def mark_update_processed(self, update_id: str) -> bool: ...

    def find_or_create_player(
        self,
        t_id: int,
        name: str,
        surname: str = "",
        nickname: str = "",
    ) -> Player: ...

    def find_player_by_t_id(self, t_id: int) -> Player | None: ...

    def add_guest(self, venue_id: str, name: str, rating: float | None, friend_owner_ref: int) -> Player: ...

    def update_player_rating(self, player_id: str, rating: float) -> Player: ...

    def request_admin(self, player_id: str) -> bool: ...

    def approve_admin(self, player_id: str) -> bool: ...

    def is_admin(self, player_id: str) -> bool: ...

    def create_venue(
        self,
        location: str,
        venue_date: date,
        time: str,
        chat_id: int,
        chat_title: str,
        owner_ref: int | None,
    ) -> Venue: ...

    def get_venue(self, venue_id: str) -> Venue | None: ...

    def get_latest_venue(self, chat_id: int) -> Venue | None: ...

    def add_membership(self, venue_id: str, player_id: str) -> bool: ...

    def remove_membership(self, venue_id: str, player_id: str) -> bool: ...

    def list_roster(self, venue_id: str) -> list[RosterEntry]: ...

    def find_latest_guest(self, venue_id: str, friend_owner_ref: int) -> Player | None: ...

    def get_session(self, chat_id: int, user_id: int) -> ConversationSession | None: ...

    def save_session(self, session: ConversationSession) -> None: ...
