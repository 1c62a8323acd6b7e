from __future__ import annotations

from enum import Enum

CAPACITY = 18


class DialogStep(str, Enum):
    IDLE = "IDLE"
    AWAIT_LOCATION = "AWAIT_LOCATION"
    AWAIT_DATE = "AWAIT_DATE"
    AWAIT_TIME = "AWAIT_TIME"
    AWAIT_FRIEND_DATA = "AWAIT_FRIEND_DATA"
    AWAIT_TEAM_PARAMS = "AWAIT_TEAM_PARAMS"
    AWAIT_RATING_UPDATE = "AWAIT_RATING_UPDATE"


class CallbackAction(str, Enum):
    ADD_FRIEND = "add_friend"
    ADD_PLAYER = "add_player"
    REMOVE_PLAYER = "remove_player"
    REMOVE_FRIEND = "remove_friend"


class AdminRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


class Command:
    PING = "ping"
    LOGIN = "login"
    BECOME_ADMIN = "become_admin"
    START = "start"
    SORT_TEAMS = "sort_teams"
    CHANGE_RATING = "change_rating"

    GATED = (
        START,
        SORT_TEAMS,
        CHANGE_RATING,
    )
