from __future__ import annotations

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Sequence

from core.enums import CAPACITY

MAX_RATING = Decimal("10")

RE_DAY_MONTH = re.compile(r"^(?P<day>\d{1,2})\.(?P<month>\d{1,2})$")
RE_RATING = re.compile(r"^\d{1,2}(?:[.,]\d{1,2})?$")
RE_POSITIVE_INT = re.compile(r"^\d+$")

# 29.02 may be up to four years away.
_MAX_YEARS_AHEAD = 4


def split_args(text: str | None) -> list[str]:
    return [token for token in str(text or "").split() if token]


def normalize_date(token: Any, today: date | None = None) -> date | None:
    match = RE_DAY_MONTH.match(str(token or "").strip())
    if match is None:
        return None
    day = int(match.group("day"))
    month = int(match.group("month"))
    current = today or date.today()
    for offset in range(_MAX_YEARS_AHEAD + 1):
        try:
            candidate = date(current.year + offset, month, day)
        except ValueError:
            continue
        if candidate >= current:
            return candidate
    return None


def is_valid_date(token: Any, today: date | None = None) -> bool:
    return normalize_date(token, today) is not None


def parse_rating(token: Any) -> float | None:
    text = str(token or "").strip()
    if not RE_RATING.match(text):
        return None
    try:
        value = Decimal(text.replace(",", "."))
    except InvalidOperation:
        return None
    if value < 0 or value > MAX_RATING:
        return None
    return float(value)


def is_valid_rating(token: Any) -> bool:
    return parse_rating(token) is not None


def parse_positive_int(token: Any) -> int | None:
    text = str(token or "").strip()
    if not RE_POSITIVE_INT.match(text):
        return None
    value = int(text)
    return value if value > 0 else None


def is_valid_friend_args(tokens: Sequence[str]) -> bool:
    if len(tokens) != 2:
        return False
    name, rating = tokens
    return bool(str(name).strip()) and is_valid_rating(rating)


def is_valid_division_args(
    team_count: Any,
    players_per_team: Any,
    total_players: int,
    capacity: int = CAPACITY,
) -> bool:
    if isinstance(team_count, bool) or isinstance(players_per_team, bool):
        return False
    if not isinstance(team_count, int) or not isinstance(players_per_team, int):
        return False
    if team_count <= 0 or players_per_team <= 0:
        return False
    admitted = min(max(0, int(total_players)), capacity)
    return team_count * players_per_team <= admitted


def is_valid_rating_data(tokens: Sequence[str], roster_size: int | None = None) -> bool:
    if len(tokens) != 2:
        return False
    position = parse_positive_int(tokens[0])
    if position is None:
        return False
    if roster_size is not None and position > roster_size:
        return False
    return is_valid_rating(tokens[1])
