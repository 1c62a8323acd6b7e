from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from core.enums import CAPACITY
from core.models import Player, RosterEntry


@dataclass(slots=True)
class RemovalOutcome:
    position: Optional[int]
    total_before: int
    remaining: int
    left_notice: bool
    promoted: Optional[RosterEntry]

    @property
    def was_admitted(self) -> bool:
        return self.position is not None and self.position < CAPACITY


def order_roster(entries: Iterable[RosterEntry]) -> list[RosterEntry]:
    return sorted(entries, key=lambda entry: (entry.membership.joined_at, entry.membership.seq))


def split_admitted(
    ordered: Sequence[RosterEntry],
    capacity: int = CAPACITY,
) -> tuple[list[RosterEntry], list[RosterEntry]]:
    limit = max(0, int(capacity))
    return list(ordered[:limit]), list(ordered[limit:])


def position_of(ordered: Sequence[RosterEntry], player_id: str) -> int | None:
    for index, entry in enumerate(ordered):
        if entry.player.id == player_id:
            return index
    return None


def player_at(ordered: Sequence[RosterEntry], position: int) -> RosterEntry | None:
    # position is 1-based, as shown in the venue summary.
    if position < 1 or position > len(ordered):
        return None
    return ordered[position - 1]


def rank_for_division(entries: Sequence[RosterEntry]) -> list[Player]:
    # sorted() is stable, so equal ratings keep their roster order.
    ranked = sorted(
        entries,
        key=lambda entry: (entry.player.rating is None, -(entry.player.rating or 0.0)),
    )
    return [entry.player for entry in ranked]


def evaluate_removal(
    before: Sequence[RosterEntry],
    removed_player_id: str,
    after: Sequence[RosterEntry] | None = None,
    *,
    game_day: bool = False,
    capacity: int = CAPACITY,
) -> RemovalOutcome:
    position = position_of(before, removed_player_id)
    if after is None:
        after = [entry for entry in before if entry.player.id != removed_player_id]
    total_before = len(before)
    remaining = len(after)

    left_notice = bool(game_day) and position is not None and total_before >= capacity

    promoted: RosterEntry | None = None
    if position is not None and position < capacity and remaining >= capacity:
        promoted = after[capacity - 1]

    return RemovalOutcome(
        position=position,
        total_before=total_before,
        remaining=remaining,
        left_notice=left_notice,
        promoted=promoted,
    )
