from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")


def divide(ordered_players: Sequence[T], team_count: int, players_per_team: int) -> list[list[T]]:
    # Player i goes to team i % team_count; the rest stay on the bench.
    needed = _required_players(team_count, players_per_team)
    if needed > len(ordered_players):
        raise ValueError(
            f"cannot fill {team_count} teams of {players_per_team} with {len(ordered_players)} players"
        )
    teams: list[list[T]] = [[] for _ in range(team_count)]
    for index, player in enumerate(ordered_players[:needed]):
        teams[index % team_count].append(player)
    return teams


def bench(ordered_players: Sequence[T], team_count: int, players_per_team: int) -> list[T]:
    needed = _required_players(team_count, players_per_team)
    return list(ordered_players[needed:])


def _required_players(team_count: int, players_per_team: int) -> int:
    if int(team_count) <= 0 or int(players_per_team) <= 0:
        raise ValueError("team_count and players_per_team must be positive")
    return int(team_count) * int(players_per_team)
