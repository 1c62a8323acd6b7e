from __future__ import annotations

from typing import Any, Sequence

from core.enums import CAPACITY, CallbackAction
from core.models import Player, RosterEntry, TeamAssignment, Venue
from tgbot.inline_keyboard import callback_answer, callback_button, edit_message, text_message, url_button

WRONG_ARGUMENT_TEXT = "Wrong argument! Please try again."
NOT_AUTHORIZED_TEXT = "You are not authorized for this action!"
SOMETHING_WENT_WRONG_TEXT = "Something went wrong!"
FRIEND_NOT_SAVED_TEXT = "Could not save your friend!"
NO_VENUE_TEXT = "There is no venue in this chat yet. Use /start to create one."

LOCATION_PROMPT = "Location?"
DATE_PROMPT = "Date? (ex. 23.04)"
TIME_PROMPT = "Time? (ex. 19.00)"
FRIEND_PROMPT = "Name and Rating ? (ex. Chapa 5.5)"
TEAM_PARAMS_PROMPT = "Number of Teams and Players per Team (ex. 3 5)"
RATING_PROMPT = "Position on the list and Rating (ex. 3 6.5)"

BUTTON_LABELS = {
    CallbackAction.ADD_PLAYER: "I'm in",
    CallbackAction.REMOVE_PLAYER: "I'm out",
    CallbackAction.ADD_FRIEND: "+ Friend",
    CallbackAction.REMOVE_FRIEND: "- Friend",
}


def rating_text(value: float | None) -> str:
    if value is None:
        return "-"
    if float(value).is_integer():
        return str(int(value))
    return f"{float(value):g}"


def _player_line(position: int, player: Player) -> str:
    label = player.full_name or player.full_tag
    if player.nickname and player.nickname != label:
        label = f"{label} ({player.nickname})"
    if player.is_guest:
        label = f"{label} [friend]"
    return f"{position}. {label}"


def venue_summary_text(venue: Venue, ordered: Sequence[RosterEntry], capacity: int = CAPACITY) -> str:
    lines = [
        f"Location: {venue.location}",
        f"Date: {venue.date.strftime('%A %d.%m')}",
        f"Time: {venue.time}",
        "",
        f"Players ({len(ordered)}/{capacity}):",
    ]
    for index, entry in enumerate(ordered[:capacity], start=1):
        lines.append(_player_line(index, entry.player))
    waiting = ordered[capacity:]
    if waiting:
        lines.append("")
        lines.append("Waiting list:")
        for index, entry in enumerate(waiting, start=capacity + 1):
            lines.append(_player_line(index, entry.player))
    return "\n".join(lines)


def venue_keyboard(venue_id: str) -> list[list[dict[str, Any]]]:
    return [
        [
            callback_button(BUTTON_LABELS[CallbackAction.ADD_PLAYER], f"{CallbackAction.ADD_PLAYER.value}:{venue_id}"),
            callback_button(BUTTON_LABELS[CallbackAction.REMOVE_PLAYER], f"{CallbackAction.REMOVE_PLAYER.value}:{venue_id}"),
        ],
        [
            callback_button(BUTTON_LABELS[CallbackAction.ADD_FRIEND], f"{CallbackAction.ADD_FRIEND.value}:{venue_id}"),
            callback_button(BUTTON_LABELS[CallbackAction.REMOVE_FRIEND], f"{CallbackAction.REMOVE_FRIEND.value}:{venue_id}"),
        ],
    ]


def build_venue_message(
    venue: Venue,
    ordered: Sequence[RosterEntry],
    capacity: int = CAPACITY,
) -> list[dict[str, Any]]:
    return [text_message(venue_summary_text(venue, ordered, capacity), venue_keyboard(venue.id))]


def build_venue_edit_message(
    message_id: int,
    venue: Venue,
    ordered: Sequence[RosterEntry],
    capacity: int = CAPACITY,
) -> dict[str, Any]:
    return edit_message(message_id, venue_summary_text(venue, ordered, capacity), venue_keyboard(venue.id))


def build_teams_message(assignment: TeamAssignment) -> list[dict[str, Any]]:
    blocks: list[str] = []
    for number, team in enumerate(assignment.teams, start=1):
        lines = [f"Team {number}:"]
        for index, player in enumerate(team, start=1):
            lines.append(f"{index}. {player.full_tag} ({rating_text(player.rating)})")
        blocks.append("\n".join(lines))
    if assignment.bench:
        blocks.append("Bench:\n" + "\n".join(player.full_tag for player in assignment.bench))
    return [text_message("\n\n".join(blocks))]


def build_text_message(text: str) -> list[dict[str, Any]]:
    return [text_message(text)]


def build_pong_message() -> list[dict[str, Any]]:
    return build_text_message("pong")


def build_login_message(login_url: str) -> list[dict[str, Any]]:
    rows = [[url_button("Login", login_url)]] if login_url else None
    return [text_message("Please login through this link to access Dashboard", rows)]


def build_admin_requested_message() -> list[dict[str, Any]]:
    return build_text_message("Your request was sent!")


def build_admin_already_requested_message(login_url: str) -> list[dict[str, Any]]:
    rows = [[url_button("Login", login_url)]] if login_url else None
    return [text_message("Already sent! Check Dashboard for access", rows)]


def build_not_authorized_message() -> list[dict[str, Any]]:
    return build_text_message(NOT_AUTHORIZED_TEXT)


def build_wrong_argument_message() -> list[dict[str, Any]]:
    return build_text_message(WRONG_ARGUMENT_TEXT)


def build_something_went_wrong_message() -> list[dict[str, Any]]:
    return build_text_message(SOMETHING_WENT_WRONG_TEXT)


def build_friend_not_saved_message() -> list[dict[str, Any]]:
    return build_text_message(FRIEND_NOT_SAVED_TEXT)


def build_no_venue_message() -> list[dict[str, Any]]:
    return build_text_message(NO_VENUE_TEXT)


def build_rating_updated_message(player: Player) -> list[dict[str, Any]]:
    return build_text_message(f"{player.full_tag}'s rating has been updated to {rating_text(player.rating)}")


def build_left_list_message(player: Player, total_players: int) -> dict[str, Any]:
    return text_message(f"{player.full_tag} left the list! Total players: {total_players}")


def build_promoted_message(player: Player) -> dict[str, Any]:
    return text_message(f"{player.full_tag} You are in the game!")


def build_callback_answer(text: str = "") -> dict[str, Any]:
    return callback_answer(text)
