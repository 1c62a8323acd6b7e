from __future__ import annotations

import argparse
from typing import Any

from app.config import load_config
from core.models import Venue
from signup.conversation_service import ConversationService
from signup.errors import InvalidArgumentError, PersistenceError
from signup.repository_factory import create_signup_repository
from signup.repository_interface import SignupRepositoryProtocol
from tgbot import message_templates
from tgbot.bot_client import TelegramApiError, TelegramBotClient


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CourtRoster venue signup bot")
    subparsers = parser.add_subparsers(dest="command", required=True)

    roster_parser = subparsers.add_parser("roster", help="Print the roster of a venue")
    roster_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")
    _add_venue_arguments(roster_parser)

    divide_parser = subparsers.add_parser("divide-teams", help="Divide the admitted roster into teams")
    divide_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")
    _add_venue_arguments(divide_parser)
    divide_parser.add_argument("--teams", type=int, required=True)
    divide_parser.add_argument("--players", type=int, required=True, help="Players per team")

    admin_parser = subparsers.add_parser("approve-admin", help="Approve a pending admin request")
    admin_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")
    admin_parser.add_argument("--telegram-user-id", type=int, required=True)

    webhook_parser = subparsers.add_parser("set-webhook", help="Register the webhook URL with Telegram")
    webhook_parser.add_argument("--config", default=None, help="Path to config.yaml or config.json")
    webhook_parser.add_argument("--url", required=True)

    return parser


def _add_venue_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--venue-id", default=None)
    group.add_argument("--chat-id", type=int, default=None, help="Use the latest venue of this chat")


def _resolve_venue(repository: SignupRepositoryProtocol, args: argparse.Namespace) -> Venue | None:
    if args.venue_id:
        return repository.get_venue(args.venue_id)
    return repository.get_latest_venue(args.chat_id)


def _build_service(config: dict[str, Any], repository: SignupRepositoryProtocol) -> ConversationService:
    signup_conf = config.get("signup", {})
    return ConversationService(
        repository=repository,
        timezone_name=str(signup_conf.get("timezone", "UTC") or "UTC"),
        capacity=int(signup_conf.get("capacity", 18)),
    )


def cmd_roster(args: argparse.Namespace, config: dict[str, Any]) -> int:
    repository = create_signup_repository(config)
    venue = _resolve_venue(repository, args)
    if venue is None:
        print("venue-not-found")
        return 1
    service = _build_service(config, repository)
    print(message_templates.venue_summary_text(venue, service.ordered_roster(venue.id), service.capacity))
    return 0


def cmd_divide_teams(args: argparse.Namespace, config: dict[str, Any]) -> int:
    repository = create_signup_repository(config)
    venue = _resolve_venue(repository, args)
    if venue is None:
        print("venue-not-found")
        return 1
    service = _build_service(config, repository)
    try:
        assignment = service.divide_teams(venue.id, args.teams, args.players)
    except InvalidArgumentError as exc:
        print(f"divide-teams-rejected: {exc}")
        return 1
    for message in message_templates.build_teams_message(assignment):
        print(message["text"])
    return 0


def cmd_approve_admin(args: argparse.Namespace, config: dict[str, Any]) -> int:
    repository = create_signup_repository(config)
    player = repository.find_player_by_t_id(args.telegram_user_id)
    if player is None:
        print(f"player-not-found t_id={args.telegram_user_id}")
        return 1
    try:
        approved = repository.approve_admin(player.id)
    except PersistenceError as exc:
        print(f"approve-admin-failed: {exc}")
        return 1
    print(f"admin-{'approved' if approved else 'already-approved'} player_id={player.id}")
    return 0


def cmd_set_webhook(args: argparse.Namespace, config: dict[str, Any]) -> int:
    telegram_conf = config.get("telegram", {})
    client = TelegramBotClient(
        bot_token=str(telegram_conf.get("bot_token", "") or ""),
        api_base_url=str(telegram_conf.get("api_base_url", "https://api.telegram.org")),
        timeout_sec=float(telegram_conf.get("timeout_sec", 10)),
    )
    try:
        client.set_webhook(args.url, str(telegram_conf.get("secret_token", "") or ""))
    except TelegramApiError as exc:
        print(f"set-webhook-failed: {exc}")
        return 1
    print(f"webhook-registered: {args.url}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config)

    if args.command == "roster":
        return cmd_roster(args, config)
    if args.command == "divide-teams":
        return cmd_divide_teams(args, config)
    if args.command == "approve-admin":
        return cmd_approve_admin(args, config)
    if args.command == "set-webhook":
        return cmd_set_webhook(args, config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
