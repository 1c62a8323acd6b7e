from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from core.enums import CAPACITY, CallbackAction, Command, DialogStep
from core.models import Player, RequestContext, RosterEntry, TeamAssignment, Venue
from signup import team_divider
from signup.errors import InvalidArgumentError, NotAuthorizedError, PersistenceError, UnsatisfiableDivisionError
from signup.models import ConversationSession
from signup.repository_interface import SignupRepositoryProtocol
from signup.roster import evaluate_removal, order_roster, player_at, rank_for_division, split_admitted
from signup.state_machine import can_transition, entry_step_for
from signup.validators import (
    is_valid_division_args,
    is_valid_friend_args,
    is_valid_rating_data,
    normalize_date,
    parse_positive_int,
    parse_rating,
    split_args,
)
from tgbot import message_templates

Messages = list[dict[str, Any]]

FLOW_PROMPTS = {
    DialogStep.AWAIT_LOCATION: message_templates.LOCATION_PROMPT,
    DialogStep.AWAIT_TEAM_PARAMS: message_templates.TEAM_PARAMS_PROMPT,
    DialogStep.AWAIT_RATING_UPDATE: message_templates.RATING_PROMPT,
}

# Flows that act on an existing venue rather than creating one.
VENUE_BOUND_STEPS = {
    DialogStep.AWAIT_TEAM_PARAMS,
    DialogStep.AWAIT_RATING_UPDATE,
}


class ConversationService:
    def __init__(
        self,
        repository: SignupRepositoryProtocol,
        admin_user_ids: Iterable[Any] | None = None,
        login_url: str = "",
        timezone_name: str = "UTC",
        capacity: int = CAPACITY,
        today_provider: Callable[[], date] | None = None,
    ) -> None:
        self.repository = repository
        self.admin_user_ids = {int(value) for value in (admin_user_ids or []) if str(value).strip()}
        self.login_url = str(login_url or "")
        self.capacity = max(1, int(capacity))
        self._tz = _resolve_timezone(timezone_name)
        self._today_provider = today_provider

        self._command_handlers: dict[str, Callable[..., Messages]] = {
            Command.PING: self._handle_ping,
            Command.LOGIN: self._handle_login,
            Command.BECOME_ADMIN: self._handle_become_admin,
            Command.START: self._handle_flow_entry,
            Command.SORT_TEAMS: self._handle_flow_entry,
            Command.CHANGE_RATING: self._handle_flow_entry,
        }
        self._step_handlers: dict[DialogStep, Callable[[RequestContext, ConversationSession, list[str]], Messages]] = {
            DialogStep.AWAIT_LOCATION: self._handle_location,
            DialogStep.AWAIT_DATE: self._handle_date,
            DialogStep.AWAIT_TIME: self._handle_time,
            DialogStep.AWAIT_FRIEND_DATA: self._handle_friend_data,
            DialogStep.AWAIT_TEAM_PARAMS: self._handle_team_params,
            DialogStep.AWAIT_RATING_UPDATE: self._handle_rating_update,
        }
        self._callback_handlers: dict[CallbackAction, Callable[[RequestContext, Venue, Player], Messages]] = {
            CallbackAction.ADD_PLAYER: self._handle_add_player,
            CallbackAction.REMOVE_PLAYER: self._handle_remove_player,
            CallbackAction.ADD_FRIEND: self._handle_add_friend,
            CallbackAction.REMOVE_FRIEND: self._handle_remove_friend,
        }

    def today(self) -> date:
        if self._today_provider is not None:
            return self._today_provider()
        return datetime.now(self._tz).date()

    def handle_command(self, ctx: RequestContext, command: str, args: Sequence[str] = ()) -> Messages:
        name = str(command or "").strip().lower()
        handler = self._command_handlers.get(name)
        if handler is None:
            return []
        try:
            if name in Command.GATED:
                self._require_authorized(ctx)
            return handler(ctx, [str(arg) for arg in args if str(arg).strip()], command=name)
        except NotAuthorizedError:
            return message_templates.build_not_authorized_message()
        except PersistenceError as exc:
            print(f"signup-persistence-failed command={name} chat_id={ctx.chat_id} error={exc}")
            return message_templates.build_something_went_wrong_message()

    def handle_text(self, ctx: RequestContext, text: str) -> Messages:
        try:
            session = self.repository.get_session(ctx.chat_id, ctx.sender.id)
        except PersistenceError as exc:
            print(f"signup-persistence-failed stage=load-session chat_id={ctx.chat_id} error={exc}")
            return message_templates.build_something_went_wrong_message()
        if session is None or session.step == DialogStep.IDLE:
            return []
        return self._dispatch_step(ctx, session, split_args(text))

    def handle_callback(self, ctx: RequestContext, data: str) -> Messages:
        action_text, _, venue_ref = str(data or "").partition(":")
        try:
            action = CallbackAction(action_text.strip())
        except ValueError:
            return [message_templates.build_callback_answer(message_templates.WRONG_ARGUMENT_TEXT)]

        handler = self._callback_handlers[action]
        try:
            venue = self._resolve_venue(ctx, venue_ref.strip() or None)
            if venue is None:
                return [message_templates.build_callback_answer(message_templates.NO_VENUE_TEXT)]
            player = self._sender_player(ctx)
            return handler(ctx, venue, player)
        except PersistenceError as exc:
            print(f"signup-persistence-failed action={action.value} chat_id={ctx.chat_id} error={exc}")
            return [message_templates.build_callback_answer(message_templates.SOMETHING_WENT_WRONG_TEXT)]

    def divide_teams(self, venue_id: str, team_count: int, players_per_team: int) -> TeamAssignment:
        ordered = order_roster(self.repository.list_roster(venue_id))
        if not is_valid_division_args(team_count, players_per_team, len(ordered), self.capacity):
            raise UnsatisfiableDivisionError(
                f"cannot divide {len(ordered)} players into {team_count} teams of {players_per_team}"
            )
        admitted, waitlisted = split_admitted(ordered, self.capacity)
        pool = rank_for_division(admitted)
        return TeamAssignment(
            teams=team_divider.divide(pool, team_count, players_per_team),
            bench=team_divider.bench(pool, team_count, players_per_team) + [entry.player for entry in waitlisted],
        )

    def ordered_roster(self, venue_id: str) -> list[RosterEntry]:
        return order_roster(self.repository.list_roster(venue_id))

    def _handle_ping(self, ctx: RequestContext, args: list[str], command: str) -> Messages:
        return message_templates.build_pong_message()

    def _handle_login(self, ctx: RequestContext, args: list[str], command: str) -> Messages:
        return message_templates.build_login_message(self.login_url)

    def _handle_become_admin(self, ctx: RequestContext, args: list[str], command: str) -> Messages:
        player = self._sender_player(ctx)
        if self.repository.request_admin(player.id):
            print(f"admin-requested player_id={player.id} t_id={ctx.sender.id}")
            return message_templates.build_admin_requested_message()
        return message_templates.build_admin_already_requested_message(self.login_url)

    def _handle_flow_entry(self, ctx: RequestContext, args: list[str], command: str) -> Messages:
        step = entry_step_for(command)
        if step is None:
            return []

        venue: Venue | None = None
        if step in VENUE_BOUND_STEPS:
            venue = self.repository.get_latest_venue(ctx.chat_id)
            if venue is None:
                return message_templates.build_no_venue_message()

        session = self._load_session(ctx)
        if session.step != DialogStep.IDLE:
            print(f"flow-abandoned chat_id={ctx.chat_id} user_id={ctx.sender.id} step={session.step.value}")
        session.clear_flow()
        if venue is not None:
            session.venue_ref = venue.id
        self._move(session, step)

        if args:
            return self._dispatch_step(ctx, session, args)
        return message_templates.build_text_message(FLOW_PROMPTS[step])

    def _dispatch_step(self, ctx: RequestContext, session: ConversationSession, tokens: list[str]) -> Messages:
        handler = self._step_handlers.get(session.step)
        if handler is None:
            return []
        try:
            return handler(ctx, session, tokens)
        except InvalidArgumentError:
            return message_templates.build_wrong_argument_message()
        except PersistenceError as exc:
            print(f"signup-persistence-failed step={session.step.value} chat_id={ctx.chat_id} error={exc}")
            return message_templates.build_something_went_wrong_message()

    def _handle_location(self, ctx: RequestContext, session: ConversationSession, tokens: list[str]) -> Messages:
        location = " ".join(tokens).strip()
        if not location:
            raise InvalidArgumentError("location is empty")
        session.location = location
        self._move(session, DialogStep.AWAIT_DATE)
        return message_templates.build_text_message(message_templates.DATE_PROMPT)

    def _handle_date(self, ctx: RequestContext, session: ConversationSession, tokens: list[str]) -> Messages:
        venue_date = normalize_date(tokens[0], self.today()) if len(tokens) == 1 else None
        if venue_date is None:
            raise InvalidArgumentError(f"invalid date: {' '.join(tokens)}")
        session.date = venue_date.isoformat()
        self._move(session, DialogStep.AWAIT_TIME)
        return message_templates.build_text_message(message_templates.TIME_PROMPT)

    def _handle_time(self, ctx: RequestContext, session: ConversationSession, tokens: list[str]) -> Messages:
        time_text = " ".join(tokens).strip()
        if not time_text:
            raise InvalidArgumentError("time is empty")
        if not session.location or not session.date:
            raise InvalidArgumentError("venue flow is incomplete")
        session.time = time_text

        venue = self.repository.create_venue(
            location=session.location,
            venue_date=date.fromisoformat(session.date),
            time=time_text,
            chat_id=ctx.chat_id,
            chat_title=ctx.chat_title,
            owner_ref=ctx.sender.id,
        )
        print(f"venue-created venue_id={venue.id} chat_id={ctx.chat_id} date={venue.date.isoformat()}")
        session.venue_ref = venue.id
        self._finish(session)
        return message_templates.build_venue_message(venue, [], self.capacity)

    def _handle_friend_data(self, ctx: RequestContext, session: ConversationSession, tokens: list[str]) -> Messages:
        if not is_valid_friend_args(tokens):
            return message_templates.build_friend_not_saved_message()
        venue = self.repository.get_venue(session.venue_ref) if session.venue_ref else None
        if venue is None:
            return message_templates.build_friend_not_saved_message()

        owner_ref = session.pending_friend_owner_ref or ctx.sender.id
        try:
            self.repository.add_guest(
                venue_id=venue.id,
                name=tokens[0].strip(),
                rating=parse_rating(tokens[1]),
                friend_owner_ref=owner_ref,
            )
        except PersistenceError as exc:
            print(f"friend-save-failed venue_id={venue.id} owner={owner_ref} error={exc}")
            return message_templates.build_friend_not_saved_message()

        callback_ref = session.pending_callback_ref
        self._finish(session)
        ordered = self.ordered_roster(venue.id)
        if callback_ref is not None:
            return [message_templates.build_venue_edit_message(callback_ref, venue, ordered, self.capacity)]
        return message_templates.build_venue_message(venue, ordered, self.capacity)

    def _handle_team_params(self, ctx: RequestContext, session: ConversationSession, tokens: list[str]) -> Messages:
        if len(tokens) != 2:
            raise InvalidArgumentError("expected team count and players per team")
        team_count = parse_positive_int(tokens[0])
        players_per_team = parse_positive_int(tokens[1])
        if team_count is None or players_per_team is None:
            raise InvalidArgumentError(f"invalid division arguments: {' '.join(tokens)}")
        venue = self._session_venue(ctx, session)

        assignment = self.divide_teams(venue.id, team_count, players_per_team)
        self._finish(session)
        return message_templates.build_teams_message(assignment)

    def _handle_rating_update(self, ctx: RequestContext, session: ConversationSession, tokens: list[str]) -> Messages:
        venue = self._session_venue(ctx, session)
        # Positions are resolved against the roster as it is now.
        ordered = self.ordered_roster(venue.id)
        if not is_valid_rating_data(tokens, len(ordered)):
            raise InvalidArgumentError(f"invalid rating data: {' '.join(tokens)}")
        entry = player_at(ordered, int(tokens[0]))
        rating = parse_rating(tokens[1])
        if entry is None or rating is None:
            raise InvalidArgumentError(f"invalid rating data: {' '.join(tokens)}")

        player = self.repository.update_player_rating(entry.player.id, rating)
        self._finish(session)
        return message_templates.build_rating_updated_message(player)

    def _handle_add_player(self, ctx: RequestContext, venue: Venue, player: Player) -> Messages:
        if not self.repository.add_membership(venue.id, player.id):
            return [message_templates.build_callback_answer("You are already on the list!")]
        messages = self._summary_refresh(ctx, venue)
        messages.append(message_templates.build_callback_answer("You are on the list!"))
        return messages

    def _handle_remove_player(self, ctx: RequestContext, venue: Venue, player: Player) -> Messages:
        messages = self._remove_from_roster(ctx, venue, player)
        if messages is None:
            return [message_templates.build_callback_answer("You are not on the list!")]
        messages.append(message_templates.build_callback_answer("You left the list!"))
        return messages

    def _handle_add_friend(self, ctx: RequestContext, venue: Venue, player: Player) -> Messages:
        session = self._load_session(ctx)
        session.clear_flow()
        session.venue_ref = venue.id
        session.pending_friend_owner_ref = ctx.sender.id
        session.pending_callback_ref = ctx.callback_message_id
        self._move(session, DialogStep.AWAIT_FRIEND_DATA)
        return [
            *message_templates.build_text_message(message_templates.FRIEND_PROMPT),
            message_templates.build_callback_answer(),
        ]

    def _handle_remove_friend(self, ctx: RequestContext, venue: Venue, player: Player) -> Messages:
        guest = self.repository.find_latest_guest(venue.id, ctx.sender.id)
        if guest is None:
            return [message_templates.build_callback_answer("You have no friends on the list!")]
        messages = self._remove_from_roster(ctx, venue, guest)
        if messages is None:
            return [message_templates.build_callback_answer("You have no friends on the list!")]
        messages.append(message_templates.build_callback_answer(f"{guest.full_tag} left the list!"))
        return messages

    def _remove_from_roster(self, ctx: RequestContext, venue: Venue, player: Player) -> Messages | None:
        before = self.ordered_roster(venue.id)
        if not self.repository.remove_membership(venue.id, player.id):
            return None
        after = self.ordered_roster(venue.id)
        outcome = evaluate_removal(
            before,
            player.id,
            after,
            game_day=venue.is_game_day(self.today()),
            capacity=self.capacity,
        )
        print(
            "roster-removal "
            f"venue_id={venue.id} player_id={player.id} position={outcome.position} "
            f"remaining={outcome.remaining} promoted={outcome.promoted.player.id if outcome.promoted else ''}"
        )

        messages: Messages = []
        if outcome.left_notice:
            messages.append(message_templates.build_left_list_message(player, outcome.remaining))
        if outcome.promoted is not None:
            messages.append(message_templates.build_promoted_message(outcome.promoted.player))
        if ctx.callback_message_id is not None:
            messages.append(
                message_templates.build_venue_edit_message(ctx.callback_message_id, venue, after, self.capacity)
            )
        return messages

    def _summary_refresh(self, ctx: RequestContext, venue: Venue) -> Messages:
        ordered = self.ordered_roster(venue.id)
        if ctx.callback_message_id is None:
            return message_templates.build_venue_message(venue, ordered, self.capacity)
        return [message_templates.build_venue_edit_message(ctx.callback_message_id, venue, ordered, self.capacity)]

    def _resolve_venue(self, ctx: RequestContext, venue_ref: str | None) -> Venue | None:
        if venue_ref:
            venue = self.repository.get_venue(venue_ref)
            if venue is not None and venue.chat_id != ctx.chat_id:
                return None
            return venue
        return self.repository.get_latest_venue(ctx.chat_id)

    def _session_venue(self, ctx: RequestContext, session: ConversationSession) -> Venue:
        venue = self.repository.get_venue(session.venue_ref) if session.venue_ref else None
        if venue is None:
            venue = self.repository.get_latest_venue(ctx.chat_id)
        if venue is None:
            raise InvalidArgumentError("no venue in this chat")
        return venue

    def _sender_player(self, ctx: RequestContext) -> Player:
        return self.repository.find_or_create_player(
            t_id=ctx.sender.id,
            name=ctx.sender.first_name,
            surname=ctx.sender.last_name,
            nickname=ctx.sender.nickname,
        )

    def _require_authorized(self, ctx: RequestContext) -> None:
        if ctx.sender.id in self.admin_user_ids:
            return
        player = self._sender_player(ctx)
        if not self.repository.is_admin(player.id):
            raise NotAuthorizedError(f"user {ctx.sender.id} is not an approved admin")

    def _load_session(self, ctx: RequestContext) -> ConversationSession:
        session = self.repository.get_session(ctx.chat_id, ctx.sender.id)
        if session is None:
            session = ConversationSession(chat_id=ctx.chat_id, user_id=ctx.sender.id)
        return session

    def _move(self, session: ConversationSession, step: DialogStep) -> None:
        if not can_transition(session.step, step):
            raise InvalidArgumentError(f"cannot move from {session.step.value} to {step.value}")
        session.step = step
        self.repository.save_session(session)

    def _finish(self, session: ConversationSession) -> None:
        if not can_transition(session.step, DialogStep.IDLE):
            raise InvalidArgumentError(f"cannot finish from {session.step.value}")
        session.clear_flow()
        self.repository.save_session(session)


def _resolve_timezone(name: str) -> Any:
    text = str(name or "").strip()
    if not text or text.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(text)
    except ZoneInfoNotFoundError:
        print(f"signup-timezone-unknown name={text} fallback=UTC")
        return timezone.utc
