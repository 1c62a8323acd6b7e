from __future__ import annotations

import json
from datetime import date
from typing import Any, Callable

from core.models import RequestContext
from signup.conversation_service import ConversationService
from signup.repository_factory import create_signup_repository
from signup.repository_interface import SignupRepositoryProtocol
from tgbot.bot_client import TelegramApiError, TelegramBotClient
from tgbot.secret_token import verify_secret_token
from tgbot.updates import build_update_id, callback_context, message_context, parse_command

UNSUPPORTED_CHAT_TEXT = "This chat is not supported."


class TelegramWebhookHandler:
    def __init__(
        self,
        config: dict[str, Any],
        bot_client: TelegramBotClient | None = None,
        repository: SignupRepositoryProtocol | None = None,
        today_provider: Callable[[], date] | None = None,
    ) -> None:
        self.config = config
        self.telegram_conf = config.get("telegram", {})
        self.signup_conf = config.get("signup", {})
        self.enabled = bool(self.telegram_conf.get("enabled", False))
        self.secret_token = str(self.telegram_conf.get("secret_token", "") or "").strip()
        self.bot_token = str(self.telegram_conf.get("bot_token", "") or "").strip()
        self.bot_username = str(self.telegram_conf.get("bot_username", "") or "").strip()
        self.timeout_sec = float(self.telegram_conf.get("timeout_sec", 10))
        allowed = self.telegram_conf.get("allowed_chat_ids", [])
        self.allowed_chat_ids = {
            str(chat_id).strip()
            for chat_id in (allowed if isinstance(allowed, list) else [])
            if str(chat_id).strip()
        }

        self.repository = repository or create_signup_repository(config)
        self.conversation_service = ConversationService(
            repository=self.repository,
            admin_user_ids=self.telegram_conf.get("admin_user_ids", []) or [],
            login_url=str(self.telegram_conf.get("login_url", "") or ""),
            timezone_name=str(self.signup_conf.get("timezone", "UTC") or "UTC"),
            capacity=int(self.signup_conf.get("capacity", 18)),
            today_provider=today_provider,
        )
        self.bot_client = bot_client or TelegramBotClient(
            bot_token=self.bot_token,
            api_base_url=str(self.telegram_conf.get("api_base_url", "https://api.telegram.org")),
            timeout_sec=self.timeout_sec,
        )

    def handle(self, body: bytes, secret_token: str | None) -> tuple[int, dict[str, Any]]:
        if not self.enabled:
            return 503, {"ok": False, "error": "telegram.enabled is false"}
        if not verify_secret_token(self.secret_token, secret_token):
            return 401, {"ok": False, "error": "invalid secret token"}

        try:
            payload = json.loads(body.decode("utf-8"))
        except Exception:
            return 400, {"ok": False, "error": "invalid json payload"}
        if not isinstance(payload, dict):
            return 400, {"ok": False, "error": "update must be object"}

        handled = 0
        skipped = 0
        errors: list[str] = []
        update_id = build_update_id(payload)
        if update_id and not self.repository.mark_update_processed(update_id):
            skipped += 1
        else:
            try:
                if self.process_update(payload):
                    handled += 1
                else:
                    skipped += 1
            except Exception as exc:  # noqa: BLE001
                print(f"telegram-update-failed update_id={update_id} error={exc}")
                errors.append(str(exc))
        return 200, {"ok": len(errors) == 0, "handled": handled, "skipped": skipped, "errors": errors}

    def process_update(self, update: dict[str, Any]) -> bool:
        callback = update.get("callback_query")
        if isinstance(callback, dict):
            return self._handle_callback_query(callback)
        message = update.get("message")
        if isinstance(message, dict):
            return self._handle_message(message)
        return False

    def _handle_message(self, message: dict[str, Any]) -> bool:
        ctx = message_context(message)
        if ctx is None:
            return False
        if not self._is_allowed_chat(ctx):
            self._deliver(ctx, [{"type": "text", "text": UNSUPPORTED_CHAT_TEXT}])
            return True

        text = str(message.get("text", "") or "")
        if not text.strip():
            return False
        parsed = parse_command(text, self.bot_username)
        if parsed is not None:
            command, args = parsed
            messages = self.conversation_service.handle_command(ctx, command, args)
        else:
            messages = self.conversation_service.handle_text(ctx, text)
        if not messages:
            return False
        self._deliver(ctx, messages)
        return True

    def _handle_callback_query(self, callback: dict[str, Any]) -> bool:
        ctx = callback_context(callback)
        if ctx is None:
            return False
        if not self._is_allowed_chat(ctx):
            self._deliver(ctx, [{"type": "answer", "text": UNSUPPORTED_CHAT_TEXT}])
            return True

        data = str(callback.get("data", "") or "")
        messages = self.conversation_service.handle_callback(ctx, data)
        self._deliver(ctx, messages)
        return True

    def _is_allowed_chat(self, ctx: RequestContext) -> bool:
        return not self.allowed_chat_ids or str(ctx.chat_id) in self.allowed_chat_ids

    def _deliver(self, ctx: RequestContext, messages: list[dict[str, Any]]) -> None:
        answer_text = ""
        for message in messages:
            message_type = str(message.get("type", "text"))
            if message_type == "answer":
                answer_text = str(message.get("text", "") or "")
                continue
            try:
                if message_type == "edit":
                    self.bot_client.edit_message_text(
                        chat_id=ctx.chat_id,
                        message_id=int(message["message_id"]),
                        text=str(message.get("text", "")),
                        reply_markup=message.get("reply_markup"),
                    )
                else:
                    self.bot_client.send_message(
                        chat_id=ctx.chat_id,
                        text=str(message.get("text", "")),
                        reply_markup=message.get("reply_markup"),
                    )
            except TelegramApiError as exc:
                print(f"telegram-send-failed chat_id={ctx.chat_id} type={message_type} error={exc}")

        # Telegram keeps the button spinner until the query is answered.
        if ctx.callback_query_id:
            try:
                self.bot_client.answer_callback_query(ctx.callback_query_id, answer_text)
            except TelegramApiError as exc:
                print(f"telegram-answer-failed chat_id={ctx.chat_id} error={exc}")
