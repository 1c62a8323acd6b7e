from __future__ import annotations

from typing import Any

from core.models import RequestContext, TelegramUser


def build_update_id(update: dict[str, Any]) -> str:
    update_id = update.get("update_id")
    if update_id not in (None, ""):
        return str(update_id).strip()
    callback = update.get("callback_query")
    if isinstance(callback, dict) and callback.get("id"):
        return f"cb:{callback.get('id')}"
    message = update.get("message")
    if isinstance(message, dict):
        chat_id = str(message.get("chat", {}).get("id", "") or "").strip()
        message_id = str(message.get("message_id", "") or "").strip()
        if chat_id and message_id:
            return f"msg:{chat_id}:{message_id}"
    return ""


def parse_command(text: str, bot_username: str = "") -> tuple[str, list[str]] | None:
    # "/start@MyBot Court A" -> ("start", ["Court", "A"])
    stripped = (text or "").strip()
    if not stripped.startswith("/"):
        return None
    head, *args = stripped.split()
    name, _, mention = head[1:].partition("@")
    if mention and bot_username and mention.lower() != bot_username.lstrip("@").lower():
        return None
    name = name.strip().lower()
    if not name:
        return None
    return name, args


def parse_user(raw: Any) -> TelegramUser | None:
    if not isinstance(raw, dict) or raw.get("id") in (None, ""):
        return None
    try:
        user_id = int(raw.get("id"))
    except (TypeError, ValueError):
        return None
    return TelegramUser(
        id=user_id,
        first_name=str(raw.get("first_name", "") or ""),
        last_name=str(raw.get("last_name", "") or ""),
        username=str(raw.get("username", "") or ""),
    )


def message_context(message: dict[str, Any]) -> RequestContext | None:
    sender = parse_user(message.get("from"))
    chat = message.get("chat", {})
    if sender is None or not isinstance(chat, dict) or chat.get("id") in (None, ""):
        return None
    return RequestContext(
        chat_id=int(chat.get("id")),
        sender=sender,
        chat_title=_chat_title(chat, sender),
        chat_type=str(chat.get("type", "private") or "private"),
        message_id=_to_int(message.get("message_id")),
    )


def callback_context(callback: dict[str, Any]) -> RequestContext | None:
    sender = parse_user(callback.get("from"))
    message = callback.get("message", {})
    chat = message.get("chat", {}) if isinstance(message, dict) else {}
    if sender is None or not isinstance(chat, dict) or chat.get("id") in (None, ""):
        return None
    return RequestContext(
        chat_id=int(chat.get("id")),
        sender=sender,
        chat_title=_chat_title(chat, sender),
        chat_type=str(chat.get("type", "private") or "private"),
        callback_query_id=str(callback.get("id", "") or "") or None,
        callback_message_id=_to_int(message.get("message_id")),
    )


def _chat_title(chat: dict[str, Any], sender: TelegramUser) -> str:
    title = str(chat.get("title", "") or "").strip()
    if title:
        return title
    return " ".join(part for part in (sender.first_name, sender.last_name) if part)


def _to_int(value: Any) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
