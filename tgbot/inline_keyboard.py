from __future__ import annotations

from typing import Any

MAX_MESSAGE_TEXT = 4096
MAX_BUTTON_TEXT = 64
MAX_CALLBACK_DATA_BYTES = 64


def callback_button(text: str, data: str) -> dict[str, Any]:
    encoded = data.encode("utf-8")[:MAX_CALLBACK_DATA_BYTES]
    return {
        "text": text[:MAX_BUTTON_TEXT],
        "callback_data": encoded.decode("utf-8", errors="ignore"),
    }


def url_button(text: str, url: str) -> dict[str, Any]:
    return {
        "text": text[:MAX_BUTTON_TEXT],
        "url": url,
    }


def inline_keyboard(rows: list[list[dict[str, Any]]]) -> dict[str, Any]:
    return {"inline_keyboard": [row for row in rows if row]}


def text_message(text: str, rows: list[list[dict[str, Any]]] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {
        "type": "text",
        "text": text[:MAX_MESSAGE_TEXT],
    }
    if rows:
        message["reply_markup"] = inline_keyboard(rows)
    return message


def edit_message(message_id: int, text: str, rows: list[list[dict[str, Any]]] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {
        "type": "edit",
        "message_id": int(message_id),
        "text": text[:MAX_MESSAGE_TEXT],
    }
    if rows:
        message["reply_markup"] = inline_keyboard(rows)
    return message


def callback_answer(text: str = "") -> dict[str, Any]:
    return {
        "type": "answer",
        "text": text[:200],
    }
