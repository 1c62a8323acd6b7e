from __future__ import annotations

import json
from typing import Any
from urllib import error, request


class TelegramApiError(RuntimeError):
    pass


class TelegramBotClient:
    def __init__(
        self,
        bot_token: str,
        api_base_url: str = "https://api.telegram.org",
        timeout_sec: float = 10.0,
    ) -> None:
        self.bot_token = (bot_token or "").strip()
        self.api_base_url = (api_base_url or "https://api.telegram.org").rstrip("/")
        self.timeout_sec = float(timeout_sec)

    def send_message(self, chat_id: int, text: str, reply_markup: dict[str, Any] | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return self._call("sendMessage", payload)

    def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "message_id": int(message_id), "text": text}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return self._call("editMessageText", payload)

    def answer_callback_query(self, callback_query_id: str, text: str = "") -> dict[str, Any]:
        query_id = (callback_query_id or "").strip()
        if not query_id:
            raise TelegramApiError("callback query id is empty")
        payload: dict[str, Any] = {"callback_query_id": query_id}
        if text:
            payload["text"] = text
        return self._call("answerCallbackQuery", payload)

    def set_webhook(self, url: str, secret_token: str = "") -> dict[str, Any]:
        payload: dict[str, Any] = {"url": url, "allowed_updates": ["message", "callback_query"]}
        if secret_token:
            payload["secret_token"] = secret_token
        return self._call("setWebhook", payload)

    def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.bot_token:
            raise TelegramApiError("telegram.bot_token is required")
        data = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        url = f"{self.api_base_url}/bot{self.bot_token}/{method}"
        req = request.Request(url=url, data=data, method="POST")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        try:
            with request.urlopen(req, timeout=self.timeout_sec) as resp:
                raw = resp.read()
        except error.HTTPError as exc:
            body = ""
            try:
                body = exc.read().decode("utf-8", errors="ignore")
            except Exception:
                pass
            raise TelegramApiError(f"telegram api error: method={method} status={exc.code} body={body}") from exc
        except error.URLError as exc:
            raise TelegramApiError(f"telegram api connection error: {exc}") from exc

        try:
            parsed = json.loads(raw.decode("utf-8"))
        except Exception as exc:
            raise TelegramApiError(f"telegram api returned invalid json: method={method}") from exc
        if not isinstance(parsed, dict) or not parsed.get("ok", False):
            description = parsed.get("description", "") if isinstance(parsed, dict) else ""
            raise TelegramApiError(f"telegram api error: method={method} description={description}")
        result = parsed.get("result")
        return result if isinstance(result, dict) else {"result": result}
