from __future__ import annotations

import json
import tempfile
import unittest
from datetime import date
from pathlib import Path
from typing import Any

from signup.repository import SignupRepository
from tgbot.bot_client import TelegramApiError
from tgbot.webhook_handler import TelegramWebhookHandler


class _DummyBotClient:
    def __init__(self, fail_edits: bool = False) -> None:
        self.fail_edits = fail_edits
        self.sent: list[tuple[int, str, dict[str, Any] | None]] = []
        self.edited: list[tuple[int, int, str]] = []
        self.answered: list[tuple[str, str]] = []

    def send_message(self, chat_id: int, text: str, reply_markup: dict[str, Any] | None = None) -> dict[str, Any]:
        self.sent.append((chat_id, text, reply_markup))
        return {}

    def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if self.fail_edits:
            raise TelegramApiError("message is not modified")
        self.edited.append((chat_id, message_id, text))
        return {}

    def answer_callback_query(self, callback_query_id: str, text: str = "") -> dict[str, Any]:
        self.answered.append((callback_query_id, text))
        return {}


def _message_update(update_id: int, text: str, user_id: int = 100, chat_id: int = -100) -> dict[str, Any]:
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id,
            "from": {"id": user_id, "first_name": "Ana", "username": "ana"},
            "chat": {"id": chat_id, "type": "group", "title": "Thursday Football"},
            "text": text,
        },
    }


def _callback_update(update_id: int, data: str, user_id: int = 100, chat_id: int = -100) -> dict[str, Any]:
    return {
        "update_id": update_id,
        "callback_query": {
            "id": f"cbq-{update_id}",
            "from": {"id": user_id, "first_name": "Ana", "username": "ana"},
            "message": {"message_id": 500, "chat": {"id": chat_id, "type": "group", "title": "Thursday Football"}},
            "data": data,
        },
    }


def _body(update: dict[str, Any]) -> bytes:
    return json.dumps(update, ensure_ascii=False).encode("utf-8")


class TelegramWebhookHandlerTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.config = _build_config(self._tmp.name)
        self.repo = SignupRepository(self.config["storage"]["sqlite_path"])
        self.bot = _DummyBotClient()
        self.handler = TelegramWebhookHandler(config=self.config, bot_client=self.bot, repository=self.repo)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_rejects_invalid_secret_token(self) -> None:
        status, payload = self.handler.handle(body=_body(_message_update(1, "/ping")), secret_token="wrong")
        self.assertEqual(status, 401)
        self.assertFalse(payload["ok"])
        status, _ = self.handler.handle(body=_body(_message_update(1, "/ping")), secret_token=None)
        self.assertEqual(status, 401)

    def test_disabled_handler(self) -> None:
        self.config["telegram"]["enabled"] = False
        handler = TelegramWebhookHandler(config=self.config, bot_client=self.bot, repository=self.repo)
        status, _ = handler.handle(body=b"{}", secret_token="secret")
        self.assertEqual(status, 503)

    def test_invalid_json(self) -> None:
        status, payload = self.handler.handle(body=b"not-json", secret_token="secret")
        self.assertEqual(status, 400)
        self.assertFalse(payload["ok"])

    def test_ping_command_with_bot_mention(self) -> None:
        status, payload = self.handler.handle(body=_body(_message_update(1, "/ping@CourtRosterBot")), secret_token="secret")
        self.assertEqual(status, 200)
        self.assertEqual(payload, {"ok": True, "handled": 1, "skipped": 0, "errors": []})
        self.assertEqual(self.bot.sent, [(-100, "pong", None)])

    def test_command_for_other_bot_is_skipped(self) -> None:
        _, payload = self.handler.handle(body=_body(_message_update(1, "/ping@OtherBot")), secret_token="secret")
        self.assertEqual(payload["skipped"], 1)
        self.assertEqual(self.bot.sent, [])

    def test_duplicate_update_is_skipped(self) -> None:
        self.handler.handle(body=_body(_message_update(7, "/ping")), secret_token="secret")
        _, payload = self.handler.handle(body=_body(_message_update(7, "/ping")), secret_token="secret")
        self.assertEqual(payload["handled"], 0)
        self.assertEqual(payload["skipped"], 1)
        self.assertEqual(len(self.bot.sent), 1)

    def test_idle_free_text_is_skipped(self) -> None:
        _, payload = self.handler.handle(body=_body(_message_update(1, "hello there")), secret_token="secret")
        self.assertEqual(payload["skipped"], 1)
        self.assertEqual(self.bot.sent, [])

    def test_venue_dialog_through_updates(self) -> None:
        for update_id, text in enumerate(("/start", "Court A", "23.04", "19.00"), start=1):
            self.handler.process_update(_message_update(update_id, text))
        self.assertEqual(self.bot.sent[0][1], "Location?")
        self.assertIn("Location: Court A", self.bot.sent[-1][1])
        self.assertIsNotNone(self.bot.sent[-1][2])
        self.assertIsNotNone(self.repo.get_latest_venue(-100))

    def test_callback_query_is_always_answered(self) -> None:
        venue = self.repo.create_venue("Court A", date(2026, 4, 23), "19.00", chat_id=-100, chat_title="", owner_ref=100)
        self.handler.process_update(_callback_update(1, f"add_player:{venue.id}", user_id=7))

        self.assertEqual(len(self.bot.edited), 1)
        self.assertEqual(self.bot.edited[0][1], 500)
        self.assertEqual(self.bot.answered, [("cbq-1", "You are on the list!")])

    def test_edit_failure_does_not_fail_update(self) -> None:
        bot = _DummyBotClient(fail_edits=True)
        handler = TelegramWebhookHandler(config=self.config, bot_client=bot, repository=self.repo)
        venue = self.repo.create_venue("Court A", date(2026, 4, 23), "19.00", chat_id=-100, chat_title="", owner_ref=100)
        status, payload = handler.handle(body=_body(_callback_update(3, f"add_player:{venue.id}")), secret_token="secret")
        self.assertEqual(status, 200)
        self.assertTrue(payload["ok"])
        self.assertEqual(len(bot.answered), 1)

    def test_chat_outside_allow_list(self) -> None:
        self.config["telegram"]["allowed_chat_ids"] = ["-200"]
        handler = TelegramWebhookHandler(config=self.config, bot_client=self.bot, repository=self.repo)
        handler.process_update(_message_update(1, "/ping"))
        self.assertEqual(self.bot.sent, [(-100, "This chat is not supported.", None)])


def _build_config(tmp_dir: str) -> dict[str, Any]:
    return {
        "telegram": {
            "enabled": True,
            "bot_token": "token",
            "bot_username": "CourtRosterBot",
            "secret_token": "secret",
            "timeout_sec": 1,
            "admin_user_ids": [100],
            "allowed_chat_ids": [],
            "login_url": "https://dashboard.example.com/login",
        },
        "signup": {"timezone": "UTC"},
        "storage": {
            "backend": "sqlite",
            "sqlite_path": str(Path(tmp_dir) / "signup.db"),
        },
    }


if __name__ == "__main__":
    unittest.main()
