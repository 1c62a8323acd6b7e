from __future__ import annotations

import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from datetime import date
from pathlib import Path

from app.config import DEFAULT_CONFIG, load_config
from app.main import build_parser, main
from signup.repository import SignupRepository


class MainCliTest(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = str(Path(self._tmp.name) / "signup.db")
        self.config_path = Path(self._tmp.name) / "config.json"
        self.config_path.write_text(
            json.dumps({"storage": {"backend": "sqlite", "sqlite_path": self.db_path}}),
            encoding="utf-8",
        )
        self.repo = SignupRepository(self.db_path)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _run(self, *argv: str) -> tuple[int, str]:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            code = main(list(argv))
        return code, buffer.getvalue()

    def test_venue_arguments_are_exclusive(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["roster", "--chat-id", "-100"])
        self.assertEqual(args.chat_id, -100)
        self.assertIsNone(args.venue_id)
        with redirect_stdout(io.StringIO()), self.assertRaises(SystemExit):
            parser.parse_args(["roster"])

    def test_roster_command_prints_summary(self) -> None:
        venue = self.repo.create_venue("Court A", date(2026, 4, 23), "19.00", chat_id=-100, chat_title="", owner_ref=None)
        player = self.repo.find_or_create_player(t_id=1, name="Ana", nickname="@ana")
        self.repo.add_membership(venue.id, player.id)

        code, output = self._run("roster", "--config", str(self.config_path), "--chat-id", "-100")
        self.assertEqual(code, 0)
        self.assertIn("Location: Court A", output)
        self.assertIn("1. Ana (@ana)", output)

    def test_roster_command_without_venue(self) -> None:
        code, output = self._run("roster", "--config", str(self.config_path), "--venue-id", "missing")
        self.assertEqual(code, 1)
        self.assertIn("venue-not-found", output)

    def test_divide_teams_rejects_oversized_request(self) -> None:
        venue = self.repo.create_venue("Court A", date(2026, 4, 23), "19.00", chat_id=-100, chat_title="", owner_ref=None)
        for t_id in range(1, 5):
            self.repo.add_membership(venue.id, self.repo.find_or_create_player(t_id=t_id, name=f"P{t_id}").id)

        code, output = self._run(
            "divide-teams", "--config", str(self.config_path), "--venue-id", venue.id, "--teams", "3", "--players", "2"
        )
        self.assertEqual(code, 1)
        self.assertIn("divide-teams-rejected", output)

        code, output = self._run(
            "divide-teams", "--config", str(self.config_path), "--venue-id", venue.id, "--teams", "2", "--players", "2"
        )
        self.assertEqual(code, 0)
        self.assertIn("Team 2:", output)

    def test_approve_admin(self) -> None:
        player = self.repo.find_or_create_player(t_id=42, name="Ana")
        self.repo.request_admin(player.id)

        code, output = self._run("approve-admin", "--config", str(self.config_path), "--telegram-user-id", "42")
        self.assertEqual(code, 0)
        self.assertIn("admin-approved", output)
        self.assertTrue(self.repo.is_admin(player.id))

        code, output = self._run("approve-admin", "--config", str(self.config_path), "--telegram-user-id", "43")
        self.assertEqual(code, 1)
        self.assertIn("player-not-found", output)


class ConfigTest(unittest.TestCase):
    def test_missing_file_returns_defaults(self) -> None:
        config = load_config("does/not/exist.yaml")
        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertIsNot(config, DEFAULT_CONFIG)

    def test_yaml_overrides_are_merged(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.yaml"
            path.write_text("telegram:\n  enabled: true\n  admin_user_ids: [1, 2]\n", encoding="utf-8")
            config = load_config(str(path))
        self.assertTrue(config["telegram"]["enabled"])
        self.assertEqual(config["telegram"]["admin_user_ids"], [1, 2])
        self.assertEqual(config["telegram"]["webhook_path"], "/webhook/telegram")
        self.assertEqual(config["storage"]["backend"], "sqlite")


if __name__ == "__main__":
    unittest.main()
