from __future__ import annotations

import unittest

from core.enums import Command, DialogStep
from signup.models import ConversationSession
from signup.state_machine import can_transition, entry_step_for


class DialogStateMachineTest(unittest.TestCase):
    def test_venue_flow_moves_forward_only(self) -> None:
        self.assertTrue(can_transition(DialogStep.AWAIT_LOCATION, DialogStep.AWAIT_DATE))
        self.assertTrue(can_transition(DialogStep.AWAIT_DATE, DialogStep.AWAIT_TIME))
        self.assertTrue(can_transition(DialogStep.AWAIT_TIME, DialogStep.IDLE))
        self.assertFalse(can_transition(DialogStep.IDLE, DialogStep.AWAIT_DATE))
        self.assertFalse(can_transition(DialogStep.AWAIT_LOCATION, DialogStep.AWAIT_TIME))
        self.assertFalse(can_transition(DialogStep.AWAIT_LOCATION, DialogStep.IDLE))

    def test_entering_a_flow_abandons_any_other(self) -> None:
        for current in DialogStep:
            with self.subTest(current=current):
                self.assertTrue(can_transition(current, DialogStep.AWAIT_LOCATION))
                self.assertTrue(can_transition(current, DialogStep.AWAIT_FRIEND_DATA))

    def test_entry_steps_by_command(self) -> None:
        self.assertEqual(entry_step_for(Command.START), DialogStep.AWAIT_LOCATION)
        self.assertEqual(entry_step_for(Command.SORT_TEAMS), DialogStep.AWAIT_TEAM_PARAMS)
        self.assertEqual(entry_step_for(Command.CHANGE_RATING), DialogStep.AWAIT_RATING_UPDATE)
        self.assertIsNone(entry_step_for(Command.PING))


class ConversationSessionTest(unittest.TestCase):
    def test_clear_flow_keeps_venue_reference(self) -> None:
        session = ConversationSession(
            chat_id=-1,
            user_id=7,
            step=DialogStep.AWAIT_TIME,
            location="Court A",
            date="2026-04-23",
            venue_ref="venue-1",
        )
        session.clear_flow()
        self.assertEqual(session.step, DialogStep.IDLE)
        self.assertIsNone(session.location)
        self.assertIsNone(session.date)
        self.assertEqual(session.venue_ref, "venue-1")

    def test_from_payload_falls_back_to_idle(self) -> None:
        session = ConversationSession.from_payload(
            chat_id=-1,
            user_id=7,
            step="AWAIT_SOMETHING",
            payload={"location": "Court A", "pending_callback_ref": "55"},
        )
        self.assertEqual(session.step, DialogStep.IDLE)
        self.assertEqual(session.location, "Court A")
        self.assertEqual(session.pending_callback_ref, 55)
        self.assertEqual(session.session_key, "-1:7")


if __name__ == "__main__":
    unittest.main()
