from __future__ import annotations

import unittest
from decimal import Decimal
from unittest import mock

from core.models import RequestContext, TelegramUser
from signup.conversation_service import ConversationService
from signup.dynamo_repository import ClientError, DynamoSignupRepository
from signup.errors import PersistenceError
from tgbot import message_templates


def _client_error(code: str, operation: str) -> Exception:
    response = {"Error": {"Code": code, "Message": code}}
    if ClientError is Exception:
        error = Exception(code)
        setattr(error, "response", response)
        return error
    return ClientError(response, operation)


def _build_repo_for_test() -> DynamoSignupRepository:
    repo = DynamoSignupRepository.__new__(DynamoSignupRepository)
    repo.update_ttl_days = 7
    repo._ddb = mock.Mock()
    repo._update_table = mock.Mock()
    repo._players_table = mock.Mock()
    repo._players_table.name = "test-players"
    repo._admin_table = mock.Mock()
    repo._venues_table = mock.Mock()
    repo._memberships_table = mock.Mock()
    repo._memberships_table.name = "test-memberships"
    repo._sessions_table = mock.Mock()
    repo._counters_table = mock.Mock()
    return repo


class DynamoSignupRepositoryTest(unittest.TestCase):
    def test_mark_update_processed_detects_duplicates(self) -> None:
        repo = _build_repo_for_test()
        repo._update_table.put_item.side_effect = [None, _client_error("ConditionalCheckFailedException", "PutItem")]
        self.assertTrue(repo.mark_update_processed("1001"))
        self.assertFalse(repo.mark_update_processed("1001"))

    def test_other_client_errors_become_persistence_errors(self) -> None:
        repo = _build_repo_for_test()
        repo._update_table.put_item.side_effect = _client_error("ProvisionedThroughputExceededException", "PutItem")
        with self.assertRaises(PersistenceError):
            repo.mark_update_processed("1001")

    def test_find_or_create_player_returns_existing_item(self) -> None:
        repo = _build_repo_for_test()
        repo._players_table.put_item.side_effect = _client_error("ConditionalCheckFailedException", "PutItem")
        repo._players_table.get_item.return_value = {
            "Item": {"player_id": "TG#42", "t_id": Decimal("42"), "name": "Ana", "rating": Decimal("6.5")}
        }
        player = repo.find_or_create_player(t_id=42, name="Ana")
        self.assertEqual(player.id, "TG#42")
        self.assertEqual(player.t_id, 42)
        self.assertEqual(player.rating, 6.5)
        repo._players_table.get_item.assert_called_with(Key={"player_id": "TG#42"})

    def test_update_player_rating_stores_decimal(self) -> None:
        repo = _build_repo_for_test()
        repo._players_table.update_item.return_value = {
            "Attributes": {"player_id": "TG#42", "name": "Ana", "rating": Decimal("7.5")}
        }
        player = repo.update_player_rating("TG#42", 7.5)
        self.assertEqual(player.rating, 7.5)
        call = repo._players_table.update_item.call_args
        self.assertEqual(call.kwargs["ExpressionAttributeValues"][":rating"], Decimal("7.5"))

    def test_add_membership_skips_existing_member(self) -> None:
        repo = _build_repo_for_test()
        repo._memberships_table.get_item.return_value = {"Item": {"venue_id": "v1", "player_id": "TG#42"}}
        self.assertFalse(repo.add_membership("v1", "TG#42"))
        repo._memberships_table.put_item.assert_not_called()

    def test_add_membership_assigns_sequence_and_owner(self) -> None:
        repo = _build_repo_for_test()
        repo._memberships_table.get_item.return_value = {}
        repo._players_table.get_item.return_value = {
            "Item": {"player_id": "g1", "name": "Chapa", "friend_owner_ref": Decimal("42")}
        }
        repo._counters_table.update_item.return_value = {"Attributes": {"value": Decimal("9")}}

        self.assertTrue(repo.add_membership("v1", "g1"))
        item = repo._memberships_table.put_item.call_args.kwargs["Item"]
        self.assertEqual(item["seq"], 9)
        self.assertEqual(item["friend_owner_ref"], 42)

    def test_list_roster_paginates_and_retries_unprocessed_keys(self) -> None:
        repo = _build_repo_for_test()
        repo._memberships_table.query.side_effect = [
            {
                "Items": [{"venue_id": "v1", "player_id": "TG#1", "joined_at": "2026-04-01T10:00:00", "seq": Decimal("1")}],
                "LastEvaluatedKey": {"venue_id": "v1", "player_id": "TG#1"},
            },
            {
                "Items": [{"venue_id": "v1", "player_id": "TG#2", "joined_at": "2026-04-01T10:00:01", "seq": Decimal("2")}],
            },
        ]
        repo._ddb.batch_get_item.side_effect = [
            {
                "Responses": {"test-players": [{"player_id": "TG#1", "name": "One"}]},
                "UnprocessedKeys": {"test-players": {"Keys": [{"player_id": "TG#2"}]}},
            },
            {
                "Responses": {"test-players": [{"player_id": "TG#2", "name": "Two"}]},
            },
        ]

        entries = repo.list_roster("v1")
        self.assertEqual([entry.player.name for entry in entries], ["One", "Two"])
        self.assertEqual(entries[1].membership.seq, 2)
        second_query = repo._memberships_table.query.call_args_list[1]
        self.assertIn("ExclusiveStartKey", second_query.kwargs)
        self.assertEqual(repo._ddb.batch_get_item.call_count, 2)

    def test_approve_admin_is_idempotent(self) -> None:
        repo = _build_repo_for_test()
        repo._admin_table.update_item.side_effect = [None, _client_error("ConditionalCheckFailedException", "UpdateItem")]
        self.assertTrue(repo.approve_admin("TG#42"))
        self.assertFalse(repo.approve_admin("TG#42"))

    def test_read_errors_become_persistence_errors(self) -> None:
        repo = _build_repo_for_test()
        throttled = _client_error("ProvisionedThroughputExceededException", "GetItem")
        repo._venues_table.get_item.side_effect = throttled
        repo._sessions_table.get_item.side_effect = throttled
        repo._counters_table.update_item.side_effect = _client_error("ProvisionedThroughputExceededException", "UpdateItem")

        with self.assertRaises(PersistenceError):
            repo.get_venue("v1")
        with self.assertRaises(PersistenceError):
            repo.get_session(-100, 7)
        with self.assertRaises(PersistenceError):
            repo._next_membership_seq()

    def test_throttled_callback_is_still_answered(self) -> None:
        repo = _build_repo_for_test()
        repo._venues_table.get_item.side_effect = _client_error("ProvisionedThroughputExceededException", "GetItem")
        service = ConversationService(repository=repo)
        ctx = RequestContext(
            chat_id=-100,
            sender=TelegramUser(id=7, first_name="Ana"),
            callback_query_id="cbq-1",
            callback_message_id=77,
        )

        messages = service.handle_callback(ctx, "add_player:v1")
        self.assertEqual(messages, [{"type": "answer", "text": message_templates.SOMETHING_WENT_WRONG_TEXT}])

    def test_add_guest_writes_player_and_membership_in_one_transaction(self) -> None:
        repo = _build_repo_for_test()
        repo._counters_table.update_item.return_value = {"Attributes": {"value": Decimal("3")}}

        guest = repo.add_guest("v1", "Chapa", 5.5, friend_owner_ref=42)
        items = repo._ddb.meta.client.transact_write_items.call_args.kwargs["TransactItems"]
        self.assertEqual([item["Put"]["TableName"] for item in items], ["test-players", "test-memberships"])
        membership = items[1]["Put"]["Item"]
        self.assertEqual(membership["player_id"], guest.id)
        self.assertEqual(membership["seq"], 3)
        self.assertEqual(membership["friend_owner_ref"], 42)
        self.assertEqual(items[0]["Put"]["Item"]["rating"], Decimal("5.5"))

    def test_add_guest_failure_becomes_persistence_error(self) -> None:
        repo = _build_repo_for_test()
        repo._counters_table.update_item.return_value = {"Attributes": {"value": Decimal("3")}}
        repo._ddb.meta.client.transact_write_items.side_effect = _client_error(
            "TransactionCanceledException", "TransactWriteItems"
        )
        with self.assertRaises(PersistenceError):
            repo.add_guest("v1", "Chapa", 5.5, friend_owner_ref=42)


if __name__ == "__main__":
    unittest.main()
