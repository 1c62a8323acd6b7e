from __future__ import annotations

import json
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from core.enums import AdminRequestStatus
from core.models import Membership, Player, RosterEntry, Venue
from signup.errors import PersistenceError
from signup.models import ConversationSession, build_session_key
from signup.repository_interface import SignupRepositoryProtocol

try:
    import boto3  # type: ignore
    from boto3.dynamodb.conditions import Attr, Key  # type: ignore
    from botocore.exceptions import ClientError  # type: ignore
except Exception as exc:  # pragma: no cover - import guard for local envs
    boto3 = None
    Attr = None
    Key = None
    ClientError = Exception
    _BOTO3_IMPORT_ERROR = exc
else:
    _BOTO3_IMPORT_ERROR = None

_BATCH_GET_LIMIT = 100
_MEMBERSHIP_SEQ_COUNTER = "membership_seq"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DynamoSignupRepository(SignupRepositoryProtocol):
    VENUE_CHAT_CREATED_INDEX = "chat_id_created_at_index"

    def __init__(
        self,
        *,
        region_name: str | None = None,
        table_prefix: str = "courtroster",
        update_table_name: str | None = None,
        players_table_name: str | None = None,
        admin_requests_table_name: str | None = None,
        venues_table_name: str | None = None,
        memberships_table_name: str | None = None,
        sessions_table_name: str | None = None,
        counters_table_name: str | None = None,
        update_ttl_days: int = 7,
        dynamodb_resource: Any | None = None,
    ) -> None:
        if boto3 is None:
            raise RuntimeError(f"boto3 is required for DynamoSignupRepository: {_BOTO3_IMPORT_ERROR}")

        normalized_prefix = (table_prefix or "courtroster").strip()
        self.update_ttl_days = max(1, int(update_ttl_days))
        self._ddb = dynamodb_resource or boto3.resource("dynamodb", region_name=region_name)
        self._update_table = self._ddb.Table(update_table_name or f"{normalized_prefix}-update-dedupe")
        self._players_table = self._ddb.Table(players_table_name or f"{normalized_prefix}-players")
        self._admin_table = self._ddb.Table(admin_requests_table_name or f"{normalized_prefix}-admin-requests")
        self._venues_table = self._ddb.Table(venues_table_name or f"{normalized_prefix}-venues")
        self._memberships_table = self._ddb.Table(memberships_table_name or f"{normalized_prefix}-memberships")
        self._sessions_table = self._ddb.Table(sessions_table_name or f"{normalized_prefix}-sessions")
        self._counters_table = self._ddb.Table(counters_table_name or f"{normalized_prefix}-counters")

    def mark_update_processed(self, update_id: str) -> bool:
        key = (update_id or "").strip()
        if not key:
            return False
        now = datetime.now(timezone.utc)
        expires = int((now + timedelta(days=self.update_ttl_days)).timestamp())
        try:
            self._update_table.put_item(
                Item={
                    "update_id": key,
                    "received_at": now.isoformat(),
                    "expires_at_epoch": expires,
                },
                ConditionExpression="attribute_not_exists(update_id)",
            )
            return True
        except ClientError as exc:
            if _is_conditional_check_failed(exc):
                return False
            raise PersistenceError(f"dynamodb error: {exc}") from exc

    def find_or_create_player(
        self,
        t_id: int,
        name: str,
        surname: str = "",
        nickname: str = "",
    ) -> Player:
        player_id = _telegram_player_id(t_id)
        now = _utc_now()
        try:
            self._players_table.put_item(
                Item={
                    "player_id": player_id,
                    "t_id": int(t_id),
                    "name": name or "",
                    "surname": surname or "",
                    "nickname": nickname or "",
                    "created_at": now,
                    "updated_at": now,
                },
                ConditionExpression="attribute_not_exists(player_id)",
            )
        except ClientError as exc:
            if not _is_conditional_check_failed(exc):
                raise PersistenceError(f"dynamodb error: {exc}") from exc
        player = self._get_player(player_id)
        if player is None:
            raise PersistenceError(f"player could not be saved: t_id={t_id}")
        return player

    def find_player_by_t_id(self, t_id: int) -> Player | None:
        return self._get_player(_telegram_player_id(t_id))

    def add_guest(self, venue_id: str, name: str, rating: float | None, friend_owner_ref: int) -> Player:
        player_id = str(uuid4())
        now = _utc_now()
        player_item: dict[str, Any] = {
            "player_id": player_id,
            "name": name,
            "surname": "",
            "nickname": "",
            "friend_owner_ref": int(friend_owner_ref),
            "created_at": now,
            "updated_at": now,
        }
        if rating is not None:
            player_item["rating"] = _as_decimal(rating)
        membership_item = {
            "venue_id": venue_id,
            "player_id": player_id,
            "joined_at": now,
            "seq": self._next_membership_seq(),
            "friend_owner_ref": int(friend_owner_ref),
        }
        # Guest and membership are written together or not at all.
        _call(
            self._ddb.meta.client.transact_write_items,
            TransactItems=[
                {
                    "Put": {
                        "TableName": self._players_table.name,
                        "Item": player_item,
                        "ConditionExpression": "attribute_not_exists(player_id)",
                    }
                },
                {
                    "Put": {
                        "TableName": self._memberships_table.name,
                        "Item": membership_item,
                        "ConditionExpression": "attribute_not_exists(player_id)",
                    }
                },
            ],
        )
        return _player_from_item(player_item)

    def update_player_rating(self, player_id: str, rating: float) -> Player:
        try:
            response = self._players_table.update_item(
                Key={"player_id": player_id},
                UpdateExpression="SET rating = :rating, updated_at = :updated_at",
                ConditionExpression="attribute_exists(player_id)",
                ExpressionAttributeValues={
                    ":rating": _as_decimal(rating),
                    ":updated_at": _utc_now(),
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if _is_conditional_check_failed(exc):
                raise PersistenceError(f"player not found: {player_id}") from exc
            raise PersistenceError(f"dynamodb error: {exc}") from exc
        return _player_from_item(response.get("Attributes", {}))

    def request_admin(self, player_id: str) -> bool:
        now = _utc_now()
        try:
            self._admin_table.put_item(
                Item={
                    "player_id": player_id,
                    "status": AdminRequestStatus.PENDING.value,
                    "created_at": now,
                    "updated_at": now,
                },
                ConditionExpression="attribute_not_exists(player_id)",
            )
            return True
        except ClientError as exc:
            if _is_conditional_check_failed(exc):
                return False
            raise PersistenceError(f"dynamodb error: {exc}") from exc

    def approve_admin(self, player_id: str) -> bool:
        now = _utc_now()
        try:
            self._admin_table.update_item(
                Key={"player_id": player_id},
                UpdateExpression="SET #status = :status, updated_at = :updated_at, created_at = if_not_exists(created_at, :updated_at)",
                ConditionExpression="attribute_not_exists(#status) OR #status <> :status",
                ExpressionAttributeNames={"#status": "status"},
                ExpressionAttributeValues={
                    ":status": AdminRequestStatus.APPROVED.value,
                    ":updated_at": now,
                },
            )
            return True
        except ClientError as exc:
            if _is_conditional_check_failed(exc):
                return False
            raise PersistenceError(f"dynamodb error: {exc}") from exc

    def is_admin(self, player_id: str) -> bool:
        item = _call(self._admin_table.get_item, Key={"player_id": player_id}).get("Item")
        return item is not None and str(item.get("status", "")) == AdminRequestStatus.APPROVED.value

    def create_venue(
        self,
        location: str,
        venue_date: date,
        time: str,
        chat_id: int,
        chat_title: str,
        owner_ref: int | None,
    ) -> Venue:
        item: dict[str, Any] = {
            "venue_id": str(uuid4()),
            "location": location,
            "venue_date": venue_date.isoformat(),
            "time": time,
            "chat_id": int(chat_id),
            "chat_title": chat_title or "",
            "created_at": _utc_now(),
        }
        if owner_ref is not None:
            item["owner_ref"] = int(owner_ref)
        try:
            self._venues_table.put_item(Item=item, ConditionExpression="attribute_not_exists(venue_id)")
        except ClientError as exc:
            raise PersistenceError(f"dynamodb error: {exc}") from exc
        return _venue_from_item(item)

    def get_venue(self, venue_id: str) -> Venue | None:
        item = _call(self._venues_table.get_item, Key={"venue_id": venue_id}).get("Item")
        return _venue_from_item(item) if item else None

    def get_latest_venue(self, chat_id: int) -> Venue | None:
        rows = _call(
            self._venues_table.query,
            IndexName=self.VENUE_CHAT_CREATED_INDEX,
            KeyConditionExpression=Key("chat_id").eq(int(chat_id)),
            ScanIndexForward=False,
            Limit=1,
        ).get("Items", [])
        if not rows:
            return None
        # The index may project keys only.
        return self.get_venue(str(rows[0]["venue_id"]))

    def add_membership(self, venue_id: str, player_id: str) -> bool:
        existing = _call(
            self._memberships_table.get_item,
            Key={"venue_id": venue_id, "player_id": player_id},
        ).get("Item")
        if existing is not None:
            return False
        player = self._get_player(player_id)
        item: dict[str, Any] = {
            "venue_id": venue_id,
            "player_id": player_id,
            "joined_at": _utc_now(),
            "seq": self._next_membership_seq(),
        }
        if player is not None and player.friend_owner_ref is not None:
            item["friend_owner_ref"] = int(player.friend_owner_ref)
        try:
            self._memberships_table.put_item(
                Item=item,
                ConditionExpression="attribute_not_exists(player_id)",
            )
            return True
        except ClientError as exc:
            if _is_conditional_check_failed(exc):
                return False
            raise PersistenceError(f"dynamodb error: {exc}") from exc

    def remove_membership(self, venue_id: str, player_id: str) -> bool:
        try:
            self._memberships_table.delete_item(
                Key={"venue_id": venue_id, "player_id": player_id},
                ConditionExpression="attribute_exists(player_id)",
            )
            return True
        except ClientError as exc:
            if _is_conditional_check_failed(exc):
                return False
            raise PersistenceError(f"dynamodb error: {exc}") from exc

    def list_roster(self, venue_id: str) -> list[RosterEntry]:
        memberships = self._query_memberships(venue_id)
        players = self._batch_get_players([str(item["player_id"]) for item in memberships])
        entries: list[RosterEntry] = []
        for item in memberships:
            player = players.get(str(item["player_id"]))
            if player is None:
                continue
            entries.append(RosterEntry(membership=_membership_from_item(item), player=player))
        return entries

    def find_latest_guest(self, venue_id: str, friend_owner_ref: int) -> Player | None:
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": Key("venue_id").eq(venue_id),
            "FilterExpression": Attr("friend_owner_ref").eq(int(friend_owner_ref)),
        }
        items = self._query_all(self._memberships_table, kwargs)
        if not items:
            return None
        latest = max(items, key=lambda item: (str(item.get("joined_at", "")), _to_int(item.get("seq")) or 0))
        return self._get_player(str(latest["player_id"]))

    def get_session(self, chat_id: int, user_id: int) -> ConversationSession | None:
        item = _call(
            self._sessions_table.get_item,
            Key={"session_key": build_session_key(chat_id, user_id)},
        ).get("Item")
        if item is None:
            return None
        raw_payload = _load_json(item.get("payload_json"))
        payload = raw_payload if isinstance(raw_payload, dict) else {}
        return ConversationSession.from_payload(
            chat_id=_to_int(item.get("chat_id")) or chat_id,
            user_id=_to_int(item.get("user_id")) or user_id,
            step=str(item.get("step", "")),
            payload=payload,
            created_at=str(item.get("created_at", "")),
            updated_at=str(item.get("updated_at", "")),
        )

    def save_session(self, session: ConversationSession) -> None:
        now = _utc_now()
        try:
            self._sessions_table.put_item(
                Item={
                    "session_key": session.session_key,
                    "chat_id": int(session.chat_id),
                    "user_id": int(session.user_id),
                    "step": session.step.value,
                    "payload_json": json.dumps(session.to_payload(), ensure_ascii=False),
                    "created_at": session.created_at or now,
                    "updated_at": now,
                }
            )
        except ClientError as exc:
            raise PersistenceError(f"dynamodb error: {exc}") from exc
        session.updated_at = now
        if not session.created_at:
            session.created_at = now

    def _get_player(self, player_id: str) -> Player | None:
        item = _call(self._players_table.get_item, Key={"player_id": player_id}).get("Item")
        return _player_from_item(item) if item else None

    def _batch_get_players(self, player_ids: list[str]) -> dict[str, Player]:
        output: dict[str, Player] = {}
        unique_ids = list(dict.fromkeys(pid for pid in player_ids if pid))
        table_name = self._players_table.name
        for start in range(0, len(unique_ids), _BATCH_GET_LIMIT):
            chunk = unique_ids[start:start + _BATCH_GET_LIMIT]
            request_items: dict[str, Any] = {table_name: {"Keys": [{"player_id": pid} for pid in chunk]}}
            while request_items:
                response = _call(self._ddb.batch_get_item, RequestItems=request_items)
                for item in response.get("Responses", {}).get(table_name, []):
                    player = _player_from_item(item)
                    output[player.id] = player
                request_items = response.get("UnprocessedKeys") or {}
        return output

    def _query_memberships(self, venue_id: str) -> list[dict[str, Any]]:
        kwargs: dict[str, Any] = {
            "KeyConditionExpression": Key("venue_id").eq(venue_id),
        }
        return self._query_all(self._memberships_table, kwargs)

    @staticmethod
    def _query_all(table: Any, kwargs: dict[str, Any]) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        while True:
            response = _call(table.query, **kwargs)
            items.extend(response.get("Items", []))
            if "LastEvaluatedKey" not in response:
                break
            kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        return items

    def _next_membership_seq(self) -> int:
        response = _call(
            self._counters_table.update_item,
            Key={"counter_name": _MEMBERSHIP_SEQ_COUNTER},
            UpdateExpression="ADD #value :incr",
            ExpressionAttributeNames={"#value": "value"},
            ExpressionAttributeValues={":incr": 1},
            ReturnValues="UPDATED_NEW",
        )
        return _to_int(response.get("Attributes", {}).get("value")) or 0


def _telegram_player_id(t_id: int) -> str:
    return f"TG#{int(t_id)}"


def _call(operation: Any, **kwargs: Any) -> Any:
    try:
        return operation(**kwargs)
    except ClientError as exc:
        raise PersistenceError(f"dynamodb error: {exc}") from exc


def _is_conditional_check_failed(exc: Exception) -> bool:
    response = getattr(exc, "response", {}) or {}
    code = str(response.get("Error", {}).get("Code", ""))
    return code == "ConditionalCheckFailedException"


def _player_from_item(item: dict[str, Any]) -> Player:
    return Player(
        id=str(item.get("player_id", "")),
        name=str(item.get("name", "") or ""),
        surname=str(item.get("surname", "") or ""),
        nickname=str(item.get("nickname", "") or ""),
        t_id=_to_int(item.get("t_id")),
        rating=_to_float(item.get("rating")),
        friend_owner_ref=_to_int(item.get("friend_owner_ref")),
        created_at=str(item.get("created_at", "") or ""),
    )


def _venue_from_item(item: dict[str, Any]) -> Venue:
    return Venue(
        id=str(item["venue_id"]),
        location=str(item.get("location", "")),
        date=date.fromisoformat(str(item["venue_date"])),
        time=str(item.get("time", "")),
        chat_id=_to_int(item.get("chat_id")) or 0,
        chat_title=str(item.get("chat_title", "") or ""),
        owner_ref=_to_int(item.get("owner_ref")),
        created_at=str(item.get("created_at", "") or ""),
    )


def _membership_from_item(item: dict[str, Any]) -> Membership:
    return Membership(
        venue_id=str(item["venue_id"]),
        player_id=str(item["player_id"]),
        joined_at=str(item.get("joined_at", "")),
        seq=_to_int(item.get("seq")) or 0,
    )


def _as_decimal(value: float) -> Decimal:
    return Decimal(str(float(value)))


def _load_json(text: str | None) -> Any:
    if not text:
        return {}
    try:
        return json.loads(text)
    except Exception:
        return {}


def _to_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
