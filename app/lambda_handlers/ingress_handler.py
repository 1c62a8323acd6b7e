from __future__ import annotations

import base64
import json
import os
from typing import Any

from app.lambda_handlers.worker_handler import load_app_secret_values
from signup.dynamo_repository import DynamoSignupRepository
from tgbot.secret_token import SECRET_TOKEN_HEADER, verify_secret_token
from tgbot.updates import build_update_id, callback_context, message_context

try:
    import boto3  # type: ignore
except Exception as exc:  # pragma: no cover - import guard for local env
    boto3 = None
    _BOTO3_IMPORT_ERROR = exc
else:
    _BOTO3_IMPORT_ERROR = None


SQS_QUEUE_URL = os.getenv("SQS_QUEUE_URL", "")
UPDATE_DEDUPE_TABLE = os.getenv("UPDATE_DEDUPE_TABLE", "")
UPDATE_DEDUPE_TTL_DAYS = int(os.getenv("UPDATE_DEDUPE_TTL_DAYS", "7"))

_sqs_client: Any | None = None
_dedupe_repository: DynamoSignupRepository | None = None


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    _ = context
    if boto3 is None:
        return _response(500, {"ok": False, "error": f"boto3 is required: {_BOTO3_IMPORT_ERROR}"})
    if not SQS_QUEUE_URL:
        return _response(500, {"ok": False, "error": "SQS_QUEUE_URL is required"})

    # HTTP API payloads carry lower-cased header names.
    headers = event.get("headers") or {}
    received_token = headers.get(SECRET_TOKEN_HEADER.lower()) if isinstance(headers, dict) else None
    if not verify_secret_token(_resolve_secret_token(), received_token):
        return _response(401, {"ok": False, "error": "invalid_secret_token"})

    try:
        update = json.loads(_decode_body(event).decode("utf-8"))
    except Exception:
        return _response(400, {"ok": False, "error": "invalid_json"})
    if not isinstance(update, dict):
        return _response(400, {"ok": False, "error": "update_must_be_object"})

    update_id = build_update_id(update)
    if not update_id or not _mark_update(update_id):
        return _response(200, {"ok": True, "enqueued": 0, "skipped": 1})

    _get_sqs_client().send_message(
        QueueUrl=SQS_QUEUE_URL,
        MessageBody=json.dumps({"update_id": update_id, "update": update}, ensure_ascii=False),
        MessageGroupId=_chat_group_id(update),
        MessageDeduplicationId=update_id,
    )
    return _response(200, {"ok": True, "enqueued": 1, "skipped": 0})


def _decode_body(event: dict[str, Any]) -> bytes:
    body = event.get("body") or ""
    if bool(event.get("isBase64Encoded", False)):
        return base64.b64decode(str(body))
    return str(body).encode("utf-8")


def _resolve_secret_token() -> str:
    token = os.getenv("TELEGRAM_SECRET_TOKEN", "").strip()
    return token or str(load_app_secret_values().get("telegram_secret_token", "") or "")


def _mark_update(update_id: str) -> bool:
    global _dedupe_repository
    if not UPDATE_DEDUPE_TABLE:
        return True
    if _dedupe_repository is None:
        _dedupe_repository = DynamoSignupRepository(
            update_table_name=UPDATE_DEDUPE_TABLE,
            update_ttl_days=UPDATE_DEDUPE_TTL_DAYS,
        )
    return _dedupe_repository.mark_update_processed(update_id)


def _chat_group_id(update: dict[str, Any]) -> str:
    # One message group per chat keeps a conversation's updates in order.
    ctx = None
    if isinstance(update.get("message"), dict):
        ctx = message_context(update["message"])
    elif isinstance(update.get("callback_query"), dict):
        ctx = callback_context(update["callback_query"])
    return str(ctx.chat_id) if ctx is not None else "telegram-default"


def _get_sqs_client() -> Any:
    global _sqs_client
    if _sqs_client is None:
        _sqs_client = boto3.client("sqs")
    return _sqs_client


def _response(status_code: int, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status_code,
        "headers": {"content-type": "application/json; charset=utf-8"},
        "body": json.dumps(payload, ensure_ascii=False),
    }
