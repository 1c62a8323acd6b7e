from __future__ import annotations

import json
import os
from typing import Any

from app.config import load_config
from tgbot.webhook_handler import TelegramWebhookHandler

try:
    import boto3  # type: ignore
    from botocore.exceptions import ClientError  # type: ignore
except Exception as exc:  # pragma: no cover - import guard for local env
    boto3 = None
    ClientError = Exception
    _BOTO3_IMPORT_ERROR = exc
else:
    _BOTO3_IMPORT_ERROR = None


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    _ = context
    failures: list[dict[str, str]] = []
    worker = _get_worker()
    if worker is None:
        for record in event.get("Records", []):
            message_id = str(record.get("messageId", "")).strip()
            if message_id:
                failures.append({"itemIdentifier": message_id})
        print(f"worker-init-failed: boto3 is required: {_BOTO3_IMPORT_ERROR}")
        return {"batchItemFailures": failures}

    for record in event.get("Records", []):
        message_id = str(record.get("messageId", "")).strip()
        try:
            envelope = json.loads(str(record.get("body", "") or "{}"))
            update = envelope.get("update")
            if not isinstance(update, dict):
                raise ValueError("missing update payload")
            worker.process_update(update)
        except Exception as exc:  # noqa: BLE001
            print(f"worker-record-failed message_id={message_id} error={exc}")
            if message_id:
                failures.append({"itemIdentifier": message_id})
    return {"batchItemFailures": failures}


_worker_instance: TelegramWebhookHandler | None = None
_cached_app_secret_values: dict[str, Any] | None = None


def _get_worker() -> TelegramWebhookHandler | None:
    global _worker_instance
    if _worker_instance is not None:
        return _worker_instance
    if boto3 is None:
        return None
    config = load_config(os.getenv("CONFIG_PATH", "config.yaml"))
    _apply_secret_overrides(config)
    _apply_env_overrides(config)
    _worker_instance = TelegramWebhookHandler(config)
    return _worker_instance


def _apply_env_overrides(config: dict[str, Any]) -> None:
    telegram_conf = config.setdefault("telegram", {})
    signup_conf = config.setdefault("signup", {})
    storage_conf = config.setdefault("storage", {})
    ddb_conf = storage_conf.setdefault("dynamodb", {})
    ddb_tables = ddb_conf.setdefault("tables", {})

    mapping = {
        "TELEGRAM_BOT_TOKEN": (telegram_conf, "bot_token"),
        "TELEGRAM_BOT_USERNAME": (telegram_conf, "bot_username"),
        "TELEGRAM_SECRET_TOKEN": (telegram_conf, "secret_token"),
        "TELEGRAM_LOGIN_URL": (telegram_conf, "login_url"),
        "SIGNUP_TIMEZONE": (signup_conf, "timezone"),
        "DDB_REGION": (ddb_conf, "region"),
        "DDB_TABLE_PREFIX": (ddb_conf, "table_prefix"),
        "DDB_UPDATE_TABLE": (ddb_tables, "update_dedupe"),
        "DDB_PLAYERS_TABLE": (ddb_tables, "players"),
        "DDB_ADMIN_REQUESTS_TABLE": (ddb_tables, "admin_requests"),
        "DDB_VENUES_TABLE": (ddb_tables, "venues"),
        "DDB_MEMBERSHIPS_TABLE": (ddb_tables, "memberships"),
        "DDB_SESSIONS_TABLE": (ddb_tables, "sessions"),
        "DDB_COUNTERS_TABLE": (ddb_tables, "counters"),
    }
    for env_name, (target, key) in mapping.items():
        value = os.getenv(env_name)
        if value is not None and value != "":
            target[key] = value

    admin_ids = os.getenv("TELEGRAM_ADMIN_USER_IDS", "")
    if admin_ids.strip():
        telegram_conf["admin_user_ids"] = [item.strip() for item in admin_ids.split(",") if item.strip()]
    allowed_ids = os.getenv("TELEGRAM_ALLOWED_CHAT_IDS", "")
    if allowed_ids.strip():
        telegram_conf["allowed_chat_ids"] = [item.strip() for item in allowed_ids.split(",") if item.strip()]

    backend = os.getenv("STORAGE_BACKEND", "").strip().lower()
    if backend:
        storage_conf["backend"] = backend
    # The ingress Lambda has already checked the secret token and deduplicated the update.
    telegram_conf["enabled"] = True


def _apply_secret_overrides(config: dict[str, Any]) -> None:
    secret_values = load_app_secret_values()
    if not secret_values:
        return

    telegram_conf = config.setdefault("telegram", {})
    bot_token = str(secret_values.get("telegram_bot_token", "") or "").strip()
    secret_token = str(secret_values.get("telegram_secret_token", "") or "").strip()
    if bot_token:
        telegram_conf["bot_token"] = bot_token
    if secret_token:
        telegram_conf["secret_token"] = secret_token


def load_app_secret_values() -> dict[str, Any]:
    global _cached_app_secret_values
    if _cached_app_secret_values is not None:
        return _cached_app_secret_values
    if boto3 is None:
        _cached_app_secret_values = {}
        return _cached_app_secret_values
    secret_id = str(os.getenv("APP_SECRETS_ARN", "") or "").strip() or str(
        os.getenv("APP_SECRETS_NAME", "") or ""
    ).strip()
    if not secret_id:
        _cached_app_secret_values = {}
        return _cached_app_secret_values
    client = boto3.client("secretsmanager")
    try:
        response = client.get_secret_value(SecretId=secret_id)
    except ClientError as exc:
        raise RuntimeError(f"failed to read app secret from Secrets Manager: {exc}") from exc
    raw = response.get("SecretString")
    if not isinstance(raw, str) or not raw.strip():
        _cached_app_secret_values = {}
        return _cached_app_secret_values
    try:
        parsed = json.loads(raw)
    except Exception as exc:
        raise RuntimeError(f"invalid app secret JSON payload: {exc}") from exc
    _cached_app_secret_values = parsed if isinstance(parsed, dict) else {}
    return _cached_app_secret_values
