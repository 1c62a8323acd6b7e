from __future__ import annotations

import json
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG: dict[str, Any] = {
    "telegram": {
        "enabled": False,
        "bot_token": None,
        "bot_username": None,
        "secret_token": None,
        "webhook_path": "/webhook/telegram",
        "api_base_url": "https://api.telegram.org",
        "timeout_sec": 10,
        "admin_user_ids": [],
        "allowed_chat_ids": [],
        "login_url": None,
    },
    "signup": {
        "capacity": 18,
        "timezone": "UTC",
    },
    "storage": {
        "backend": "sqlite",
        "sqlite_path": "data/signup/courtroster.db",
        "dynamodb": {
            "region": None,
            "table_prefix": "courtroster",
            "update_ttl_days": 7,
            "tables": {
                "update_dedupe": None,
                "players": None,
                "admin_requests": None,
                "venues": None,
                "memberships": None,
                "sessions": None,
                "counters": None,
            },
        },
    },
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str | None = None) -> dict[str, Any]:
    if not config_path:
        return deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if not path.exists():
        return deepcopy(DEFAULT_CONFIG)

    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return deepcopy(DEFAULT_CONFIG)

    if path.suffix.lower() == ".json":
        loaded = json.loads(text)
    else:
        loaded = yaml.safe_load(text)
    data = loaded if isinstance(loaded, dict) else {}
    return deep_merge(deepcopy(DEFAULT_CONFIG), data)
