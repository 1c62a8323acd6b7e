from __future__ import annotations

from typing import Any

from signup.dynamo_repository import DynamoSignupRepository
from signup.repository import SignupRepository
from signup.repository_interface import SignupRepositoryProtocol


def create_signup_repository(config: dict[str, Any]) -> SignupRepositoryProtocol:
    storage_conf = config.get("storage", {})
    backend = str(storage_conf.get("backend", "sqlite") or "sqlite").strip().lower()

    if backend == "dynamodb":
        ddb_conf = storage_conf.get("dynamodb", {}) if isinstance(storage_conf, dict) else {}
        tables = ddb_conf.get("tables", {}) if isinstance(ddb_conf, dict) else {}
        return DynamoSignupRepository(
            region_name=_as_optional_str(ddb_conf.get("region")),
            table_prefix=str(ddb_conf.get("table_prefix", "courtroster")),
            update_table_name=_as_optional_str(tables.get("update_dedupe")),
            players_table_name=_as_optional_str(tables.get("players")),
            admin_requests_table_name=_as_optional_str(tables.get("admin_requests")),
            venues_table_name=_as_optional_str(tables.get("venues")),
            memberships_table_name=_as_optional_str(tables.get("memberships")),
            sessions_table_name=_as_optional_str(tables.get("sessions")),
            counters_table_name=_as_optional_str(tables.get("counters")),
            update_ttl_days=int(ddb_conf.get("update_ttl_days", 7)),
        )

    sqlite_path = str(storage_conf.get("sqlite_path", "data/signup/courtroster.db"))
    return SignupRepository(sqlite_path=sqlite_path)


def _as_optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None
