from __future__ import annotations

from typing import Any

from records.dynamo_repository import DynamoRecordRepository
from records.repository import RecordRepository
from records.repository_interface import RecordRepositoryProtocol


def create_record_repository(config: dict[str, Any]) -> RecordRepositoryProtocol:
    records_conf = config.get("records", {})
    backend = str(records_conf.get("backend", "sqlite") or "sqlite").strip().lower()

    if backend == "dynamodb":
        ddb_conf = records_conf.get("dynamodb", {}) if isinstance(records_conf, dict) else {}
        tables = ddb_conf.get("tables", {}) if isinstance(ddb_conf, dict) else {}
        return DynamoRecordRepository(
            region_name=_as_optional_str(ddb_conf.get("region")),
            table_prefix=str(ddb_conf.get("table_prefix", "pcrs")),
            identities_table_name=_as_optional_str(tables.get("identities")),
            identity_keys_table_name=_as_optional_str(tables.get("identity_keys")),
            loans_table_name=_as_optional_str(tables.get("loans")),
            activity_table_name=_as_optional_str(tables.get("activity")),
        )

    sqlite_path = str(records_conf.get("sqlite_path", "data/records/pcrs.db"))
    return RecordRepository(sqlite_path=sqlite_path, timeout_sec=float(records_conf.get("timeout_sec", 5)))


def _as_optional_str(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None
