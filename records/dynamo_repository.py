from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from core.enums import FieldName, IdentityStatus, LoanStatus
from core.models import ActivityEntry, IdentityRecord, LoanRecord
from records.errors import DuplicateKeyError, RecordNotFoundError, RecordValidationError
from records.repository import (
    IDENTITY_COLUMNS,
    apply_identity_update,
    apply_loan_update,
    build_identity_record,
)
from records.repository_interface import RecordRepositoryProtocol


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class DynamoRecordRepository(RecordRepositoryProtocol):
    """DynamoDB backend.

    Uniqueness is enforced through a separate key table: each unique identity
    value owns one item (`<field>#<value>`) written with
    `attribute_not_exists`, so two concurrent registrations cannot both claim
    the same ID card or phone.
    """

    LOAN_ID_INDEX = "loan_id_index"

    def __init__(
        self,
        *,
        region_name: str | None = None,
        table_prefix: str = "pcrs",
        identities_table_name: str | None = None,
        identity_keys_table_name: str | None = None,
        loans_table_name: str | None = None,
        activity_table_name: str | None = None,
        dynamodb_resource: Any | None = None,
    ) -> None:
        normalized_prefix = (table_prefix or "pcrs").strip()
        self._ddb = dynamodb_resource or boto3.resource("dynamodb", region_name=region_name)
        self._identities_table = self._ddb.Table(identities_table_name or f"{normalized_prefix}-identities")
        self._keys_table = self._ddb.Table(identity_keys_table_name or f"{normalized_prefix}-identity-keys")
        self._loans_table = self._ddb.Table(loans_table_name or f"{normalized_prefix}-loans")
        self._activity_table = self._ddb.Table(activity_table_name or f"{normalized_prefix}-activity")

    def find_identity(self, field_name: str, value: str) -> IdentityRecord | None:
        if field_name not in FieldName.UNIQUE_FIELDS:
            raise RecordValidationError(f"identity field is not a lookup key: {field_name}")
        key = (value or "").strip()
        if not key:
            return None
        item = self._keys_table.get_item(Key={"key_id": _key_id(field_name, key)}).get("Item")
        if not item:
            return None
        return self.get_identity(str(item["identity_id"]))

    def get_identity(self, identity_id: str) -> IdentityRecord | None:
        item = self._identities_table.get_item(Key={"identity_id": identity_id}).get("Item")
        return _identity_from_item(item) if item else None

    def create_identity(self, fields: dict[str, Any]) -> IdentityRecord:
        record = build_identity_record(fields)
        self._claim_keys(record.identity_id, _unique_values(record))
        self._identities_table.put_item(Item=_identity_item(record))
        return record

    def update_identity(self, identity_id: str, fields: dict[str, Any]) -> IdentityRecord:
        current = self.get_identity(identity_id)
        if current is None:
            raise RecordNotFoundError("identity", identity_id)
        updated = apply_identity_update(current, fields)

        before = _unique_values(current)
        after = _unique_values(updated)
        added = {name: value for name, value in after.items() if before.get(name) != value}
        removed = {name: value for name, value in before.items() if after.get(name) != value}
        self._claim_keys(identity_id, added)
        self._identities_table.put_item(Item=_identity_item(updated))
        self._release_keys(removed)
        return updated

    def create_loan(self, identity_id: str, amount: int) -> LoanRecord:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise RecordValidationError(f"loan amount must be a positive integer: {amount!r}")
        if self.get_identity(identity_id) is None:
            raise RecordNotFoundError("identity", identity_id)
        now = _utc_now()
        loan = LoanRecord(
            loan_id=str(uuid4()),
            identity_id=identity_id,
            amount=amount,
            status=LoanStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self._loans_table.put_item(Item=_loan_item(loan))
        return loan

    def get_loan(self, loan_id: str) -> LoanRecord | None:
        rows = self._loans_table.query(
            IndexName=self.LOAN_ID_INDEX,
            KeyConditionExpression=Key("loan_id").eq(loan_id),
            Limit=1,
        ).get("Items", [])
        return _loan_from_item(rows[0]) if rows else None

    def update_loan(self, loan_id: str, fields: dict[str, Any]) -> LoanRecord:
        current = self.get_loan(loan_id)
        if current is None:
            raise RecordNotFoundError("loan", loan_id)
        updated = apply_loan_update(current, fields)
        self._loans_table.put_item(Item=_loan_item(updated))
        return updated

    def list_loans(self, identity_id: str, limit: int = 5) -> list[LoanRecord]:
        rows = self._loans_table.query(
            KeyConditionExpression=Key("identity_id").eq(identity_id),
            ScanIndexForward=False,
            Limit=max(1, int(limit)),
        ).get("Items", [])
        return [_loan_from_item(row) for row in rows]

    def append_activity(self, subject_id: str, action: str, details: dict[str, Any] | None = None) -> None:
        now = _utc_now()
        activity_id = str(uuid4())
        self._activity_table.put_item(
            Item={
                "subject_id": subject_id,
                "created_activity": f"{now}#{activity_id}",
                "activity_id": activity_id,
                "action": action,
                "details_json": json.dumps(details or {}, ensure_ascii=False),
                "created_at": now,
            }
        )

    def list_activity(self, subject_id: str, limit: int = 10) -> list[ActivityEntry]:
        rows = self._activity_table.query(
            KeyConditionExpression=Key("subject_id").eq(subject_id),
            ScanIndexForward=False,
            Limit=max(1, int(limit)),
        ).get("Items", [])
        entries: list[ActivityEntry] = []
        for row in rows:
            details = _load_json(row.get("details_json"))
            entries.append(
                ActivityEntry(
                    activity_id=str(row["activity_id"]),
                    subject_id=str(row["subject_id"]),
                    action=str(row["action"]),
                    details=details if isinstance(details, dict) else {},
                    created_at=str(row.get("created_at", "")),
                )
            )
        return entries

    def _claim_keys(self, identity_id: str, values: dict[str, str]) -> None:
        claimed: dict[str, str] = {}
        for field_name, value in values.items():
            try:
                self._keys_table.put_item(
                    Item={
                        "key_id": _key_id(field_name, value),
                        "identity_id": identity_id,
                        "field_name": field_name,
                        "created_at": _utc_now(),
                    },
                    ConditionExpression="attribute_not_exists(key_id)",
                )
            except ClientError as exc:
                code = str(exc.response.get("Error", {}).get("Code", ""))
                self._release_keys(claimed)
                if code == "ConditionalCheckFailedException":
                    raise DuplicateKeyError(field_name, value) from exc
                raise
            claimed[field_name] = value

    def _release_keys(self, values: dict[str, str]) -> None:
        for field_name, value in values.items():
            self._keys_table.delete_item(Key={"key_id": _key_id(field_name, value)})


def _key_id(field_name: str, value: str) -> str:
    return f"{field_name}#{value}"


def _unique_values(record: IdentityRecord) -> dict[str, str]:
    output: dict[str, str] = {}
    for field_name in FieldName.UNIQUE_FIELDS:
        value = record.key_value(field_name)
        if value:
            output[field_name] = value
    return output


def _identity_item(record: IdentityRecord) -> dict[str, Any]:
    item: dict[str, Any] = {}
    for column in IDENTITY_COLUMNS:
        value = getattr(record, column)
        item[column] = value.value if isinstance(value, IdentityStatus) else value
    return item


def _identity_from_item(item: dict[str, Any]) -> IdentityRecord:
    values = {column: item.get(column) for column in IDENTITY_COLUMNS}
    values["status"] = IdentityStatus(str(values["status"] or IdentityStatus.UNVERIFIED.value))
    values["role"] = str(values["role"] or "courier")
    return IdentityRecord(**values)


def _loan_item(loan: LoanRecord) -> dict[str, Any]:
    return {
        "identity_id": loan.identity_id,
        "created_loan": f"{loan.created_at}#{loan.loan_id}",
        "loan_id": loan.loan_id,
        "amount": loan.amount,
        "status": loan.status.value,
        "created_at": loan.created_at,
        "updated_at": loan.updated_at,
    }


def _loan_from_item(item: dict[str, Any]) -> LoanRecord:
    return LoanRecord(
        loan_id=str(item["loan_id"]),
        identity_id=str(item["identity_id"]),
        amount=int(item["amount"]),
        status=LoanStatus(str(item["status"])),
        created_at=str(item.get("created_at", "")),
        updated_at=str(item.get("updated_at", "")),
    )


def _load_json(text: Any) -> Any:
    if not text:
        return None
    try:
        return json.loads(str(text))
    except Exception:
        return None
