from __future__ import annotations

import json
import re
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator
from uuid import uuid4

from core.enums import FieldName, IdentityStatus, LoanStatus
from core.models import ActivityEntry, IdentityRecord, LoanRecord
from records.errors import DuplicateKeyError, RecordNotFoundError, RecordValidationError, RepositoryError
from records.passwords import hash_password

IDENTITY_COLUMNS = (
    "identity_id",
    "phone",
    "full_name",
    "username",
    "email",
    "password_hash",
    "license_number",
    "id_card_number",
    "role",
    "status",
    "verified_at",
    "created_at",
    "updated_at",
)
UPDATABLE_IDENTITY_FIELDS = {
    FieldName.PHONE,
    FieldName.FULL_NAME,
    FieldName.USERNAME,
    FieldName.EMAIL,
    FieldName.PASSWORD,
    FieldName.LICENSE_NUMBER,
    FieldName.ID_CARD_NUMBER,
    "role",
    "status",
    "verified_at",
}
_UNIQUE_FAILURE_RE = re.compile(r"UNIQUE constraint failed: identities\.(?P<column>\w+)")


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordRepository:
    def __init__(self, sqlite_path: str, timeout_sec: float = 5.0) -> None:
        self.sqlite_path = Path(sqlite_path)
        self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout_sec = float(timeout_sec)
        self._init_schema()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.sqlite_path, timeout=self.timeout_sec)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS identities (
                    identity_id TEXT PRIMARY KEY,
                    phone TEXT UNIQUE NOT NULL,
                    full_name TEXT,
                    username TEXT UNIQUE,
                    email TEXT UNIQUE,
                    password_hash TEXT,
                    license_number TEXT UNIQUE,
                    id_card_number TEXT UNIQUE,
                    role TEXT NOT NULL,
                    status TEXT NOT NULL,
                    verified_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS loans (
                    loan_id TEXT PRIMARY KEY,
                    identity_id TEXT NOT NULL,
                    amount INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_loans_identity_created
                    ON loans(identity_id, created_at DESC);

                CREATE TABLE IF NOT EXISTS activity_log (
                    activity_id TEXT PRIMARY KEY,
                    subject_id TEXT NOT NULL,
                    action TEXT NOT NULL,
                    details_json TEXT,
                    created_at TEXT NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_activity_subject_created
                    ON activity_log(subject_id, created_at DESC);
                """
            )
            conn.commit()

    def find_identity(self, field_name: str, value: str) -> IdentityRecord | None:
        if field_name not in FieldName.UNIQUE_FIELDS:
            raise RecordValidationError(f"identity field is not a lookup key: {field_name}")
        key = (value or "").strip()
        if not key:
            return None
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM identities WHERE {field_name} = ?",
                (key,),
            ).fetchone()
        return _identity_from_row(row) if row is not None else None

    def get_identity(self, identity_id: str) -> IdentityRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM identities WHERE identity_id = ?", (identity_id,)).fetchone()
        return _identity_from_row(row) if row is not None else None

    def create_identity(self, fields: dict[str, Any]) -> IdentityRecord:
        record = build_identity_record(fields)
        values = _identity_values(record)
        placeholders = ", ".join("?" for _ in IDENTITY_COLUMNS)
        with self._connect() as conn:
            try:
                conn.execute(
                    f"INSERT INTO identities({', '.join(IDENTITY_COLUMNS)}) VALUES({placeholders})",
                    values,
                )
                conn.commit()
            except sqlite3.IntegrityError as exc:
                raise _duplicate_from_integrity_error(exc, record) from exc
        return record

    def update_identity(self, identity_id: str, fields: dict[str, Any]) -> IdentityRecord:
        current = self.get_identity(identity_id)
        if current is None:
            raise RecordNotFoundError("identity", identity_id)
        updated = apply_identity_update(current, fields)
        assignments = ", ".join(f"{column} = ?" for column in IDENTITY_COLUMNS[1:])
        with self._connect() as conn:
            try:
                conn.execute(
                    f"UPDATE identities SET {assignments} WHERE identity_id = ?",
                    (*_identity_values(updated)[1:], identity_id),
                )
                conn.commit()
            except sqlite3.IntegrityError as exc:
                raise _duplicate_from_integrity_error(exc, updated) from exc
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
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO loans(loan_id, identity_id, amount, status, created_at, updated_at)
                VALUES(?, ?, ?, ?, ?, ?)
                """,
                (loan.loan_id, loan.identity_id, loan.amount, loan.status.value, loan.created_at, loan.updated_at),
            )
            conn.commit()
        return loan

    def get_loan(self, loan_id: str) -> LoanRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM loans WHERE loan_id = ?", (loan_id,)).fetchone()
        return _loan_from_row(row) if row is not None else None

    def update_loan(self, loan_id: str, fields: dict[str, Any]) -> LoanRecord:
        current = self.get_loan(loan_id)
        if current is None:
            raise RecordNotFoundError("loan", loan_id)
        updated = apply_loan_update(current, fields)
        with self._connect() as conn:
            conn.execute(
                "UPDATE loans SET status = ?, updated_at = ? WHERE loan_id = ?",
                (updated.status.value, updated.updated_at, loan_id),
            )
            conn.commit()
        return updated

    def list_loans(self, identity_id: str, limit: int = 5) -> list[LoanRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM loans
                WHERE identity_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (identity_id, max(1, int(limit))),
            ).fetchall()
        return [_loan_from_row(row) for row in rows]

    def append_activity(self, subject_id: str, action: str, details: dict[str, Any] | None = None) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO activity_log(activity_id, subject_id, action, details_json, created_at)
                VALUES(?, ?, ?, ?, ?)
                """,
                (str(uuid4()), subject_id, action, json.dumps(details or {}, ensure_ascii=False), _utc_now()),
            )
            conn.commit()

    def list_activity(self, subject_id: str, limit: int = 10) -> list[ActivityEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM activity_log
                WHERE subject_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (subject_id, max(1, int(limit))),
            ).fetchall()
        return [
            ActivityEntry(
                activity_id=row["activity_id"],
                subject_id=row["subject_id"],
                action=row["action"],
                details=_load_json_dict(row["details_json"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]


def build_identity_record(fields: dict[str, Any]) -> IdentityRecord:
    """Turn captured dialog fields into a new record; hashes `password`."""
    phone = _to_text(fields.get(FieldName.PHONE))
    if not phone:
        raise RecordValidationError("identity phone is required")
    unknown = set(fields) - UPDATABLE_IDENTITY_FIELDS
    if unknown:
        raise RecordValidationError(f"unsupported identity fields: {sorted(unknown)}")
    now = _utc_now()
    password = _to_text(fields.get(FieldName.PASSWORD))
    return IdentityRecord(
        identity_id=str(uuid4()),
        phone=phone,
        full_name=_to_text(fields.get(FieldName.FULL_NAME)),
        username=_to_text(fields.get(FieldName.USERNAME)),
        email=_to_text(fields.get(FieldName.EMAIL)),
        password_hash=hash_password(password) if password else None,
        license_number=_to_text(fields.get(FieldName.LICENSE_NUMBER)),
        id_card_number=_to_text(fields.get(FieldName.ID_CARD_NUMBER)),
        role=_to_text(fields.get("role")) or "courier",
        status=_to_identity_status(fields.get("status", IdentityStatus.UNVERIFIED)),
        verified_at=_to_text(fields.get("verified_at")),
        created_at=now,
        updated_at=now,
    )


def apply_identity_update(current: IdentityRecord, fields: dict[str, Any]) -> IdentityRecord:
    unknown = set(fields) - UPDATABLE_IDENTITY_FIELDS
    if unknown:
        raise RecordValidationError(f"unsupported identity fields: {sorted(unknown)}")
    values = {column: getattr(current, column) for column in IDENTITY_COLUMNS}
    for key, value in fields.items():
        if key == FieldName.PASSWORD:
            password = _to_text(value)
            values["password_hash"] = hash_password(password) if password else None
        elif key == "status":
            values["status"] = _to_identity_status(value)
        elif key == FieldName.PHONE:
            phone = _to_text(value)
            if not phone:
                raise RecordValidationError("identity phone is required")
            values["phone"] = phone
        else:
            values[key] = _to_text(value)
    values["updated_at"] = _utc_now()
    return IdentityRecord(**values)


def apply_loan_update(current: LoanRecord, fields: dict[str, Any]) -> LoanRecord:
    unknown = set(fields) - {"status"}
    if unknown:
        raise RecordValidationError(f"unsupported loan fields: {sorted(unknown)}")
    status = current.status
    if "status" in fields:
        try:
            status = LoanStatus(str(getattr(fields["status"], "value", fields["status"])))
        except ValueError as exc:
            raise RecordValidationError(f"invalid loan status: {fields['status']!r}") from exc
    return LoanRecord(
        loan_id=current.loan_id,
        identity_id=current.identity_id,
        amount=current.amount,
        status=status,
        created_at=current.created_at,
        updated_at=_utc_now(),
    )


def _identity_values(record: IdentityRecord) -> tuple[Any, ...]:
    values = []
    for column in IDENTITY_COLUMNS:
        value = getattr(record, column)
        values.append(value.value if isinstance(value, IdentityStatus) else value)
    return tuple(values)


def _identity_from_row(row: Any) -> IdentityRecord:
    values = {column: row[column] for column in IDENTITY_COLUMNS}
    values["status"] = _to_identity_status(values["status"])
    return IdentityRecord(**values)


def _loan_from_row(row: Any) -> LoanRecord:
    return LoanRecord(
        loan_id=row["loan_id"],
        identity_id=row["identity_id"],
        amount=int(row["amount"]),
        status=LoanStatus(str(row["status"])),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _duplicate_from_integrity_error(exc: sqlite3.IntegrityError, record: IdentityRecord) -> RepositoryError:
    match = _UNIQUE_FAILURE_RE.search(str(exc))
    if match is None:
        return RepositoryError(f"identity write rejected: {exc}")
    column = match.group("column")
    return DuplicateKeyError(column, record.key_value(column))


def _to_identity_status(value: Any) -> IdentityStatus:
    raw = getattr(value, "value", value)
    try:
        return IdentityStatus(str(raw))
    except ValueError as exc:
        raise RecordValidationError(f"invalid identity status: {value!r}") from exc


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _load_json_dict(text: str | None) -> dict[str, Any]:
    if not text:
        return {}
    try:
        loaded = json.loads(text)
    except Exception:
        return {}
    return loaded if isinstance(loaded, dict) else {}
