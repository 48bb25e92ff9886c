from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Union

from core.enums import FieldName, Flow, IdentityStatus, LoanStatus


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialize(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value):
        return {k: _serialize(v) for k, v in asdict(value).items()}
    if isinstance(value, tuple):
        return [_serialize(v) for v in value]
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


# Dialog states. Each variant is frozen so a stored stack cannot drift once saved.


@dataclass(frozen=True, slots=True)
class RegistrationFields:
    full_name: str | None = None
    username: str | None = None
    email: str | None = None
    password: str | None = None
    license_number: str | None = None
    id_card_number: str | None = None

    def with_value(self, field_name: str, value: str) -> RegistrationFields:
        return replace(self, **{field_name: value})

    def value_of(self, field_name: str) -> str | None:
        return getattr(self, field_name, None)

    def to_record_fields(self) -> dict[str, str]:
        return {key: value for key, value in asdict(self).items() if value not in (None, "")}


@dataclass(frozen=True, slots=True)
class LoanFields:
    identity_id: str
    amount: int | None = None


@dataclass(frozen=True, slots=True)
class EntryState:
    level: str
    message: str

    flow: ClassVar[Flow] = Flow.ENTRY


@dataclass(frozen=True, slots=True)
class RegistrationState:
    level: str
    message: str
    fields: RegistrationFields = field(default_factory=RegistrationFields)

    flow: ClassVar[Flow] = Flow.REGISTRATION


@dataclass(frozen=True, slots=True)
class MenuState:
    level: str
    message: str
    identity_id: str
    display_name: str

    flow: ClassVar[Flow] = Flow.MENU


@dataclass(frozen=True, slots=True)
class LookupState:
    level: str
    message: str

    flow: ClassVar[Flow] = Flow.LOOKUP


@dataclass(frozen=True, slots=True)
class LoanState:
    level: str
    message: str
    fields: LoanFields

    flow: ClassVar[Flow] = Flow.LOAN


DialogState = Union[EntryState, RegistrationState, MenuState, LookupState, LoanState]


@dataclass(frozen=True, slots=True)
class DialogResult:
    message: str
    continue_session: bool


# Records owned by the repository.


@dataclass(slots=True)
class IdentityRecord:
    identity_id: str
    phone: str
    full_name: str | None = None
    username: str | None = None
    email: str | None = None
    password_hash: str | None = None
    license_number: str | None = None
    id_card_number: str | None = None
    role: str = "courier"
    status: IdentityStatus = IdentityStatus.UNVERIFIED
    verified_at: str | None = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def display_name(self) -> str:
        for candidate in (self.full_name, self.username):
            text = str(candidate or "").strip()
            if text:
                return text.split()[0]
        return "Courier"

    def key_value(self, field_name: str) -> str | None:
        if field_name not in FieldName.UNIQUE_FIELDS:
            return None
        return getattr(self, field_name)

    def to_dict(self) -> dict[str, Any]:
        payload = _serialize(self)
        payload.pop("password_hash", None)
        return payload


@dataclass(slots=True)
class LoanRecord:
    loan_id: str
    identity_id: str
    amount: int
    status: LoanStatus = LoanStatus.PENDING
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return _serialize(self)


@dataclass(slots=True)
class ActivityEntry:
    activity_id: str
    subject_id: str
    action: str
    details: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return _serialize(self)


# Transport payloads.


@dataclass(slots=True)
class UssdRequest:
    session_id: str
    user_id: str
    new_session: bool
    msisdn: str
    user_data: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> UssdRequest:
        return cls(
            session_id=str(payload.get("sessionID", "") or "").strip(),
            user_id=str(payload.get("userID", "") or ""),
            new_session=_as_bool(payload.get("newSession", False)),
            msisdn=str(payload.get("msisdn", "") or "").strip(),
            user_data=str(payload.get("userData", "") or ""),
        )


@dataclass(slots=True)
class UssdResponse:
    session_id: str
    user_id: str
    message: str
    continue_session: bool
    msisdn: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionID": self.session_id,
            "userID": self.user_id,
            "message": self.message,
            "continueSession": self.continue_session,
            "msisdn": self.msisdn,
        }


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value or "").strip().lower() in {"true", "1", "yes"}
