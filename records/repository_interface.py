from __future__ import annotations

from typing import Any, Protocol

from core.models import ActivityEntry, IdentityRecord, LoanRecord


class RecordRepositoryProtocol(Protocol):
    def find_identity(self, field_name: str, value: str) -> IdentityRecord | None: ...

    def get_identity(self, identity_id: str) -> IdentityRecord | None: ...

    def create_identity(self, fields: dict[str, Any]) -> IdentityRecord: ...

    def update_identity(self, identity_id: str, fields: dict[str, Any]) -> IdentityRecord: ...

    def create_loan(self, identity_id: str, amount: int) -> LoanRecord: ...

    def get_loan(self, loan_id: str) -> LoanRecord | None: ...

    def update_loan(self, loan_id: str, fields: dict[str, Any]) -> LoanRecord: ...

    def list_loans(self, identity_id: str, limit: int = 5) -> list[LoanRecord]: ...

    def append_activity(self, subject_id: str, action: str, details: dict[str, Any] | None = None) -> None: ...

    def list_activity(self, subject_id: str, limit: int = 10) -> list[ActivityEntry]: ...
