from __future__ import annotations

import logging
from typing import Any

from core.enums import ActivityAction, IdentityStatus, LoanStatus
from core.models import IdentityRecord, LoanRecord, utc_now_iso
from core.validators import DEFAULT_COUNTRY_CODE, lookup_key_for
from records.errors import InvalidTransitionError, RecordNotFoundError
from records.repository_interface import RecordRepositoryProtocol

logger = logging.getLogger(__name__)

ADMIN_SUBJECT = "admin"


class AdminService:
    """Administrative side-channel: identity review, loan settlement, profiles."""

    def __init__(
        self,
        repository: RecordRepositoryProtocol,
        profile_loan_limit: int = 5,
        profile_activity_limit: int = 10,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ) -> None:
        self.repository = repository
        self.profile_loan_limit = max(1, int(profile_loan_limit))
        self.profile_activity_limit = max(1, int(profile_activity_limit))
        self.country_code = country_code

    def approve_identity(self, identity_id: str) -> IdentityRecord:
        record = self.repository.update_identity(
            identity_id,
            {"status": IdentityStatus.VERIFIED, "verified_at": utc_now_iso()},
        )
        self._log_activity(identity_id, ActivityAction.IDENTITY_VERIFIED, {"by": ADMIN_SUBJECT})
        return record

    def suspend_identity(self, identity_id: str) -> IdentityRecord:
        record = self.repository.update_identity(identity_id, {"status": IdentityStatus.SUSPENDED})
        self._log_activity(identity_id, ActivityAction.IDENTITY_SUSPENDED, {"by": ADMIN_SUBJECT})
        return record

    def settle_loan(self, loan_id: str) -> LoanRecord:
        return self._close_loan(loan_id, LoanStatus.SETTLED, ActivityAction.LOAN_SETTLED)

    def reject_loan(self, loan_id: str) -> LoanRecord:
        return self._close_loan(loan_id, LoanStatus.REJECTED, ActivityAction.LOAN_REJECTED)

    def read_profile(self, identity_id: str) -> dict[str, Any]:
        record = self.repository.get_identity(identity_id)
        if record is None:
            raise RecordNotFoundError("identity", identity_id)
        loans = self.repository.list_loans(identity_id, limit=self.profile_loan_limit)
        activity = self.repository.list_activity(identity_id, limit=self.profile_activity_limit)
        return {
            "identity": record.to_dict(),
            "loans": [loan.to_dict() for loan in loans],
            "activity": [entry.to_dict() for entry in activity],
        }

    def lookup_courier(self, query: str) -> IdentityRecord | None:
        field_name, value = lookup_key_for(query, self.country_code)
        record = self.repository.find_identity(field_name, value)
        if record is None and field_name == "id_card_number":
            record = self.repository.find_identity("license_number", value)
        return record

    def _close_loan(self, loan_id: str, target: LoanStatus, action: str) -> LoanRecord:
        loan = self.repository.get_loan(loan_id)
        if loan is None:
            raise RecordNotFoundError("loan", loan_id)
        if loan.status != LoanStatus.PENDING:
            raise InvalidTransitionError("loan", loan.status.value, target.value)
        updated = self.repository.update_loan(loan_id, {"status": target})
        self._log_activity(loan.identity_id, action, {"loan_id": loan_id, "amount": loan.amount})
        return updated

    def _log_activity(self, subject_id: str, action: str, details: dict[str, Any]) -> None:
        try:
            self.repository.append_activity(subject_id, action, details)
        except Exception as exc:  # noqa: BLE001
            logger.warning("activity-append-failed subject_id=%s action=%s error=%s", subject_id, action, exc)
