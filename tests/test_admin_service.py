from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from core.enums import IdentityStatus, LoanStatus
from records.admin_service import AdminService
from records.errors import InvalidTransitionError, RecordNotFoundError
from records.repository import RecordRepository


class _FailingActivityRepository(RecordRepository):
    def append_activity(self, subject_id, action, details=None):  # type: ignore[no-untyped-def]
        raise RuntimeError("activity table unavailable")


class AdminServiceTest(unittest.TestCase):
    def test_approve_and_suspend(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = RecordRepository(str(Path(tmp) / "records.db"))
            identity = repo.create_identity({"phone": "233551234567", "full_name": "Kwame Mensah"})
            service = AdminService(repo)

            approved = service.approve_identity(identity.identity_id)
            self.assertEqual(approved.status, IdentityStatus.VERIFIED)
            self.assertTrue(approved.verified_at)

            suspended = service.suspend_identity(identity.identity_id)
            self.assertEqual(suspended.status, IdentityStatus.SUSPENDED)

            actions = [entry.action for entry in repo.list_activity(identity.identity_id)]
            self.assertEqual(actions, ["identity_suspended", "identity_verified"])

            with self.assertRaises(RecordNotFoundError):
                service.approve_identity("missing")

    def test_read_profile_limits(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = RecordRepository(str(Path(tmp) / "records.db"))
            identity = repo.create_identity({"phone": "233551234567", "full_name": "Kwame Mensah"})
            for amount in range(10, 80, 10):
                repo.create_loan(identity.identity_id, amount)
            for index in range(12):
                repo.append_activity(identity.identity_id, "lookup", {"index": index})
            service = AdminService(repo)

            profile = service.read_profile(identity.identity_id)

            self.assertEqual(profile["identity"]["identity_id"], identity.identity_id)
            self.assertNotIn("password_hash", profile["identity"])
            self.assertEqual(len(profile["loans"]), 5)
            self.assertEqual(profile["loans"][0]["amount"], 70)
            self.assertEqual(len(profile["activity"]), 10)
            self.assertEqual(profile["activity"][0]["details"], {"index": 11})

            with self.assertRaises(RecordNotFoundError):
                service.read_profile("missing")

    def test_loan_transitions_only_from_pending(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = RecordRepository(str(Path(tmp) / "records.db"))
            identity = repo.create_identity({"phone": "233551234567", "full_name": "Kwame Mensah"})
            loan = repo.create_loan(identity.identity_id, 100)
            service = AdminService(repo)

            settled = service.settle_loan(loan.loan_id)
            self.assertEqual(settled.status, LoanStatus.SETTLED)
            with self.assertRaises(InvalidTransitionError):
                service.reject_loan(loan.loan_id)
            with self.assertRaises(RecordNotFoundError):
                service.settle_loan("missing")

            other = repo.create_loan(identity.identity_id, 50)
            self.assertEqual(service.reject_loan(other.loan_id).status, LoanStatus.REJECTED)

    def test_activity_failure_does_not_undo_primary_write(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = _FailingActivityRepository(str(Path(tmp) / "records.db"))
            identity = repo.create_identity({"phone": "233551234567"})
            service = AdminService(repo)

            with self.assertLogs("records.admin_service", level="WARNING"):
                approved = service.approve_identity(identity.identity_id)

            self.assertEqual(approved.status, IdentityStatus.VERIFIED)
            loaded = repo.get_identity(identity.identity_id)
            assert loaded is not None
            self.assertEqual(loaded.status, IdentityStatus.VERIFIED)

    def test_lookup_courier(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            repo = RecordRepository(str(Path(tmp) / "records.db"))
            identity = repo.create_identity(
                {
                    "phone": "233551234567",
                    "full_name": "Kwame Mensah",
                    "license_number": "DL-12345",
                    "id_card_number": "GHA-123456789-01",
                }
            )
            service = AdminService(repo)

            for query in ("gha-123456789-01", "dl-12345", "0551234567"):
                found = service.lookup_courier(query)
                assert found is not None
                self.assertEqual(found.identity_id, identity.identity_id)
            self.assertIsNone(service.lookup_courier("DL-00000"))


if __name__ == "__main__":
    unittest.main()
