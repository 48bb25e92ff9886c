from __future__ import annotations

import unittest
from unittest import mock

from botocore.exceptions import ClientError

from core.enums import IdentityStatus, LoanStatus
from records.dynamo_repository import DynamoRecordRepository
from records.errors import DuplicateKeyError, RecordNotFoundError


def _conditional_check_failed() -> ClientError:
    response = {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}}
    return ClientError(response, "PutItem")


def _build_repo_for_test() -> DynamoRecordRepository:
    repo = DynamoRecordRepository.__new__(DynamoRecordRepository)
    repo._ddb = mock.Mock()
    repo._identities_table = mock.Mock()
    repo._keys_table = mock.Mock()
    repo._loans_table = mock.Mock()
    repo._activity_table = mock.Mock()
    return repo


def _identity_item(identity_id: str = "id-1", status: str = "unverified") -> dict[str, str | None]:
    return {
        "identity_id": identity_id,
        "phone": "233551234567",
        "full_name": "Kwame Mensah",
        "username": None,
        "email": None,
        "password_hash": None,
        "license_number": None,
        "id_card_number": "GHA-123456789-01",
        "role": "courier",
        "status": status,
        "verified_at": None,
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
    }


class DynamoRecordRepositoryTest(unittest.TestCase):
    def test_table_names_follow_prefix(self) -> None:
        resource = mock.Mock()
        DynamoRecordRepository(table_prefix="ussd", dynamodb_resource=resource)
        names = [call.args[0] for call in resource.Table.call_args_list]
        self.assertEqual(names, ["ussd-identities", "ussd-identity-keys", "ussd-loans", "ussd-activity"])

    def test_create_identity_claims_every_unique_key(self) -> None:
        repo = _build_repo_for_test()

        record = repo.create_identity(
            {"phone": "233551234567", "full_name": "Kwame Mensah", "id_card_number": "GHA-123456789-01"}
        )

        key_calls = repo._keys_table.put_item.call_args_list
        claimed = sorted(call.kwargs["Item"]["key_id"] for call in key_calls)
        self.assertEqual(claimed, ["id_card_number#GHA-123456789-01", "phone#233551234567"])
        for call in key_calls:
            self.assertEqual(call.kwargs["ConditionExpression"], "attribute_not_exists(key_id)")
            self.assertEqual(call.kwargs["Item"]["identity_id"], record.identity_id)
        item = repo._identities_table.put_item.call_args.kwargs["Item"]
        self.assertEqual(item["status"], "unverified")
        self.assertEqual(item["phone"], "233551234567")

    def test_create_identity_rolls_back_claims_on_conflict(self) -> None:
        repo = _build_repo_for_test()
        repo._keys_table.put_item.side_effect = [None, _conditional_check_failed()]

        with self.assertRaises(DuplicateKeyError) as ctx:
            repo.create_identity(
                {"phone": "233551234567", "full_name": "Kwame Mensah", "id_card_number": "GHA-123456789-01"}
            )

        self.assertEqual(ctx.exception.field_name, "id_card_number")
        repo._keys_table.delete_item.assert_called_once_with(Key={"key_id": "phone#233551234567"})
        repo._identities_table.put_item.assert_not_called()

    def test_other_client_errors_propagate(self) -> None:
        repo = _build_repo_for_test()
        repo._keys_table.put_item.side_effect = ClientError(
            {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
            "PutItem",
        )
        with self.assertRaises(ClientError):
            repo.create_identity({"phone": "233551234567"})

    def test_find_identity_goes_through_key_table(self) -> None:
        repo = _build_repo_for_test()
        repo._keys_table.get_item.return_value = {"Item": {"key_id": "phone#233551234567", "identity_id": "id-1"}}
        repo._identities_table.get_item.return_value = {"Item": _identity_item()}

        record = repo.find_identity("phone", "233551234567")

        assert record is not None
        self.assertEqual(record.identity_id, "id-1")
        self.assertEqual(record.status, IdentityStatus.UNVERIFIED)
        repo._keys_table.get_item.assert_called_once_with(Key={"key_id": "phone#233551234567"})

    def test_find_identity_miss(self) -> None:
        repo = _build_repo_for_test()
        repo._keys_table.get_item.return_value = {}
        self.assertIsNone(repo.find_identity("id_card_number", "GHA-000000000-00"))
        repo._identities_table.get_item.assert_not_called()

    def test_update_identity_status(self) -> None:
        repo = _build_repo_for_test()
        repo._identities_table.get_item.return_value = {"Item": _identity_item()}

        updated = repo.update_identity("id-1", {"status": IdentityStatus.VERIFIED})

        self.assertEqual(updated.status, IdentityStatus.VERIFIED)
        repo._keys_table.put_item.assert_not_called()
        self.assertEqual(repo._identities_table.put_item.call_args.kwargs["Item"]["status"], "verified")

    def test_update_missing_identity(self) -> None:
        repo = _build_repo_for_test()
        repo._identities_table.get_item.return_value = {}
        with self.assertRaises(RecordNotFoundError):
            repo.update_identity("missing", {"status": "verified"})

    def test_create_and_list_loans(self) -> None:
        repo = _build_repo_for_test()
        repo._identities_table.get_item.return_value = {"Item": _identity_item()}

        loan = repo.create_loan("id-1", 250)

        item = repo._loans_table.put_item.call_args.kwargs["Item"]
        self.assertEqual(item["identity_id"], "id-1")
        self.assertTrue(item["created_loan"].endswith(f"#{loan.loan_id}"))
        self.assertEqual(item["status"], "pending")

        repo._loans_table.query.return_value = {"Items": [item]}
        loans = repo.list_loans("id-1", limit=3)
        self.assertEqual(loans[0].loan_id, loan.loan_id)
        self.assertEqual(loans[0].status, LoanStatus.PENDING)
        query_kwargs = repo._loans_table.query.call_args.kwargs
        self.assertFalse(query_kwargs["ScanIndexForward"])
        self.assertEqual(query_kwargs["Limit"], 3)

    def test_activity_round_trip_through_items(self) -> None:
        repo = _build_repo_for_test()
        repo.append_activity("id-1", "registered", {"channel": "ussd"})
        item = repo._activity_table.put_item.call_args.kwargs["Item"]
        self.assertEqual(item["subject_id"], "id-1")

        repo._activity_table.query.return_value = {"Items": [item]}
        entries = repo.list_activity("id-1")
        self.assertEqual(entries[0].action, "registered")
        self.assertEqual(entries[0].details, {"channel": "ussd"})


if __name__ == "__main__":
    unittest.main()
