from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from typing import Any

from app.config import DEFAULT_CONFIG, deep_merge
from records.repository import RecordRepository
from ussd.handler import UssdRequestHandler


def _build_config(tmp: str) -> dict[str, Any]:
    return deep_merge(
        DEFAULT_CONFIG,
        {
            "dialog": {"variant": "borrower"},
            "records": {"sqlite_path": str(Path(tmp) / "records.db")},
        },
    )


def _body(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload).encode("utf-8")


class UssdRequestHandlerTest(unittest.TestCase):
    def test_rejects_invalid_payloads(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            handler = UssdRequestHandler(_build_config(tmp))
            status, payload = handler.handle(b"{not json")
            self.assertEqual(status, 400)
            self.assertFalse(payload["ok"])

            status, payload = handler.handle(b"[]")
            self.assertEqual(status, 400)

            status, payload = handler.handle(_body({"msisdn": "0551234567", "newSession": True}))
            self.assertEqual(status, 400)
            self.assertIn("sessionID", payload["error"])
            handler.close()

    def test_round_trip_echoes_identifiers(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            config = _build_config(tmp)
            repository = RecordRepository(config["records"]["sqlite_path"])
            handler = UssdRequestHandler(config, repository=repository)

            status, payload = handler.handle(
                _body(
                    {
                        "sessionID": "abc-1",
                        "userID": "gateway",
                        "newSession": True,
                        "msisdn": "0551234567",
                        "userData": "*920#",
                    }
                )
            )

            self.assertEqual(status, 200)
            self.assertEqual(
                set(payload.keys()),
                {"sessionID", "userID", "message", "continueSession", "msisdn"},
            )
            self.assertEqual(payload["sessionID"], "abc-1")
            self.assertEqual(payload["userID"], "gateway")
            self.assertEqual(payload["msisdn"], "0551234567")
            self.assertTrue(payload["continueSession"])
            self.assertIn("Enter Full Name:", payload["message"])

            for user_data, expected_continue in (("Kwame Mensah", True), ("GHA-123456789-01", False)):
                status, payload = handler.handle(
                    _body(
                        {
                            "sessionID": "abc-1",
                            "userID": "gateway",
                            "newSession": "false",
                            "msisdn": "0551234567",
                            "userData": user_data,
                        }
                    )
                )
                self.assertEqual(status, 200)
                self.assertEqual(payload["continueSession"], expected_continue)

            self.assertIn("successful", payload["message"])
            self.assertIsNotNone(repository.find_identity("phone", "233551234567"))
            handler.close()

    def test_expired_session(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            handler = UssdRequestHandler(_build_config(tmp))
            status, payload = handler.handle_payload(
                {"sessionID": "gone", "userID": "gateway", "newSession": False, "msisdn": "0551234567", "userData": "1"}
            )
            self.assertEqual(status, 200)
            self.assertFalse(payload["continueSession"])
            self.assertEqual(payload["message"], "Session expired. Please dial again.")
            handler.close()


if __name__ == "__main__":
    unittest.main()
