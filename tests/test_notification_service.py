from __future__ import annotations

import unittest
from typing import Any

from core.models import IdentityRecord, LoanRecord
from notifications.service import NotificationService


class _DummySms:
    name = "sms"

    def __init__(self, should_fail: bool = False) -> None:
        self.messages: list[tuple[str, str]] = []
        self.should_fail = should_fail

    def send(self, recipient: str, message: str) -> None:
        if self.should_fail:
            raise RuntimeError("send failed")
        self.messages.append((recipient, message))


class _DummyEmail:
    name = "email"

    def __init__(self) -> None:
        self.messages: list[tuple[str, str, str, str | None]] = []

    def send(self, recipient: str, subject: str, text: str, html: str | None = None) -> None:
        self.messages.append((recipient, subject, text, html))


def _builder_with_channels(channels: dict[str, Any], errors: dict[str, str] | None = None) -> Any:
    def _build(_: dict[str, Any]) -> tuple[dict[str, Any], dict[str, str]]:
        return channels, dict(errors or {})

    return _build


def _record(**overrides: Any) -> IdentityRecord:
    values: dict[str, Any] = {
        "identity_id": "id-1",
        "phone": "233551234567",
        "full_name": "Kwame Mensah",
        "username": "kwame",
        "email": "kwame@example.com",
        "license_number": "DL-12345",
        "id_card_number": "GHA-123456789-01",
    }
    values.update(overrides)
    return IdentityRecord(**values)


def _config(**notifications: Any) -> dict[str, Any]:
    nconf: dict[str, Any] = {"enabled": True}
    nconf.update(notifications)
    return {
        "service": {"name": "PCRS", "portal_url": "https://ncstcs.vercel.app"},
        "loan": {"currency": "GHS"},
        "notifications": nconf,
    }


class NotificationServiceTest(unittest.TestCase):
    def test_skip_when_disabled(self) -> None:
        sms = _DummySms()
        service = NotificationService(
            {"notifications": {"enabled": False}},
            channel_builder=_builder_with_channels({"sms": sms}),
        )
        self.assertIsNone(service.notify_registration(_record()))
        self.assertTrue(service.send_now("registration_welcome", _record()).skipped)
        self.assertEqual(sms.messages, [])
        service.shutdown()

    def test_registration_sends_sms_and_email(self) -> None:
        sms = _DummySms()
        email = _DummyEmail()
        service = NotificationService(_config(), channel_builder=_builder_with_channels({"sms": sms, "email": email}))

        future = service.notify_registration(_record())
        assert future is not None
        result = future.result(timeout=5)
        service.shutdown()

        self.assertEqual(sorted(result.sent_channels), ["email", "sms"])
        self.assertEqual(result.failed_channels, {})
        recipient, text = sms.messages[0]
        self.assertEqual(recipient, "233551234567")
        self.assertIn("https://ncstcs.vercel.app", text)
        email_to, subject, body, html = email.messages[0]
        self.assertEqual(email_to, "kwame@example.com")
        self.assertIn("PCRS", subject)
        self.assertIn("Hello kwame", body)
        self.assertIsNotNone(html)

    def test_email_skipped_without_address(self) -> None:
        sms = _DummySms()
        email = _DummyEmail()
        service = NotificationService(_config(), channel_builder=_builder_with_channels({"sms": sms, "email": email}))
        result = service.send_now("registration_welcome", _record(email=None))
        service.shutdown()
        self.assertEqual(result.sent_channels, ["sms"])
        self.assertEqual(email.messages, [])

    def test_failures_are_collected_not_raised(self) -> None:
        sms = _DummySms(should_fail=True)
        service = NotificationService(
            _config(),
            channel_builder=_builder_with_channels({"sms": sms}, errors={"email": "smtp_host is required"}),
        )
        with self.assertLogs("notifications.service", level="WARNING"):
            result = service.send_now("loan_requested", _record(), amount=100, currency="GHS", loan_id="loan-1")
        service.shutdown()
        self.assertEqual(result.sent_channels, [])
        self.assertIn("sms", result.failed_channels)
        self.assertIn("email", result.failed_channels)

    def test_unknown_template_is_reported(self) -> None:
        service = NotificationService(_config(), channel_builder=_builder_with_channels({"sms": _DummySms()}))
        result = service.send_now("birthday", _record())
        service.shutdown()
        self.assertIn("render", result.failed_channels)

    def test_lookup_details_goes_to_requesting_msisdn(self) -> None:
        sms = _DummySms()
        disabled = NotificationService(_config(), channel_builder=_builder_with_channels({"sms": sms}))
        self.assertIsNone(disabled.notify_lookup_details(_record(), "233201111111"))
        disabled.shutdown()

        service = NotificationService(
            _config(sms={"send_lookup_details": True}),
            channel_builder=_builder_with_channels({"sms": sms}),
        )
        future = service.notify_lookup_details(_record(), "233201111111")
        assert future is not None
        future.result(timeout=5)
        service.shutdown()
        recipient, text = sms.messages[0]
        self.assertEqual(recipient, "233201111111")
        self.assertIn("GHA-123456789-01", text)

    def test_loan_requested_message(self) -> None:
        sms = _DummySms()
        service = NotificationService(_config(), channel_builder=_builder_with_channels({"sms": sms}))
        loan = LoanRecord(loan_id="loan-1", identity_id="id-1", amount=250)
        future = service.notify_loan_requested(_record(), loan)
        assert future is not None
        future.result(timeout=5)
        service.shutdown()
        self.assertIn("GHS 250", sms.messages[0][1])


if __name__ == "__main__":
    unittest.main()
