from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable

from core.models import IdentityRecord, LoanRecord
from notifications import templates
from notifications.base import EmailChannel, SmsChannel
from notifications.factory import build_notification_channels

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NotificationResult:
    sent_channels: list[str]
    failed_channels: dict[str, str]
    skipped: bool = False


class NotificationService:
    """Transactional SMS/email delivery.

    `dispatch` hands the work to a small thread pool and returns at once; the
    dialog never waits on it. Every failure is logged and folded into the
    `NotificationResult` rather than raised.
    """

    def __init__(
        self,
        config: dict[str, Any],
        channel_builder: Callable[
            [dict[str, Any]],
            tuple[dict[str, Any], dict[str, str]],
        ] = build_notification_channels,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        nconf = config.get("notifications", {})
        self.enabled = bool(nconf.get("enabled", False))
        self.service_conf = config.get("service", {})
        self.currency = str(config.get("loan", {}).get("currency", "GHS") or "GHS")
        sms_conf = nconf.get("sms", {}) if isinstance(nconf.get("sms"), dict) else {}
        self.send_lookup_details = bool(sms_conf.get("send_lookup_details", False))
        self._channels, self._build_errors = channel_builder(config) if self.enabled else ({}, {})
        for name, reason in self._build_errors.items():
            logger.warning("notification-channel-disabled channel=%s reason=%s", name, reason)
        max_workers = _safe_int(nconf.get("max_workers", 2), default=2, minimum=1)
        self._executor = executor or ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify")

    def notify_registration(self, record: IdentityRecord) -> Future[NotificationResult] | None:
        return self.dispatch(templates.REGISTRATION_WELCOME, record)

    def notify_lookup_details(self, record: IdentityRecord, msisdn: str) -> Future[NotificationResult] | None:
        if not self.send_lookup_details:
            return None
        return self.dispatch(templates.LOOKUP_DETAILS, record, sms_recipient=msisdn)

    def notify_loan_requested(self, record: IdentityRecord, loan: LoanRecord) -> Future[NotificationResult] | None:
        return self.dispatch(
            templates.LOAN_REQUESTED,
            record,
            amount=loan.amount,
            currency=self.currency,
            loan_id=loan.loan_id,
        )

    def dispatch(self, template_key: str, record: IdentityRecord, **context: Any) -> Future[NotificationResult] | None:
        if not self.enabled or not self._channels:
            return None
        try:
            return self._executor.submit(self.send_now, template_key, record, **context)
        except RuntimeError as exc:
            logger.warning("notification-dispatch-failed template=%s error=%s", template_key, exc)
            return None

    def send_now(self, template_key: str, record: IdentityRecord, **context: Any) -> NotificationResult:
        if not self.enabled:
            return NotificationResult(sent_channels=[], failed_channels={}, skipped=True)

        sent: list[str] = []
        failed = dict(self._build_errors)
        try:
            rendered = templates.render(template_key, record, context, self.service_conf)
        except Exception as exc:  # noqa: BLE001
            logger.warning("notification-render-failed template=%s error=%s", template_key, exc)
            return NotificationResult(sent_channels=[], failed_channels={"render": str(exc)})

        sms: SmsChannel | None = self._channels.get("sms")
        if sms is not None and rendered.sms_text:
            recipient = str(context.get("sms_recipient") or record.phone or "")
            self._deliver(sent, failed, "sms", lambda: sms.send(recipient, rendered.sms_text))

        email: EmailChannel | None = self._channels.get("email")
        if email is not None and rendered.email_subject and record.email:
            self._deliver(
                sent,
                failed,
                "email",
                lambda: email.send(
                    record.email,
                    rendered.email_subject,
                    rendered.email_text or "",
                    rendered.email_html,
                ),
            )

        for name, reason in failed.items():
            logger.warning(
                "notification-failed template=%s channel=%s identity_id=%s error=%s",
                template_key,
                name,
                record.identity_id,
                reason,
            )
        return NotificationResult(sent_channels=sent, failed_channels=failed)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _deliver(sent: list[str], failed: dict[str, str], name: str, send: Callable[[], None]) -> None:
        try:
            send()
            sent.append(name)
        except Exception as exc:  # noqa: BLE001
            failed[name] = str(exc)


def _safe_int(value: Any, default: int, minimum: int = 0) -> int:
    try:
        resolved = int(value)
    except Exception:
        return default
    return max(minimum, resolved)
