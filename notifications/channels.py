from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Callable

from notifications.base import HttpJsonClient, NotificationError

ARKESEL_SMS_ENDPOINT = "https://sms.arkesel.com/api/v2/sms/send"


class ArkeselSmsNotifier:
    name = "sms"

    def __init__(
        self,
        api_key: str,
        sender: str,
        http_client: HttpJsonClient,
        endpoint: str = ARKESEL_SMS_ENDPOINT,
        timeout_sec: float = 10.0,
    ) -> None:
        self.api_key = api_key.strip()
        self.sender = sender.strip()
        self.http_client = http_client
        self.endpoint = (endpoint or ARKESEL_SMS_ENDPOINT).strip()
        self.timeout_sec = float(timeout_sec)

    def send(self, recipient: str, message: str) -> None:
        if not self.api_key:
            raise NotificationError("sms api_key is empty")
        target = (recipient or "").strip()
        if not target:
            raise NotificationError("sms recipient is empty")
        payload = {
            "sender": self.sender,
            "message": message,
            "recipients": [target],
        }
        self.http_client.post_json(
            self.endpoint,
            payload,
            headers={"api-key": self.api_key},
            timeout_sec=self.timeout_sec,
        )


class SmtpEmailNotifier:
    name = "email"

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        sender: str,
        timeout_sec: float = 10.0,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP_SSL,
    ) -> None:
        self.host = host.strip()
        self.port = int(port)
        self.username = username.strip()
        self.password = password
        self.sender = (sender or username).strip()
        self.timeout_sec = float(timeout_sec)
        self.smtp_factory = smtp_factory

    def send(self, recipient: str, subject: str, text: str, html: str | None = None) -> None:
        target = (recipient or "").strip()
        if not target:
            raise NotificationError("email recipient is empty")
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = target
        message["Subject"] = subject
        message.set_content(text)
        if html:
            message.add_alternative(html, subtype="html")

        try:
            with self.smtp_factory(self.host, self.port, timeout=self.timeout_sec) as smtp:
                if self.username:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"email delivery failed: {exc}") from exc
