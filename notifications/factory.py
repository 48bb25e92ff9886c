from __future__ import annotations

import os
from typing import Any

from notifications.base import HttpJsonClient, UrllibHttpJsonClient
from notifications.channels import ARKESEL_SMS_ENDPOINT, ArkeselSmsNotifier, SmtpEmailNotifier


def build_notification_channels(
    config: dict[str, Any],
    http_client: HttpJsonClient | None = None,
) -> tuple[dict[str, Any], dict[str, str]]:
    nconf = config.get("notifications", {})
    selected = nconf.get("channels", [])
    if not isinstance(selected, list):
        selected = []

    client = http_client or UrllibHttpJsonClient()
    timeout_sec = float(nconf.get("timeout_sec", 10))
    channels: dict[str, Any] = {}
    errors: dict[str, str] = {}

    for raw in selected:
        name = str(raw).strip().lower()
        if not name:
            continue
        if name in channels or name in errors:
            continue

        if name == "sms":
            sconf = nconf.get("sms", {})
            api_key = _str_from_dict(sconf, "api_key") or os.getenv("SMS_API_KEY", "").strip()
            if not api_key:
                errors[name] = "notifications.sms.api_key (or SMS_API_KEY) is required"
                continue
            channels[name] = ArkeselSmsNotifier(
                api_key=api_key,
                sender=_str_from_dict(sconf, "sender") or "PCRS",
                http_client=client,
                endpoint=_str_from_dict(sconf, "endpoint") or ARKESEL_SMS_ENDPOINT,
                timeout_sec=timeout_sec,
            )
            continue

        if name == "email":
            econf = nconf.get("email", {})
            host = _str_from_dict(econf, "smtp_host")
            username = _str_from_dict(econf, "username") or os.getenv("SMTP_USERNAME", "").strip()
            password = _str_from_dict(econf, "password") or os.getenv("SMTP_PASSWORD", "")
            if not host or not username:
                errors[name] = "notifications.email.smtp_host and notifications.email.username are required"
                continue
            channels[name] = SmtpEmailNotifier(
                host=host,
                port=int(econf.get("smtp_port", 465) or 465),
                username=username,
                password=password,
                sender=_str_from_dict(econf, "sender") or username,
                timeout_sec=timeout_sec,
            )
            continue

        errors[name] = f"unsupported notification channel: {name}"

    return channels, errors


def _str_from_dict(value: Any, key: str) -> str:
    if not isinstance(value, dict):
        return ""
    return str(value.get(key, "") or "").strip()
